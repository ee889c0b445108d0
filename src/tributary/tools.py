import functools
import inspect
import re
import types
import typing
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
    tuple: "array",
    set: "array",
    type(None): "null",
}


class ToolCallResult(BaseModel):
    tool_name: str
    output: Any = None


def _json_type(annotation) -> dict:
    if annotation is inspect.Parameter.empty:
        return {"type": "string"}
    origin = typing.get_origin(annotation)
    if origin in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _json_type(args[0])
        return {"anyOf": [_json_type(a) for a in args]}
    if origin in (list, tuple, set):
        args = typing.get_args(annotation)
        schema = {"type": "array"}
        if args:
            schema["items"] = _json_type(args[0])
        return schema
    if origin is dict:
        return {"type": "object"}
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation.model_json_schema()
    return {"type": _JSON_TYPES.get(annotation, "string")}


_GOOGLE_HEADER = re.compile(r"^\s*(Args|Arguments|Parameters)\s*:\s*$")
_GOOGLE_ITEM = re.compile(r"^(\s*)(\w+)\s*(\([^)]*\))?\s*:\s*(.*)$")
_REST_ITEM = re.compile(r"^\s*:param\s+(?:\w+\s+)?(\w+)\s*:\s*(.*)$")
_NUMPY_ITEM = re.compile(r"^(\s*)(\w+)\s*:\s*.*$")


def _parse_param_descriptions(func: Callable) -> dict[str, str]:
    """Extract per-parameter descriptions from a docstring.

    Understands Google (``Args:``), reST (``:param x:``) and numpy
    (``Parameters`` + dashes) styles.
    """
    doc = inspect.getdoc(func)
    if not doc:
        return {}
    lines = doc.splitlines()

    rest = {}
    for line in lines:
        m = _REST_ITEM.match(line)
        if m:
            rest[m.group(1)] = m.group(2).strip()
    if rest:
        return rest

    for i, line in enumerate(lines):
        if line.strip() == "Parameters" and i + 1 < len(lines) \
                and set(lines[i + 1].strip()) == {"-"}:
            return _parse_numpy(lines[i + 2:])
        if _GOOGLE_HEADER.match(line):
            return _parse_google(lines[i + 1:])
    return {}


def _parse_google(lines: list[str]) -> dict[str, str]:
    descs: dict[str, list[str]] = {}
    item_indent = None
    current = None
    for line in lines:
        if not line.strip():
            continue
        indent = len(line) - len(line.lstrip())
        if item_indent is None:
            item_indent = indent
        if indent < item_indent:
            break
        m = _GOOGLE_ITEM.match(line)
        if indent == item_indent and m:
            current = m.group(2)
            descs[current] = [m.group(4).strip()]
        elif current is not None and indent > item_indent:
            descs[current].append(line.strip())
        else:
            break
    return {k: "\n".join(v) for k, v in descs.items()}


def _parse_numpy(lines: list[str]) -> dict[str, str]:
    descs: dict[str, list[str]] = {}
    current = None
    for line in lines:
        if not line.strip():
            continue
        indent = len(line) - len(line.lstrip())
        if indent == 0:
            m = _NUMPY_ITEM.match(line)
            if not m:
                break
            current = m.group(2)
            descs[current] = []
        elif current is not None:
            descs[current].append(line.strip())
    return {k: "\n".join(v) for k, v in descs.items()}


def _build_parameters_schema(func: Callable) -> tuple[dict, list[str]]:
    """Build a JSON Schema object for *func*'s parameters.

    Returns the schema and the list of required parameter names.
    """
    signature = inspect.signature(func)
    try:
        hints = typing.get_type_hints(func)
    except (NameError, TypeError):
        # Unresolvable forward references fall back to raw annotations.
        hints = {}
    descriptions = _parse_param_descriptions(func)
    properties = {}
    required = []
    for name, param in signature.parameters.items():
        prop = _json_type(hints.get(name, param.annotation))
        prop["description"] = descriptions.get(name, "")
        properties[name] = prop
        if param.default is inspect.Parameter.empty:
            required.append(name)
    schema = {"type": "object", "properties": properties, "required": required}
    return schema, required


class Tool(BaseModel):
    """A callable exposed to the model, with its JSON Schema."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    func: Callable = Field(exclude=True)
    name: str
    description: str = ""
    parameters_schema: dict = Field(default_factory=dict)

    def model_dump(self, **kwargs):
        """Return the OpenAI-style function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema,
            },
        }

    async def __call__(self, **kwargs) -> ToolCallResult:
        output = self.func(**kwargs)
        if inspect.isawaitable(output):
            output = await output
        return ToolCallResult(tool_name=self.name, output=output)

    def bind(self, **bound) -> "Tool":
        """Pre-fill arguments and hide them from the schema."""
        schema = {
            **self.parameters_schema,
            "properties": {
                k: v for k, v in self.parameters_schema.get("properties", {}).items()
                if k not in bound
            },
            "required": [
                r for r in self.parameters_schema.get("required", [])
                if r not in bound
            ],
        }
        return Tool(
            func=functools.partial(self.func, **bound),
            name=self.name,
            description=self.description,
            parameters_schema=schema,
        )


def tool(func: Callable | None = None, *, name: str | None = None,
         description: str | None = None):
    """Turn a function into a :class:`Tool`.

    Usable bare (``@tool``) or with arguments
    (``@tool(name=..., description=...)``).
    """
    def wrap(f: Callable) -> Tool:
        schema, _ = _build_parameters_schema(f)
        doc = inspect.getdoc(f) or ""
        summary = doc.split("\n\n")[0].strip()
        return Tool(
            func=f,
            name=name or f.__name__,
            description=description if description is not None else summary,
            parameters_schema=schema,
        )

    if func is not None:
        return wrap(func)
    return wrap
