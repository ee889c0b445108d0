from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class MessageRole(Enum):
    SYSTEM = "system"
    USER = "user"
    MODEL = "model"


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class DataPart(BaseModel):
    """Binary payload. Serialized to JSON as base64."""

    model_config = ConfigDict(
        frozen=True, ser_json_bytes="base64", val_json_bytes="base64",
    )

    type: Literal["data"] = "data"
    data: bytes
    mime_type: str
    name: str | None = None


class LinkPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["link"] = "link"
    url: str
    mime_type: str | None = None
    name: str | None = None


class ToolCallPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_call"] = "tool_call"
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    id: str
    name: str
    result: Any = None
    success: bool = True


Part = Annotated[
    Union[TextPart, DataPart, LinkPart, ToolCallPart, ToolResultPart],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """A single conversation entry: a role plus an ordered list of parts."""

    model_config = ConfigDict(
        frozen=True, ser_json_bytes="base64", val_json_bytes="base64",
    )

    role: MessageRole
    parts: list[Part] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_serializer("role")
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, parts=[TextPart(text=text)])

    @classmethod
    def user(cls, text: str = "", parts: list | None = None) -> "Message":
        all_parts = [TextPart(text=text)] if text else []
        all_parts.extend(parts or [])
        return cls(role=MessageRole.USER, parts=all_parts)

    @classmethod
    def model(cls, text: str = "", parts: list | None = None,
              metadata: dict | None = None) -> "Message":
        all_parts = [TextPart(text=text)] if text else []
        all_parts.extend(parts or [])
        return cls(
            role=MessageRole.MODEL, parts=all_parts,
            metadata=metadata or {},
        )

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        return [p for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def tool_results(self) -> list[ToolResultPart]:
        return [p for p in self.parts if isinstance(p, ToolResultPart)]

    @property
    def has_tool_calls(self) -> bool:
        return any(isinstance(p, ToolCallPart) for p in self.parts)

    @property
    def has_tool_results(self) -> bool:
        return any(isinstance(p, ToolResultPart) for p in self.parts)
