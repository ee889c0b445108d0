import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from pydantic import BaseModel

from tributary.errors import LLMRecoverableError
from tributary.instrumentation import record_error, tool_span
from tributary.message import ToolCallPart, ToolResultPart
from tributary.tools import Tool

logger = logging.getLogger(__name__)


@dataclass
class ToolExecutionResult:
    """Outcome of running one tool call."""

    call: ToolCallPart
    result: ToolResultPart
    success: bool


def _to_json_value(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json_value(v) for v in value]
    return str(value)


class ToolExecutor:
    """Runs tool calls against a name -> :class:`Tool` table.

    Handler failures never propagate: each becomes an unsuccessful
    result part whose payload describes the error, so the model can
    react to it on the next round.

    Args:
        tools: The tools available to the model.
        parallel: Run the calls of one batch concurrently.
    """

    def __init__(self, tools: Iterable[Tool] = (), parallel: bool = True):
        self.tools = {t.name: t for t in tools}
        self.parallel = parallel

    async def execute_batch(
        self, calls: list[ToolCallPart],
    ) -> list[ToolExecutionResult]:
        """Execute *calls*; results come back in call order."""
        if self.parallel and len(calls) > 1:
            return list(await asyncio.gather(
                *(self.execute(call) for call in calls)
            ))
        return [await self.execute(call) for call in calls]

    async def execute(self, call: ToolCallPart) -> ToolExecutionResult:
        async with tool_span(call.name, call.id) as span:
            outcome = await self._run(call, span)
        return outcome

    async def _run(self, call: ToolCallPart, span) -> ToolExecutionResult:
        tool_obj = self.tools.get(call.name)
        if tool_obj is None:
            logger.warning(f"Tool not found: {call.name}")
            return self._failure(call, f"tool '{call.name}' not found")

        try:
            inspect.signature(tool_obj.func).bind(**call.arguments)
        except TypeError as e:
            # Missing or unexpected arguments from the model.
            logger.warning(f"Invalid arguments for {call.name}: {e}")
            return self._failure(call, f"invalid arguments: {e}")

        logger.info(f"Calling {call.name} with {call.arguments}")
        try:
            result = await tool_obj(**call.arguments)
        except LLMRecoverableError as e:
            logger.info(f"Tool {call.name} requested retry: {e}")
            return self._success(call, str(e))
        except Exception as e:
            logger.error(f"Tool {call.name} raised: {e}")
            record_error(span, e)
            return self._failure(call, f"Error calling {call.name}: {e}")

        return self._success(call, _to_json_value(result.output))

    @staticmethod
    def _success(call: ToolCallPart, value: Any) -> ToolExecutionResult:
        part = ToolResultPart(id=call.id, name=call.name, result=value)
        return ToolExecutionResult(call=call, result=part, success=True)

    @staticmethod
    def _failure(call: ToolCallPart, error: str) -> ToolExecutionResult:
        part = ToolResultPart(
            id=call.id, name=call.name, result={"error": error}, success=False,
        )
        return ToolExecutionResult(call=call, result=part, success=False)
