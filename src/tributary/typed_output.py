"""Orchestrators for turns that must end in a single JSON value.

Two strategies exist because backends disagree on how structured
output combines with tool use:

* ``NATIVE``: the backend constrains generation to the schema itself.
* ``RETURN_RESULT_TOOL``: a synthetic ``return_result`` tool whose input
  schema is the output schema is added to the tool set, and the model
  answers by calling it.

In both cases visible text is held back for the whole turn; only the
final structured value is streamed as output.
"""

import json
import logging
from collections.abc import AsyncIterator
from enum import Enum

from tributary.errors import UnsupportedCapabilityError
from tributary.message import Message, TextPart
from tributary.orchestrator import DefaultStreamingOrchestrator
from tributary.providers.base import Capability, ModelProvider
from tributary.result import ChatResult, StreamingIterationResult
from tributary.state import StreamingState
from tributary.tools import Tool

logger = logging.getLogger(__name__)

RETURN_RESULT_TOOL_NAME = "return_result"


class TypedOutputStrategy(Enum):
    NATIVE = "native"
    RETURN_RESULT_TOOL = "return_result_tool"


def select_typed_output_strategy(
    provider: ModelProvider, has_tools: bool,
) -> TypedOutputStrategy:
    """Pick how *provider* should produce typed output.

    Raises:
        UnsupportedCapabilityError: If the provider can do neither.
    """
    if provider.supports(Capability.TYPED_OUTPUT) and (
        not has_tools or provider.supports(Capability.TYPED_OUTPUT_WITH_TOOLS)
    ):
        return TypedOutputStrategy.NATIVE
    if provider.supports(Capability.TOOLS):
        return TypedOutputStrategy.RETURN_RESULT_TOOL
    raise UnsupportedCapabilityError(provider.name, "typed output")


def build_return_result_tool(schema: dict) -> Tool:
    """Synthetic tool whose arguments are the turn's final answer."""

    def return_result(**kwargs):
        return kwargs

    return Tool(
        func=return_result,
        name=RETURN_RESULT_TOOL_NAME,
        description=(
            "Return the final result to the user. Call this exactly once, "
            "after any other tools, with the complete answer as arguments."
        ),
        parameters_schema=schema,
    )


class TypedOutputStreamingOrchestrator(DefaultStreamingOrchestrator):
    """Holds back text and chunk metadata until the final answer.

    Used directly for the native strategy: a round that ends without
    tool calls releases its text as the structured answer; text from a
    round that did call tools is kept as suppressed text.
    """

    def allow_text_streaming(self, state: StreamingState, result: ChatResult) -> bool:
        return False

    def on_model_chunk(self, result: ChatResult, state: StreamingState):
        if result.metadata:
            state.add_suppressed_metadata(result.metadata)
        if result.thinking:
            yield StreamingIterationResult(id=result.id, thinking=result.thinking)

    def final_metadata(self, state: StreamingState) -> dict:
        metadata = dict(state.suppressed_metadata)
        if state.suppressed_text:
            metadata["suppressed_text"] = state.suppressed_text
        state.clear_suppressed_data()
        return metadata

    async def on_consolidated_message(
        self, message: Message, state: StreamingState,
    ) -> AsyncIterator[StreamingIterationResult]:
        empty = self.handle_empty_message(message, state)
        if empty is not None:
            yield empty
            return

        state.add_to_history(message)
        info = self._round_info(state)
        if not message.has_tool_calls:
            yield StreamingIterationResult(
                output=message.text, messages=[message], should_continue=False,
                metadata=self.final_metadata(state), **info,
            )
            return

        state.add_suppressed_text_parts(
            [p for p in message.parts if isinstance(p, TextPart)]
        )
        yield StreamingIterationResult(messages=[message], should_continue=True, **info)
        tool_message, _ = await self.execute_tool_calls(message.tool_calls, state)
        yield StreamingIterationResult(messages=[tool_message], should_continue=True)


class ReturnResultTypedOutputOrchestrator(TypedOutputStreamingOrchestrator):
    """Extracts the answer from a synthetic ``return_result`` call.

    Every call in the message is executed, ``return_result`` included,
    and the user message carrying the results holds one result per call.
    Once ``return_result`` succeeds its arguments become the final output.
    """

    async def on_consolidated_message(
        self, message: Message, state: StreamingState,
    ) -> AsyncIterator[StreamingIterationResult]:
        return_call = next(
            (c for c in message.tool_calls if c.name == RETURN_RESULT_TOOL_NAME),
            None,
        )
        if return_call is None:
            async for step in super().on_consolidated_message(message, state):
                yield step
            return

        state.add_suppressed_text_parts(
            [p for p in message.parts if isinstance(p, TextPart)]
        )
        state.add_to_history(message)
        info = self._round_info(state)
        yield StreamingIterationResult(messages=[message], should_continue=True, **info)

        tool_message, results = await self.execute_tool_calls(message.tool_calls, state)
        returned = next(r for r in results if r.call.id == return_call.id)
        if not returned.success:
            logger.warning(f"{RETURN_RESULT_TOOL_NAME} failed: {returned.result.result}")
            yield StreamingIterationResult(messages=[tool_message], should_continue=True)
            return

        metadata = self.final_metadata(state)
        metadata["tool_id"] = return_call.id
        metadata["tool_name"] = return_call.name
        yield StreamingIterationResult(messages=[tool_message], should_continue=True)
        yield StreamingIterationResult(
            output=json.dumps(return_call.arguments, ensure_ascii=False),
            should_continue=False,
            finish_reason=info["finish_reason"],
            metadata=metadata,
        )
