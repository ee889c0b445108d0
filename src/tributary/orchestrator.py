"""Drives a turn: stream a round, consolidate it, run tools, repeat.

A round moves through ``streaming -> consolidating`` and then either
``executing tools -> next round`` or ``done``. :meth:`process_iteration`
handles one round; :meth:`run` loops rounds until a step says to stop.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from tributary.accumulator import accumulate, consolidate
from tributary.executor import ToolExecutionResult, ToolExecutor
from tributary.message import Message, MessageRole, ToolCallPart
from tributary.providers.base import ChatModel
from tributary.result import ChatResult, FinishReason, StreamingIterationResult
from tributary.state import StreamingState

logger = logging.getLogger(__name__)

TERMINAL_FINISH_REASONS = (FinishReason.STOP, FinishReason.LENGTH)


class DefaultStreamingOrchestrator:
    """Streams text as it arrives and executes every tool call issued.

    Args:
        executor: Runs the tool calls found in consolidated messages.
    """

    def __init__(self, executor: ToolExecutor):
        self.executor = executor

    async def run(
        self,
        model: ChatModel,
        state: StreamingState,
        output_schema: dict | None = None,
        max_rounds: int = 50,
    ) -> AsyncIterator[StreamingIterationResult]:
        """Run rounds until one yields a step with ``should_continue=False``."""
        rounds = 0
        while not state.done:
            if rounds >= max_rounds:
                logger.warning(f"Stopping turn after {max_rounds} rounds")
                state.done = True
                yield StreamingIterationResult(
                    should_continue=False,
                    metadata={**self.final_metadata(state), "max_rounds_reached": True},
                )
                return
            rounds += 1
            logger.info(f"Starting round {rounds} with {model.name}")
            async with aclosing(
                self.process_iteration(model, state, output_schema)
            ) as steps:
                async for step in steps:
                    yield step
                    if not step.should_continue:
                        state.done = True

    async def process_iteration(
        self,
        model: ChatModel,
        state: StreamingState,
        output_schema: dict | None = None,
    ) -> AsyncIterator[StreamingIterationResult]:
        """Stream one model invocation and act on its consolidated message."""
        state.reset_for_new_message()
        self.before_model_stream(state)
        async with aclosing(model.send_stream(state.history, output_schema)) as stream:
            async for result in stream:
                for step in self.on_model_chunk(result, state):
                    yield step
                state.accumulated_message = accumulate(
                    state.accumulated_message,
                    self.select_message_for_accumulation(result),
                )
                state.last_result = result

        message = consolidate(state.accumulated_message)
        async for step in self.on_consolidated_message(message, state):
            yield step

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def before_model_stream(self, state: StreamingState) -> None:
        pass

    def allow_text_streaming(self, state: StreamingState, result: ChatResult) -> bool:
        return True

    def final_metadata(self, state: StreamingState) -> dict:
        return {}

    @staticmethod
    def select_message_for_accumulation(result: ChatResult) -> Message:
        if result.output.parts or result.output.metadata or not result.messages:
            return result.output
        return result.messages[0]

    def on_model_chunk(self, result: ChatResult, state: StreamingState):
        text = result.output.text if self.allow_text_streaming(state, result) else ""
        if not text and not result.metadata and not result.thinking:
            return
        if text:
            if state.should_prefix_next_message and state.is_first_chunk_of_message:
                text = "\n" + text
            state.mark_message_started()
        yield StreamingIterationResult(
            id=result.id,
            output=text,
            metadata=dict(result.metadata),
            thinking=result.thinking,
        )

    # ------------------------------------------------------------------
    # Consolidation
    # ------------------------------------------------------------------

    def _round_info(self, state: StreamingState) -> dict:
        last = state.last_result
        if last is None:
            return {"finish_reason": FinishReason.UNSPECIFIED}
        return {"finish_reason": last.finish_reason, "usage": last.usage, "id": last.id}

    def handle_empty_message(
        self, message: Message, state: StreamingState,
    ) -> StreamingIterationResult | None:
        """Decide what an empty consolidated message means.

        Right after a tool round one empty reply is tolerated and the
        round is retried without recording it; the second one ends the
        turn. Otherwise an empty reply with a ``stop`` or ``length``
        finish ends the turn. Returns ``None`` when the message should be
        handled normally.
        """
        if message.parts:
            return None
        info = self._round_info(state)
        if state.has_recent_tool_execution():
            if state.empty_after_tools_continuations < 1:
                state.note_empty_after_tools_continuation()
                logger.info("Empty reply after tool results, asking the model again")
                return StreamingIterationResult(should_continue=True, **info)
            logger.info("Second empty reply after tool results, ending turn")
            state.add_to_history(message)
            return StreamingIterationResult(
                messages=[message], should_continue=False,
                metadata=self.final_metadata(state), **info,
            )
        if info["finish_reason"] in TERMINAL_FINISH_REASONS:
            state.add_to_history(message)
            return StreamingIterationResult(
                messages=[message], should_continue=False,
                metadata=self.final_metadata(state), **info,
            )
        return None

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
                messages=[message], should_continue=False,
                metadata=self.final_metadata(state), **info,
            )
            return

        yield StreamingIterationResult(messages=[message], should_continue=True, **info)
        tool_message, _ = await self.execute_tool_calls(message.tool_calls, state)
        yield StreamingIterationResult(messages=[tool_message], should_continue=True)

    async def execute_tool_calls(
        self, calls: list[ToolCallPart], state: StreamingState,
    ) -> tuple[Message, list[ToolExecutionResult]]:
        """Run *calls* and record one user message holding every result."""
        state.tool_ids.register(calls)
        state.request_next_message_prefix()
        results = await self.executor.execute_batch(calls)
        parts = [r.result for r in results]
        state.tool_ids.validate(parts)
        tool_message = Message(role=MessageRole.USER, parts=parts)
        state.add_to_history(tool_message)
        state.reset_empty_after_tools_continuation()
        return tool_message, results
