"""Maps OpenAI Chat Completions stream chunks.

Also used for OpenAI-compatible servers (OpenRouter, vLLM, Ollama),
which report reasoning as ``delta.reasoning_content`` or
``delta.reasoning``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from tributary.mappers.base import EventMapper, parse_arguments
from tributary.message import Message, MessageRole, ToolCallPart
from tributary.result import ChatResult, FinishReason, Usage

logger = logging.getLogger(__name__)

FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "content_filter": FinishReason.CONTENT_FILTER,
}


@dataclass
class _PendingCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


class OpenAIChatEventMapper(EventMapper):
    handlers = {"chat.completion.chunk": "on_chunk"}

    def __init__(self) -> None:
        super().__init__()
        self.response_id: str | None = None
        self.model: str | None = None
        self.pending: dict[int, _PendingCall] = {}
        self.finish_reason: str | None = None
        self.usage: Usage | None = None

    def event_type(self, event):
        # Some compatible servers omit ``object`` on chunks.
        return getattr(event, "object", None) or "chat.completion.chunk"

    def on_chunk(self, chunk):
        results = []
        self.response_id = chunk.id or self.response_id
        self.model = chunk.model or self.model
        if getattr(chunk, "usage", None) is not None:
            self.usage = Usage(
                prompt_tokens=chunk.usage.prompt_tokens,
                response_tokens=chunk.usage.completion_tokens,
                total_tokens=chunk.usage.total_tokens,
            )
        for choice in chunk.choices or []:
            if choice.index != 0:
                continue
            results.extend(self._on_delta(choice.delta))
            if choice.finish_reason:
                self.finish_reason = choice.finish_reason
                results.extend(self._flush_tool_calls())
        return results

    def _on_delta(self, delta):
        if delta is None:
            return []
        results = []
        reasoning = (
            getattr(delta, "reasoning_content", None)
            or getattr(delta, "reasoning", None)
        )
        if reasoning:
            results.append(self.thinking_result(reasoning, self.response_id))
        if delta.content:
            results.append(self.text_result(delta.content, self.response_id))
        if getattr(delta, "refusal", None):
            results.append(self.text_result(delta.refusal, self.response_id))
        for fragment in delta.tool_calls or []:
            call = self.pending.setdefault(fragment.index, _PendingCall())
            if fragment.id:
                call.id = fragment.id
            function = fragment.function
            if function is not None:
                if function.name:
                    call.name = function.name
                if function.arguments:
                    call.arguments += function.arguments
        return results

    def _flush_tool_calls(self) -> list[ChatResult]:
        results = []
        for index in sorted(self.pending):
            pending = self.pending[index]
            if not pending.name:
                logger.warning(f"Dropping tool call at index {index} with no name")
                continue
            call = ToolCallPart(
                id=pending.id or f"call_{uuid.uuid4().hex}",
                name=pending.name,
                arguments=parse_arguments(pending.arguments, None, pending.name),
            )
            results.append(self.tool_call_result(call, self.response_id))
        self.pending.clear()
        return results

    def complete(self):
        results = self._flush_tool_calls()
        metadata = {"model": self.model} if self.model else {}
        results.append(ChatResult(
            id=self.response_id,
            output=Message(role=MessageRole.MODEL, metadata=self.thinking_metadata()),
            finish_reason=FINISH_REASONS.get(self.finish_reason, FinishReason.UNSPECIFIED),
            metadata=metadata,
            usage=self.usage,
        ))
        self.reset_message()
        return results
