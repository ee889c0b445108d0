"""Maps Anthropic Messages API raw stream events.

Tool calls arrive as a ``content_block_start`` (id, name and possibly an
eager ``input`` object), any number of ``input_json_delta`` fragments and
a ``content_block_stop``. Fragments are buffered per content-block index
and the call is emitted when the block closes.
"""

import logging

from tributary.errors import ProviderError
from tributary.mappers.base import EventMapper, parse_arguments
from tributary.message import Message, MessageRole, ToolCallPart
from tributary.result import ChatResult, FinishReason, Usage

logger = logging.getLogger(__name__)

STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "pause_turn": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_CALLS,
    "refusal": FinishReason.CONTENT_FILTER,
}


class AnthropicEventMapper(EventMapper):
    handlers = {
        "message_start": "on_message_start",
        "content_block_start": "on_block_start",
        "content_block_delta": "on_block_delta",
        "content_block_stop": "on_block_stop",
        "message_delta": "on_message_delta",
        "message_stop": "on_message_stop",
        "ping": "on_ignored",
        "error": "on_error",
    }

    delta_handlers = {
        "text_delta": "on_text_delta",
        "input_json_delta": "on_input_json_delta",
        "thinking_delta": "on_thinking_delta",
        "signature_delta": "on_signature_delta",
        "citations_delta": "on_ignored",
    }

    def __init__(self) -> None:
        super().__init__()
        self.message_id: str | None = None
        self.model: str | None = None
        self.tool_ids: dict[int, str] = {}
        self.tool_names: dict[int, str] = {}
        self.argument_buffers: dict[int, str] = {}
        self.argument_seeds: dict[int, dict] = {}
        self.stop_reason: str | None = None
        self.stop_sequence: str | None = None
        self.input_tokens: int | None = None
        self.output_tokens: int | None = None

    # ------------------------------------------------------------------
    # Message-level events
    # ------------------------------------------------------------------

    def on_message_start(self, event):
        message = event.message
        self.message_id = message.id
        self.model = getattr(message, "model", None)
        usage = getattr(message, "usage", None)
        if usage is not None:
            self.input_tokens = usage.input_tokens
            self.output_tokens = getattr(usage, "output_tokens", None)
        return []

    def on_message_delta(self, event):
        self.stop_reason = event.delta.stop_reason
        self.stop_sequence = getattr(event.delta, "stop_sequence", None)
        usage = getattr(event, "usage", None)
        if usage is not None:
            self.output_tokens = usage.output_tokens
            if getattr(usage, "input_tokens", None) is not None:
                self.input_tokens = usage.input_tokens
        return []

    def on_message_stop(self, event):
        metadata = {}
        if self.model:
            metadata["model"] = self.model
        if self.stop_sequence:
            metadata["stop_sequence"] = self.stop_sequence
        total = None
        if self.input_tokens is not None or self.output_tokens is not None:
            total = (self.input_tokens or 0) + (self.output_tokens or 0)
        result = ChatResult(
            id=self.message_id,
            output=Message(
                role=MessageRole.MODEL, metadata=self.thinking_metadata(),
            ),
            finish_reason=STOP_REASONS.get(self.stop_reason, FinishReason.UNSPECIFIED),
            metadata=metadata,
            usage=Usage(
                prompt_tokens=self.input_tokens,
                response_tokens=self.output_tokens,
                total_tokens=total,
            ),
        )
        self.tool_ids.clear()
        self.tool_names.clear()
        self.argument_buffers.clear()
        self.argument_seeds.clear()
        self.stop_reason = None
        self.stop_sequence = None
        self.reset_message()
        return [result]

    def on_error(self, event):
        error = getattr(event, "error", None)
        message = getattr(error, "message", None) or str(error)
        raise ProviderError(f"Anthropic stream failed: {message}")

    def on_ignored(self, event):
        return []

    # ------------------------------------------------------------------
    # Content blocks
    # ------------------------------------------------------------------

    def on_block_start(self, event):
        block = event.content_block
        if block.type == "text":
            if block.text:
                return [self.text_result(block.text, self.message_id)]
        elif block.type == "tool_use":
            self.tool_ids[event.index] = block.id
            self.tool_names[event.index] = block.name
            self.argument_buffers[event.index] = ""
            if block.input:
                self.argument_seeds[event.index] = dict(block.input)
        elif block.type == "thinking":
            if block.thinking:
                return [self.thinking_result(block.thinking, self.message_id)]
        else:
            logger.debug(f"Ignoring Anthropic content block {block.type!r}")
        return []

    def on_block_delta(self, event):
        delta = event.delta
        handler_name = self.delta_handlers.get(delta.type)
        if handler_name is None:
            logger.debug(f"Ignoring Anthropic delta {delta.type!r}")
            return []
        return getattr(self, handler_name)(event.index, delta)

    def on_text_delta(self, index, delta):
        if not delta.text:
            return []
        return [self.text_result(delta.text, self.message_id)]

    def on_input_json_delta(self, index, delta):
        if index not in self.tool_ids:
            logger.warning(f"Argument delta for unknown tool block {index}")
            return []
        self.argument_buffers[index] += delta.partial_json
        # Streamed arguments supersede the eager seed.
        self.argument_seeds.pop(index, None)
        return []

    def on_thinking_delta(self, index, delta):
        if not delta.thinking:
            return []
        return [self.thinking_result(delta.thinking, self.message_id)]

    def on_signature_delta(self, index, delta):
        signature = getattr(delta, "signature", None)
        if not signature:
            logger.warning("Received signature_delta without a signature")
            return []
        self.signature = (self.signature or "") + signature
        return []

    def on_block_stop(self, event):
        index = event.index
        if index not in self.tool_ids:
            return []
        name = self.tool_names.pop(index)
        call = ToolCallPart(
            id=self.tool_ids.pop(index),
            name=name,
            arguments=parse_arguments(
                self.argument_buffers.pop(index, ""),
                self.argument_seeds.pop(index, None),
                name,
            ),
        )
        return [self.tool_call_result(call, self.message_id)]
