"""Maps OpenAI Responses API stream events.

The completed response id is attached once, to the final message's
metadata under :data:`SESSION_METADATA_KEY`, so the next turn can send
``previous_response_id`` instead of replaying the whole history.
"""

import json
import logging

from tributary.errors import ProviderError
from tributary.mappers.base import EventMapper, parse_arguments
from tributary.message import Message, MessageRole, ToolCallPart
from tributary.result import ChatResult, FinishReason, Usage

logger = logging.getLogger(__name__)

SESSION_METADATA_KEY = "_responses_session"

INCOMPLETE_REASONS = {
    "max_output_tokens": FinishReason.LENGTH,
    "content_filter": FinishReason.CONTENT_FILTER,
}


class OpenAIResponsesEventMapper(EventMapper):
    handlers = {
        "response.created": "on_created",
        "response.output_item.added": "on_item_added",
        "response.output_item.done": "on_item_done",
        "response.function_call_arguments.delta": "on_arguments_delta",
        "response.function_call_arguments.done": "on_arguments_done",
        "response.output_text.delta": "on_text_delta",
        "response.refusal.delta": "on_text_delta",
        "response.reasoning_summary_text.delta": "on_reasoning_delta",
        "response.reasoning_text.delta": "on_reasoning_delta",
        "response.completed": "on_completed",
        "response.incomplete": "on_incomplete",
        "response.failed": "on_failed",
        "error": "on_stream_error",
    }

    def __init__(self) -> None:
        super().__init__()
        self.response_id: str | None = None
        self.call_ids: dict[int, str] = {}
        self.call_names: dict[int, str] = {}
        self.argument_buffers: dict[int, str] = {}
        self.argument_seeds: dict[int, dict] = {}
        self.finished = False

    def on_created(self, event):
        self.response_id = event.response.id
        return []

    def on_item_added(self, event):
        item = event.item
        if item.type != "function_call":
            return []
        index = event.output_index
        self.call_ids[index] = item.call_id
        self.call_names[index] = item.name
        self.argument_buffers[index] = ""
        if item.arguments:
            try:
                seed = json.loads(item.arguments)
            except json.JSONDecodeError:
                seed = None
            if isinstance(seed, dict):
                self.argument_seeds[index] = seed
        return []

    def on_arguments_delta(self, event):
        index = event.output_index
        if index not in self.call_ids:
            logger.warning(f"Argument delta for unknown output item {index}")
            return []
        self.argument_buffers[index] += event.delta
        self.argument_seeds.pop(index, None)
        return []

    def on_arguments_done(self, event):
        if event.output_index in self.call_ids and event.arguments:
            self.argument_buffers[event.output_index] = event.arguments
        return []

    def on_item_done(self, event):
        item = event.item
        if item.type == "reasoning":
            encrypted = getattr(item, "encrypted_content", None)
            if encrypted:
                self.signature = encrypted
            return []
        if item.type != "function_call":
            return []
        index = event.output_index
        if index not in self.call_ids:
            # Added event was missed; the done item is complete on its own.
            self.call_ids[index] = item.call_id
            self.call_names[index] = item.name
            self.argument_buffers[index] = item.arguments or ""
        name = self.call_names.pop(index)
        call = ToolCallPart(
            id=self.call_ids.pop(index),
            name=name,
            arguments=parse_arguments(
                self.argument_buffers.pop(index, ""),
                self.argument_seeds.pop(index, None),
                name,
            ),
        )
        return [self.tool_call_result(call, self.response_id)]

    def on_text_delta(self, event):
        if not event.delta:
            return []
        return [self.text_result(event.delta, self.response_id)]

    def on_reasoning_delta(self, event):
        if not event.delta:
            return []
        return [self.thinking_result(event.delta, self.response_id)]

    def on_completed(self, event):
        finish = FinishReason.TOOL_CALLS if self.has_tool_calls else FinishReason.STOP
        return self._finish(event.response, finish)

    def on_incomplete(self, event):
        details = getattr(event.response, "incomplete_details", None)
        reason = getattr(details, "reason", None)
        return self._finish(
            event.response,
            INCOMPLETE_REASONS.get(reason, FinishReason.UNSPECIFIED),
        )

    def on_failed(self, event):
        error = getattr(event.response, "error", None)
        message = getattr(error, "message", None) or "response failed"
        raise ProviderError(f"OpenAI response {event.response.id} failed: {message}")

    def on_stream_error(self, event):
        raise ProviderError(f"OpenAI stream error: {getattr(event, 'message', event)}")

    def _finish(self, response, finish_reason: FinishReason):
        if self.finished:
            return []
        self.finished = True
        self.response_id = response.id
        usage = None
        if getattr(response, "usage", None) is not None:
            usage = Usage(
                prompt_tokens=response.usage.input_tokens,
                response_tokens=response.usage.output_tokens,
                total_tokens=response.usage.total_tokens,
            )
        message_metadata = {SESSION_METADATA_KEY: {"response_id": response.id}}
        message_metadata.update(self.thinking_metadata())
        metadata = {"model": response.model} if getattr(response, "model", None) else {}
        self.call_ids.clear()
        self.call_names.clear()
        self.argument_buffers.clear()
        self.argument_seeds.clear()
        self.reset_message()
        return [ChatResult(
            id=response.id,
            output=Message(role=MessageRole.MODEL, metadata=message_metadata),
            finish_reason=finish_reason,
            metadata=metadata,
            usage=usage,
        )]
