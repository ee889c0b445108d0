"""Maps google-genai ``GenerateContentResponse`` stream chunks.

Gemini sends each function call whole inside a single part, so calls
are emitted as soon as they arrive. Calls without an id get a generated
one so two identical calls in one message stay distinct.
"""

import base64
import logging
import uuid

from tributary.mappers.base import EventMapper
from tributary.message import DataPart, LinkPart, Message, MessageRole, ToolCallPart
from tributary.result import ChatResult, FinishReason, Usage

logger = logging.getLogger(__name__)

FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.CONTENT_FILTER,
    "BLOCKLIST": FinishReason.CONTENT_FILTER,
    "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER,
    "SPII": FinishReason.CONTENT_FILTER,
    "IMAGE_SAFETY": FinishReason.CONTENT_FILTER,
    "RECITATION": FinishReason.RECITATION,
}


def _enum_name(value) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", None) or str(value)


def _dump(value):
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", exclude_none=True)
    return value


class GoogleEventMapper(EventMapper):
    handlers = {"chunk": "on_chunk"}

    def __init__(self) -> None:
        super().__init__()
        self.response_id: str | None = None
        self.model: str | None = None
        self.usage: Usage | None = None
        self.safety_ratings: list | None = None
        self.citation_metadata = None
        self.block_reason: str | None = None
        self.finish_reason = FinishReason.UNSPECIFIED

    def event_type(self, event):
        return "chunk"

    def on_chunk(self, chunk):
        results = []
        self.response_id = getattr(chunk, "response_id", None) or self.response_id
        self.model = getattr(chunk, "model_version", None) or self.model
        usage = getattr(chunk, "usage_metadata", None)
        if usage is not None:
            self.usage = Usage(
                prompt_tokens=usage.prompt_token_count,
                response_tokens=usage.candidates_token_count,
                total_tokens=usage.total_token_count,
            )
        feedback = getattr(chunk, "prompt_feedback", None)
        if feedback is not None and getattr(feedback, "block_reason", None):
            self.block_reason = _enum_name(feedback.block_reason)

        candidates = getattr(chunk, "candidates", None) or []
        if not candidates:
            if self.block_reason:
                self.finish_reason = FinishReason.CONTENT_FILTER
            return results
        candidate = candidates[0]
        content = getattr(candidate, "content", None)
        for part in (getattr(content, "parts", None) or []):
            results.extend(self._on_part(part))
        if getattr(candidate, "safety_ratings", None):
            self.safety_ratings = [_dump(r) for r in candidate.safety_ratings]
        if getattr(candidate, "citation_metadata", None):
            self.citation_metadata = _dump(candidate.citation_metadata)
        reason = _enum_name(getattr(candidate, "finish_reason", None))
        if reason:
            self.finish_reason = FINISH_REASONS.get(reason, FinishReason.UNSPECIFIED)
        return results

    def _on_part(self, part):
        signature = getattr(part, "thought_signature", None)
        if signature:
            self.signature = base64.b64encode(signature).decode("ascii")
        if getattr(part, "thought", False):
            if part.text:
                return [self.thinking_result(part.text, self.response_id)]
            return []
        if part.text:
            return [self.text_result(part.text, self.response_id)]
        if part.function_call is not None:
            fc = part.function_call
            call = ToolCallPart(
                id=fc.id or f"call_{uuid.uuid4().hex}",
                name=fc.name,
                arguments=dict(fc.args or {}),
            )
            return [self.tool_call_result(call, self.response_id)]
        if part.inline_data is not None:
            blob = part.inline_data
            data_part = DataPart(
                data=blob.data,
                mime_type=blob.mime_type or "application/octet-stream",
                name=getattr(blob, "display_name", None),
            )
            return [ChatResult(
                id=self.response_id,
                output=Message(role=MessageRole.MODEL, parts=[data_part]),
            )]
        if part.file_data is not None:
            link = LinkPart(
                url=part.file_data.file_uri,
                mime_type=part.file_data.mime_type,
                name=getattr(part.file_data, "display_name", None),
            )
            return [ChatResult(
                id=self.response_id,
                output=Message(role=MessageRole.MODEL, parts=[link]),
            )]
        logger.debug("Ignoring Gemini part with no supported content")
        return []

    def complete(self):
        # Usage may arrive on a chunk after the one carrying finish_reason,
        # so the final result is only built once the stream ends.
        metadata = {}
        if self.model:
            metadata["model"] = self.model
        if self.safety_ratings:
            metadata["safety_ratings"] = self.safety_ratings
        if self.citation_metadata:
            metadata["citation_metadata"] = self.citation_metadata
        if self.block_reason:
            metadata["block_reason"] = self.block_reason
        result = ChatResult(
            id=self.response_id,
            output=Message(role=MessageRole.MODEL, metadata=self.thinking_metadata()),
            finish_reason=self.finish_reason,
            metadata=metadata,
            usage=self.usage,
        )
        self.reset_message()
        return [result]

