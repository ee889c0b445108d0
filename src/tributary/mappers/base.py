"""Shared machinery for turning backend stream events into results.

Each backend mapper declares a ``handlers`` table from event type tag to
handler method name. A mapper instance holds the buffers for a single
round and is discarded afterwards.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from tributary.errors import ProviderError
from tributary.message import Message, MessageRole, TextPart, ToolCallPart
from tributary.result import ChatResult

logger = logging.getLogger(__name__)

THINKING_METADATA_KEY = "_thinking_block"


def parse_arguments(buffer: str, seed: dict | None, tool_name: str) -> dict:
    """Parse streamed tool arguments, falling back to the eager seed."""
    if buffer.strip():
        try:
            parsed = json.loads(buffer)
        except json.JSONDecodeError as e:
            logger.warning(f"Malformed arguments for tool {tool_name}: {e}")
        else:
            if isinstance(parsed, dict):
                return parsed
            logger.warning(
                f"Arguments for tool {tool_name} are not an object: {parsed!r}"
            )
    return dict(seed or {})


class EventMapper:
    """Base class for per-backend event mappers."""

    handlers: dict[str, str] = {}

    def __init__(self) -> None:
        self.thinking = ""
        self.signature: str | None = None
        self.has_tool_calls = False

    def event_type(self, event: Any) -> str | None:
        return getattr(event, "type", None)

    def map(self, event: Any) -> list[ChatResult]:
        """Map one backend event to zero or more results.

        Unknown event types are skipped. A malformed event is logged and
        skipped so output already produced is not lost.
        """
        tag = self.event_type(event)
        handler_name = self.handlers.get(tag)
        if handler_name is None:
            logger.debug(f"Ignoring {type(self).__name__} event {tag!r}")
            return []
        try:
            return list(getattr(self, handler_name)(event) or [])
        except ProviderError:
            raise
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed {tag!r} event: {e}")
            return []

    def complete(self) -> list[ChatResult]:
        """Flush anything still buffered when the stream ends."""
        return []

    # ------------------------------------------------------------------
    # Result builders
    # ------------------------------------------------------------------

    @staticmethod
    def text_result(text: str, id: str | None = None) -> ChatResult:
        return ChatResult(
            id=id,
            output=Message(role=MessageRole.MODEL, parts=[TextPart(text=text)]),
        )

    def thinking_result(self, delta: str, id: str | None = None) -> ChatResult:
        self.thinking += delta
        return ChatResult(id=id, thinking=delta)

    def tool_call_result(self, call: ToolCallPart,
                         id: str | None = None) -> ChatResult:
        self.has_tool_calls = True
        return ChatResult(
            id=id, output=Message(role=MessageRole.MODEL, parts=[call]),
        )

    def thinking_metadata(self) -> dict:
        """Metadata replaying this message's reasoning, if it needs one."""
        if not (self.thinking or self.signature) or not self.has_tool_calls:
            return {}
        return {
            THINKING_METADATA_KEY: {
                "thinking": self.thinking,
                "signature": self.signature,
            }
        }

    def reset_message(self) -> None:
        self.thinking = ""
        self.signature = None
        self.has_tool_calls = False


async def map_stream(
    mapper: EventMapper, events: AsyncIterable[Any],
) -> AsyncIterator[ChatResult]:
    """Run *mapper* over an async event stream, then flush it."""
    async for event in events:
        for result in mapper.map(event):
            yield result
    for result in mapper.complete():
        yield result
