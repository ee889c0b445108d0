"""Canonical incremental results shared by mappers and orchestrators.

Every event mapper emits :class:`ChatResult` objects. Orchestrators
turn them into :class:`StreamingIterationResult` steps, and the agent
turns those back into :class:`ChatResult` for the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tributary.message import Message, MessageRole


class FinishReason(Enum):
    UNSPECIFIED = "unspecified"
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    RECITATION = "recitation"


def _add(a: int | None, b: int | None) -> int | None:
    if a is None and b is None:
        return None
    return (a or 0) + (b or 0)


@dataclass
class Usage:
    """Token counters for one or more model invocations."""

    prompt_tokens: int | None = None
    response_tokens: int | None = None
    total_tokens: int | None = None

    def __add__(self, other: Usage | None) -> Usage:
        if other is None:
            return self
        return Usage(
            prompt_tokens=_add(self.prompt_tokens, other.prompt_tokens),
            response_tokens=_add(self.response_tokens, other.response_tokens),
            total_tokens=_add(self.total_tokens, other.total_tokens),
        )


def empty_model_message() -> Message:
    return Message(role=MessageRole.MODEL)


@dataclass
class ChatResult:
    """One incremental unit produced by a mapper or returned to a caller."""

    output: Message = field(default_factory=empty_model_message)
    messages: list[Message] = field(default_factory=list)
    finish_reason: FinishReason = FinishReason.UNSPECIFIED
    metadata: dict[str, Any] = field(default_factory=dict)
    usage: Usage | None = None
    thinking: str | None = None
    id: str | None = None


@dataclass
class StreamingIterationResult:
    """One step yielded by an orchestrator while processing a round."""

    output: str = ""
    messages: list[Message] = field(default_factory=list)
    should_continue: bool = True
    finish_reason: FinishReason = FinishReason.UNSPECIFIED
    metadata: dict[str, Any] = field(default_factory=dict)
    usage: Usage | None = None
    thinking: str | None = None
    id: str | None = None
