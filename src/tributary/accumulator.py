"""Folds streamed message fragments into complete messages.

Mappers emit many small model messages (a few characters of text, one
tool call, a bit of trailing metadata). :func:`accumulate` merges them
and :func:`consolidate` turns the result into a well-formed message with
at most one text part.
"""

from typing import Any

from tributary.message import Message, MessageRole, TextPart, ToolCallPart


def merge_metadata(previous: dict, incoming: dict) -> dict:
    """Merge two metadata mappings.

    Lists are concatenated, nested mappings are merged key by key and
    scalars from *incoming* win.
    """
    merged: dict[str, Any] = dict(previous)
    for key, value in incoming.items():
        if key not in merged:
            merged[key] = value
            continue
        current = merged[key]
        if isinstance(current, list) and isinstance(value, list):
            merged[key] = current + value
        elif isinstance(current, dict) and isinstance(value, dict):
            merged[key] = merge_metadata(current, value)
        else:
            merged[key] = value
    return merged


def _merge_parts(previous: list, incoming: list) -> list:
    parts = list(previous)
    for part in incoming:
        if isinstance(part, TextPart):
            if not part.text:
                continue
            if parts and isinstance(parts[-1], TextPart):
                parts[-1] = TextPart(text=parts[-1].text + part.text)
            else:
                parts.append(part)
        elif isinstance(part, ToolCallPart):
            # A later call with the same id is the more complete one.
            for i, existing in enumerate(parts):
                if isinstance(existing, ToolCallPart) and existing.id == part.id:
                    parts[i] = part
                    break
            else:
                parts.append(part)
        else:
            parts.append(part)
    return parts


def accumulate(previous: Message, incoming: Message) -> Message:
    """Merge *incoming* into *previous*, keeping the role of *previous*."""
    return Message(
        role=previous.role,
        parts=_merge_parts(previous.parts, incoming.parts),
        metadata=merge_metadata(previous.metadata, incoming.metadata),
    )


def consolidate(message: Message) -> Message:
    """Collapse all text into a single leading part.

    Idempotent: consolidating a consolidated message returns an equal
    message.
    """
    text = "".join(p.text for p in message.parts if isinstance(p, TextPart))
    others = [p for p in message.parts if not isinstance(p, TextPart)]
    parts = ([TextPart(text=text)] if text else []) + others
    return Message(role=message.role, parts=parts, metadata=dict(message.metadata))


class MessageAccumulator:
    """Stateful wrapper around :func:`accumulate` for a single message."""

    def __init__(self, role: MessageRole = MessageRole.MODEL) -> None:
        self._message = Message(role=role)

    def feed(self, message: Message) -> None:
        self._message = accumulate(self._message, message)

    @property
    def message(self) -> Message:
        return self._message

    def finalize(self) -> Message:
        return consolidate(self._message)
