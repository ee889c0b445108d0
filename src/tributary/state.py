import logging
from dataclasses import dataclass, field
from typing import Any

from tributary.message import Message, TextPart, ToolCallPart, ToolResultPart
from tributary.result import ChatResult, empty_model_message

logger = logging.getLogger(__name__)


class ToolIdCoordinator:
    """Tracks the tool call ids issued during a turn.

    Results for ids that were never issued are logged; backends that
    require a result for every call reject such histories.
    """

    def __init__(self) -> None:
        self._issued: dict[str, str] = {}

    def register(self, calls: list[ToolCallPart]) -> None:
        for call in calls:
            self._issued[call.id] = call.name

    def validate(self, results: list[ToolResultPart]) -> bool:
        ok = True
        for result in results:
            if result.id not in self._issued:
                logger.warning(
                    f"Tool result {result.id} ({result.name}) has no matching call"
                )
                ok = False
        return ok

    def __contains__(self, call_id: str) -> bool:
        return call_id in self._issued


@dataclass
class StreamingState:
    """Mutable per-turn state, owned by one orchestrator run."""

    history: list[Message]
    done: bool = False
    should_prefix_next_message: bool = False
    is_first_chunk_of_message: bool = True
    accumulated_message: Message = field(default_factory=empty_model_message)
    last_result: ChatResult | None = None
    empty_after_tools_continuations: int = 0
    suppressed_metadata: dict[str, Any] = field(default_factory=dict)
    suppressed_text_parts: list[TextPart] = field(default_factory=list)
    tool_ids: ToolIdCoordinator = field(default_factory=ToolIdCoordinator)

    def reset_for_new_message(self) -> None:
        self.accumulated_message = empty_model_message()
        self.last_result = None
        self.is_first_chunk_of_message = True

    def mark_message_started(self) -> None:
        self.is_first_chunk_of_message = False
        self.should_prefix_next_message = False

    def request_next_message_prefix(self) -> None:
        self.should_prefix_next_message = True

    def add_to_history(self, message: Message) -> None:
        self.history.append(message)

    def note_empty_after_tools_continuation(self) -> None:
        self.empty_after_tools_continuations += 1

    def reset_empty_after_tools_continuation(self) -> None:
        self.empty_after_tools_continuations = 0

    def add_suppressed_metadata(self, metadata: dict[str, Any]) -> None:
        self.suppressed_metadata.update(metadata)

    def add_suppressed_text_parts(self, parts: list[TextPart]) -> None:
        self.suppressed_text_parts.extend(parts)

    def clear_suppressed_data(self) -> None:
        self.suppressed_metadata = {}
        self.suppressed_text_parts = []

    @property
    def suppressed_text(self) -> str:
        return "".join(p.text for p in self.suppressed_text_parts)

    def has_recent_tool_execution(self) -> bool:
        """Whether one of the last two history entries carries tool results."""
        return any(m.has_tool_results for m in self.history[-2:])
