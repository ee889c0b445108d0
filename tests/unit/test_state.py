import logging

from tributary.message import Message, TextPart, ToolCallPart, ToolResultPart
from tributary.state import StreamingState, ToolIdCoordinator


class TestToolIdCoordinator:
    def test_validate_known_ids(self):
        coordinator = ToolIdCoordinator()
        coordinator.register([ToolCallPart(id="c1", name="echo")])
        assert "c1" in coordinator
        assert coordinator.validate([ToolResultPart(id="c1", name="echo")])

    def test_unknown_result_id_logged(self, caplog):
        coordinator = ToolIdCoordinator()
        with caplog.at_level(logging.WARNING, logger="tributary.state"):
            ok = coordinator.validate([ToolResultPart(id="zzz", name="echo")])
        assert not ok
        assert "zzz" in caplog.text


class TestStreamingState:
    def test_prefix_flags(self):
        state = StreamingState(history=[])
        state.request_next_message_prefix()
        assert state.should_prefix_next_message
        state.mark_message_started()
        assert not state.should_prefix_next_message
        assert not state.is_first_chunk_of_message
        state.reset_for_new_message()
        assert state.is_first_chunk_of_message
        assert state.accumulated_message.parts == []

    def test_recent_tool_execution_looks_at_last_two_messages(self):
        result = Message.user(parts=[ToolResultPart(id="c1", name="echo")])
        state = StreamingState(history=[Message.user("hi"), result])
        assert state.has_recent_tool_execution()
        state.add_to_history(Message.model("a"))
        assert state.has_recent_tool_execution()
        state.add_to_history(Message.user("b"))
        assert not state.has_recent_tool_execution()

    def test_suppressed_data(self):
        state = StreamingState(history=[])
        state.add_suppressed_metadata({"a": 1})
        state.add_suppressed_text_parts([TextPart(text="x"), TextPart(text="y")])
        assert state.suppressed_text == "xy"
        state.clear_suppressed_data()
        assert state.suppressed_metadata == {}
        assert state.suppressed_text == ""

    def test_empty_continuation_counter(self):
        state = StreamingState(history=[])
        state.note_empty_after_tools_continuation()
        assert state.empty_after_tools_continuations == 1
        state.reset_empty_after_tools_continuation()
        assert state.empty_after_tools_continuations == 0
