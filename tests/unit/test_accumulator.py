from tributary.accumulator import (
    MessageAccumulator,
    accumulate,
    consolidate,
    merge_metadata,
)
from tributary.message import (
    DataPart,
    Message,
    MessageRole,
    TextPart,
    ToolCallPart,
)


def _model(*parts, metadata=None):
    return Message(role=MessageRole.MODEL, parts=list(parts), metadata=metadata or {})


def _fold(messages):
    acc = _model()
    for m in messages:
        acc = accumulate(acc, m)
    return acc


# ---------------------------------------------------------------------------
# accumulate
# ---------------------------------------------------------------------------

class TestAccumulate:
    def test_text_fragments_concatenate(self):
        acc = _fold([_model(TextPart(text="Hel")), _model(TextPart(text="lo"))])
        assert acc.parts == [TextPart(text="Hello")]

    def test_non_text_parts_append_in_order(self):
        call = ToolCallPart(id="c1", name="echo", arguments={})
        data = DataPart(data=b"\x00", mime_type="image/png")
        acc = _fold([_model(call), _model(data)])
        assert acc.parts == [call, data]

    def test_same_call_id_keeps_later_version(self):
        first = ToolCallPart(id="c1", name="echo", arguments={})
        later = ToolCallPart(id="c1", name="echo", arguments={"text": "hi"})
        acc = _fold([_model(first), _model(later)])
        assert acc.parts == [later]

    def test_distinct_identical_calls_are_kept(self):
        a = ToolCallPart(id="c1", name="echo", arguments={"text": "hi"})
        b = ToolCallPart(id="c2", name="echo", arguments={"text": "hi"})
        assert _fold([_model(a), _model(b)]).parts == [a, b]

    def test_empty_text_ignored(self):
        assert _fold([_model(TextPart(text=""))]).parts == []

    def test_role_of_previous_kept(self):
        acc = accumulate(Message(role=MessageRole.USER), _model(TextPart(text="x")))
        assert acc.role == MessageRole.USER


class TestMergeMetadata:
    def test_scalar_later_wins(self):
        assert merge_metadata({"a": 1}, {"a": 2}) == {"a": 2}

    def test_lists_concatenate(self):
        assert merge_metadata({"a": [1]}, {"a": [2, 3]}) == {"a": [1, 2, 3]}

    def test_maps_merge_recursively(self):
        merged = merge_metadata(
            {"m": {"x": 1, "n": {"y": [1]}}},
            {"m": {"z": 2, "n": {"y": [2]}}},
        )
        assert merged == {"m": {"x": 1, "z": 2, "n": {"y": [1, 2]}}}

    def test_inputs_not_mutated(self):
        left = {"m": {"x": 1}}
        merge_metadata(left, {"m": {"y": 2}})
        assert left == {"m": {"x": 1}}


# ---------------------------------------------------------------------------
# consolidate
# ---------------------------------------------------------------------------

class TestConsolidate:
    def test_at_most_one_text_part(self):
        call = ToolCallPart(id="c1", name="echo", arguments={})
        message = _model(TextPart(text="a"), call, TextPart(text="b"), TextPart(text="c"))
        result = consolidate(message)
        assert sum(isinstance(p, TextPart) for p in result.parts) == 1
        assert result.parts == [TextPart(text="abc"), call]

    def test_idempotent(self):
        message = _model(
            TextPart(text="a"),
            DataPart(data=b"\x01\x02", mime_type="image/png"),
            TextPart(text="b"),
            metadata={"k": [1]},
        )
        once = consolidate(message)
        assert consolidate(once) == once

    def test_empty_message_stays_empty(self):
        assert consolidate(_model()).parts == []

    def test_unicode_and_binary_survive(self):
        payload = b"\xff\xfe\x00binary\x80"
        acc = _fold([
            _model(TextPart(text="naïve ")),
            _model(TextPart(text="日本語 ✓")),
            _model(DataPart(data=payload, mime_type="application/octet-stream")),
        ])
        result = consolidate(acc)
        assert result.text == "naïve 日本語 ✓"
        assert result.parts[1].data == payload
        assert Message.model_validate_json(result.model_dump_json()) == result


def test_message_accumulator_wrapper():
    acc = MessageAccumulator()
    acc.feed(_model(TextPart(text="x"), metadata={"a": 1}))
    acc.feed(_model(TextPart(text="y"), metadata={"b": 2}))
    final = acc.finalize()
    assert final.text == "xy"
    assert final.metadata == {"a": 1, "b": 2}
