import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from tributary.errors import ProviderError
from tributary.mappers.base import THINKING_METADATA_KEY
from tributary.mappers.openai_responses import SESSION_METADATA_KEY, OpenAIResponsesEventMapper
from tributary.message import TextPart, ToolCallPart
from tributary.result import FinishReason


# ---------------------------------------------------------------------------
# Fake Responses API event shapes
# ---------------------------------------------------------------------------

@dataclass
class FakeUsage:
    input_tokens: int = 20
    output_tokens: int = 4
    total_tokens: int = 24


@dataclass
class FakeError:
    message: str


@dataclass
class FakeIncomplete:
    reason: str


@dataclass
class FakeResponse:
    id: str = "resp_1"
    model: str = "gpt-test"
    usage: FakeUsage | None = field(default_factory=FakeUsage)
    error: FakeError | None = None
    incomplete_details: FakeIncomplete | None = None


@dataclass
class FakeItem:
    type: str
    call_id: str = ""
    name: str = ""
    arguments: str = ""
    encrypted_content: str | None = None


@dataclass
class FakeEvent:
    type: str
    output_index: int = 0
    delta: str = ""
    arguments: str = ""
    item: Any = None
    response: Any = None
    message: str = ""


def created():
    return FakeEvent("response.created", response=FakeResponse())


def completed(**kwargs):
    return FakeEvent("response.completed", response=FakeResponse(**kwargs))


def function_call(index, call_id, name, fragments, seed=""):
    events = [FakeEvent(
        "response.output_item.added", output_index=index,
        item=FakeItem("function_call", call_id=call_id, name=name, arguments=seed),
    )]
    events += [
        FakeEvent("response.function_call_arguments.delta", output_index=index, delta=f)
        for f in fragments
    ]
    events.append(FakeEvent(
        "response.output_item.done", output_index=index,
        item=FakeItem("function_call", call_id=call_id, name=name),
    ))
    return events


def run(events):
    mapper = OpenAIResponsesEventMapper()
    results = []
    for event in events:
        results.extend(mapper.map(event))
    results.extend(mapper.complete())
    return results


def calls_in(results):
    return [p for r in results for p in r.output.parts if isinstance(p, ToolCallPart)]


class TestText:
    def test_text_deltas(self):
        results = run([
            created(),
            FakeEvent("response.output_text.delta", delta="Hi"),
            FakeEvent("response.output_text.delta", delta=" there"),
            completed(),
        ])
        texts = [r.output.parts for r in results if r.output.parts]
        assert texts == [[TextPart(text="Hi")], [TextPart(text=" there")]]
        assert results[-1].finish_reason == FinishReason.STOP
        assert results[-1].usage.total_tokens == 24

    def test_response_id_emitted_once(self):
        results = run([created(), completed(), completed()])
        sessions = [
            r.output.metadata[SESSION_METADATA_KEY]
            for r in results if SESSION_METADATA_KEY in r.output.metadata
        ]
        assert sessions == [{"response_id": "resp_1"}]

    def test_incomplete_maps_to_length(self):
        results = run([FakeEvent(
            "response.incomplete",
            response=FakeResponse(incomplete_details=FakeIncomplete("max_output_tokens")),
        )])
        assert results[-1].finish_reason == FinishReason.LENGTH


class TestToolCalls:
    def test_fragmented_arguments(self):
        args = {"path": "/tmp/ß", "recursive": True}
        whole = json.dumps(args)
        fragments = [whole[i:i + 5] for i in range(0, len(whole), 5)]
        results = run([created(), *function_call(0, "call_1", "ls", fragments), completed()])
        assert calls_in(results) == [ToolCallPart(id="call_1", name="ls", arguments=args)]
        assert results[-1].finish_reason == FinishReason.TOOL_CALLS

    def test_arguments_done_replaces_buffer(self):
        events = function_call(0, "call_1", "ls", ['{"pa'])
        events.insert(-1, FakeEvent(
            "response.function_call_arguments.done", output_index=0, arguments='{"path": "/"}',
        ))
        assert calls_in(run(events))[0].arguments == {"path": "/"}

    def test_seed_used_when_no_deltas(self):
        results = run(function_call(0, "call_1", "ls", [], seed='{"path": "."}'))
        assert calls_in(results)[0].arguments == {"path": "."}

    def test_malformed_deltas_do_not_restore_seed(self):
        results = run(function_call(0, "call_1", "ls", ['{"path": "/tm'], seed='{"path": "."}'))
        assert calls_in(results)[0].arguments == {}


class TestReasoning:
    def test_reasoning_summary_is_thinking(self):
        results = run([
            created(),
            FakeEvent("response.reasoning_summary_text.delta", delta="Considering"),
            *function_call(1, "call_1", "ls", ["{}"]),
            FakeEvent(
                "response.output_item.done", output_index=0,
                item=FakeItem("reasoning", encrypted_content="enc"),
            ),
            completed(),
        ])
        assert results[0].thinking == "Considering"
        block = results[-1].output.metadata[THINKING_METADATA_KEY]
        assert block == {"thinking": "Considering", "signature": "enc"}

    def test_encrypted_reasoning_without_summary_still_attached(self):
        results = run([
            created(),
            *function_call(1, "call_1", "ls", ["{}"]),
            FakeEvent(
                "response.output_item.done", output_index=0,
                item=FakeItem("reasoning", encrypted_content="enc"),
            ),
            completed(),
        ])
        block = results[-1].output.metadata[THINKING_METADATA_KEY]
        assert block == {"thinking": "", "signature": "enc"}


class TestFailures:
    def test_failed_response_raises(self):
        event = FakeEvent(
            "response.failed", response=FakeResponse(error=FakeError("overloaded")),
        )
        with pytest.raises(ProviderError, match="overloaded"):
            OpenAIResponsesEventMapper().map(event)

    def test_error_event_raises(self):
        with pytest.raises(ProviderError):
            OpenAIResponsesEventMapper().map(FakeEvent("error", message="bad"))

    def test_housekeeping_events_ignored(self):
        mapper = OpenAIResponsesEventMapper()
        assert mapper.map(FakeEvent("response.in_progress")) == []
        assert mapper.map(FakeEvent("response.content_part.added")) == []
