import base64
from dataclasses import dataclass, field
from typing import Any

from tributary.mappers.base import THINKING_METADATA_KEY
from tributary.mappers.google import GoogleEventMapper
from tributary.message import DataPart, LinkPart, TextPart, ToolCallPart
from tributary.result import FinishReason


# ---------------------------------------------------------------------------
# Fake GenerateContentResponse shapes
# ---------------------------------------------------------------------------

@dataclass
class FakeFunctionCall:
    name: str
    args: dict = field(default_factory=dict)
    id: str | None = None


@dataclass
class FakeBlob:
    data: bytes
    mime_type: str


@dataclass
class FakeFileData:
    file_uri: str
    mime_type: str | None = None


@dataclass
class FakePart:
    text: str | None = None
    thought: bool | None = None
    thought_signature: bytes | None = None
    function_call: FakeFunctionCall | None = None
    inline_data: FakeBlob | None = None
    file_data: FakeFileData | None = None


@dataclass
class FakeContent:
    parts: list = field(default_factory=list)
    role: str = "model"


@dataclass
class FakeCandidate:
    content: FakeContent | None = None
    finish_reason: Any = None
    safety_ratings: list | None = None
    citation_metadata: Any = None


@dataclass
class FakeUsage:
    prompt_token_count: int = 9
    candidates_token_count: int = 2
    total_token_count: int = 11


@dataclass
class FakeFeedback:
    block_reason: str | None = None


@dataclass
class FakeChunk:
    candidates: list = field(default_factory=list)
    usage_metadata: FakeUsage | None = None
    response_id: str = "g-1"
    model_version: str = "gemini-test"
    prompt_feedback: FakeFeedback | None = None


def chunk(*parts, finish=None, usage=None):
    return FakeChunk(
        candidates=[FakeCandidate(content=FakeContent(parts=list(parts)), finish_reason=finish)],
        usage_metadata=usage,
    )


def run(chunks):
    mapper = GoogleEventMapper()
    results = []
    for c in chunks:
        results.extend(mapper.map(c))
    results.extend(mapper.complete())
    return results


def calls_in(results):
    return [p for r in results for p in r.output.parts if isinstance(p, ToolCallPart)]


class TestParts:
    def test_text_streams(self):
        results = run([chunk(FakePart(text="Hola")), chunk(FakePart(text="!"), finish="STOP")])
        assert [r.output.parts for r in results[:2]] == [
            [TextPart(text="Hola")], [TextPart(text="!")],
        ]
        assert results[-1].finish_reason == FinishReason.STOP

    def test_thought_parts_are_thinking(self):
        results = run([chunk(FakePart(text="pondering", thought=True))])
        assert results[0].thinking == "pondering"
        assert results[0].output.parts == []

    def test_inline_data_and_file_data(self):
        results = run([chunk(
            FakePart(inline_data=FakeBlob(data=b"\x89PNG\x00", mime_type="image/png")),
            FakePart(file_data=FakeFileData(file_uri="gs://b/doc.pdf", mime_type="application/pdf")),
        )])
        assert results[0].output.parts == [DataPart(data=b"\x89PNG\x00", mime_type="image/png")]
        assert results[1].output.parts == [
            LinkPart(url="gs://b/doc.pdf", mime_type="application/pdf"),
        ]


class TestFunctionCalls:
    def test_call_emitted_whole(self):
        results = run([chunk(
            FakePart(function_call=FakeFunctionCall("lookup", {"id": 4}, id="fc_1")),
            finish="STOP",
        )])
        assert calls_in(results) == [ToolCallPart(id="fc_1", name="lookup", arguments={"id": 4})]

    def test_identical_calls_without_ids_stay_distinct(self):
        results = run([chunk(
            FakePart(function_call=FakeFunctionCall("lookup", {"id": 4})),
            FakePart(function_call=FakeFunctionCall("lookup", {"id": 4})),
        )])
        calls = calls_in(results)
        assert len(calls) == 2
        assert calls[0].id != calls[1].id

    def test_thought_signature_attached_with_tool_calls(self):
        results = run([chunk(
            FakePart(text="plan", thought=True),
            FakePart(
                function_call=FakeFunctionCall("lookup", {}, id="fc_1"),
                thought_signature=b"\x01\x02sig",
            ),
            finish="STOP",
        )])
        block = results[-1].output.metadata[THINKING_METADATA_KEY]
        assert block["thinking"] == "plan"
        assert base64.b64decode(block["signature"]) == b"\x01\x02sig"

    def test_signature_kept_without_thought_text(self):
        results = run([chunk(
            FakePart(
                function_call=FakeFunctionCall("lookup", {}, id="fc_1"),
                thought_signature=b"sig",
            ),
            finish="STOP",
        )])
        block = results[-1].output.metadata[THINKING_METADATA_KEY]
        assert block == {"thinking": "", "signature": base64.b64encode(b"sig").decode()}

    def test_no_thinking_metadata_for_plain_text(self):
        results = run([chunk(FakePart(text="hi"), finish="STOP")])
        assert results[-1].output.metadata == {}


class TestFinish:
    def test_finish_reason_mapping(self):
        for raw, expected in [
            ("MAX_TOKENS", FinishReason.LENGTH),
            ("SAFETY", FinishReason.CONTENT_FILTER),
            ("SPII", FinishReason.CONTENT_FILTER),
            ("RECITATION", FinishReason.RECITATION),
            ("OTHER", FinishReason.UNSPECIFIED),
        ]:
            assert run([chunk(finish=raw)])[-1].finish_reason == expected

    def test_usage_arriving_after_finish_is_kept(self):
        results = run([chunk(FakePart(text="x"), finish="STOP"), FakeChunk(usage_metadata=FakeUsage())])
        final = results[-1]
        assert final.usage.prompt_tokens == 9
        assert final.usage.total_tokens == 11
        assert final.metadata["model"] == "gemini-test"
        assert final.id == "g-1"

    def test_blocked_prompt(self):
        results = run([FakeChunk(prompt_feedback=FakeFeedback(block_reason="SAFETY"))])
        assert results[-1].finish_reason == FinishReason.CONTENT_FILTER
        assert results[-1].metadata["block_reason"] == "SAFETY"

    def test_single_final_result(self):
        results = run([chunk(FakePart(text="a"), finish="STOP")])
        assert sum(1 for r in results if r.usage is not None or r.metadata) == 1
