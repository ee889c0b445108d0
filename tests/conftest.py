import pytest

from tributary.message import Message, MessageRole, TextPart, ToolCallPart
from tributary.providers.base import Capability, ModelProvider
from tributary.result import ChatResult, FinishReason, Usage
from tributary.tools import tool


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that replays pre-queued rounds of results. No network calls.

    Each entry of ``rounds`` is the list of :class:`ChatResult` one model
    invocation streams. When the queue runs dry the provider answers
    with an empty ``stop`` round.
    """

    name = "mock"

    def __init__(self, capabilities: Capability | None = None):
        super().__init__()
        self.capabilities = capabilities or (
            Capability.CHAT | Capability.TOOLS | Capability.TYPED_OUTPUT
            | Capability.TYPED_OUTPUT_WITH_TOOLS | Capability.THINKING
        )
        self.rounds: list[list[ChatResult]] = []
        self.call_log: list[dict] = []
        self.closed = 0

    async def send_stream(self, model, messages, tools=None,
                          output_schema=None, config=None):
        self.call_log.append({
            "model": model,
            "messages": list(messages),
            "tools": [t.name for t in tools or []],
            "output_schema": output_schema,
        })
        results = self.rounds.pop(0) if self.rounds else make_empty_round()
        try:
            for result in results:
                yield result
        finally:
            self.closed += 1


# ---------------------------------------------------------------------------
# Round builder helpers
# ---------------------------------------------------------------------------

def _fragment(*parts, metadata=None) -> Message:
    return Message(role=MessageRole.MODEL, parts=list(parts), metadata=metadata or {})


def make_final(
    finish: FinishReason = FinishReason.STOP,
    response_id: str = "resp_1",
    usage: Usage | None = None,
    metadata: dict | None = None,
) -> ChatResult:
    """The closing result a mapper emits at end of message."""
    return ChatResult(
        id=response_id,
        finish_reason=finish,
        metadata={"model": "mock-model"} if metadata is None else metadata,
        usage=usage or Usage(prompt_tokens=10, response_tokens=5, total_tokens=15),
    )


def make_text_round(*chunks: str, response_id: str = "resp_1") -> list[ChatResult]:
    """A round streaming *chunks* of text and then stopping."""
    results = [
        ChatResult(id=response_id, output=_fragment(TextPart(text=c)))
        for c in chunks
    ]
    results.append(make_final(FinishReason.STOP, response_id))
    return results


def make_tool_round(
    calls: list[tuple[str, dict, str]],
    text: str | None = None,
    response_id: str = "resp_1",
) -> list[ChatResult]:
    """A round issuing tool calls; each call is ``(name, args, call_id)``."""
    results = []
    if text:
        results.append(ChatResult(id=response_id, output=_fragment(TextPart(text=text))))
    for name, args, call_id in calls:
        results.append(ChatResult(
            id=response_id,
            output=_fragment(ToolCallPart(id=call_id, name=name, arguments=args)),
        ))
    results.append(make_final(FinishReason.TOOL_CALLS, response_id))
    return results


def make_empty_round(
    finish: FinishReason = FinishReason.STOP, response_id: str = "resp_empty",
) -> list[ChatResult]:
    return [make_final(finish, response_id)]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

@tool
def echo(text: str):
    """Echo the input back."""
    return text


@tool
def add(a: int, b: int):
    """Add two numbers."""
    return a + b


@tool
def explode():
    """Always fails."""
    raise RuntimeError("kaboom")


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def sample_tool():
    @tool
    def greet(name: str):
        """Say hello."""
        return f"Hello {name}"
    return greet


@pytest.fixture
def sample_async_tool():
    @tool
    async def async_greet(name: str):
        """Async greeting."""
        return f"Hello async {name}"
    return async_greet
