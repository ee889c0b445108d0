"""Optional OpenTelemetry tracing for turns, model rounds and tool calls.

Spans follow the GenAI semantic conventions. Nothing is emitted until
``tributary.instrument()`` has been called, and ``opentelemetry-api``
is only imported at that point.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "tributary") -> None:
    """Start emitting spans through the global tracer provider.

    Configure the provider first::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())
        tributary.instrument()

    Raises:
        ImportError: If ``opentelemetry-api`` is missing
            (``pip install tributary[otel]``).
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "Tracing needs opentelemetry-api: pip install tributary[otel]"
        )
    from opentelemetry import trace

    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured, spans will be discarded until one is set"
        )
    else:
        logger.info(f"Tracing enabled with tracer {tracer_name!r}")


def uninstrument() -> None:
    global _tracer
    _tracer = None


@asynccontextmanager
async def _span(name: str, attributes: dict, client: bool = False):
    if _tracer is None:
        yield None
        return
    kwargs = {"attributes": attributes}
    if client:
        from opentelemetry.trace import SpanKind

        kwargs["kind"] = SpanKind.CLIENT
    with _tracer.start_as_current_span(name, **kwargs) as span:
        yield span


def agent_span(provider: str, model: str):
    """``invoke_agent`` span around a whole turn."""
    return _span(f"invoke_agent {model}", {
        "gen_ai.operation.name": "invoke_agent",
        "gen_ai.provider.name": provider,
        "gen_ai.request.model": model,
    })


def completion_span(provider: str, model: str):
    """``chat`` client span around one streamed model round."""
    return _span(f"chat {model}", {
        "gen_ai.operation.name": "chat",
        "gen_ai.provider.name": provider,
        "gen_ai.request.model": model,
    }, client=True)


def tool_span(tool_name: str, call_id: str):
    return _span(f"execute_tool {tool_name}", {
        "gen_ai.operation.name": "execute_tool",
        "gen_ai.tool.name": tool_name,
        "gen_ai.tool.call.id": call_id,
    })


def record_usage(span, usage, response_id: str | None = None) -> None:
    if span is None or usage is None:
        return
    counts = {
        "gen_ai.usage.input_tokens": usage.prompt_tokens,
        "gen_ai.usage.output_tokens": usage.response_tokens,
    }
    for key, value in counts.items():
        if value is not None:
            span.set_attribute(key, value)
    if response_id:
        span.set_attribute("gen_ai.response.id", response_id)


def record_finish_reason(span, finish_reason) -> None:
    if span is None:
        return
    span.set_attribute("gen_ai.response.finish_reasons", [finish_reason.value])


def record_error(span, exception: BaseException) -> None:
    """Mark *span* failed with *exception*; a no-op when tracing is off."""
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute("error.type", type(exception).__qualname__)
