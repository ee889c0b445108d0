import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel

from tributary.accumulator import merge_metadata
from tributary.config import AgentConfig
from tributary.errors import ConfigurationError, UnsupportedCapabilityError
from tributary.executor import ToolExecutor
from tributary.instrumentation import agent_span, record_error, record_usage
from tributary.message import Message, MessageRole, TextPart
from tributary.orchestrator import DefaultStreamingOrchestrator
from tributary.providers.base import Capability, ModelProvider
from tributary.result import ChatResult, FinishReason, StreamingIterationResult, Usage
from tributary.state import StreamingState
from tributary.tools import Tool
from tributary.typed_output import (
    ReturnResultTypedOutputOrchestrator,
    TypedOutputStrategy,
    TypedOutputStreamingOrchestrator,
    build_return_result_tool,
    select_typed_output_strategy,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class AgentResponseAccumulator:
    """Folds a turn's streamed results into one final result.

    Output text and thinking are concatenated, messages collected in
    order, metadata merged with later values winning, and usage summed.
    The finish reason and id come from the last result that set them.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self.output: list[str] = []
        self.messages: list[Message] = list(messages or [])
        self.thinking: list[str] = []
        self.metadata: dict = {}
        self.usage: Usage | None = None
        self.finish_reason = FinishReason.UNSPECIFIED
        self.id: str | None = None

    def add(self, result: ChatResult) -> None:
        if result.output.text:
            self.output.append(result.output.text)
        self.messages.extend(result.messages)
        if result.thinking:
            self.thinking.append(result.thinking)
        self.metadata = merge_metadata(self.metadata, result.metadata)
        if result.usage is not None:
            self.usage = result.usage + self.usage if self.usage else result.usage
        if result.finish_reason != FinishReason.UNSPECIFIED:
            self.finish_reason = result.finish_reason
        if result.id:
            self.id = result.id

    def build(self) -> ChatResult:
        return ChatResult(
            id=self.id,
            output=Message.model("".join(self.output)),
            messages=self.messages,
            finish_reason=self.finish_reason,
            metadata=self.metadata,
            usage=self.usage,
            thinking="".join(self.thinking) or None,
        )


@dataclass
class TypedChatResult(Generic[T]):
    """A parsed typed answer plus the full turn result."""

    value: T
    result: ChatResult


class _MetadataGuard:
    """Drops metadata entries already sent with the same value this turn."""

    def __init__(self) -> None:
        self._seen: set[tuple[str, str]] = set()

    def filter(self, metadata: dict) -> dict:
        fresh = {}
        for key, value in metadata.items():
            fingerprint = (key, json.dumps(value, sort_keys=True, default=str))
            if fingerprint in self._seen:
                continue
            self._seen.add(fingerprint)
            fresh[key] = value
        return fresh


class Agent:
    """Sends conversations to one provider and model.

    Args:
        provider: The backend to talk to.
        model: The backend's model name.
        tools: Tools the model may call.
        system_prompt: Prepended as the system message of every turn.
        config: Turn options; see :class:`AgentConfig`.
    """

    def __init__(
        self,
        provider: ModelProvider,
        model: str,
        tools: list[Tool] | None = None,
        system_prompt: str | None = None,
        config: AgentConfig | None = None,
    ):
        self.provider = provider
        self.model = model
        self.tools = list(tools or [])
        self.system_prompt = system_prompt
        self.config = config or AgentConfig()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def send_stream(
        self,
        prompt: str = "",
        history: list[Message] | None = None,
        output_schema: dict | None = None,
        attachments: list | None = None,
    ) -> AsyncIterator[ChatResult]:
        """Stream a turn as it happens.

        Capability problems raise :class:`UnsupportedCapabilityError`
        here, before any request is made.
        """
        tools = list(self.tools)
        orchestrator, model_schema, tools = self._plan(output_schema, tools)
        messages = self._build_history(prompt, history, attachments)
        return self._stream(orchestrator, messages, tools, model_schema)

    async def send(
        self,
        prompt: str = "",
        history: list[Message] | None = None,
        output_schema: dict | None = None,
        attachments: list | None = None,
    ) -> ChatResult:
        """Run a turn to completion.

        ``messages`` on the result holds the new user message followed by
        every message the turn appended.
        """
        stream = self.send_stream(prompt, history, output_schema, attachments)
        accumulator = AgentResponseAccumulator(
            messages=[Message.user(prompt, attachments)] if prompt or attachments else [],
        )
        async with aclosing(stream) as results:
            async for result in results:
                accumulator.add(result)
        return accumulator.build()

    async def send_for(
        self,
        prompt: str,
        output_type: type[T],
        history: list[Message] | None = None,
        attachments: list | None = None,
    ) -> TypedChatResult[T]:
        """Run a turn whose answer is parsed into *output_type*."""
        result = await self.send(
            prompt, history, output_type.model_json_schema(), attachments,
        )
        return TypedChatResult(
            value=output_type.model_validate_json(result.output.text),
            result=result,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _plan(self, output_schema: dict | None, tools: list[Tool]):
        if tools and not self.provider.supports(Capability.TOOLS):
            raise UnsupportedCapabilityError(self.provider.name, "tool calling")
        if self.config.thinking and not self.provider.supports(Capability.THINKING):
            raise UnsupportedCapabilityError(self.provider.name, "thinking")

        executor_tools = tools
        if output_schema is None:
            orchestrator = DefaultStreamingOrchestrator
            model_schema = None
        else:
            strategy = select_typed_output_strategy(self.provider, bool(tools))
            if strategy == TypedOutputStrategy.NATIVE:
                orchestrator = TypedOutputStreamingOrchestrator
                model_schema = output_schema
            else:
                orchestrator = ReturnResultTypedOutputOrchestrator
                model_schema = None
                executor_tools = tools + [build_return_result_tool(output_schema)]
            logger.info(f"Typed output via {strategy.value} for {self.provider.name}")

        executor = ToolExecutor(executor_tools, parallel=self.config.parallel_tool_calls)
        return orchestrator(executor), model_schema, executor_tools

    def _build_history(self, prompt, history, attachments) -> list[Message]:
        history = list(history or [])
        for i, message in enumerate(history):
            if message.role == MessageRole.SYSTEM and (i > 0 or self.system_prompt):
                raise ConfigurationError(
                    "A system message must be the first and only one in a history"
                )
        messages = []
        if self.system_prompt:
            messages.append(Message.system(self.system_prompt))
        messages.extend(history)
        if prompt or attachments:
            messages.append(Message.user(prompt, attachments))
        return messages

    async def _stream(
        self,
        orchestrator: DefaultStreamingOrchestrator,
        messages: list[Message],
        tools: list[Tool],
        output_schema: dict | None,
    ) -> AsyncIterator[ChatResult]:
        state = StreamingState(history=messages)
        model = self.provider.chat_model(self.model, tools, self.config)
        guard = _MetadataGuard()
        usage = None
        async with agent_span(self.provider.name, self.model) as span:
            try:
                steps = orchestrator.run(model, state, output_schema, self.config.max_rounds)
                async with aclosing(steps) as steps:
                    async for step in steps:
                        if step.usage is not None:
                            usage = step.usage + usage if usage else step.usage
                        yield self._to_result(step, guard)
            except Exception as e:
                record_error(span, e)
                raise
            record_usage(span, usage)

    @staticmethod
    def _to_result(step: StreamingIterationResult, guard: _MetadataGuard) -> ChatResult:
        output = Message(
            role=MessageRole.MODEL,
            parts=[TextPart(text=step.output)] if step.output else [],
        )
        return ChatResult(
            id=step.id,
            output=output,
            messages=list(step.messages),
            finish_reason=step.finish_reason,
            metadata=guard.filter(step.metadata),
            usage=step.usage,
            thinking=step.thinking,
        )
