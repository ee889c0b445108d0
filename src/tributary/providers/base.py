import inspect
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Flag, auto
from typing import Any

from tributary.config import AgentConfig, ProviderSettings
from tributary.instrumentation import (
    completion_span, record_error, record_finish_reason, record_usage,
)
from tributary.mappers.base import EventMapper, map_stream
from tributary.message import Message
from tributary.result import ChatResult, FinishReason
from tributary.tools import Tool

logger = logging.getLogger(__name__)


class Capability(Flag):
    CHAT = auto()
    TOOLS = auto()
    TYPED_OUTPUT = auto()
    TYPED_OUTPUT_WITH_TOOLS = auto()
    THINKING = auto()
    MULTIMODAL = auto()


class ModelProvider:
    """A backend that can stream a conversation.

    Subclasses build the backend request in :meth:`open_stream` and
    return a fresh :class:`EventMapper` from :meth:`create_mapper`;
    :meth:`send_stream` wires the two together.
    """

    name: str = "base"
    capabilities: Capability = Capability.CHAT

    def __init__(self, settings: ProviderSettings | None = None):
        self.settings = settings or ProviderSettings()

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def create_mapper(self) -> EventMapper:
        raise NotImplementedError

    async def open_stream(
        self,
        model: str,
        messages: list[Message],
        tools: list[Tool],
        output_schema: dict | None,
        config: AgentConfig,
    ) -> Any:
        """Send the request and return the backend's async event stream."""
        raise NotImplementedError

    async def send_stream(
        self,
        model: str,
        messages: list[Message],
        tools: list[Tool] | None = None,
        output_schema: dict | None = None,
        config: AgentConfig | None = None,
    ) -> AsyncIterator[ChatResult]:
        """Stream one round as canonical results.

        The backend stream is closed when iteration ends, including when
        the caller stops consuming early.
        """
        mapper = self.create_mapper()
        config = config or AgentConfig()
        async with completion_span(self.name, model) as span:
            try:
                stream = await self.open_stream(
                    model, messages, tools or [], output_schema, config,
                )
            except Exception as e:
                record_error(span, e)
                raise
            try:
                async with aclosing(map_stream(mapper, stream)) as results:
                    async for result in results:
                        if result.usage is not None:
                            record_usage(span, result.usage, result.id)
                        if result.finish_reason != FinishReason.UNSPECIFIED:
                            record_finish_reason(span, result.finish_reason)
                        yield result
            except Exception as e:
                record_error(span, e)
                raise
            finally:
                await _close(stream)

    def chat_model(self, model: str, tools: list[Tool] | None = None,
                   config: AgentConfig | None = None) -> "ChatModel":
        return ChatModel(self, model, list(tools or []), config or AgentConfig())


async def _close(stream) -> None:
    close = getattr(stream, "close", None) or getattr(stream, "aclose", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result


@dataclass
class ChatModel:
    """A provider bound to a model name, a tool set and agent options."""

    provider: ModelProvider
    name: str
    tools: list[Tool] = field(default_factory=list)
    config: AgentConfig = field(default_factory=AgentConfig)

    def send_stream(self, messages: list[Message],
                    output_schema: dict | None = None) -> AsyncIterator[ChatResult]:
        return self.provider.send_stream(
            self.name, messages, tools=self.tools,
            output_schema=output_schema, config=self.config,
        )
