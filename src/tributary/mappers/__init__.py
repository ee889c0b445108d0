from tributary.mappers.anthropic import AnthropicEventMapper
from tributary.mappers.base import THINKING_METADATA_KEY, EventMapper, map_stream
from tributary.mappers.google import GoogleEventMapper
from tributary.mappers.openai_chat import OpenAIChatEventMapper
from tributary.mappers.openai_responses import SESSION_METADATA_KEY, OpenAIResponsesEventMapper

__all__ = [
    "AnthropicEventMapper",
    "EventMapper",
    "GoogleEventMapper",
    "OpenAIChatEventMapper",
    "OpenAIResponsesEventMapper",
    "SESSION_METADATA_KEY",
    "THINKING_METADATA_KEY",
    "map_stream",
]
