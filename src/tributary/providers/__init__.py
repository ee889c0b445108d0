from tributary.providers.anthropic import AnthropicProvider
from tributary.providers.base import Capability, ChatModel, ModelProvider
from tributary.providers.google import GoogleProvider
from tributary.providers.openai import OpenAICompatibleProvider, OpenAIProvider, OpenRouterProvider
from tributary.providers.openai_responses import OpenAIResponsesProvider

__all__ = [
    "AnthropicProvider",
    "Capability",
    "ChatModel",
    "GoogleProvider",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OpenAIResponsesProvider",
    "OpenRouterProvider",
]
