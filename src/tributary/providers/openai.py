import base64
import json
import logging

from openai import AsyncOpenAI

from tributary.config import AgentConfig, ProviderSettings
from tributary.mappers.openai_chat import OpenAIChatEventMapper
from tributary.message import (
    DataPart, LinkPart, Message, MessageRole, TextPart, ToolCallPart, ToolResultPart,
)
from tributary.providers.base import Capability, ModelProvider
from tributary.tools import Tool

logger = logging.getLogger(__name__)


def tool_result_content(result: ToolResultPart) -> str:
    if isinstance(result.result, str):
        return result.result
    return json.dumps(result.result, ensure_ascii=False)


def data_url(part: DataPart) -> str:
    encoded = base64.b64encode(part.data).decode("ascii")
    return f"data:{part.mime_type};base64,{encoded}"


def _user_content(parts: list) -> list[dict]:
    content = []
    for part in parts:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        elif isinstance(part, DataPart):
            if part.mime_type.startswith("image/"):
                content.append({"type": "image_url", "image_url": {"url": data_url(part)}})
            else:
                content.append({
                    "type": "file",
                    "file": {
                        "filename": part.name or "file",
                        "file_data": data_url(part),
                    },
                })
        elif isinstance(part, LinkPart):
            content.append({"type": "image_url", "image_url": {"url": part.url}})
    return content


def build_chat_messages(messages: list[Message]) -> list[dict]:
    """Convert a history into Chat Completions ``messages``."""
    out = []
    for message in messages:
        if message.role == MessageRole.SYSTEM:
            out.append({"role": "system", "content": message.text})
        elif message.role == MessageRole.MODEL:
            entry = {"role": "assistant", "content": message.text or None}
            calls = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, ensure_ascii=False),
                    },
                }
                for call in message.parts if isinstance(call, ToolCallPart)
            ]
            if calls:
                entry["tool_calls"] = calls
            out.append(entry)
        else:
            for result in message.tool_results:
                out.append({
                    "role": "tool",
                    "tool_call_id": result.id,
                    "content": tool_result_content(result),
                })
            other = [p for p in message.parts if not isinstance(p, ToolResultPart)]
            if other:
                if all(isinstance(p, TextPart) for p in other):
                    out.append({"role": "user", "content": message.text})
                else:
                    out.append({"role": "user", "content": _user_content(other)})
    return out


def build_response_format(output_schema: dict) -> dict:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": "output_schema",
            "schema": output_schema,
            "strict": output_schema.get("additionalProperties") is False,
        },
    }


class OpenAIProvider(ModelProvider):
    """OpenAI Chat Completions over ``AsyncOpenAI``."""

    name = "openai"
    env_prefix = "OPENAI"
    capabilities = (
        Capability.CHAT | Capability.TOOLS | Capability.TYPED_OUTPUT
        | Capability.TYPED_OUTPUT_WITH_TOOLS | Capability.MULTIMODAL
    )

    def __init__(self, settings: ProviderSettings | None = None,
                 client: AsyncOpenAI | None = None):
        super().__init__(settings or ProviderSettings.from_env(self.env_prefix))
        self.client = client or AsyncOpenAI(
            api_key=self.settings.api_key,
            base_url=self.settings.base_url,
            max_retries=self.settings.max_retries,
            timeout=self.settings.timeout,
            default_headers=self.settings.default_headers or None,
        )

    def create_mapper(self) -> OpenAIChatEventMapper:
        return OpenAIChatEventMapper()

    def build_request(self, model: str, messages: list[Message], tools: list[Tool],
                      output_schema: dict | None, config: AgentConfig) -> dict:
        request = {
            "model": model,
            "messages": build_chat_messages(messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            request["tools"] = [t.model_dump() for t in tools]
            request["parallel_tool_calls"] = config.parallel_tool_calls
        if output_schema is not None:
            request["response_format"] = build_response_format(output_schema)
        return request

    async def open_stream(self, model, messages, tools, output_schema, config):
        request = self.build_request(model, messages, tools, output_schema, config)
        return await self.client.chat.completions.create(**request)


class OpenAICompatibleProvider(OpenAIProvider):
    """Any server speaking the Chat Completions protocol (vLLM, Ollama, ...).

    Args:
        base_url: The server's ``/v1`` endpoint.
        capabilities: What the served model supports. Defaults to chat,
            tools, reasoning deltas and native schema output without tools.
    """

    name = "openai_compatible"
    env_prefix = "OPENAI_COMPATIBLE"

    def __init__(self, base_url: str, api_key: str = "DUMMY",
                 capabilities: Capability | None = None,
                 settings: ProviderSettings | None = None,
                 client: AsyncOpenAI | None = None):
        settings = settings or ProviderSettings(base_url=base_url, api_key=api_key)
        super().__init__(settings=settings, client=client)
        self.capabilities = capabilities or (
            Capability.CHAT | Capability.TOOLS | Capability.TYPED_OUTPUT
            | Capability.THINKING
        )


class OpenRouterProvider(OpenAICompatibleProvider):
    name = "openrouter"

    def __init__(self, settings: ProviderSettings | None = None,
                 client: AsyncOpenAI | None = None):
        settings = settings or ProviderSettings.from_env(
            "OPENROUTER", base_url="https://openrouter.ai/api/v1", timeout=180.0,
        )
        super().__init__(
            base_url=settings.base_url, api_key=settings.api_key,
            settings=settings, client=client,
        )
