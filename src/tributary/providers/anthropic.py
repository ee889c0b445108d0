import base64
import logging

from anthropic import AsyncAnthropic

from tributary.config import AgentConfig, ProviderSettings
from tributary.mappers.anthropic import AnthropicEventMapper
from tributary.mappers.base import THINKING_METADATA_KEY
from tributary.message import (
    DataPart, LinkPart, Message, MessageRole, TextPart, ToolCallPart, ToolResultPart,
)
from tributary.providers.base import Capability, ModelProvider
from tributary.providers.openai import tool_result_content
from tributary.tools import Tool

logger = logging.getLogger(__name__)

SERVER_TOOL_TYPES = {
    "code_execution_20250825",
    "web_search_20250305",
    "web_fetch_20250910",
}
SERVER_TOOL_NAMES = {"code_execution", "web_search", "web_fetch"}


def strip_server_tool_schemas(tools: list[dict]) -> list[dict]:
    """Drop ``input_schema`` from built-in server tool entries.

    The API rejects these entries when they carry a schema.
    """
    stripped = []
    for entry in tools:
        if entry.get("type") in SERVER_TOOL_TYPES or entry.get("name") in SERVER_TOOL_NAMES:
            entry = {k: v for k, v in entry.items() if k != "input_schema"}
        stripped.append(entry)
    return stripped


def _content_block(part) -> dict | None:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, DataPart):
        block_type = "image" if part.mime_type.startswith("image/") else "document"
        return {
            "type": block_type,
            "source": {
                "type": "base64",
                "media_type": part.mime_type,
                "data": base64.b64encode(part.data).decode("ascii"),
            },
        }
    if isinstance(part, LinkPart):
        block_type = "image" if (part.mime_type or "").startswith("image/") else "document"
        return {"type": block_type, "source": {"type": "url", "url": part.url}}
    if isinstance(part, ToolCallPart):
        return {"type": "tool_use", "id": part.id, "name": part.name, "input": part.arguments}
    if isinstance(part, ToolResultPart):
        return {
            "type": "tool_result",
            "tool_use_id": part.id,
            "content": tool_result_content(part),
            "is_error": not part.success,
        }
    return None


def build_anthropic_messages(messages: list[Message]) -> list[dict]:
    """Convert non-system messages into Messages API entries.

    A model message that carries a thinking block replays it first, as
    the API requires before ``tool_use`` blocks.
    """
    out = []
    for message in messages:
        if message.role == MessageRole.SYSTEM:
            continue
        content = []
        thinking = message.metadata.get(THINKING_METADATA_KEY)
        if message.role == MessageRole.MODEL and thinking and thinking.get("signature"):
            content.append({
                "type": "thinking",
                "thinking": thinking["thinking"],
                "signature": thinking["signature"],
            })
        for part in message.parts:
            block = _content_block(part)
            if block is not None:
                content.append(block)
        if not content:
            # The API rejects empty turns.
            continue
        role = "assistant" if message.role == MessageRole.MODEL else "user"
        out.append({"role": role, "content": content})
    return out


class AnthropicProvider(ModelProvider):
    """Anthropic Messages API over ``AsyncAnthropic``.

    Typed output goes through the synthetic ``return_result`` tool.

    Args:
        server_tools: Built-in server tool entries (web search, code
            execution, ...) appended to the request's tool list as-is.
    """

    name = "anthropic"
    capabilities = (
        Capability.CHAT | Capability.TOOLS | Capability.THINKING | Capability.MULTIMODAL
    )

    def __init__(self, settings: ProviderSettings | None = None,
                 client: AsyncAnthropic | None = None,
                 server_tools: list[dict] | None = None):
        super().__init__(settings or ProviderSettings.from_env("ANTHROPIC"))
        self.server_tools = list(server_tools or [])
        self.client = client or AsyncAnthropic(
            api_key=self.settings.api_key,
            base_url=self.settings.base_url,
            max_retries=self.settings.max_retries,
            timeout=self.settings.timeout,
            default_headers=self.settings.default_headers or None,
        )

    def create_mapper(self) -> AnthropicEventMapper:
        return AnthropicEventMapper()

    def build_request(self, model: str, messages: list[Message], tools: list[Tool],
                      output_schema: dict | None, config: AgentConfig) -> dict:
        request = {
            "model": model,
            "max_tokens": config.max_tokens,
            "messages": build_anthropic_messages(messages),
            "stream": True,
        }
        system = [m for m in messages if m.role == MessageRole.SYSTEM]
        if system:
            request["system"] = system[0].text
        tool_entries = [
            {"name": t.name, "description": t.description, "input_schema": t.parameters_schema}
            for t in tools
        ]
        tool_entries.extend(self.server_tools)
        if tool_entries:
            request["tools"] = strip_server_tool_schemas(tool_entries)
        if config.thinking:
            request["thinking"] = {"type": "enabled", "budget_tokens": config.thinking_budget}
        return request

    async def open_stream(self, model, messages, tools, output_schema, config):
        request = self.build_request(model, messages, tools, output_schema, config)
        return await self.client.messages.create(**request)
