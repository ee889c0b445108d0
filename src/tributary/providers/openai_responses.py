import json
import logging

from openai import AsyncOpenAI

from tributary.config import AgentConfig, ProviderSettings
from tributary.mappers.base import THINKING_METADATA_KEY
from tributary.mappers.openai_responses import SESSION_METADATA_KEY, OpenAIResponsesEventMapper
from tributary.message import (
    DataPart, LinkPart, Message, MessageRole, TextPart, ToolCallPart, ToolResultPart,
)
from tributary.providers.base import Capability, ModelProvider
from tributary.providers.openai import data_url, tool_result_content
from tributary.tools import Tool

logger = logging.getLogger(__name__)


def _input_content(parts: list) -> list[dict]:
    content = []
    for part in parts:
        if isinstance(part, TextPart):
            content.append({"type": "input_text", "text": part.text})
        elif isinstance(part, DataPart):
            if part.mime_type.startswith("image/"):
                content.append({"type": "input_image", "image_url": data_url(part)})
            else:
                content.append({
                    "type": "input_file",
                    "filename": part.name or "file",
                    "file_data": data_url(part),
                })
        elif isinstance(part, LinkPart):
            content.append({"type": "input_image", "image_url": part.url})
    return content


def build_input_items(messages: list[Message]) -> list[dict]:
    """Convert non-system messages into Responses ``input`` items."""
    items = []
    for message in messages:
        if message.role == MessageRole.MODEL:
            if message.text:
                items.append({"role": "assistant", "content": message.text})
            # Encrypted reasoning must precede the calls it produced.
            block = message.metadata.get(THINKING_METADATA_KEY) or {}
            if block.get("signature"):
                items.append({
                    "type": "reasoning",
                    "encrypted_content": block["signature"],
                    "summary": [],
                })
            for part in message.parts:
                if isinstance(part, ToolCallPart):
                    items.append({
                        "type": "function_call",
                        "call_id": part.id,
                        "name": part.name,
                        "arguments": json.dumps(part.arguments, ensure_ascii=False),
                    })
        elif message.role == MessageRole.USER:
            for part in message.parts:
                if isinstance(part, ToolResultPart):
                    items.append({
                        "type": "function_call_output",
                        "call_id": part.id,
                        "output": tool_result_content(part),
                    })
            other = [p for p in message.parts if not isinstance(p, ToolResultPart)]
            if other:
                items.append({"role": "user", "content": _input_content(other)})
    return items


def session_split(messages: list[Message]) -> tuple[str | None, list[Message]]:
    """Find the latest stored response and the messages sent after it."""
    for i in range(len(messages) - 1, -1, -1):
        session = messages[i].metadata.get(SESSION_METADATA_KEY)
        if messages[i].role == MessageRole.MODEL and session:
            return session.get("response_id"), messages[i + 1:]
    return None, messages


class OpenAIResponsesProvider(ModelProvider):
    """OpenAI Responses API.

    With ``store=True`` the server keeps each response, so later rounds
    send ``previous_response_id`` plus only the new messages.
    """

    name = "openai_responses"
    capabilities = (
        Capability.CHAT | Capability.TOOLS | Capability.TYPED_OUTPUT
        | Capability.TYPED_OUTPUT_WITH_TOOLS | Capability.THINKING
        | Capability.MULTIMODAL
    )

    def __init__(self, settings: ProviderSettings | None = None,
                 client: AsyncOpenAI | None = None, store: bool = True):
        super().__init__(settings or ProviderSettings.from_env("OPENAI"))
        self.store = store
        self.client = client or AsyncOpenAI(
            api_key=self.settings.api_key,
            base_url=self.settings.base_url,
            max_retries=self.settings.max_retries,
            timeout=self.settings.timeout,
            default_headers=self.settings.default_headers or None,
        )

    def create_mapper(self) -> OpenAIResponsesEventMapper:
        return OpenAIResponsesEventMapper()

    def build_request(self, model: str, messages: list[Message], tools: list[Tool],
                      output_schema: dict | None, config: AgentConfig) -> dict:
        system = [m for m in messages if m.role == MessageRole.SYSTEM]
        rest = [m for m in messages if m.role != MessageRole.SYSTEM]
        previous_id = None
        if self.store:
            previous_id, rest = session_split(rest)
        request = {
            "model": model,
            "input": build_input_items(rest),
            "stream": True,
            "store": self.store,
        }
        if system:
            request["instructions"] = system[0].text
        if previous_id:
            request["previous_response_id"] = previous_id
        if tools:
            request["tools"] = [
                {
                    "type": "function",
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters_schema,
                }
                for t in tools
            ]
            request["parallel_tool_calls"] = config.parallel_tool_calls
        if output_schema is not None:
            request["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": "output_schema",
                    "schema": output_schema,
                    "strict": output_schema.get("additionalProperties") is False,
                }
            }
        if config.thinking:
            request["reasoning"] = {"summary": "auto"}
            if not self.store:
                request["include"] = ["reasoning.encrypted_content"]
        return request

    async def open_stream(self, model, messages, tools, output_schema, config):
        request = self.build_request(model, messages, tools, output_schema, config)
        return await self.client.responses.create(**request)
