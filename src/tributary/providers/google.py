import base64
import logging

from google import genai
from google.genai import types

from tributary.config import AgentConfig, ProviderSettings
from tributary.mappers.base import THINKING_METADATA_KEY
from tributary.mappers.google import GoogleEventMapper
from tributary.message import (
    DataPart, LinkPart, Message, MessageRole, TextPart, ToolCallPart, ToolResultPart,
)
from tributary.providers.base import Capability, ModelProvider
from tributary.tools import Tool

logger = logging.getLogger(__name__)


def _signature(message: Message) -> bytes | None:
    thinking = message.metadata.get(THINKING_METADATA_KEY) or {}
    if not thinking.get("signature"):
        return None
    return base64.b64decode(thinking["signature"])


def _to_part(part, signature: bytes | None = None) -> types.Part | None:
    if isinstance(part, TextPart):
        return types.Part(text=part.text)
    if isinstance(part, DataPart):
        return types.Part(inline_data=types.Blob(data=part.data, mime_type=part.mime_type))
    if isinstance(part, LinkPart):
        return types.Part(file_data=types.FileData(file_uri=part.url, mime_type=part.mime_type))
    if isinstance(part, ToolCallPart):
        return types.Part(
            function_call=types.FunctionCall(id=part.id, name=part.name, args=part.arguments),
            thought_signature=signature,
        )
    if isinstance(part, ToolResultPart):
        response = part.result if isinstance(part.result, dict) else {"result": part.result}
        return types.Part(
            function_response=types.FunctionResponse(id=part.id, name=part.name, response=response),
        )
    return None


def build_contents(messages: list[Message]) -> list[types.Content]:
    """Convert non-system messages into Gemini contents.

    A stored thought signature is replayed on the first function call of
    the message it came from.
    """
    contents = []
    for message in messages:
        if message.role == MessageRole.SYSTEM:
            continue
        signature = _signature(message) if message.role == MessageRole.MODEL else None
        parts = []
        for part in message.parts:
            if isinstance(part, ToolCallPart) and signature is not None:
                converted = _to_part(part, signature)
                signature = None
            else:
                converted = _to_part(part)
            if converted is not None:
                parts.append(converted)
        if not parts:
            continue
        role = "model" if message.role == MessageRole.MODEL else "user"
        contents.append(types.Content(role=role, parts=parts))
    return contents


class GoogleProvider(ModelProvider):
    """Gemini through the ``google-genai`` SDK.

    Gemini constrains output to a schema only when no tools are
    declared; typed output with tools uses the ``return_result`` tool.
    """

    name = "google"
    capabilities = (
        Capability.CHAT | Capability.TOOLS | Capability.TYPED_OUTPUT
        | Capability.THINKING | Capability.MULTIMODAL
    )

    def __init__(self, settings: ProviderSettings | None = None,
                 client: genai.Client | None = None):
        super().__init__(settings or ProviderSettings.from_env("GEMINI"))
        if client is None:
            http_options = types.HttpOptions(
                base_url=self.settings.base_url,
                timeout=int(self.settings.timeout * 1000),
                headers=self.settings.default_headers or None,
            )
            client = genai.Client(api_key=self.settings.api_key, http_options=http_options)
        self.client = client

    def create_mapper(self) -> GoogleEventMapper:
        return GoogleEventMapper()

    def build_config(self, messages: list[Message], tools: list[Tool],
                     output_schema: dict | None,
                     config: AgentConfig) -> types.GenerateContentConfig:
        system = [m for m in messages if m.role == MessageRole.SYSTEM]
        kwargs = {"max_output_tokens": config.max_tokens}
        if system:
            kwargs["system_instruction"] = system[0].text
        if tools:
            kwargs["tools"] = [types.Tool(function_declarations=[
                types.FunctionDeclaration(
                    name=t.name,
                    description=t.description,
                    parameters_json_schema=t.parameters_schema,
                )
                for t in tools
            ])]
        if output_schema is not None:
            kwargs["response_mime_type"] = "application/json"
            kwargs["response_json_schema"] = output_schema
        if config.thinking:
            kwargs["thinking_config"] = types.ThinkingConfig(
                include_thoughts=True, thinking_budget=config.thinking_budget,
            )
        return types.GenerateContentConfig(**kwargs)

    async def open_stream(self, model, messages, tools, output_schema, config):
        return await self.client.aio.models.generate_content_stream(
            model=model,
            contents=build_contents(messages),
            config=self.build_config(messages, tools, output_schema, config),
        )
