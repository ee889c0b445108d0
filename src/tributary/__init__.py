from tributary.accumulator import MessageAccumulator, accumulate, consolidate
from tributary.agent import Agent, AgentResponseAccumulator, TypedChatResult
from tributary.config import AgentConfig, ProviderSettings
from tributary.errors import (
    ConfigurationError,
    LLMRecoverableError,
    ProviderError,
    TributaryError,
    UnsupportedCapabilityError,
)
from tributary.executor import ToolExecutionResult, ToolExecutor
from tributary.instrumentation import instrument, uninstrument
from tributary.message import (
    DataPart,
    LinkPart,
    Message,
    MessageRole,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from tributary.orchestrator import DefaultStreamingOrchestrator
from tributary.providers import (
    AnthropicProvider,
    Capability,
    GoogleProvider,
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    OpenAIResponsesProvider,
    OpenRouterProvider,
)
from tributary.result import ChatResult, FinishReason, StreamingIterationResult, Usage
from tributary.state import StreamingState
from tributary.tools import Tool, tool
from tributary.typed_output import (
    RETURN_RESULT_TOOL_NAME,
    ReturnResultTypedOutputOrchestrator,
    TypedOutputStreamingOrchestrator,
)

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentResponseAccumulator",
    "AnthropicProvider",
    "Capability",
    "ChatResult",
    "ConfigurationError",
    "DataPart",
    "DefaultStreamingOrchestrator",
    "FinishReason",
    "GoogleProvider",
    "LLMRecoverableError",
    "LinkPart",
    "Message",
    "MessageAccumulator",
    "MessageRole",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OpenAIResponsesProvider",
    "OpenRouterProvider",
    "ProviderError",
    "ProviderSettings",
    "RETURN_RESULT_TOOL_NAME",
    "ReturnResultTypedOutputOrchestrator",
    "StreamingIterationResult",
    "StreamingState",
    "TextPart",
    "Tool",
    "ToolCallPart",
    "ToolExecutionResult",
    "ToolExecutor",
    "ToolResultPart",
    "TributaryError",
    "TypedChatResult",
    "TypedOutputStreamingOrchestrator",
    "UnsupportedCapabilityError",
    "Usage",
    "accumulate",
    "consolidate",
    "instrument",
    "tool",
    "uninstrument",
]
