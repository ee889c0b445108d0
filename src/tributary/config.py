import os

from pydantic import BaseModel, Field


class ProviderSettings(BaseModel):
    """Credentials and client options for one provider instance.

    Passed explicitly to a provider; nothing is read from a process-wide
    registry. Use :meth:`from_env` to pick values up from the environment.
    """

    api_key: str | None = None
    base_url: str | None = None
    timeout: float = 600.0
    max_retries: int = 5
    default_headers: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_env(cls, prefix: str, **overrides) -> "ProviderSettings":
        """Read ``<PREFIX>_API_KEY`` and ``<PREFIX>_BASE_URL``."""
        values = {
            "api_key": os.getenv(f"{prefix}_API_KEY"),
            "base_url": os.getenv(f"{prefix}_BASE_URL"),
        }
        values = {k: v for k, v in values.items() if v}
        values.update(overrides)
        return cls(**values)


class AgentConfig(BaseModel):
    """Per-agent options for driving a turn.

    Args:
        max_rounds: Maximum number of model invocations in one turn.
        max_tokens: Response token limit passed to backends that need one.
        thinking: Ask backends that support it to stream reasoning.
        thinking_budget: Reasoning token budget, where the backend takes one.
        parallel_tool_calls: Run the tool calls of one round concurrently.
    """

    max_rounds: int = 50
    max_tokens: int = 4096
    thinking: bool = False
    thinking_budget: int = 2048
    parallel_tool_calls: bool = True
