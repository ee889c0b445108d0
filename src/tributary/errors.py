class TributaryError(Exception):
    """Base class for errors raised by tributary."""


class ConfigurationError(TributaryError):
    """Raised when an agent or provider is set up inconsistently."""


class UnsupportedCapabilityError(ConfigurationError):
    """Raised before any network use when a provider lacks a capability.

    Args:
        provider: Name of the provider that was asked.
        capability: The missing capability.
    """

    def __init__(self, provider: str, capability: str):
        self.provider = provider
        self.capability = capability
        super().__init__(
            f"Provider '{provider}' does not support {capability}"
        )


class ProviderError(TributaryError):
    """Raised when a backend reports a failed response mid-stream."""


class LLMRecoverableError(Exception):
    """Raise from a tool to send the message back to the model.

    The executor turns it into a normal (non-error) tool result so the
    model can correct its arguments and try again.
    """
