"""Exception hierarchy for agentforce_adk.

Tool failures are never raised; they travel back to the model as tool
results. Only configuration problems and provider failures surface as
exceptions.
"""


class AgentForceError(Exception):
    """Base class for all errors raised by the toolkit."""


class ConfigurationError(AgentForceError, ValueError):
    """Invalid agent, model or provider configuration."""


class MissingCredentialsError(ConfigurationError):
    """A provider was selected but its API key is not set."""

    def __init__(self, env_var: str):
        self.env_var = env_var
        super().__init__(f"{env_var} environment variable is required")


class ProviderError(AgentForceError):
    """The LLM backend failed (network, auth, malformed response)."""

    def __init__(self, provider: str, cause: BaseException):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider} provider error: {cause}")
