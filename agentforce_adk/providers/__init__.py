"""LLM provider adapters and the factory that selects one."""
from typing import Dict, Optional, Type, Union

from langchain_core.language_models import BaseChatModel

from agentforce_adk.config import ModelConfig, Settings
from agentforce_adk.errors import ConfigurationError
from agentforce_adk.providers.base import LLMProvider, ProviderKind
from agentforce_adk.providers.anthropic import AnthropicProvider
from agentforce_adk.providers.google import GoogleProvider
from agentforce_adk.providers.ollama import OllamaProvider
from agentforce_adk.providers.openai import OpenAIProvider, OpenRouterProvider


PROVIDERS: Dict[ProviderKind, Type[LLMProvider]] = {
    ProviderKind.OLLAMA: OllamaProvider,
    ProviderKind.OPENROUTER: OpenRouterProvider,
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.GOOGLE: GoogleProvider,
    ProviderKind.ANTHROPIC: AnthropicProvider,
}


def parse_provider_kind(value: Union[str, ProviderKind]) -> ProviderKind:
    try:
        return ProviderKind(str(value.value if isinstance(value, ProviderKind) else value).lower())
    except ValueError as e:
        supported = ", ".join(k.value for k in ProviderKind)
        raise ConfigurationError(f"Unknown provider '{value}'. Supported providers: {supported}") from e


def create_provider(
    kind: Union[str, ProviderKind],
    model: str,
    model_config: Optional[ModelConfig] = None,
    settings: Optional[Settings] = None,
    llm: Optional[BaseChatModel] = None,
) -> LLMProvider:
    """Build the provider adapter for ``kind``.

    Raises:
        ConfigurationError: Unknown provider kind
        MissingCredentialsError: The provider's API key is not set
    """
    provider_cls = PROVIDERS[parse_provider_kind(kind)]
    return provider_cls(model, model_config, settings=settings, llm=llm)


__all__ = [
    "LLMProvider",
    "ProviderKind",
    "PROVIDERS",
    "create_provider",
    "parse_provider_kind",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "GoogleProvider",
    "AnthropicProvider",
]
