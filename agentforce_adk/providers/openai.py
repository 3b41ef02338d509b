"""OpenAI and OpenRouter backends.

OpenRouter speaks the OpenAI chat-completions protocol, so both use
``ChatOpenAI`` and differ only in endpoint, key and headers.
"""
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI

from agentforce_adk.errors import MissingCredentialsError
from agentforce_adk.providers.base import LLMProvider, ProviderKind


OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenAIProvider(LLMProvider):
    kind = ProviderKind.OPENAI
    label = "OpenAI"

    def _check_credentials(self) -> None:
        if not self.settings.openai_api_key:
            raise MissingCredentialsError("OPENAI_API_KEY")

    def _model_kwargs(self) -> dict:
        kwargs = {"model": self.model}
        if self.model_config.temperature is not None:
            kwargs["temperature"] = self.model_config.temperature
        if self.model_config.max_tokens is not None:
            kwargs["max_tokens"] = self.model_config.max_tokens
        return kwargs

    def _create_llm(self) -> BaseChatModel:
        return ChatOpenAI(api_key=self.settings.openai_api_key, **self._model_kwargs())


class OpenRouterProvider(OpenAIProvider):
    kind = ProviderKind.OPENROUTER
    label = "OpenRouter"

    def _check_credentials(self) -> None:
        if not self.settings.openrouter_api_key:
            raise MissingCredentialsError("OPENROUTER_API_KEY")

    def _create_llm(self) -> BaseChatModel:
        headers = {}
        if self.settings.site_url:
            headers["HTTP-Referer"] = self.settings.site_url
        if self.settings.site_name:
            headers["X-Title"] = self.settings.site_name
        return ChatOpenAI(
            api_key=self.settings.openrouter_api_key,
            base_url=OPENROUTER_BASE_URL,
            default_headers=headers or None,
            **self._model_kwargs(),
        )
