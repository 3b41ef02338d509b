"""Ollama backend (local models) over Ollama's OpenAI-compatible endpoint."""
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI

from agentforce_adk.providers.base import ProviderKind
from agentforce_adk.providers.openai import OpenAIProvider


OLLAMA_DEFAULT_HOST = "http://localhost:11434"


def ollama_base_url(host: str) -> str:
    host = host.rstrip("/")
    return host if host.endswith("/v1") else f"{host}/v1"


class OllamaProvider(OpenAIProvider):
    kind = ProviderKind.OLLAMA
    label = "Ollama"

    def _check_credentials(self) -> None:
        pass

    def _create_llm(self) -> BaseChatModel:
        # Ollama ignores the key, but ChatOpenAI refuses to start without one.
        return ChatOpenAI(
            api_key="ollama",
            base_url=ollama_base_url(self.settings.ollama_host or OLLAMA_DEFAULT_HOST),
            **self._model_kwargs(),
        )
