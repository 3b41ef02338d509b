"""Google Gemini backend via the Gemini OpenAI-compatible endpoint.

Tools are offered through the text protocol in LLMProvider rather than
native function calling.
"""
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI

from agentforce_adk.errors import MissingCredentialsError
from agentforce_adk.providers.base import ProviderKind
from agentforce_adk.providers.openai import OpenAIProvider


GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class GoogleProvider(OpenAIProvider):
    kind = ProviderKind.GOOGLE
    label = "Google"
    supports_native_tools = False

    def _check_credentials(self) -> None:
        if not self.settings.gemini_api_key:
            raise MissingCredentialsError("GEMINI_API_KEY")

    def _create_llm(self) -> BaseChatModel:
        return ChatOpenAI(
            api_key=self.settings.gemini_api_key,
            base_url=GEMINI_BASE_URL,
            **self._model_kwargs(),
        )
