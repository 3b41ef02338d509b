"""Placeholder for a backend that has no integration yet."""
from typing import Dict, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, BaseMessage

from agentforce_adk.providers.base import LLMProvider, ProviderKind


NOT_IMPLEMENTED_TAG = "[not implemented]"


class AnthropicProvider(LLMProvider):
    """Answers every call with a tagged notice instead of raising.

    ``llm`` is a chat model that replies with the same notice, so code that
    talks to the LangChain model directly sees the placeholder too.
    """

    kind = ProviderKind.ANTHROPIC
    label = "Anthropic"

    @property
    def notice(self) -> str:
        return f"{NOT_IMPLEMENTED_TAG} {self.label} integration not implemented yet."

    def _create_llm(self) -> BaseChatModel:
        return FakeListChatModel(responses=[self.notice])

    async def complete(
        self,
        messages: Sequence[BaseMessage],
        tool_definitions: Optional[Sequence[Dict]] = None,
    ) -> AIMessage:
        return AIMessage(content=self.notice)
