"""Provider contract shared by every LLM backend."""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.tools import BaseTool

from agentforce_adk.config import ModelConfig, Settings, coerce_model_config, get_settings
from agentforce_adk.errors import ProviderError
from agentforce_adk.history import message_text
from agentforce_adk.loop.tool_calls import normalize_response


logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    OLLAMA = "ollama"
    OPENROUTER = "openrouter"
    OPENAI = "openai"
    GOOGLE = "google"
    ANTHROPIC = "anthropic"


TEXT_TOOL_INSTRUCTIONS = (
    "You have access to the following tools:\n{tools}\n\n"
    "To call a tool, reply with only a JSON object of the form "
    '{{"name": "<tool name>", "arguments": {{...}}}} and nothing else. '
    "Tool results are sent back to you as user messages. "
    "When you have everything you need, answer in plain text."
)


def describe_tools(tool_definitions: Sequence[Dict]) -> str:
    lines = []
    for definition in tool_definitions:
        fn = definition.get("function", definition)
        params = json.dumps(fn.get("parameters", {}), ensure_ascii=False)
        lines.append(f"- {fn['name']}: {fn.get('description', '')}\n  parameters: {params}")
    return "\n".join(lines)


def flatten_tool_messages(messages: Sequence[BaseMessage]) -> List[BaseMessage]:
    """Rewrite tool-call turns as plain text for models without tool support."""
    flat: List[BaseMessage] = []
    for message in messages:
        if isinstance(message, AIMessage) and message.tool_calls:
            calls = [{"name": c["name"], "arguments": c.get("args", {})} for c in message.tool_calls]
            payload = calls[0] if len(calls) == 1 else calls
            flat.append(AIMessage(content=json.dumps(payload, ensure_ascii=False)))
        elif isinstance(message, ToolMessage):
            flat.append(HumanMessage(
                content=f"Tool {message.name} ({message.tool_call_id}) result:\n{message_text(message)}"
            ))
        else:
            flat.append(message)
    return flat


def inject_tool_instructions(messages: List[BaseMessage], tool_definitions: Sequence[Dict]) -> List[BaseMessage]:
    instructions = TEXT_TOOL_INSTRUCTIONS.format(tools=describe_tools(tool_definitions))
    if messages and isinstance(messages[0], SystemMessage):
        system = SystemMessage(content=f"{message_text(messages[0])}\n\n{instructions}")
        return [system] + list(messages[1:])
    return [SystemMessage(content=instructions)] + list(messages)


class LLMProvider(ABC):
    """One LLM backend behind a uniform async interface.

    Subclasses build the LangChain chat model and declare whether the
    backend handles tool schemas natively. Backends that do not get a text
    protocol: tool schemas are described in the system message and JSON
    replies are parsed back into tool calls.

    Args:
        model: Backend model identifier
        model_config: Generation settings (ModelConfig or dict)
        settings: Environment settings; read from os.environ when omitted
        llm: Pre-built chat model to use instead of constructing one
    """

    kind: ProviderKind
    label: str = "LLM"
    supports_native_tools: bool = True

    def __init__(
        self,
        model: str,
        model_config: Optional[ModelConfig] = None,
        settings: Optional[Settings] = None,
        llm: Optional[BaseChatModel] = None,
    ):
        self.model = model
        self.model_config = coerce_model_config(model_config)
        self.settings = settings or get_settings()
        self._check_credentials()
        self._llm = llm

    def _check_credentials(self) -> None:
        """Raise MissingCredentialsError when the backend needs a key that is absent."""

    @abstractmethod
    def _create_llm(self) -> BaseChatModel:
        ...

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = self._create_llm()
        return self._llm

    def _prepare(self, messages: Sequence[BaseMessage], tool_definitions: Optional[Sequence[Dict]]):
        if self.supports_native_tools:
            if tool_definitions:
                return self.llm.bind_tools(list(tool_definitions)), list(messages)
            return self.llm, list(messages)

        prepared = flatten_tool_messages(messages)
        if tool_definitions:
            prepared = inject_tool_instructions(prepared, tool_definitions)
        return self.llm, prepared

    async def complete(
        self,
        messages: Sequence[BaseMessage],
        tool_definitions: Optional[Sequence[Dict]] = None,
    ) -> AIMessage:
        """Make exactly one provider call.

        Args:
            messages: Full message list, system message first if any
            tool_definitions: OpenAI-style tool schemas offered to the model

        Returns:
            The assistant message; tool calls carry ids

        Raises:
            ProviderError: The backend failed
        """
        try:
            runnable, prepared = self._prepare(messages, tool_definitions)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "%s call: model=%s messages=%d tools=%d",
                    self.label, self.model, len(prepared), len(tool_definitions or []),
                )
            response = await runnable.ainvoke(prepared)
        except Exception as e:
            raise ProviderError(self.label, e) from e

        if not isinstance(response, AIMessage):
            response = AIMessage(content=message_text(response) if isinstance(response, BaseMessage) else str(response))
        return normalize_response(response, parse_content=bool(tool_definitions))

    async def chat(self, messages: Sequence[BaseMessage]) -> str:
        """Multi-turn completion without tools."""
        return message_text(await self.complete(messages))

    async def chat_with_tools(self, messages: Sequence[BaseMessage], tools: Sequence[BaseTool]) -> str:
        """Multi-turn completion with a full tool round-trip.

        Runs the tool-calling loop over a scratch history built from
        ``messages``; the caller's list is not modified.
        """
        from agentforce_adk.history import ChatHistory
        from agentforce_adk.loop.runner import ToolCallingLoop
        from agentforce_adk.tools.registry import ToolRegistry

        system_prompt = ""
        rest = list(messages)
        if rest and isinstance(rest[0], SystemMessage):
            system_prompt = message_text(rest.pop(0))
        registry = ToolRegistry(tools)
        loop = ToolCallingLoop(self, registry)
        return await loop.run(ChatHistory(rest), system_prompt, [t.name for t in tools])

    async def generate(self, prompt: str, system: Optional[str] = None) -> str:
        """Single-turn completion."""
        return await self.chat(self._single_turn(prompt, system))

    async def generate_with_tools(self, prompt: str, tools: Sequence[BaseTool], system: Optional[str] = None) -> str:
        return await self.chat_with_tools(self._single_turn(prompt, system), tools)

    @staticmethod
    def _single_turn(prompt: str, system: Optional[str]) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        if system:
            messages.append(SystemMessage(content=system))
        messages.append(HumanMessage(content=prompt))
        return messages

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"
