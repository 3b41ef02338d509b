from __future__ import annotations

import pytest
from langchain_core.messages import HumanMessage, SystemMessage, ToolMessage

from agentforce_adk.errors import ConfigurationError, MissingCredentialsError, ProviderError
from agentforce_adk.providers import (
    AnthropicProvider,
    GoogleProvider,
    OpenRouterProvider,
    ProviderKind,
    create_provider,
)
from agentforce_adk.providers.openai import OPENROUTER_BASE_URL

from fakes import ScriptedChatModel, calls_tools, echo_tool, tool_call


@pytest.mark.parametrize(
    "kind, env_var",
    [
        ("openrouter", "OPENROUTER_API_KEY"),
        ("openai", "OPENAI_API_KEY"),
        ("google", "GEMINI_API_KEY"),
    ],
)
def test_missing_credentials_fail_at_construction(kind: str, env_var: str) -> None:
    with pytest.raises(MissingCredentialsError) as exc_info:
        create_provider(kind, "some-model")
    assert str(exc_info.value) == f"{env_var} environment variable is required"


def test_ollama_and_anthropic_need_no_credentials() -> None:
    assert create_provider("ollama", "gemma3:4b").kind is ProviderKind.OLLAMA
    assert create_provider(ProviderKind.ANTHROPIC, "claude").kind is ProviderKind.ANTHROPIC


def test_unknown_provider_kind() -> None:
    with pytest.raises(ConfigurationError):
        create_provider("watson", "x")


def test_openrouter_uses_openrouter_endpoint(monkeypatch) -> None:
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
    monkeypatch.setenv("YOUR_SITE_NAME", "Docs Bot")

    provider = create_provider("openrouter", "openai/gpt-4o-mini", {"temperature": 0.3, "max_tokens": 200})

    assert isinstance(provider, OpenRouterProvider)
    llm = provider.llm
    assert llm.openai_api_base == OPENROUTER_BASE_URL
    assert llm.model_name == "openai/gpt-4o-mini"
    assert llm.temperature == 0.3
    assert llm.default_headers["X-Title"] == "Docs Bot"


def test_ollama_uses_openai_compatible_endpoint(monkeypatch) -> None:
    assert create_provider("ollama", "gemma3:4b").llm.openai_api_base == "http://localhost:11434/v1"

    monkeypatch.setenv("OLLAMA_HOST", "http://gpu-box:11434/")
    llm = create_provider("ollama", "llama3.1", {"max_tokens": 64}).llm
    assert llm.openai_api_base == "http://gpu-box:11434/v1"
    assert llm.max_tokens == 64


async def test_anthropic_returns_tagged_notice() -> None:
    provider = AnthropicProvider("claude-x")

    assert (await provider.generate("hi")).startswith("[not implemented]")
    assert "not implemented" in await provider.chat_with_tools([HumanMessage(content="hi")], [echo_tool])


def test_anthropic_llm_answers_with_the_same_notice() -> None:
    provider = AnthropicProvider("claude-x")

    reply = provider.llm.invoke([HumanMessage(content="hi")])

    assert reply.content == provider.notice
    assert reply.content.startswith("[not implemented]")


class _UnbindableModel(ScriptedChatModel):
    def bind_tools(self, tools, **kwargs):
        raise ValueError("tool binding unsupported")


async def test_tool_binding_failure_becomes_provider_error() -> None:
    provider = create_provider("ollama", "m", llm=_UnbindableModel(responses=["unused"], calls=[]))

    with pytest.raises(ProviderError) as exc_info:
        await provider.complete([HumanMessage(content="hi")], [{"type": "function", "function": {"name": "t"}}])

    assert isinstance(exc_info.value.cause, ValueError)
    assert "tool binding unsupported" in str(exc_info.value)


async def test_backend_exception_becomes_provider_error(scripted) -> None:
    provider = create_provider("ollama", "m", llm=scripted(TimeoutError("read timed out")))

    with pytest.raises(ProviderError) as exc_info:
        await provider.chat([HumanMessage(content="hi")])

    assert str(exc_info.value).startswith("Ollama provider error:")
    assert isinstance(exc_info.value.cause, TimeoutError)


async def test_generate_sends_system_and_prompt(scripted) -> None:
    llm = scripted("answer")
    provider = create_provider("ollama", "m", llm=llm)

    assert await provider.generate("question", system="be nice") == "answer"

    sent = llm.calls[0]["messages"]
    assert isinstance(sent[0], SystemMessage)
    assert sent[1].content == "question"


async def test_chat_with_tools_runs_the_loop(scripted) -> None:
    llm = scripted(calls_tools(tool_call("echo_tool", {"text": "ping"}, "c1")), "pong")
    provider = create_provider("ollama", "m", llm=llm)
    messages = [HumanMessage(content="ping it")]

    assert await provider.chat_with_tools(messages, [echo_tool]) == "pong"
    assert len(messages) == 1


async def test_text_tool_protocol_for_providers_without_native_tools(monkeypatch, scripted) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    llm = scripted('{"name": "echo_tool", "arguments": {"text": "hey"}}', "final")
    provider = GoogleProvider("gemini-2.0-flash", llm=llm)

    answer = await provider.generate_with_tools("echo hey", [echo_tool], system="base")

    assert answer == "final"
    # Tool schemas are never bound natively.
    assert all(call["tools"] is None for call in llm.calls)

    first_system = llm.calls[0]["messages"][0]
    assert isinstance(first_system, SystemMessage)
    assert first_system.content.startswith("base\n\n")
    assert "echo_tool" in first_system.content

    # Tool results come back as plain user text.
    second = llm.calls[1]["messages"]
    assert not any(isinstance(m, ToolMessage) for m in second)
    assert any(isinstance(m, HumanMessage) and "Tool echo_tool" in m.content for m in second)
