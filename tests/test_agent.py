from __future__ import annotations

from pathlib import Path

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from agentforce_adk import Agent, AgentConfig, ConfigurationError, ProviderError
from agentforce_adk.providers import ProviderKind

from fakes import calls_tools, tool_call


def _agent(llm, registry, tools=("echo_tool",), **model_config) -> Agent:
    return (
        Agent(AgentConfig(name="tester", tools=list(tools)), registry=registry)
        .use_llm("ollama", "test-model", model_config or None, llm=llm)
    )


def test_unknown_configured_tool_is_rejected(registry) -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        Agent(AgentConfig(name="bad", tools=["echo_tool", "does_not_exist"]), registry=registry)
    assert "does_not_exist" in str(exc_info.value)


def test_empty_name_is_rejected(registry) -> None:
    with pytest.raises(ConfigurationError):
        Agent({"name": "   "}, registry=registry)


def test_invalid_model_config_is_rejected(registry) -> None:
    agent = Agent(AgentConfig(name="cfg"), registry=registry)
    with pytest.raises(ConfigurationError):
        agent.use_llm("ollama", "m", {"temperature": 1.5})


def test_unknown_provider_is_rejected(registry) -> None:
    agent = Agent(AgentConfig(name="cfg"), registry=registry)
    with pytest.raises(ConfigurationError):
        agent.use_llm("mystery", "m")


def test_defaults_to_ollama_gemma(registry) -> None:
    agent = Agent(AgentConfig(name="defaults"), registry=registry)
    assert agent.provider_kind is ProviderKind.OLLAMA
    assert agent.model == "gemma3:4b"
    assert agent.model_config.max_tool_rounds == 10


def test_setters_chain_and_return_same_agent(registry, scripted) -> None:
    agent = Agent(AgentConfig(name="chain"), registry=registry)
    returned = agent.use_llm("ollama", "m", llm=scripted()).system_prompt("sys").prompt("hi").task("t")
    assert returned is agent
    assert agent.user_prompt == "hi"
    assert agent.task_list == ["t"]


def test_accessors_return_copies(registry) -> None:
    agent = Agent(AgentConfig(name="copies", tools=["echo_tool"]), registry=registry)
    agent.task("one")

    agent.task_list.append("two")
    agent.tools.append("other")
    agent.chat_history.append(HumanMessage(content="sneaky"))

    assert agent.task_list == ["one"]
    assert agent.tools == ["echo_tool"]
    assert agent.chat_history == []


async def test_execute_runs_tool_loop_and_records_history(scripted, registry) -> None:
    llm = scripted(calls_tools(tool_call("echo_tool", {"text": "hi"}, "c1")), "all done")
    agent = _agent(llm, registry)

    answer = await agent.execute("say hi")

    assert answer == "all done"
    history = agent.chat_history
    assert isinstance(history[0], HumanMessage)
    assert history[0].content == "say hi"
    assert history[-1].content == "all done"


async def test_tasks_skip_missing_entries_and_drain_queue(scripted, registry) -> None:
    llm = scripted("result A", "result B", "result C")
    agent = _agent(llm, registry, tools=())
    agent.task("A").task("B").tasks([None]).task("C")

    answer = await agent.execute()

    assert len(llm.calls) == 3
    assert answer == "result C"
    user_messages = [m.content for m in agent.chat_history if isinstance(m, HumanMessage)]
    assert user_messages == ["Task 1: A", "Task 2: B", "Task 3: C"]
    assert agent.task_list == []


async def test_prompt_prefixes_first_task(scripted, registry) -> None:
    llm = scripted("one", "two")
    agent = _agent(llm, registry, tools=()).prompt("Context here").task("first").task("second")

    await agent.execute()

    user_messages = [m.content for m in agent.chat_history if isinstance(m, HumanMessage)]
    assert user_messages == ["Context here\n\nTask 1: first", "Task 2: second"]


async def test_result_is_last_non_empty_task_result(scripted, registry) -> None:
    llm = scripted("useful", "")
    agent = _agent(llm, registry, tools=()).task("A").task("B")

    assert await agent.execute() == "useful"


async def test_queue_is_empty_after_failure(scripted, registry) -> None:
    llm = scripted(RuntimeError("backend down"))
    agent = _agent(llm, registry, tools=()).task("A").task("B")

    with pytest.raises(ProviderError):
        await agent.execute()

    assert agent.task_list == []
    assert len(llm.calls) == 1


async def test_rerun_without_tasks_uses_prompt(scripted, registry) -> None:
    llm = scripted("task answer", "prompt answer")
    agent = _agent(llm, registry, tools=()).prompt("plain").task("A")

    await agent.execute()
    answer = await agent.execute()

    assert answer == "prompt answer"
    assert agent.chat_history[-2].content == "plain"


async def test_execute_without_prompt_or_tasks_raises(registry, scripted) -> None:
    agent = _agent(scripted(), registry)
    with pytest.raises(ValueError):
        await agent.execute()


async def test_get_response_returns_error_text_on_failure(scripted, registry) -> None:
    llm = scripted(RuntimeError("always fails"), repeat_last=True)
    agent = _agent(llm, registry).prompt("hello")

    response = await agent.get_response()

    assert response.startswith("Error:")
    assert "always fails" in response


async def test_get_response_without_prompt_never_raises(registry, scripted) -> None:
    agent = _agent(scripted(), registry)
    response = await agent.get_response()
    assert response.startswith("Error: Failed to get response - ")


async def test_run_swallows_errors_and_returns_agent(scripted, registry) -> None:
    agent = _agent(scripted(RuntimeError("nope")), registry).prompt("hello")

    returned = await agent.run()

    assert returned is agent
    last = agent.chat_history[-1]
    assert isinstance(last, AIMessage)
    assert last.content.startswith("Error:")


async def test_history_accumulates_across_calls(scripted, registry) -> None:
    llm = scripted("first", "second")
    agent = _agent(llm, registry, tools=())

    await agent.execute("one")
    await agent.execute("two")

    # The second call carries the first exchange as context.
    second_call = llm.calls[1]["messages"]
    assert [m.content for m in second_call if isinstance(m, HumanMessage)] == ["one", "two"]

    agent.clear_history()
    assert agent.chat_history == []


def test_system_prompt_reads_file(tmp_path: Path, registry) -> None:
    prompt_file = tmp_path / "prompt.md"
    prompt_file.write_text("You are a pirate.", encoding="utf-8")

    agent = Agent(AgentConfig(name="pirate"), registry=registry).system_prompt(str(prompt_file))

    assert agent.compose_system_prompt() == "You are a pirate."


def test_missing_prompt_file_is_used_as_text(registry) -> None:
    agent = Agent(AgentConfig(name="literal"), registry=registry).system_prompt("nowhere/prompt.md")
    assert agent.compose_system_prompt() == "nowhere/prompt.md"


def test_with_template_appends_rendered_template(tmp_path: Path, registry) -> None:
    template = tmp_path / "story.hbs"
    template.write_text("Write about {{ topic }} for {{ reader.name }}.", encoding="utf-8")

    agent = (
        Agent(AgentConfig(name="writer"), registry=registry)
        .system_prompt("Base.")
        .with_template(str(template), {"topic": "dragons", "reader": {"name": "Ada"}})
    )

    assert agent.compose_system_prompt() == "Base.\n\nWrite about dragons for Ada."


def test_with_template_missing_file_leaves_prompt_unchanged(tmp_path: Path, registry) -> None:
    agent = (
        Agent(AgentConfig(name="writer"), registry=registry)
        .system_prompt("Base.")
        .with_template(str(tmp_path / "missing.md"))
    )
    assert agent.compose_system_prompt() == "Base."


async def test_clone_has_fresh_history(scripted, registry) -> None:
    llm = scripted("a", "b")
    agent = _agent(llm, registry, tools=()).system_prompt("sys")
    await agent.execute("first")

    copy = agent.clone()

    assert copy.chat_history == []
    assert copy.task_list == []
    assert copy.compose_system_prompt() == "sys"
    assert copy.model == agent.model
    assert await copy.execute("second") == "b"
    assert len(agent.chat_history) == 2


def test_agent_server_reports_status(scripted, registry) -> None:
    from fastapi.testclient import TestClient

    client = TestClient(_agent(scripted(), registry).server().app)
    assert client.get("/").json() == {"status": "ok", "agent": "tester"}


@pytest.mark.parametrize("host, port", [("", 3000), ("0.0.0.0", 0), ("0.0.0.0", 70000)])
def test_serve_rejects_bad_address(scripted, registry, host, port) -> None:
    with pytest.raises(ConfigurationError):
        _agent(scripted(), registry).serve(host, port)
