from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from agentforce_adk import Agent, AgentConfig, ConfigurationError
from agentforce_adk.server import AgentServer
from agentforce_adk.server.compat import CONTEXT_INSTRUCTION, CompatMessage, format_conversation, parse_model_parameter
from agentforce_adk.providers import ProviderKind
from agentforce_adk.workflow import Workflow


def _agent(llm, registry) -> Agent:
    return Agent(AgentConfig(name="story"), registry=registry).use_llm("ollama", "test-model", llm=llm)


def test_parse_model_parameter() -> None:
    assert parse_model_parameter("openrouter/openai/gpt-4o") == (ProviderKind.OPENROUTER, "openai/gpt-4o")
    assert parse_model_parameter("gemma3:12b") == (ProviderKind.OLLAMA, "gemma3:12b")
    with pytest.raises(ValueError):
        parse_model_parameter("nobody/model")
    with pytest.raises(ValueError):
        parse_model_parameter("ollama/")


def test_format_conversation() -> None:
    single = [CompatMessage(role="user", content="hello")]
    assert format_conversation(single) == "hello"

    multi = [
        CompatMessage(role="system", content="Be brief."),
        CompatMessage(role="user", content=[{"type": "text", "text": "hi"}]),
        CompatMessage(role="assistant", content="hello"),
        CompatMessage(role="user", content="again"),
    ]
    assert format_conversation(multi) == (
        "System: Be brief.\nHuman: hi\nAssistant: hello\nHuman: again\n" + CONTEXT_INSTRUCTION
    )


def test_invalid_route_registration() -> None:
    server = AgentServer("test")
    with pytest.raises(ConfigurationError):
        server.add_route("FETCH", "/x", {})
    with pytest.raises(ConfigurationError):
        server.add_route("GET", "no-slash", {})


def test_static_route_and_health() -> None:
    server = AgentServer("test").add_route("GET", "/info", {"version": 1})
    client = TestClient(server.app)

    assert client.get("/info").json() == {"version": 1}
    assert client.get("/health").json() == {"status": "ok", "server": "test", "routes": 1}


def test_agent_route_reads_prompt_from_body_and_query(scripted, registry) -> None:
    llm = scripted("once upon a time", "the end")
    server = AgentServer("test").add_route_agent("POST", "/story", _agent(llm, registry))
    server.add_route_agent("GET", "/story", _agent(llm, registry))
    client = TestClient(server.app)

    posted = client.post("/story", json={"prompt": "tell a story"})
    assert posted.status_code == 200
    assert posted.json() == {
        "success": True,
        "method": "POST",
        "path": "/story",
        "agentName": "story",
        "prompt": "tell a story",
        "response": "once upon a time",
    }

    queried = client.get("/story", params={"prompt": "finish it"})
    assert queried.json()["response"] == "the end"


def test_requests_do_not_share_history(scripted, registry) -> None:
    llm = scripted("a", "b")
    agent = _agent(llm, registry)
    client = TestClient(AgentServer("test").add_route_agent("POST", "/chat", agent).app)

    client.post("/chat", json={"prompt": "first"})
    client.post("/chat", json={"prompt": "second"})

    assert [m.content for m in llm.calls[1]["messages"] if m.type == "human"] == ["second"]
    assert agent.chat_history == []


def test_agent_route_rejects_missing_prompt_and_bad_json(scripted, registry) -> None:
    client = TestClient(AgentServer("test").add_route_agent("POST", "/story", _agent(scripted(), registry)).app)

    missing = client.post("/story", json={})
    assert missing.status_code == 400
    assert missing.json()["error"] == "Missing prompt"

    bad = client.post("/story", content=b"{not json", headers={"Content-Type": "application/json"})
    assert bad.status_code == 400
    assert bad.json()["error"] == "Invalid JSON in request body"


def test_openai_compatible_chat_completions(scripted, registry) -> None:
    llm = scripted("I am a test model")
    client = TestClient(AgentServer("test").use_openai_compatible_routing(_agent(llm, registry)).app)

    response = client.post(
        "/v1/chat/completions",
        json={"model": "ollama/test-model", "messages": [{"role": "user", "content": "what llm are you"}]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["object"] == "chat.completion"
    assert body["id"].startswith("chatcmpl-")
    assert body["model"] == "ollama/test-model"
    assert body["choices"][0]["message"] == {"role": "assistant", "content": "I am a test model"}
    assert body["choices"][0]["finish_reason"] == "stop"
    assert body["usage"]["prompt_tokens"] == len("what llm are you") // 4

    models = client.get("/v1/models").json()
    assert models["data"][0]["id"] == "ollama/test-model"


@pytest.mark.parametrize(
    "payload",
    [
        {"model": "ollama/test-model", "messages": []},
        {"model": "ollama/test-model", "messages": [{"role": "system", "content": "only system"}]},
        {"model": "mystery/x", "messages": [{"role": "user", "content": "hi"}]},
        {"model": "ollama/test-model", "stream": True, "messages": [{"role": "user", "content": "hi"}]},
        {"messages": [{"role": "user", "content": "hi"}]},
    ],
)
def test_openai_compatible_rejects_invalid_requests(scripted, registry, payload) -> None:
    llm = scripted("never")
    client = TestClient(AgentServer("test").use_openai_compatible_routing(_agent(llm, registry)).app)

    response = client.post("/v1/chat/completions", json=payload)

    assert response.status_code == 400
    assert llm.calls == []


def test_ollama_compatible_routes(scripted, registry) -> None:
    llm = scripted("generated", "chatted")
    client = TestClient(AgentServer("test").use_ollama_compatible_routing(_agent(llm, registry)).app)

    generated = client.post("/api/generate", json={"model": "test-model", "prompt": "hi", "system": "Be terse."})
    assert generated.status_code == 200
    assert generated.json()["response"] == "generated"
    assert generated.json()["done"] is True
    assert llm.calls[0]["messages"][0].content == "Be terse."

    chatted = client.post("/api/chat", json={"model": "test-model", "messages": [{"role": "user", "content": "hey"}]})
    assert chatted.json()["message"] == {"role": "assistant", "content": "chatted"}

    tags = client.get("/api/tags").json()
    assert tags["models"][0]["name"] == "test-model"


def test_ollama_generate_requires_prompt(scripted, registry) -> None:
    client = TestClient(AgentServer("test").use_ollama_compatible_routing(_agent(scripted(), registry)).app)
    response = client.post("/api/generate", json={"model": "test-model"})
    assert response.status_code == 400


def test_html_route_serves_file_and_renders_templates(tmp_path: Path) -> None:
    (tmp_path / "page.html").write_text("<h1>{{ title }}</h1>", encoding="utf-8")
    (tmp_path / "page.hbs").write_text("<h1>{{ title }}</h1>", encoding="utf-8")
    server = AgentServer("test")
    server.add_html_route("/raw", tmp_path / "page.html")
    server.add_html_route("/rendered", tmp_path / "page.hbs", {"title": "Hello"})
    server.add_html_route("/gone", tmp_path / "missing.html")
    client = TestClient(server.app)

    assert client.get("/raw").text == "<h1>{{ title }}</h1>"
    rendered = client.get("/rendered")
    assert rendered.text == "<h1>Hello</h1>"
    assert rendered.headers["content-type"].startswith("text/html")
    gone = client.get("/gone")
    assert gone.status_code == 404
    assert "404 - File Not Found" in gone.text


def test_form_trigger_serves_form_and_answers_submissions(tmp_path: Path, scripted, registry) -> None:
    form = tmp_path / "form.hbs"
    form.write_text('<form action="{{ action }}" method="post"><button>{{ submitText }}</button></form>', encoding="utf-8")
    llm = scripted("a poem")
    client = TestClient(AgentServer("test").add_form_trigger("poem", form, _agent(llm, registry)).app)

    page = client.get("/poem")
    assert page.text == '<form action="/poem" method="post"><button>Submit</button></form>'

    submitted = client.post("/poem", data={"prompt": "write a poem"})
    assert submitted.status_code == 200
    assert submitted.json() == {"success": True, "prompt": "write a poem", "response": "a poem", "agentName": "story"}


def test_form_trigger_checks_declared_fields(tmp_path: Path, scripted, registry) -> None:
    form = tmp_path / "form.html"
    form.write_text("<form></form>", encoding="utf-8")
    llm = scripted("sunny")
    server = AgentServer("test").add_form_trigger(
        "/weather",
        form,
        _agent(llm, registry),
        input_fields=["prompt", "city"],
        output_fields=["response", "city"],
    )
    client = TestClient(server.app)

    no_prompt = client.post("/weather", data={"city": "Oslo"})
    assert no_prompt.status_code == 400
    assert no_prompt.json()["error"] == "Missing or invalid prompt"

    missing = client.post("/weather", data={"prompt": "forecast?"})
    assert missing.json()["missingFields"] == ["city"]

    unexpected = client.post("/weather", data={"prompt": "forecast?", "city": "Oslo", "debug": "1"})
    assert unexpected.json()["unexpectedFields"] == ["debug"]
    assert llm.calls == []

    ok = client.post("/weather", json={"prompt": "forecast?", "city": "Oslo"})
    assert ok.json() == {"response": "sunny", "city": "Oslo"}


def test_form_trigger_requires_a_name(tmp_path: Path, scripted, registry) -> None:
    with pytest.raises(ConfigurationError):
        AgentServer("test").add_form_trigger("", tmp_path / "form.html", _agent(scripted(), registry))


def test_workflow_trigger_runs_workflow_object(scripted, registry) -> None:
    llm = scripted("report ready")
    workflow = Workflow("nightly").prompt("build the report").sequence([_agent(llm, registry)])
    client = TestClient(AgentServer("test").add_workflow_trigger("get", "/run", workflow).app)

    response = client.get("/run")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["workflow"] == "nightly"
    assert body["result"]["final_output"] == "report ready"


def test_workflow_trigger_runs_script(tmp_path: Path) -> None:
    ok = tmp_path / "ok.py"
    ok.write_text(f"import json\nprint(json.dumps({json.dumps({'rows': 3})}))\n", encoding="utf-8")
    failing = tmp_path / "fail.py"
    failing.write_text("import sys\nsys.exit('no data')\n", encoding="utf-8")
    server = AgentServer("test")
    server.add_workflow_trigger("POST", "/ok", ok)
    server.add_workflow_trigger("POST", "/fail", failing)
    client = TestClient(server.app)

    assert client.post("/ok").json()["result"] == {"rows": 3}

    failed = client.post("/fail")
    assert failed.status_code == 500
    assert failed.json()["error"] == "Workflow execution failed"
    assert "no data" in failed.json()["message"]
