from __future__ import annotations

from typing import Any

import pytest

from agentforce_adk.tools.registry import ToolRegistry

from fakes import ScriptedChatModel, echo_tool, failing_tool


@pytest.fixture
def scripted():
    def factory(*responses: Any, repeat_last: bool = False) -> ScriptedChatModel:
        return ScriptedChatModel(responses=list(responses), calls=[], repeat_last=repeat_last)

    return factory


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry([echo_tool, failing_tool])


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for var in ("OPENROUTER_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "OLLAMA_HOST", "LOG_PATH"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("AGENTFORCE_ASSET_PATH", str(tmp_path))
    monkeypatch.setenv("AGENTFORCE_FILE_ROOT", str(tmp_path))
