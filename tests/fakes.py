"""Scripted chat model and sample tools shared by the tests."""
from __future__ import annotations

from typing import Any, List, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from langchain_core.tools import tool


class ScriptedChatModel(BaseChatModel):
    """Chat model that replays scripted responses and records every call.

    Items in ``responses`` are AIMessages, plain strings, or exceptions to
    raise. ``calls`` holds one entry per invocation:
    ``{"messages": [...], "tools": <bound tool schemas or None>}``.
    """

    responses: List[Any] = []
    calls: List[dict] = []
    pending_tools: Optional[List[Any]] = None
    repeat_last: bool = False

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def bind_tools(self, tools, **kwargs):
        self.pending_tools = list(tools)
        return self

    def _generate(self, messages: List[BaseMessage], stop=None, run_manager=None, **kwargs) -> ChatResult:
        self.calls.append({"messages": list(messages), "tools": self.pending_tools})
        self.pending_tools = None

        index = len(self.calls) - 1
        if index < len(self.responses):
            item = self.responses[index]
        elif self.repeat_last and self.responses:
            item = self.responses[-1]
        else:
            item = "(no scripted response left)"

        if isinstance(item, BaseException):
            raise item
        message = AIMessage(content=item) if isinstance(item, str) else item.model_copy()
        return ChatResult(generations=[ChatGeneration(message=message)])


def tool_call(name: str, args: dict, call_id: str) -> dict:
    return {"name": name, "args": args, "id": call_id, "type": "tool_call"}


def calls_tools(*calls: dict) -> AIMessage:
    return AIMessage(content="", tool_calls=list(calls))


@tool
def echo_tool(text: str) -> dict:
    """Echo the given text back."""
    return {"success": True, "echo": text}


@tool
def failing_tool(reason: str) -> dict:
    """Always fails."""
    raise RuntimeError(f"boom: {reason}")


