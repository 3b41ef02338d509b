from __future__ import annotations

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from agentforce_adk.history import ChatHistory, from_chat_message, to_chat_message


def test_system_message_must_be_first_and_unique() -> None:
    history = ChatHistory([SystemMessage(content="sys")])
    history.append(HumanMessage(content="hi"))

    with pytest.raises(ValueError):
        history.append(SystemMessage(content="again"))

    late = ChatHistory([HumanMessage(content="hi")])
    with pytest.raises(ValueError):
        late.append(SystemMessage(content="late"))


def test_messages_are_copies_and_order_is_kept() -> None:
    history = ChatHistory()
    history.append(HumanMessage(content="1"))
    history.append(AIMessage(content="2"))

    snapshot = history.messages
    snapshot.append(HumanMessage(content="3"))

    assert [m.content for m in history] == ["1", "2"]
    assert history.last("user").content == "1"
    assert history.last().content == "2"
    assert history.last("tool") is None


def test_to_chat_message_roles_and_tool_fields() -> None:
    call = AIMessage(content="", tool_calls=[{"name": "echo_tool", "args": {"text": "a"}, "id": "c1"}])
    result = ToolMessage(content='{"ok": true}', tool_call_id="c1", name="echo_tool")

    assert to_chat_message(HumanMessage(content="q")) == {"role": "user", "content": "q"}
    assert to_chat_message(call)["tool_calls"] == [{"id": "c1", "name": "echo_tool", "args": {"text": "a"}}]
    assert to_chat_message(result) == {
        "role": "tool",
        "content": '{"ok": true}',
        "tool_call_id": "c1",
        "tool_name": "echo_tool",
    }


def test_from_chat_message_maps_roles() -> None:
    assert isinstance(from_chat_message({"role": "system", "content": "s"}), SystemMessage)
    assert isinstance(from_chat_message({"role": "assistant", "content": "a"}), AIMessage)
    assert isinstance(from_chat_message({"role": "user", "content": "u"}), HumanMessage)
    tool_message = from_chat_message({"role": "tool", "content": "r", "tool_call_id": "x"})
    assert isinstance(tool_message, ToolMessage)
    assert tool_message.tool_call_id == "x"
