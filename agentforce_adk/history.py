"""Append-only chat history owned by one agent."""
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)


_ROLE_BY_TYPE = {
    "system": "system",
    "human": "user",
    "ai": "assistant",
    "tool": "tool",
}


def message_role(message: BaseMessage) -> str:
    return _ROLE_BY_TYPE.get(message.type, message.type)


def message_text(message: BaseMessage) -> str:
    """Return the textual content of a message.

    Some chat models return content as a list of blocks; text blocks are
    joined and everything else is ignored.
    """
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)


def to_chat_message(message: BaseMessage) -> Dict:
    """Convert a LangChain message into a plain, JSON-serializable dict."""
    data: Dict = {"role": message_role(message), "content": message_text(message)}
    if isinstance(message, ToolMessage):
        data["tool_call_id"] = message.tool_call_id
        if message.name:
            data["tool_name"] = message.name
    if isinstance(message, AIMessage) and message.tool_calls:
        data["tool_calls"] = [
            {"id": call.get("id"), "name": call["name"], "args": call.get("args", {})}
            for call in message.tool_calls
        ]
    return data


def from_chat_message(data: Dict) -> BaseMessage:
    """Inverse of to_chat_message for the roles a client can send."""
    role = data.get("role", "user")
    content = data.get("content") or ""
    if role == "system":
        return SystemMessage(content=content)
    if role == "assistant":
        return AIMessage(content=content)
    if role == "tool":
        return ToolMessage(
            content=content,
            tool_call_id=data.get("tool_call_id") or "",
            name=data.get("tool_name") or data.get("name"),
        )
    return HumanMessage(content=content)


class ChatHistory:
    """Ordered, append-only message log.

    At most one system message is kept and it is always first. Messages are
    never reordered; the only removal is clear().
    """

    def __init__(self, messages: Optional[Iterable[BaseMessage]] = None):
        self._messages: List[BaseMessage] = []
        if messages:
            self.extend(messages)

    def append(self, message: BaseMessage) -> None:
        if isinstance(message, SystemMessage):
            if any(isinstance(m, SystemMessage) for m in self._messages):
                raise ValueError("chat history already contains a system message")
            if self._messages:
                raise ValueError("system message must be the first message")
        self._messages.append(message)

    def extend(self, messages: Iterable[BaseMessage]) -> None:
        for message in messages:
            self.append(message)

    def clear(self) -> None:
        self._messages = []

    @property
    def messages(self) -> List[BaseMessage]:
        return list(self._messages)

    def last(self, role: Optional[str] = None) -> Optional[BaseMessage]:
        """Return the newest message, optionally restricted to one role."""
        for message in reversed(self._messages):
            if role is None or message_role(message) == role:
                return message
        return None

    def to_dicts(self) -> List[Dict]:
        return [to_chat_message(m) for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[BaseMessage]:
        return iter(list(self._messages))
