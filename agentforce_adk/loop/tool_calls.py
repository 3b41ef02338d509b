"""Helpers for tool-call requests and tool results."""
from __future__ import annotations

import json
import re
import uuid
from typing import Any, Dict, List, Optional

from langchain_core.messages import AIMessage, InvalidToolCall, ToolCall

from agentforce_adk.history import message_text


CONTENT_TRUNCATE_THRESHOLD = 5000
CONTENT_TRUNCATE_TO = 2000
HTML_TRUNCATE_THRESHOLD = 10000
HTML_TRUNCATE_TO = 5000
TRUNCATION_MARKER = "...[truncated]"

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


def _coerce_args(raw: Any) -> Optional[Dict]:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw) if raw.strip() else {}
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


def parse_content_tool_calls(text: str) -> List[ToolCall]:
    """Parse tool calls that a model wrote into its text reply.

    Local models without native tool support often answer with a bare JSON
    object such as ``{"name": "fs_read_file", "arguments": {"path": "a"}}``,
    sometimes inside a code fence. A JSON list of such objects is accepted
    too. Anything else yields an empty list.
    """
    stripped = (text or "").strip()
    fenced = _FENCE_RE.match(stripped)
    if fenced:
        stripped = fenced.group(1).strip()
    if not stripped or stripped[0] not in "{[" or '"name"' not in stripped:
        return []
    try:
        parsed = json.loads(stripped)
    except ValueError:
        return []

    candidates = parsed if isinstance(parsed, list) else [parsed]
    calls: List[ToolCall] = []
    for item in candidates:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            return []
        if "arguments" not in item and "args" not in item:
            return []
        args = _coerce_args(item.get("arguments", item.get("args")))
        if args is None:
            return []
        calls.append(ToolCall(name=item["name"], args=args, id=new_call_id(), type="tool_call"))
    return calls


def normalize_response(response: AIMessage, parse_content: bool) -> AIMessage:
    """Give every tool call an id and lift JSON tool calls out of the text.

    Calls whose arguments failed to parse stay in ``invalid_tool_calls``;
    they get an id too, so the loop can answer them with an error result.

    Args:
        response: Raw message returned by the chat model
        parse_content: Look for tool calls in the text when the message has
            none; only meaningful when tools were offered

    Returns:
        An AIMessage whose tool_calls and invalid_tool_calls all carry an id
    """
    tool_calls = list(response.tool_calls or [])
    invalid_calls = list(response.invalid_tool_calls or [])
    if not tool_calls and not invalid_calls and parse_content:
        parsed = parse_content_tool_calls(message_text(response))
        if parsed:
            return AIMessage(content="", tool_calls=parsed, response_metadata=response.response_metadata)
        return response

    if all(call.get("id") for call in tool_calls + invalid_calls):
        return response

    fixed = [
        ToolCall(
            name=call["name"],
            args=call.get("args") or {},
            id=call.get("id") or new_call_id(),
            type="tool_call",
        )
        for call in tool_calls
    ]
    fixed_invalid = [
        InvalidToolCall(
            name=call.get("name"),
            args=call.get("args"),
            id=call.get("id") or new_call_id(),
            error=call.get("error"),
            type="invalid_tool_call",
        )
        for call in invalid_calls
    ]
    return AIMessage(
        content=response.content,
        tool_calls=fixed,
        invalid_tool_calls=fixed_invalid,
        response_metadata=response.response_metadata,
    )


def pending_calls(message: AIMessage) -> List[Dict[str, Any]]:
    """Tool calls to answer for ``message``, malformed ones last.

    Every entry is tagged with its ``type`` so the executor can tell a call
    it should run from one whose arguments never parsed.
    """
    calls = [dict(call, type="tool_call") for call in message.tool_calls or []]
    calls.extend(dict(call, type="invalid_tool_call") for call in message.invalid_tool_calls or [])
    return calls


def has_pending_calls(message: Any) -> bool:
    return isinstance(message, AIMessage) and bool(message.tool_calls or message.invalid_tool_calls)


def sanitize_result(value: Any) -> Any:
    """Shorten bulky string fields before a result goes back into context."""
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            if key == "content" and isinstance(item, str) and len(item) > CONTENT_TRUNCATE_THRESHOLD:
                cleaned[key] = item[:CONTENT_TRUNCATE_TO] + TRUNCATION_MARKER
            elif key == "html" and isinstance(item, str) and len(item) > HTML_TRUNCATE_THRESHOLD:
                cleaned[key] = item[:HTML_TRUNCATE_TO] + TRUNCATION_MARKER
            else:
                cleaned[key] = sanitize_result(item)
        return cleaned
    if isinstance(value, list):
        return [sanitize_result(v) for v in value]
    return value


def is_error_result(result: Any) -> bool:
    return isinstance(result, dict) and result.get("success") is False


def result_to_content(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(sanitize_result(result), default=str, ensure_ascii=False)


def format_raw_results(results: List[Dict]) -> str:
    """Render one round of tool results for the append-tool-results block."""
    entries = []
    for item in results:
        args = json.dumps(item.get("args", {}), default=str, ensure_ascii=False)
        result = item.get("result")
        rendered = result if isinstance(result, str) else json.dumps(result, indent=2, default=str, ensure_ascii=False)
        entries.append(f"Tool {item['name']} ({item['id']}) args: {args}\nResult: {rendered}")
    return "\n\n".join(entries)


def append_tool_results(text: str, results: List[Dict]) -> str:
    if not results:
        return text
    return f"{text}\n\n---\nRaw tool results:\n{format_raw_results(results)}"
