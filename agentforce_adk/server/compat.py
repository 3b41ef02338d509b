"""Request models and helpers for the OpenAI- and Ollama-compatible routes."""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, field_validator

from agentforce_adk.config import DEFAULT_PROVIDER
from agentforce_adk.providers import ProviderKind


CONTEXT_INSTRUCTION = "\nPlease respond as the Assistant, taking into account the full conversation history above."

_ROLE_LABELS = {
    "system": "System",
    "user": "Human",
    "assistant": "Assistant",
    "tool": "Tool",
}


class CompatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Literal["system", "user", "assistant", "tool"]
    content: Union[str, List[Dict[str, Any]], None] = None


class ChatCompletionRequest(BaseModel):
    """Body of ``POST /v1/chat/completions``; unknown fields are ignored."""

    model_config = ConfigDict(extra="allow")

    model: str
    messages: List[CompatMessage]
    stream: bool = False

    @field_validator("messages")
    @classmethod
    def _has_user_message(cls, value: List[CompatMessage]) -> List[CompatMessage]:
        if not value:
            raise ValueError("messages must be a non-empty array")
        if not any(m.role == "user" for m in value):
            raise ValueError("No user message found in messages array")
        return value


class OllamaGenerateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str
    prompt: str
    system: Optional[str] = None


class OllamaChatRequest(ChatCompletionRequest):
    pass


def text_content(content: Union[str, List[Dict[str, Any]], None]) -> str:
    """Flatten OpenAI content (string or list of parts) to plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "".join(str(part.get("text", "")) for part in content if part.get("type") == "text")


def format_conversation(messages: List[CompatMessage]) -> str:
    """Collapse a client-side conversation into one prompt.

    A lone user message is passed through unchanged; anything longer is
    rendered as labelled lines followed by an instruction to answer as the
    assistant.
    """
    if len(messages) == 1 and messages[0].role == "user":
        return text_content(messages[0].content)

    lines = [f"{_ROLE_LABELS[m.role]}: {text_content(m.content)}" for m in messages]
    lines.append(CONTEXT_INSTRUCTION)
    return "\n".join(lines)


def parse_model_parameter(value: str) -> Tuple[ProviderKind, str]:
    """Split ``provider/model``; a bare model name uses the default provider.

    Raises:
        ValueError: Empty value or unknown provider prefix
    """
    value = (value or "").strip()
    if not value:
        raise ValueError("model parameter cannot be empty")

    if "/" in value:
        prefix, model = value.split("/", 1)
        try:
            kind = ProviderKind(prefix.lower())
        except ValueError as e:
            supported = ", ".join(k.value for k in ProviderKind)
            raise ValueError(f"Unknown provider '{prefix}'. Supported providers: {supported}") from e
        if not model.strip():
            raise ValueError("model name is missing after the provider prefix")
        return kind, model.strip()

    return ProviderKind(DEFAULT_PROVIDER), value


def chat_completion_response(model: str, prompt: str, response: str) -> Dict[str, Any]:
    now = time.time()
    prompt_tokens = len(prompt) // 4
    completion_tokens = len(response) // 4
    return {
        "id": f"chatcmpl-{int(now * 1000)}",
        "object": "chat.completion",
        "created": int(now),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": response},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


def _ollama_timings() -> Dict[str, int]:
    return {
        "total_duration": 0,
        "load_duration": 0,
        "prompt_eval_count": 0,
        "prompt_eval_duration": 0,
        "eval_count": 0,
        "eval_duration": 0,
    }


def ollama_generate_response(model: str, response: str) -> Dict[str, Any]:
    return {
        "model": model,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "response": response,
        "done": True,
        "context": [],
        **_ollama_timings(),
    }


def ollama_chat_response(model: str, response: str) -> Dict[str, Any]:
    return {
        "model": model,
        "created_at": datetime.now(timezone.utc).isoformat(),
        "message": {"role": "assistant", "content": response},
        "done": True,
        **_ollama_timings(),
    }
