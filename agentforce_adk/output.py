"""Format an agent's latest exchange as text, JSON or markdown."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Union

from agentforce_adk.history import message_text

if TYPE_CHECKING:
    from agentforce_adk.agent import Agent


OUTPUT_TYPES = ("text", "json", "md")
EXTENSION_TYPES = {".txt": "text", ".json": "json", ".md": "md"}
NO_RESPONSE = "No response available"


def latest_response(agent: "Agent") -> str:
    last = agent.history.last("assistant")
    return message_text(last) if last is not None else NO_RESPONSE


def format_output(agent: "Agent", output_type: str) -> Union[str, Dict]:
    """Render the agent's most recent assistant response.

    Args:
        agent: Agent that has already executed
        output_type: "text", "json" or "md"

    Returns:
        A string for text and md, a JSON-serializable dict for json

    Raises:
        ValueError: Unknown output type
    """
    if output_type not in OUTPUT_TYPES:
        raise ValueError(f"Output type must be one of: {', '.join(OUTPUT_TYPES)}")

    response = latest_response(agent)
    system_prompt = agent.compose_system_prompt()
    user_prompt = agent.user_prompt
    timestamp = datetime.now(timezone.utc).isoformat()

    if output_type == "text":
        return (
            f"=== Agent {agent.name} Output (Text Format) ===\n"
            f"System: {system_prompt}\n"
            f"User: {user_prompt}\n"
            f"Response: {response}"
        )

    if output_type == "json":
        return {
            "agent": agent.name,
            "provider": agent.provider_kind.value,
            "model": agent.model,
            "systemPrompt": system_prompt,
            "userPrompt": user_prompt,
            "response": response,
            "chatHistory": agent.history.to_dicts(),
            "timestamp": timestamp,
            "status": "error" if response.startswith("Error:") else "success",
        }

    return (
        f"=== Agent {agent.name} Output (Markdown Format) ===\n"
        f"# Agent Response\n\n"
        f"**Agent:** {agent.name}\n"
        f"**Provider:** {agent.provider_kind.value}\n"
        f"**Model:** {agent.model}\n\n"
        f"## System Prompt\n{system_prompt}\n\n"
        f"## User Prompt\n{user_prompt}\n\n"
        f"## Response\n{response}\n\n"
        f"*Generated at: {timestamp}*"
    )


def output_type_for_path(path: Union[str, Path]) -> str:
    suffix = Path(path).suffix.lower()
    if suffix not in EXTENSION_TYPES:
        raise ValueError(
            f"Unsupported file extension '{suffix}'. Use one of: {', '.join(EXTENSION_TYPES)}"
        )
    return EXTENSION_TYPES[suffix]


def write_output(agent: "Agent", path: Union[str, Path]) -> Path:
    """Write the formatted response to ``path``; the extension picks the format."""
    target = Path(path)
    rendered = format_output(agent, output_type_for_path(target))
    if isinstance(rendered, dict):
        rendered = json.dumps(rendered, indent=2, ensure_ascii=False)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(rendered, encoding="utf-8")
    return target
