"""Graph nodes for the tool-calling loop."""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, List

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, ToolMessage

from agentforce_adk.config import ModelConfig
from agentforce_adk.history import message_text
from agentforce_adk.loop.state import LoopState
from agentforce_adk.loop.tool_calls import has_pending_calls, is_error_result, pending_calls, result_to_content
from agentforce_adk.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from agentforce_adk.providers.base import LLMProvider


logger = logging.getLogger(__name__)


def build_messages(state: LoopState) -> List[BaseMessage]:
    """System message (when the prompt is non-empty) followed by the conversation."""
    messages: List[BaseMessage] = []
    system_prompt = state.get("system_prompt") or ""
    if system_prompt.strip():
        messages.append(SystemMessage(content=system_prompt))
    messages.extend(state.get("messages", []))
    return messages


async def pace_request(model_config: ModelConfig) -> None:
    if model_config.request_delay > 0:
        await asyncio.sleep(model_config.request_delay)


async def model_node(
    state: LoopState,
    provider: "LLMProvider",
    registry: ToolRegistry,
    model_config: ModelConfig,
) -> Dict:
    """Call the model with the configured tool schemas.

    Args:
        state: Current loop state
        provider: Provider adapter
        registry: Registry the tool schemas are resolved from
        model_config: Pacing settings

    Returns:
        State update with the assistant message
    """
    await pace_request(model_config)
    definitions = registry.definitions(state.get("tool_names", []))
    response = await provider.complete(build_messages(state), definitions or None)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Model response: round=%d tool_calls=%s",
            state.get("rounds", 0),
            [c["name"] for c in response.tool_calls],
        )
    return {"messages": [response]}


async def finalize_node(
    state: LoopState,
    provider: "LLMProvider",
    model_config: ModelConfig,
) -> Dict:
    """Ask for a final answer without offering any tools."""
    logger.debug("Tool round limit reached after %d rounds, requesting final answer", state.get("rounds", 0))
    await pace_request(model_config)
    response = await provider.complete(build_messages(state), None)
    # Without tool schemas a stray tool call cannot be honoured.
    return {"messages": [AIMessage(content=message_text(response))]}


async def _execute_call(call: Dict[str, Any], registry: ToolRegistry) -> Dict[str, Any]:
    name = call.get("name") or ""
    args = call.get("args") or {}
    tool = registry.get(name)
    if call.get("type") == "invalid_tool_call":
        reason = call.get("error") or "arguments are not valid JSON"
        logger.warning("Tool %s called with unparseable arguments: %r", name, args)
        result: Any = {"success": False, "error": f"Invalid arguments for {name}: {reason}"}
    elif tool is None:
        logger.warning("Tool %s not found in registry", name)
        result = {"success": False, "error": f"Tool {name} not found in registry"}
    else:
        try:
            result = await tool.ainvoke(args)
        except Exception as e:
            logger.error("Tool execution failed: %s: %s", name, e)
            result = {"success": False, "error": f"Error executing {name}: {e}"}
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Tool %s (%s) args=%s ok=%s", name, call.get("id"), args, not is_error_result(result))
    return {"id": call["id"], "name": name, "args": args, "result": result}


async def tool_execution_node(
    state: LoopState,
    registry: ToolRegistry,
    model_config: ModelConfig,
) -> Dict:
    """Execute the tool calls of the last assistant message.

    Results are returned as ToolMessage objects in the same order as the
    calls, also when the calls run concurrently.

    Args:
        state: Current loop state with tool calls in the last message
        registry: Tool lookup
        model_config: Decides sequential or concurrent execution

    Returns:
        State update with tool messages, the incremented round counter and
        the raw results of this round
    """
    messages = state.get("messages", [])
    last_message = messages[-1] if messages else None
    if not has_pending_calls(last_message):
        return {"messages": []}

    calls = pending_calls(last_message)
    if model_config.parallel_tool_calls and len(calls) > 1:
        results = await asyncio.gather(*(_execute_call(c, registry) for c in calls))
    else:
        results = []
        for call in calls:
            results.append(await _execute_call(call, registry))

    tool_messages = [
        ToolMessage(
            content=result_to_content(item["result"]),
            tool_call_id=item["id"],
            name=item["name"],
            status="error" if is_error_result(item["result"]) else "success",
        )
        for item in results
    ]
    return {
        "messages": tool_messages,
        "rounds": state.get("rounds", 0) + 1,
        "last_results": list(results),
    }


def should_continue(state: LoopState) -> str:
    """Route after a model call: "tools" when it asked for tools, else "end"."""
    messages = state.get("messages", [])
    if not messages:
        return "end"

    if has_pending_calls(messages[-1]):
        return "tools"
    return "end"


def after_tools(state: LoopState, max_tool_rounds: int) -> str:
    """Route after a tool round: back to the model or to the final answer."""
    if state.get("rounds", 0) >= max_tool_rounds:
        return "finalize"
    return "model"
