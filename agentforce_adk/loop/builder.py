"""LangGraph graph builder for the tool-calling loop."""
from __future__ import annotations

from typing import TYPE_CHECKING

from langgraph.graph import StateGraph, END

from agentforce_adk.config import ModelConfig
from agentforce_adk.loop.nodes import (
    after_tools,
    finalize_node,
    model_node,
    should_continue,
    tool_execution_node,
)
from agentforce_adk.loop.state import LoopState
from agentforce_adk.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from agentforce_adk.providers.base import LLMProvider


def create_loop_graph(provider: "LLMProvider", registry: ToolRegistry, model_config: ModelConfig):
    """Create the model <-> tools state machine.

    1. START -> model
    2. After model: tool calls -> tools, otherwise END
    3. After tools: round limit reached -> finalize -> END, otherwise model

    Args:
        provider: Provider adapter used for every model call
        registry: Tool lookup for schemas and execution
        model_config: Round limit, pacing and tool concurrency

    Returns:
        Compiled LangGraph graph
    """
    async def model(state: LoopState):
        return await model_node(state, provider, registry, model_config)

    async def tools(state: LoopState):
        return await tool_execution_node(state, registry, model_config)

    async def finalize(state: LoopState):
        return await finalize_node(state, provider, model_config)

    workflow = StateGraph(LoopState)

    workflow.add_node("model", model)
    workflow.add_node("tools", tools)
    workflow.add_node("finalize", finalize)

    workflow.set_entry_point("model")

    workflow.add_conditional_edges(
        "model",
        should_continue,
        {
            "tools": "tools",
            "end": END,
        },
    )

    workflow.add_conditional_edges(
        "tools",
        lambda state: after_tools(state, model_config.max_tool_rounds),
        {
            "model": "model",
            "finalize": "finalize",
        },
    )

    workflow.add_edge("finalize", END)

    return workflow.compile()
