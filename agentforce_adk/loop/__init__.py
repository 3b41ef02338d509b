"""Tool-calling loop built on LangGraph."""
from agentforce_adk.loop.runner import ToolCallingLoop
from agentforce_adk.loop.builder import create_loop_graph

__all__ = ["ToolCallingLoop", "create_loop_graph"]
