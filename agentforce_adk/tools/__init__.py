"""Tool registry, built-in tools and the MCP adapter."""
from agentforce_adk.tools.registry import ToolRegistry
from agentforce_adk.tools.builtin import BUILTIN_TOOLS
from agentforce_adk.tools.mcp import McpClient, mcp_tools

__all__ = ["ToolRegistry", "BUILTIN_TOOLS", "McpClient", "mcp_tools"]
