"""Adapter that exposes tools of an MCP server as registry tools.

Only the client boundary lives here; connecting to a server (stdio, SSE,
config files) is the caller's business. Anything with the methods of
``McpClient`` can be attached to an agent with ``Agent.add_mcp``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Protocol, runtime_checkable

from langchain_core.tools import BaseTool, StructuredTool


logger = logging.getLogger(__name__)


@runtime_checkable
class McpClient(Protocol):
    """Minimal surface of a connected MCP client."""

    name: str

    async def list_tools(self) -> List[Dict[str, Any]]:
        """Return tool descriptors: ``{"name", "description", "inputSchema"}``."""
        ...

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        ...


def mcp_tool_name(server: str, tool_name: str) -> str:
    return f"mcp_{server}_{tool_name}"


def _make_tool(client: McpClient, descriptor: Dict[str, Any]) -> BaseTool:
    remote_name = descriptor["name"]
    schema = descriptor.get("inputSchema") or {"type": "object", "properties": {}}

    async def _call(**kwargs: Any) -> Dict[str, Any]:
        try:
            result = await client.call_tool(remote_name, kwargs)
        except Exception as e:
            logger.error("MCP tool %s/%s failed: %s", client.name, remote_name, e)
            return {"success": False, "error": str(e)}
        return {"success": True, "result": result}

    return StructuredTool.from_function(
        coroutine=_call,
        name=mcp_tool_name(client.name, remote_name),
        description=f"[MCP:{client.name}] {descriptor.get('description', '')}".strip(),
        args_schema=schema,
    )


async def mcp_tools(client: McpClient) -> List[BaseTool]:
    """List the client's tools and wrap each one as a LangChain tool.

    Args:
        client: A connected MCP client

    Returns:
        Tools named ``mcp_<server>_<tool>``; calling one forwards the
        arguments to the server and returns ``{"success", "result"|"error"}``
    """
    descriptors = await client.list_tools()
    tools = [_make_tool(client, d) for d in descriptors]
    logger.debug("Loaded %d MCP tools from '%s'", len(tools), client.name)
    return tools
