"""Tool registry: name -> LangChain tool lookup shared by agents."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set

from langchain_core.tools import BaseTool
from langchain_core.utils.function_calling import convert_to_openai_tool

from agentforce_adk.errors import ConfigurationError


logger = logging.getLogger(__name__)


class ToolRegistry:
    """Mapping from tool name to an executable LangChain tool.

    A registry is populated at startup and then only read, so a single
    instance can be shared by any number of agents.

    Example:
        ```python
        registry = ToolRegistry.with_builtin_tools()
        registry.register(my_tool)
        agent = Agent(AgentConfig(name="bot", tools=["my_tool"]), registry=registry)
        ```
    """

    def __init__(self, tools: Optional[Iterable[BaseTool]] = None):
        self._tools: Dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    @classmethod
    def with_builtin_tools(cls) -> "ToolRegistry":
        from agentforce_adk.tools.builtin import BUILTIN_TOOLS

        return cls(BUILTIN_TOOLS.values())

    def register(self, tool: BaseTool, name: Optional[str] = None) -> None:
        """Insert or overwrite a tool.

        Args:
            tool: Any LangChain tool (``@tool`` function, StructuredTool, ...)
            name: Registry key; defaults to ``tool.name``
        """
        key = name or tool.name
        if key in self._tools:
            logger.debug("Overwriting tool '%s' in registry", key)
        self._tools[key] = tool

    def get(self, name: str) -> Optional[BaseTool]:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list(self) -> Set[str]:
        return set(self._tools)

    def validate(self, names: Iterable[str]) -> None:
        """Raise ConfigurationError if any name is not registered."""
        missing = [n for n in names if n not in self._tools]
        if missing:
            raise ConfigurationError(
                f"Unknown tool(s): {', '.join(missing)}. "
                f"Registered tools: {', '.join(sorted(self._tools)) or '(none)'}"
            )

    def resolve(self, names: Iterable[str]) -> List[BaseTool]:
        """Return the tools for the given names, skipping unknown ones."""
        return [self._tools[n] for n in names if n in self._tools]

    def definition(self, name: str) -> Dict:
        """Return the OpenAI function-tool schema for one tool."""
        tool = self._tools[name]
        schema = convert_to_openai_tool(tool)
        if name != tool.name:
            schema["function"]["name"] = name
        return schema

    def definitions(self, names: Iterable[str]) -> List[Dict]:
        return [self.definition(n) for n in names if n in self._tools]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
