"""AgentForce ADK: fluent LLM agents with tool calling, built on LangChain and LangGraph.

An Agent is configured by chained calls (provider, system prompt, prompt or
tasks) and executed asynchronously. Tool calls requested by the model are
resolved through a ToolRegistry and run in a LangGraph loop until the model
answers or the round limit is reached. AgentServer exposes agents over
HTTP, and Workflow chains several agents.
"""

from agentforce_adk.agent import Agent
from agentforce_adk.config import AgentConfig, ModelConfig, Settings
from agentforce_adk.errors import (
    AgentForceError,
    ConfigurationError,
    MissingCredentialsError,
    ProviderError,
)
from agentforce_adk.history import ChatHistory
from agentforce_adk.logging_utils import configure_logging
from agentforce_adk.loop import ToolCallingLoop
from agentforce_adk.providers import LLMProvider, ProviderKind, create_provider
from agentforce_adk.tools import BUILTIN_TOOLS, McpClient, ToolRegistry, mcp_tools
from agentforce_adk.workflow import ScheduledTask, Workflow

__version__ = "0.1.0"
__all__ = [
    "Agent",
    "AgentConfig",
    "ModelConfig",
    "Settings",
    # Errors
    "AgentForceError",
    "ConfigurationError",
    "MissingCredentialsError",
    "ProviderError",
    # Core
    "ChatHistory",
    "ToolCallingLoop",
    "LLMProvider",
    "ProviderKind",
    "create_provider",
    # Tools
    "ToolRegistry",
    "BUILTIN_TOOLS",
    "McpClient",
    "mcp_tools",
    # Workflow
    "Workflow",
    "ScheduledTask",
    "configure_logging",
]
