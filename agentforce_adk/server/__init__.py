"""HTTP server for agents."""
from agentforce_adk.server.app import AgentServer

__all__ = ["AgentServer"]
