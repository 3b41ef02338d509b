"""Drive one request through the tool-calling loop."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage

from agentforce_adk.config import ModelConfig
from agentforce_adk.errors import ProviderError
from agentforce_adk.history import ChatHistory, message_text
from agentforce_adk.loop.builder import create_loop_graph
from agentforce_adk.loop.nodes import build_messages, pace_request
from agentforce_adk.loop.state import LoopState
from agentforce_adk.loop.tool_calls import append_tool_results, has_pending_calls
from agentforce_adk.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from agentforce_adk.providers.base import LLMProvider


class ToolCallingLoop:
    """Alternate model calls and tool execution until the model answers.

    Every message produced along the way (assistant tool-call turns, tool
    results, the final answer) is appended to the history passed to run(),
    in the order it was produced. With ``max_tool_rounds = N`` the provider
    is called at most N + 1 times per run.

    Example:
        ```python
        loop = ToolCallingLoop(provider, registry)
        history.append(HumanMessage(content="List the files here"))
        answer = await loop.run(history, "You are helpful.", ["fs_list_dir"])
        ```
    """

    def __init__(
        self,
        provider: "LLMProvider",
        registry: ToolRegistry,
        model_config: Optional[ModelConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.provider = provider
        self.registry = registry
        self.model_config = model_config or provider.model_config
        self.logger = logger or logging.getLogger(__name__)
        self.graph = create_loop_graph(provider, registry, self.model_config)

    async def run(self, history: ChatHistory, system_prompt: str, tool_names: Sequence[str]) -> str:
        """Run the loop for the request that ends ``history``.

        Args:
            history: Chat history ending with the new user message; appended to
            system_prompt: Sent as the first message unless empty
            tool_names: Registry tools offered to the model

        Returns:
            The final answer text, plus the raw tool results block when
            append_tool_results is set

        Raises:
            ProviderError: The provider failed; an "Error: ..." assistant
                message has been appended to the history
        """
        state: LoopState = {
            "messages": history.messages,
            "system_prompt": system_prompt or "",
            "tool_names": [n for n in tool_names if self.registry.has(n)],
            "rounds": 0,
            "last_results": [],
        }

        try:
            if not state["tool_names"]:
                return await self._plain_chat(history, state)
            return await self._run_graph(history, state)
        except ProviderError as e:
            self.logger.error("Provider call failed: %s", e)
            history.append(AIMessage(content=f"Error: {e}"))
            raise

    async def _plain_chat(self, history: ChatHistory, state: LoopState) -> str:
        await pace_request(self.model_config)
        response = await self.provider.complete(build_messages(state))
        answer = AIMessage(content=message_text(response))
        history.append(answer)
        self.logger.debug("Final answer without tools")
        return message_text(answer)

    async def _run_graph(self, history: ChatHistory, state: LoopState) -> str:
        config = {"recursion_limit": 2 * self.model_config.max_tool_rounds + 5}
        final_text = ""
        rounds = 0
        last_results: List[Dict] = []

        async for update in self.graph.astream(state, config=config, stream_mode="updates"):
            if not isinstance(update, dict):
                continue

            for node_name, chunk in update.items():
                if not isinstance(chunk, dict):
                    continue

                for message in chunk.get("messages") or []:
                    history.append(message)
                    if isinstance(message, AIMessage) and not has_pending_calls(message):
                        final_text = message_text(message)

                if "rounds" in chunk:
                    rounds = chunk["rounds"]
                if chunk.get("last_results"):
                    last_results = chunk["last_results"]

                if node_name == "finalize":
                    self.logger.info("Tool round limit (%d) reached", self.model_config.max_tool_rounds)

        self.logger.debug("Loop finished after %d tool rounds", rounds)
        if self.model_config.append_tool_results:
            return append_tool_results(final_text, last_results)
        return final_text
