"""Fluent Agent session: configuration, chat history and execution."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage

from agentforce_adk.config import (
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    AgentConfig,
    ModelConfig,
    agent_logger,
    coerce_model_config,
    get_settings,
)
from agentforce_adk.errors import ConfigurationError
from agentforce_adk.history import ChatHistory, message_role, message_text
from agentforce_adk.loop.runner import ToolCallingLoop
from agentforce_adk.output import OUTPUT_TYPES, format_output, output_type_for_path, write_output
from agentforce_adk.providers import LLMProvider, ProviderKind, create_provider, parse_provider_kind
from agentforce_adk.skills.loader import load_skills, render_skills
from agentforce_adk.tools.mcp import McpClient, mcp_tools
from agentforce_adk.tools.registry import ToolRegistry


DEFAULT_SYSTEM_PROMPT = (
    "You are an AI agent created by AgentForce. "
    "You can perform various tasks based on the user's instructions."
)

_PROMPT_FILE_RE = re.compile(r"\.(md|txt|hbs)$", re.IGNORECASE)
_TEMPLATE_VAR_RE = re.compile(r"\{\{\s*([A-Za-z_][\w.]*)\s*\}\}")


def render_template(template: str, data: Dict[str, Any]) -> str:
    """Replace ``{{ name }}`` placeholders; dotted names walk nested dicts."""
    def lookup(match: "re.Match[str]") -> str:
        value: Any = data
        for part in match.group(1).split("."):
            if not isinstance(value, dict) or part not in value:
                return ""
            value = value[part]
        return str(value)

    return _TEMPLATE_VAR_RE.sub(lookup, template)


class Agent:
    """A single agent session.

    Setters mutate the agent and return it so calls can be chained. The
    agent owns its chat history and task queue; accessors hand out copies.

    Example:
        ```python
        from agentforce_adk import Agent, AgentConfig

        agent = (
            Agent(AgentConfig(name="Reader", tools=["fs_read_file"]))
            .use_llm("openrouter", "openai/gpt-4o-mini", {"temperature": 0.2})
            .system_prompt("prompts/reader.md")
            .prompt("Summarize README.md")
        )
        print(await agent.get_response())
        ```
    """

    def __init__(
        self,
        config: Union[AgentConfig, Dict[str, Any]],
        registry: Optional[ToolRegistry] = None,
    ):
        """Create an agent.

        Args:
            config: AgentConfig or a dict with its fields
            registry: Tools the agent may use; defaults to the built-in tools

        Raises:
            ConfigurationError: Invalid config or a tool name missing from
                the registry
        """
        if isinstance(config, dict):
            config = AgentConfig.build(**config)
        if not isinstance(config, AgentConfig):
            raise ConfigurationError("config must be an AgentConfig or dict")

        self._config = config
        self._registry = registry if registry is not None else ToolRegistry.with_builtin_tools()
        self._registry.validate(config.tools)
        self.logger = agent_logger(config)

        self._provider_kind = ProviderKind(DEFAULT_PROVIDER)
        self._model = DEFAULT_MODEL
        self._model_config = ModelConfig()
        self._provider: Optional[LLMProvider] = None

        self._system_prompt = DEFAULT_SYSTEM_PROMPT
        self._template = ""
        self._user_prompt = ""
        self._history = ChatHistory()
        self._tasks: List[Optional[str]] = []
        self._mcp_clients: List[McpClient] = []

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> AgentConfig:
        return self._config

    @property
    def tools(self) -> List[str]:
        return list(self._config.tools)

    @property
    def provider_kind(self) -> ProviderKind:
        return self._provider_kind

    @property
    def model(self) -> str:
        return self._model

    @property
    def model_config(self) -> ModelConfig:
        return self._model_config

    @property
    def user_prompt(self) -> str:
        return self._user_prompt

    @property
    def chat_history(self) -> List[BaseMessage]:
        return self._history.messages

    @property
    def history(self) -> ChatHistory:
        """Snapshot of the chat history; changes to it do not affect the agent."""
        return ChatHistory(self._history.messages)

    @property
    def task_list(self) -> List[Optional[str]]:
        return list(self._tasks)

    # ------------------------------------------------------------------
    # Chainable configuration
    # ------------------------------------------------------------------

    def use_llm(
        self,
        provider: Union[str, ProviderKind] = DEFAULT_PROVIDER,
        model: str = DEFAULT_MODEL,
        model_config: Optional[Union[ModelConfig, Dict[str, Any]]] = None,
        llm: Optional[BaseChatModel] = None,
    ) -> "Agent":
        """Select the provider and model.

        Args:
            provider: ollama, openrouter, openai, google or anthropic
            model: Model identifier for that provider
            model_config: Replaces the previous model config entirely
            llm: Pre-built LangChain chat model to drive instead of
                constructing one for the provider

        Raises:
            ConfigurationError: Unknown provider or invalid model config
            MissingCredentialsError: The provider's API key is not set
        """
        kind = parse_provider_kind(provider)
        config = coerce_model_config(model_config)
        self._provider = create_provider(kind, model, config, llm=llm)
        self._provider_kind = kind
        self._model = model
        self._model_config = config
        self.logger.debug("Using provider %s with model %s", kind.value, model)
        return self

    def system_prompt(self, prompt: str) -> "Agent":
        """Set the system prompt, reading it from disk for .md/.txt/.hbs paths."""
        if not isinstance(prompt, str):
            raise TypeError("System prompt must be a string")

        text = prompt
        if _PROMPT_FILE_RE.search(prompt):
            path = Path(prompt).expanduser()
            if path.is_file():
                try:
                    text = path.read_text(encoding="utf-8")
                except OSError as e:
                    self.logger.warning("Failed to read file '%s': %s. Treating as regular prompt text.", prompt, e)
            else:
                self.logger.warning("File '%s' not found, treating as regular prompt text", prompt)
        self._system_prompt = text
        return self

    def with_template(self, template_path: str, data: Optional[Dict[str, Any]] = None) -> "Agent":
        """Append a template file to the system prompt.

        ``{{ name }}`` placeholders in ``.hbs`` templates are filled from
        ``data``. An unreadable template is logged and leaves the template
        empty.
        """
        if not isinstance(template_path, str) or not template_path.strip():
            raise ValueError("Template path cannot be empty")

        try:
            content = Path(template_path).expanduser().read_text(encoding="utf-8")
        except OSError as e:
            self.logger.error('Failed to load template from "%s": %s', template_path, e)
            self._template = ""
            return self

        if template_path.lower().endswith(".hbs") and data:
            content = render_template(content, data)
        self._template = content
        return self

    def prompt(self, prompt: str) -> "Agent":
        if not isinstance(prompt, str):
            raise TypeError("User prompt must be a string")
        self._user_prompt = prompt
        return self

    def task(self, description: str) -> "Agent":
        """Queue a task; queued tasks run one after another on execute()."""
        if not description or not description.strip():
            raise ValueError("Task description cannot be empty")
        self._tasks.append(description.strip())
        self.logger.debug("Task added to execution list (%d queued)", len(self._tasks))
        return self

    def tasks(self, descriptions: Iterable[Optional[str]]) -> "Agent":
        """Queue several tasks at once.

        Empty entries (None or blank strings) are kept as placeholders and
        skipped at execution time without consuming a task number.
        """
        for description in descriptions:
            self._tasks.append(description.strip() if isinstance(description, str) else None)
        return self

    def add_mcp(self, client: McpClient) -> "Agent":
        """Expose the tools of a connected MCP client to this agent."""
        if not isinstance(client, McpClient):
            raise ConfigurationError("add_mcp expects an object with list_tools() and call_tool()")
        self._mcp_clients.append(client)
        return self

    def debug(self) -> "Agent":
        """Turn on debug logging for this agent and log its configuration."""
        self.logger.setLevel(logging.DEBUG)
        self.logger.debug(
            "Agent %s: provider=%s model=%s tools=%s skills=%s",
            self.name, self._provider_kind.value, self._model,
            list(self._config.tools), list(self._config.skills),
        )
        return self

    def clear_history(self) -> "Agent":
        self._history.clear()
        return self

    def clone(self) -> "Agent":
        """Copy the configuration into a new agent with empty history and queue."""
        other = Agent(self._config, self._registry)
        other.logger = self.logger
        other._provider_kind = self._provider_kind
        other._model = self._model
        other._model_config = self._model_config
        other._provider = self._provider
        other._system_prompt = self._system_prompt
        other._template = self._template
        other._user_prompt = self._user_prompt
        other._mcp_clients = list(self._mcp_clients)
        return other

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def compose_system_prompt(self) -> str:
        """System prompt + template + loaded skills, as sent to the model."""
        parts = self._system_prompt or ""
        if self._template and self._template.strip():
            parts = f"{parts}\n\n{self._template}"
        if self._config.skills:
            skills = load_skills(self._config.skills, get_settings().asset_path, self.logger)
            parts += render_skills(skills)
        return parts

    def _get_provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = create_provider(self._provider_kind, self._model, self._model_config)
        return self._provider

    async def _tool_setup(self):
        tool_names = list(self._config.tools)
        if not self._mcp_clients:
            return self._registry, tool_names

        registry = ToolRegistry(self._registry.resolve(tool_names))
        for client in self._mcp_clients:
            for tool in await mcp_tools(client):
                registry.register(tool)
                tool_names.append(tool.name)
        return registry, tool_names

    async def execute(self, user_prompt: Optional[str] = None) -> str:
        """Run the queued tasks, or the current prompt, through the tool loop.

        Args:
            user_prompt: Replaces the current prompt when given

        Returns:
            The final answer; in task mode the last non-empty task result

        Raises:
            ValueError: Nothing to execute
            ProviderError: The provider failed
        """
        if user_prompt is not None:
            self.prompt(user_prompt)

        tasks = list(self._tasks)
        try:
            if not tasks and not self._user_prompt.strip():
                raise ValueError("No prompt or tasks to execute; call prompt() or task() first")

            provider = self._get_provider()
            registry, tool_names = await self._tool_setup()
            loop = ToolCallingLoop(provider, registry, self._model_config, self.logger)
            system = self.compose_system_prompt()

            if tasks:
                return await self._run_tasks(loop, system, tool_names, tasks)

            self._history.append(HumanMessage(content=self._user_prompt))
            return await loop.run(self._history, system, tool_names)
        finally:
            self._tasks = []

    async def _run_tasks(self, loop: ToolCallingLoop, system: str, tool_names: List[str], tasks) -> str:
        result = ""
        number = 0
        for description in tasks:
            if not description:
                continue
            number += 1
            content = f"Task {number}: {description}"
            if number == 1 and self._user_prompt.strip():
                content = f"{self._user_prompt}\n\n{content}"
            self.logger.debug("Executing task %d: %s", number, description)
            self._history.append(HumanMessage(content=content))
            answer = await loop.run(self._history, system, tool_names)
            if answer:
                result = answer
        return result

    async def run(self) -> "Agent":
        """Execute and return the agent; failures are logged, not raised."""
        try:
            await self.execute()
        except Exception as e:
            self.logger.error("Agent %s run failed: %s", self.name, e)
        return self

    async def get_response(self) -> str:
        """Execute and return the answer text. Never raises.

        On failure returns the "Error: ..." message recorded in the history,
        or ``"Error: Failed to get response - <cause>"``.
        """
        before = len(self._history)
        try:
            return await self.execute()
        except Exception as e:
            last = self._history.last()
            if len(self._history) > before and last is not None and message_role(last) == "assistant":
                text = message_text(last)
                if text.startswith("Error:"):
                    return text
            return f"Error: Failed to get response - {e}"

    async def output(self, output_type: str) -> Union[str, Dict]:
        """Execute, then format the latest response as text, json or md."""
        if output_type not in OUTPUT_TYPES:
            raise ValueError(f"Output type must be one of: {', '.join(OUTPUT_TYPES)}")
        await self.run()
        return format_output(self, output_type)

    async def save_to_file(self, path: Union[str, Path]) -> Path:
        """Execute, then write the formatted response; the extension picks the format."""
        output_type_for_path(path)
        await self.run()
        return write_output(self, path)

    def server(self):
        """An ``AgentServer`` for this agent with a ``GET /`` status route."""
        from agentforce_adk.server import AgentServer

        return AgentServer(self.name).add_route("GET", "/", {"status": "ok", "agent": self.name})

    def serve(self, host: str = "0.0.0.0", port: int = 3000) -> None:
        """Serve the status route with uvicorn; blocks until the server stops."""
        if not host or not host.strip():
            raise ConfigurationError("host must be a non-empty string")
        if not 0 < port <= 65535:
            raise ConfigurationError("port must be between 1 and 65535")
        self.logger.info("Starting server for agent %s (%s/%s)", self.name, self._provider_kind.value, self._model)
        self.server().serve(host=host, port=port)

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, provider={self._provider_kind.value!r}, model={self._model!r})"
