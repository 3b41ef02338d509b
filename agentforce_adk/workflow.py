"""Lightweight workflows: chain agents in sequence, in parallel or per item.

A workflow is an in-memory execution plan. It has no persistence and no
scheduler beyond ``loop()``, which repeats ``run()`` until stopped.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from agentforce_adk.agent import Agent
from agentforce_adk.errors import ConfigurationError


logger = logging.getLogger(__name__)


@dataclass
class Step:
    kind: str
    payload: Any
    on_success: Optional[Agent] = None
    on_fail: Optional[Agent] = None


def _as_prompt(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, ensure_ascii=False)


def _parallel_branches(agents: Sequence[Agent]) -> List[Agent]:
    """One agent per branch; repeats of an agent run on clones of it."""
    seen = set()
    branches = []
    for agent in agents:
        if id(agent) in seen:
            branches.append(agent.clone())
        else:
            seen.add(id(agent))
            branches.append(agent)
    return branches


class ScheduledTask:
    """Handle for a repeating workflow run started by ``Workflow.loop()``."""

    def __init__(self, workflow: "Workflow", interval: float, max_iterations: Optional[int] = None):
        self.workflow = workflow
        self.interval = interval
        self.max_iterations = max_iterations
        self.iterations = 0
        self.last_result: Optional[Dict[str, Any]] = None
        self.last_error: Optional[BaseException] = None
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while self.max_iterations is None or self.iterations < self.max_iterations:
            try:
                self.last_result = await self.workflow.run()
                self.last_error = None
            except Exception as e:
                self.last_error = e
                logger.error("Workflow loop iteration failed: %s", e)
            self.iterations += 1
            if self.max_iterations is not None and self.iterations >= self.max_iterations:
                break
            await asyncio.sleep(self.interval)

    @property
    def stopped(self) -> bool:
        return self._task.done()

    def stop(self) -> None:
        """Cancel the loop; an iteration in progress is interrupted."""
        if not self._task.done():
            self._task.cancel()
            logger.info("Workflow loop '%s' stopped after %d iterations", self.workflow.name, self.iterations)

    async def wait(self) -> None:
        """Wait until the loop finishes or is stopped."""
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class Workflow:
    """Ordered execution plan over agents.

    Each step receives the previous step's output as its prompt. The first
    step receives the workflow prompt.

    Example:
        ```python
        result = await (
            Workflow("research")
            .prompt("Collect facts about Python 3.13")
            .sequence([researcher, writer])
            .on_fail(fallback)
            .run()
        )
        print(result["final_output"])
        ```
    """

    def __init__(self, name: str):
        if not name or not name.strip():
            raise ConfigurationError("workflow name must be a non-empty string")
        self.name = name
        self._user_prompt: str = ""
        self._steps: List[Step] = []
        self._agents: Dict[str, Agent] = {}
        self._store: Dict[str, Any] = {}

    @property
    def steps(self) -> List[Step]:
        return list(self._steps)

    @property
    def agents(self) -> Dict[str, Agent]:
        return dict(self._agents)

    def prompt(self, text: str) -> "Workflow":
        self._user_prompt = text
        self._steps.append(Step("prompt", text))
        return self

    def register_agent(self, name: str, agent: Agent) -> "Workflow":
        self._agents[name] = agent
        return self

    def shared_store(self, key: str, value: Any) -> "Workflow":
        self._store[key] = value
        logger.debug("Set shared store key '%s'", key)
        return self

    def get_shared_store_item(self, key: str) -> Any:
        return self._store.get(key)

    def sequence(self, agents: Sequence[Agent]) -> "Workflow":
        self._steps.append(Step("sequence", list(agents)))
        return self

    def parallel(self, agents: Sequence[Agent]) -> "Workflow":
        self._steps.append(Step("parallel", list(agents)))
        return self

    def iterate(self, items: Union[List[Any], str], agent: Agent) -> "Workflow":
        """Run ``agent`` once per item; a string names a shared store list."""
        self._steps.append(Step("iterate", (items, agent)))
        return self

    def on_success(self, agent: Agent) -> "Workflow":
        if not self._steps:
            logger.warning("Cannot call on_success() before defining a step.")
        else:
            self._steps[-1].on_success = agent
        return self

    def on_fail(self, agent: Agent) -> "Workflow":
        if not self._steps:
            logger.warning("Cannot call on_fail() before defining a step.")
        else:
            self._steps[-1].on_fail = agent
        return self

    async def _execute_step(self, step: Step, value: Any) -> Any:
        logger.debug("Executing step: %s", step.kind)
        try:
            if step.kind == "prompt":
                output = step.payload
            elif step.kind == "sequence":
                output = value
                for agent in step.payload:
                    logger.info("Executing agent '%s' in sequence.", agent.name)
                    output = await agent.execute(_as_prompt(output))
            elif step.kind == "parallel":
                logger.info("Executing %d agents in parallel.", len(step.payload))
                branches = _parallel_branches(step.payload)
                output = list(await asyncio.gather(*(a.execute(_as_prompt(value)) for a in branches)))
            elif step.kind == "iterate":
                items, agent = step.payload
                if isinstance(items, str):
                    stored = self._store.get(items)
                    if not isinstance(stored, list):
                        raise ValueError(f'Shared store key "{items}" for iteration does not contain a list.')
                    items = stored
                logger.info("Iterating over %d items with agent '%s'.", len(items), agent.name)
                output = []
                for item in items:
                    output.append(await agent.execute(_as_prompt(item)))
            else:
                raise ValueError(f"Unknown step type: {step.kind}")
        except Exception as e:
            logger.error("Step %s failed: %s", step.kind, e)
            if step.on_fail is None:
                raise
            logger.warning("Executing on_fail handler for step: %s", step.kind)
            return await step.on_fail.execute(str(e))

        if step.on_success is not None:
            logger.info("Executing on_success handler for step: %s", step.kind)
            return await step.on_success.execute(_as_prompt(output))
        return output

    async def run(self) -> Dict[str, Any]:
        """Execute every step in order.

        Returns:
            ``{"final_output": <last step output>, "shared_store": {...}}``
        """
        logger.info("Running workflow '%s'", self.name)
        if not self._steps:
            logger.warning("Execution plan is empty. Nothing to run.")
            return {"final_output": None, "shared_store": dict(self._store)}

        value: Any = self._user_prompt
        for step in self._steps:
            value = await self._execute_step(step, value)

        logger.info("Workflow '%s' finished.", self.name)
        return {"final_output": value, "shared_store": dict(self._store)}

    def loop(self, interval: float = 0.0, max_iterations: Optional[int] = None) -> ScheduledTask:
        """Repeat run() every ``interval`` seconds until the handle is stopped.

        Must be called from a running event loop. Failed iterations are
        logged and the loop continues.
        """
        if interval < 0:
            raise ValueError("interval must be non-negative")
        logger.info("Starting workflow loop with interval %ss", interval)
        return ScheduledTask(self, interval, max_iterations)
