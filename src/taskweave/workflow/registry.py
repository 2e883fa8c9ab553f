"""Step capability registry consulted during workflow validation and execution."""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Union

from ..errors import NoExecutorError
from ..models.workflow_models import WorkflowStep


class WorkflowAgent(ABC):
    """Executes one kind of workflow step."""

    @abstractmethod
    async def execute(self, step: WorkflowStep, context: Mapping[str, Any]) -> Any:
        pass

    async def validate(self, step: WorkflowStep) -> bool:
        return True

    async def cleanup(self) -> None:
        return None


StepAgent = Union[WorkflowAgent, Callable[[WorkflowStep, Mapping[str, Any]], Any]]


class StepRegistry:
    """Maps step.type to the agent that runs it."""

    def __init__(self) -> None:
        self._agents: Dict[str, StepAgent] = {}
        self.logger = logging.getLogger(__name__)

    def register(self, step_type: str, agent: StepAgent) -> None:
        if step_type in self._agents:
            self.logger.warning(f"Overwriting existing agent for type: {step_type}")
        self._agents[step_type] = agent
        self.logger.info(f"Registered agent for type: {step_type}")

    def has_capability(self, step_type: str) -> bool:
        return step_type in self._agents

    def get(self, step_type: str) -> StepAgent:
        agent = self._agents.get(step_type)
        if agent is None:
            raise NoExecutorError(step_type)
        return agent

    def types(self) -> List[str]:
        return list(self._agents)

    async def execute_step(self, step: WorkflowStep, context: Mapping[str, Any]) -> Any:
        """
        Run the agent registered for step.type.

        Raises:
            NoExecutorError: If no agent is registered
        """
        agent = self.get(step.type)
        self.logger.debug(f"Executing step: {step.id} ({step.type})")
        if hasattr(agent, "execute"):
            result = agent.execute(step, context)
        else:
            result = agent(step, context)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def cleanup(self) -> None:
        for step_type, agent in self._agents.items():
            cleanup = getattr(agent, "cleanup", None)
            if cleanup is None:
                continue
            try:
                outcome = cleanup()
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                self.logger.warning(f"Cleanup failed for agent {step_type}: {e}")

    def clear(self) -> None:
        self._agents.clear()
        self.logger.info("Cleared all registered agents")
