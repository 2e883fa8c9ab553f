"""
Built-in step agents used by the command line runner.

- echo: returns ``stepConfig["value"]`` or the step's input keys
- delay: sleeps ``stepConfig["seconds"]`` and reports it
- merge: merges dependency results into one dict
- fail: always raises, with ``stepConfig["message"]``
"""

import asyncio
from typing import Any, Dict, Mapping

from ..errors import ExecutionError
from ..models.workflow_models import WorkflowStep
from .registry import StepRegistry, WorkflowAgent


RESERVED_KEYS = ("stepConfig", "previousResults")


def step_inputs(context: Mapping[str, Any]) -> Dict[str, Any]:
    """Input and variable keys of an execution request, without the reserved keys."""
    return {k: v for k, v in context.items() if k not in RESERVED_KEYS}


class EchoAgent(WorkflowAgent):
    async def execute(self, step: WorkflowStep, context: Mapping[str, Any]) -> Any:
        if "value" in step.config:
            return step.config["value"]
        return step_inputs(context)


class DelayAgent(WorkflowAgent):
    def __init__(self, default_seconds: float = 0.1):
        self.default_seconds = default_seconds

    async def execute(self, step: WorkflowStep, context: Mapping[str, Any]) -> Any:
        seconds = float(step.config.get("seconds", self.default_seconds))
        await asyncio.sleep(seconds)
        return {"slept": seconds}


class MergeAgent(WorkflowAgent):
    """Dict results are merged key by key; anything else is kept under its step id."""

    async def execute(self, step: WorkflowStep, context: Mapping[str, Any]) -> Any:
        merged: Dict[str, Any] = {}
        for step_id, result in (context.get("previousResults") or {}).items():
            if isinstance(result, dict):
                merged.update(result)
            else:
                merged[step_id] = result
        return merged


class FailAgent(WorkflowAgent):
    async def execute(self, step: WorkflowStep, context: Mapping[str, Any]) -> Any:
        message = step.config.get("message", f"Step {step.id} failed")
        raise ExecutionError(message, step_id=step.id)


def builtin_registry() -> StepRegistry:
    """StepRegistry preloaded with echo, delay, merge and fail."""
    registry = StepRegistry()
    registry.register("echo", EchoAgent())
    registry.register("delay", DelayAgent())
    registry.register("merge", MergeAgent())
    registry.register("fail", FailAgent())
    return registry
