"""Workflow subsystem: DAG validation, step registry and coordinator."""

from .registry import StepRegistry, WorkflowAgent
from .validation import find_cycle, validate_workflow
from .conditions import compile_condition, evaluate_condition
from .coordinator import WorkflowCoordinator, collect_results
from .builtin_agents import (
    EchoAgent,
    DelayAgent,
    MergeAgent,
    FailAgent,
    builtin_registry,
    step_inputs,
)

__all__ = [
    # Registry
    "StepRegistry",
    "WorkflowAgent",
    # Validation
    "find_cycle",
    "validate_workflow",
    "compile_condition",
    "evaluate_condition",
    # Execution
    "WorkflowCoordinator",
    "collect_results",
    # Built-in agents
    "EchoAgent",
    "DelayAgent",
    "MergeAgent",
    "FailAgent",
    "builtin_registry",
    "step_inputs",
]
