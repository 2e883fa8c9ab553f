"""Structural validation of workflow step graphs."""

import logging
from typing import Callable, Dict, List, Optional

from ..errors import ValidationError
from ..models.workflow_models import Workflow, WorkflowStep
from .conditions import compile_condition


logger = logging.getLogger(__name__)


def find_cycle(steps: List[WorkflowStep]) -> Optional[List[str]]:
    """
    Return one dependency cycle as a list of step ids, or None for a DAG.

    PATTERN: depth-first search with a recursion stack
    GOTCHA: dependencies on unknown ids are ignored here
    """
    graph: Dict[str, List[str]] = {step.id: list(step.dependencies) for step in steps}
    visited = set()
    rec_stack = set()

    def dfs(node: str, path: List[str]) -> Optional[List[str]]:
        visited.add(node)
        rec_stack.add(node)
        path.append(node)

        for neighbor in graph.get(node, []):
            if neighbor not in graph:
                continue
            if neighbor in rec_stack:
                return path[path.index(neighbor):] + [neighbor]
            if neighbor not in visited:
                cycle = dfs(neighbor, path)
                if cycle:
                    return cycle

        rec_stack.discard(node)
        path.pop()
        return None

    for step in steps:
        if step.id not in visited:
            cycle = dfs(step.id, [])
            if cycle:
                return cycle
    return None


def validate_workflow(
    workflow: Workflow,
    has_capability: Callable[[str], bool],
) -> None:
    """
    Validate a workflow before anything is started.

    Raises:
        ValidationError: On missing id/steps, duplicate or unknown step ids,
            cycles, unregistered step types, or malformed conditions
    """
    if not workflow.id or not workflow.steps:
        raise ValidationError("Invalid workflow: missing required fields")

    ids = [step.id for step in workflow.steps]
    duplicates = sorted({step_id for step_id in ids if ids.count(step_id) > 1})
    if duplicates:
        raise ValidationError(f"Invalid workflow: duplicate step ids {duplicates}")

    known = set(ids)
    for step in workflow.steps:
        unknown = [dep for dep in step.dependencies if dep not in known]
        if unknown:
            raise ValidationError(
                f"Invalid workflow: step {step.id} depends on unknown steps {unknown}"
            )

    cycle = find_cycle(workflow.steps)
    if cycle:
        raise ValidationError(
            f"Invalid workflow: circular dependencies detected ({' -> '.join(cycle)})"
        )

    for step in workflow.steps:
        if not has_capability(step.type):
            raise ValidationError(f"No agent available for step type: {step.type}")
        if step.condition is not None:
            compile_condition(step.condition.value)

    logger.debug(f"Workflow {workflow.id} validated: {len(workflow.steps)} steps")
