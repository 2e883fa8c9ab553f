"""Base class for per-type decomposition strategies."""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..models.task_models import (
    DependencyKind,
    Task,
    TaskDependency,
    TaskMetadata,
)


class DecompositionStrategy(ABC):
    """
    Decides whether a task is split and performs the split.

    All strategies must:
    - Keep should_decompose() pure, it is evaluated once per task
    - Return N independent children plus exactly one consolidation task
      from decompose(), the consolidation task last
    - Build children with the helpers below so policy is inherited
    """

    task_type: str = ""

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.task_type or type(self).__name__}")

    @abstractmethod
    def should_decompose(self, task: Task) -> bool:
        pass

    @abstractmethod
    async def decompose(self, task: Task) -> List[Task]:
        pass

    def create_subtask(
        self,
        parent_task: Task,
        subtask_id: str,
        task_type: str,
        payload: Any,
        dependencies: Optional[List[TaskDependency]] = None,
    ) -> Task:
        """
        Create a subtask with parent linkage and inherited policy.

        PATTERN: priority, max_attempts and timeout come from the parent
        """
        return Task(
            id=subtask_id,
            type=task_type,
            priority=parent_task.priority,
            input=payload,
            metadata=TaskMetadata(
                max_attempts=parent_task.metadata.max_attempts,
                timeout=parent_task.metadata.timeout,
            ),
            dependencies=dependencies or [],
            parent_task_id=parent_task.id,
        )

    def create_consolidation_task(
        self,
        parent_task: Task,
        children: List[Task],
        task_type: str,
        payload: Any,
    ) -> Task:
        """Consolidation task hard-depending on every child."""
        return self.create_subtask(
            parent_task=parent_task,
            subtask_id=f"{parent_task.id}-consolidate",
            task_type=task_type,
            payload=payload,
            dependencies=[
                TaskDependency(task_id=child.id, kind=DependencyKind.HARD)
                for child in children
            ],
        )
