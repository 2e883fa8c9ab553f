"""Type-keyed registry of decomposition strategies."""

import logging
from typing import Dict, List, Optional

from ..errors import DecompositionError
from ..models.task_models import DependencyKind, Task
from .base import DecompositionStrategy


logger = logging.getLogger(__name__)


class TaskDecomposer:
    """
    Looks up a strategy by task.type and validates what it returns.

    Absence of a strategy means "never decompose".
    """

    def __init__(self, strategies: Optional[Dict[str, DecompositionStrategy]] = None):
        self._strategies: Dict[str, DecompositionStrategy] = dict(strategies or {})

    @classmethod
    def with_defaults(cls) -> "TaskDecomposer":
        """Decomposer with the built-in document strategies registered."""
        from .strategies import DocumentAnalysisStrategy, DocumentSummarizationStrategy

        decomposer = cls()
        decomposer.register_strategy(DocumentAnalysisStrategy.task_type, DocumentAnalysisStrategy())
        decomposer.register_strategy(
            DocumentSummarizationStrategy.task_type, DocumentSummarizationStrategy()
        )
        return decomposer

    def register_strategy(self, task_type: str, strategy: DecompositionStrategy) -> None:
        if task_type in self._strategies:
            logger.warning(f"Overwriting decomposition strategy for type: {task_type}")
        self._strategies[task_type] = strategy

    def has_strategy(self, task_type: str) -> bool:
        return task_type in self._strategies

    def should_decompose(self, task: Task) -> bool:
        strategy = self._strategies.get(task.type)
        if strategy is None:
            return False
        return bool(strategy.should_decompose(task))

    async def decompose(self, task: Task) -> List[Task]:
        """
        Split a task into children plus one consolidation task.

        Raises:
            DecompositionError: If no strategy exists, the strategy raises,
                or its output violates the split contract
        """
        strategy = self._strategies.get(task.type)
        if strategy is None:
            raise DecompositionError(
                f"No decomposition strategy found for task type: {task.type}",
                task_id=task.id,
            )

        try:
            subtasks = await strategy.decompose(task)
        except DecompositionError:
            raise
        except Exception as e:
            logger.error(f"Task decomposition failed for {task.id} ({task.type}): {e}")
            raise DecompositionError(
                f"Strategy for {task.type} failed on task {task.id}: {e}",
                task_id=task.id,
            ) from e

        self.validate_split(task, subtasks)
        logger.info(f"Task decomposed: {task.id} ({task.type}) into {len(subtasks)} subtasks")
        return subtasks

    def validate_split(self, parent: Task, subtasks: List[Task]) -> None:
        """
        Check the output contract of a strategy.

        CRITICAL: exactly one consolidation task, hard-linked to every sibling
        """
        if len(subtasks) < 2:
            raise DecompositionError(
                f"Decomposition of {parent.id} must yield at least one child "
                f"and a consolidation task, got {len(subtasks)}",
                task_id=parent.id,
            )

        ids = [t.id for t in subtasks]
        if len(set(ids)) != len(ids) or parent.id in ids:
            raise DecompositionError(
                f"Decomposition of {parent.id} produced duplicate subtask ids",
                task_id=parent.id,
            )

        sibling_ids = set(ids)
        consolidation = [
            t for t in subtasks if any(d.task_id in sibling_ids for d in t.dependencies)
        ]
        if len(consolidation) != 1:
            raise DecompositionError(
                f"Decomposition of {parent.id} must contain exactly one consolidation "
                f"task, found {len(consolidation)}",
                task_id=parent.id,
            )

        consolidator = consolidation[0]
        hard_links = {
            d.task_id for d in consolidator.dependencies if d.kind == DependencyKind.HARD
        }
        children = sibling_ids - {consolidator.id}
        if not children.issubset(hard_links):
            missing = sorted(children - hard_links)
            raise DecompositionError(
                f"Consolidation task {consolidator.id} lacks hard dependencies on {missing}",
                task_id=parent.id,
            )

        for subtask in subtasks:
            if (
                subtask.priority != parent.priority
                or subtask.metadata.max_attempts != parent.metadata.max_attempts
            ):
                raise DecompositionError(
                    f"Subtask {subtask.id} does not inherit priority/max_attempts "
                    f"from {parent.id}",
                    task_id=parent.id,
                )
            if subtask.parent_task_id != parent.id:
                subtask.parent_task_id = parent.id

    @staticmethod
    def consolidation_task(subtasks: List[Task]) -> Task:
        """The subtask that depends on its siblings."""
        sibling_ids = {t.id for t in subtasks}
        for subtask in subtasks:
            if any(d.task_id in sibling_ids for d in subtask.dependencies):
                return subtask
        raise DecompositionError("No consolidation task in subtasks")
