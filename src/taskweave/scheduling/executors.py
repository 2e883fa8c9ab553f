"""Type-keyed registry of task executors."""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Union

from ..errors import ExecutionError, NoExecutorError, TaskCancelledError
from ..models.task_models import Task


logger = logging.getLogger(__name__)


class TaskHandler(ABC):
    """
    Executor capability for one task type.

    Handlers may be invoked more than once for the same task id across
    attempts, so they must be safe to retry.
    """

    @abstractmethod
    async def execute(self, task: Task) -> Any:
        pass

    async def cleanup(self, task: Task) -> None:
        return None


Executor = Union[TaskHandler, Callable[[Task], Any]]


class ExecutorRegistry:
    """Maps task.type to the handler that runs it."""

    def __init__(self) -> None:
        self._handlers: Dict[str, Executor] = {}

    def register(self, task_type: str, handler: Executor) -> None:
        if task_type in self._handlers:
            logger.warning(f"Overwriting existing executor for type: {task_type}")
        self._handlers[task_type] = handler
        logger.debug(f"Registered executor for type: {task_type}")

    def unregister(self, task_type: str) -> bool:
        return self._handlers.pop(task_type, None) is not None

    def has(self, task_type: str) -> bool:
        return task_type in self._handlers

    def types(self) -> List[str]:
        return list(self._handlers)

    async def execute(self, task: Task) -> Any:
        """
        Run the handler registered for task.type.

        Raises:
            NoExecutorError: If no handler is registered
            ExecutionError: Wrapping whatever the handler raised
        """
        handler = self._handlers.get(task.type)
        if handler is None:
            raise NoExecutorError(task.type)

        attempt = task.metadata.attempts + 1
        try:
            if hasattr(handler, "execute"):
                result = handler.execute(task)
            else:
                result = handler(task)
            if inspect.isawaitable(result):
                result = await result
            return result
        except (ExecutionError, TaskCancelledError):
            raise
        except Exception as e:
            raise ExecutionError(
                f"Task {task.id} ({task.type}) failed on attempt {attempt}: {e}",
                task_id=task.id,
                attempt=attempt,
                cause=e,
            ) from e
        finally:
            cleanup = getattr(handler, "cleanup", None)
            if cleanup is not None:
                try:
                    outcome = cleanup(task)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as e:
                    logger.warning(f"Executor cleanup failed for task {task.id}: {e}")
