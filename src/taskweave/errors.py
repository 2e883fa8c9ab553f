"""Exception hierarchy for the scheduling and workflow engine."""

from typing import Optional


class TaskweaveError(Exception):
    """Base class for all engine errors."""

    pass


class DuplicateTaskError(TaskweaveError):
    """Raised when a task id is already present in the queue."""

    def __init__(self, task_id: str):
        super().__init__(f"Task with ID {task_id} already exists")
        self.task_id = task_id


class TaskNotFoundError(TaskweaveError):
    """Raised when a task id is unknown."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class DecompositionError(TaskweaveError):
    """Raised when a strategy cannot produce a valid split."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message)
        self.task_id = task_id


class NoExecutorError(TaskweaveError):
    """Raised when no executor or step agent is registered for a type."""

    def __init__(self, task_type: str):
        super().__init__(f"No executor registered for type: {task_type}")
        self.task_type = task_type


class CapacityError(TaskweaveError):
    """Raised when the concurrent workflow ceiling is reached."""

    pass


class ValidationError(TaskweaveError):
    """Raised on malformed workflows (missing fields, cycles, unknown types)."""

    pass


class ExecutionError(TaskweaveError):
    """
    Wraps whatever an executor or step agent raised.

    Carries enough structure to diagnose a failure without re-running it.
    """

    def __init__(
        self,
        message: str,
        task_id: Optional[str] = None,
        step_id: Optional[str] = None,
        attempt: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.task_id = task_id
        self.step_id = step_id
        self.attempt = attempt
        self.cause = cause

    @property
    def error_type(self) -> str:
        """Class name of the wrapped exception (or of this error)."""
        if self.cause is not None:
            return type(self.cause).__name__
        return type(self).__name__


class TaskTimeoutError(ExecutionError):
    """Raised when a task attempt exceeds its timeout."""

    pass


class StepTimeoutError(ExecutionError):
    """Raised when a workflow step attempt exceeds its timeout."""

    pass


class DependencyTimeoutError(ExecutionError):
    """Raised when a hard dependency does not resolve within its timeout."""

    pass


class TaskCancelledError(TaskweaveError):
    """Raised by a cancel token observed after cancellation."""

    def __init__(self, reason: Optional[str] = None):
        super().__init__(f"Task cancelled ({reason})" if reason else "Task cancelled")
        self.reason = reason


class DependencyUnmetError(TaskweaveError):
    """Internal signal that a task must be requeued until its dependencies resolve."""

    pass


class WorkflowNotFoundError(TaskweaveError):
    """Raised when a workflow id is unknown to the coordinator."""

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow {workflow_id} not found")
        self.workflow_id = workflow_id


class StorageError(TaskweaveError):
    """Raised on persistent store failures."""

    pass
