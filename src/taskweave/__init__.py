"""
taskweave - priority task scheduling and DAG workflow execution.

Two engines share one event bus and one optional store:
TaskManager runs ad hoc prioritized tasks (with dependencies, retries and
decomposition); WorkflowCoordinator runs workflows as step DAGs.
"""

__version__ = "0.1.0"

from .cancellation import CancelToken
from .config import SchedulerConfig, StorageConfig
from .errors import (
    TaskweaveError,
    DuplicateTaskError,
    TaskNotFoundError,
    DecompositionError,
    NoExecutorError,
    CapacityError,
    ValidationError,
    ExecutionError,
    TaskTimeoutError,
    StepTimeoutError,
    DependencyTimeoutError,
    TaskCancelledError,
    DependencyUnmetError,
    WorkflowNotFoundError,
    StorageError,
)
from .events import EventBus
from .models import (
    Task,
    TaskStatus,
    TaskOptions,
    TaskDependency,
    DependencyKind,
    TaskFilter,
    TaskStats,
    Workflow,
    WorkflowStep,
    WorkflowStatus,
    RetryPolicy,
    EventType,
    LifecycleEvent,
)
from .decomposition import TaskDecomposer, DecompositionStrategy
from .scheduling import PriorityTaskQueue, ExecutorRegistry, TaskHandler, TaskManager
from .workflow import StepRegistry, WorkflowAgent, WorkflowCoordinator

__all__ = [
    "__version__",
    # Core
    "CancelToken",
    "EventBus",
    "SchedulerConfig",
    "StorageConfig",
    # Errors
    "TaskweaveError",
    "DuplicateTaskError",
    "TaskNotFoundError",
    "DecompositionError",
    "NoExecutorError",
    "CapacityError",
    "ValidationError",
    "ExecutionError",
    "TaskTimeoutError",
    "StepTimeoutError",
    "DependencyTimeoutError",
    "TaskCancelledError",
    "DependencyUnmetError",
    "WorkflowNotFoundError",
    "StorageError",
    # Models
    "Task",
    "TaskStatus",
    "TaskOptions",
    "TaskDependency",
    "DependencyKind",
    "TaskFilter",
    "TaskStats",
    "Workflow",
    "WorkflowStep",
    "WorkflowStatus",
    "RetryPolicy",
    "EventType",
    "LifecycleEvent",
    # Tasks
    "TaskDecomposer",
    "DecompositionStrategy",
    "PriorityTaskQueue",
    "ExecutorRegistry",
    "TaskHandler",
    "TaskManager",
    # Workflows
    "StepRegistry",
    "WorkflowAgent",
    "WorkflowCoordinator",
]
