"""Models package for the scheduling and workflow engine."""

from .task_models import (
    MIN_PRIORITY,
    MAX_PRIORITY,
    TaskStatus,
    DependencyKind,
    TaskDependency,
    ResourceUsage,
    TaskMetadata,
    TaskError,
    Task,
    TaskOptions,
    TaskFilter,
    ResourceUtilization,
    TaskStats,
)
from .workflow_models import (
    WorkflowStatus,
    RetryPolicy,
    ConditionType,
    StepCondition,
    WorkflowStep,
    WorkflowError,
    WorkflowContext,
    WorkflowMetadata,
    Workflow,
)
from .event_models import EventType, LifecycleEvent

__all__ = [
    # Task models
    "MIN_PRIORITY",
    "MAX_PRIORITY",
    "TaskStatus",
    "DependencyKind",
    "TaskDependency",
    "ResourceUsage",
    "TaskMetadata",
    "TaskError",
    "Task",
    "TaskOptions",
    "TaskFilter",
    "ResourceUtilization",
    "TaskStats",
    # Workflow models
    "WorkflowStatus",
    "RetryPolicy",
    "ConditionType",
    "StepCondition",
    "WorkflowStep",
    "WorkflowError",
    "WorkflowContext",
    "WorkflowMetadata",
    "Workflow",
    # Event models
    "EventType",
    "LifecycleEvent",
]
