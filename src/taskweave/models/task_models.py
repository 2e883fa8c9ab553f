"""Data models for tasks, dependencies and scheduling statistics."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field

from ..cancellation import CancelToken


MIN_PRIORITY = 1  # most urgent
MAX_PRIORITY = 5


class TaskStatus(str, Enum):
    """Lifecycle status of a task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


class DependencyKind(str, Enum):
    """Hard dependencies need completion, soft ones only a finished outcome."""

    HARD = "hard"
    SOFT = "soft"


class TaskDependency(BaseModel):
    """Link from a task to another task it waits on."""

    task_id: str = Field(description="ID of the task depended on")
    kind: DependencyKind = Field(default=DependencyKind.HARD)
    timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds after creation before an unresolved hard dependency fails the task",
    )

    def is_satisfied_by(self, status: TaskStatus) -> bool:
        if self.kind == DependencyKind.HARD:
            return status == TaskStatus.COMPLETED
        return status in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class ResourceUsage(BaseModel):
    """Resource summary recorded when a task completes."""

    cpu_percent: Optional[float] = Field(default=None)
    memory_percent: Optional[float] = Field(default=None)
    duration: Optional[float] = Field(default=None, description="Seconds spent executing")


class TaskMetadata(BaseModel):
    """Timing and retry bookkeeping."""

    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    attempts: int = Field(default=0, ge=0, description="Failed attempts so far")
    max_attempts: int = Field(default=3, ge=1)
    resource_usage: Optional[ResourceUsage] = Field(default=None)
    timeout: Optional[float] = Field(
        default=None, gt=0, description="Per-attempt execution timeout in seconds"
    )


class TaskError(BaseModel):
    """Human-readable error attached to a failed task."""

    message: str
    error_type: str = Field(default="ExecutionError")
    attempt: int = Field(default=0)
    timestamp: datetime = Field(default_factory=datetime.now)


class Task(BaseModel):
    """A single schedulable unit of work."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="Unique task ID")
    type: str = Field(description="Tag selecting executor and decomposition strategy")
    priority: int = Field(default=3, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    input: Any = Field(default=None)
    output: Any = Field(default=None)
    error: Optional[TaskError] = Field(default=None)
    metadata: TaskMetadata = Field(default_factory=TaskMetadata)
    dependencies: List[TaskDependency] = Field(default_factory=list)
    subtasks: Optional[List[str]] = Field(default=None, description="IDs produced by decomposition")
    parent_task_id: Optional[str] = Field(default=None)
    cancel_token: CancelToken = Field(default_factory=CancelToken, exclude=True)

    class Config:
        """Pydantic configuration."""

        arbitrary_types_allowed = True

    @property
    def is_decomposed(self) -> bool:
        return bool(self.subtasks)

    @property
    def hard_dependency_ids(self) -> List[str]:
        return [d.task_id for d in self.dependencies if d.kind == DependencyKind.HARD]


class TaskOptions(BaseModel):
    """Caller overrides accepted by submit_task."""

    task_id: Optional[str] = Field(default=None, description="Explicit ID (generated if absent)")
    priority: Optional[int] = Field(default=None, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    timeout: Optional[float] = Field(default=None, gt=0)
    dependencies: List[TaskDependency] = Field(default_factory=list)
    parent_task_id: Optional[str] = Field(default=None)


class TaskFilter(BaseModel):
    """Selection criteria for queue and manager listings."""

    status: Optional[Union[TaskStatus, List[TaskStatus]]] = None
    priority: Optional[Union[int, List[int]]] = None
    type: Optional[Union[str, List[str]]] = None
    created_before: Optional[datetime] = None
    created_after: Optional[datetime] = None

    def matches(self, task: Task) -> bool:
        if self.status is not None and task.status not in _as_list(self.status):
            return False
        if self.priority is not None and task.priority not in _as_list(self.priority):
            return False
        if self.type is not None and task.type not in _as_list(self.type):
            return False
        if self.created_before and task.metadata.created_at >= self.created_before:
            return False
        if self.created_after and task.metadata.created_at <= self.created_after:
            return False
        return True


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else [value]


class ResourceUtilization(BaseModel):
    """Most recent resource sample."""

    cpu: float = Field(default=0.0)
    memory: float = Field(default=0.0)


class TaskStats(BaseModel):
    """Aggregate snapshot computed on demand by scanning known tasks."""

    total: int = Field(default=0)
    by_status: Dict[TaskStatus, int] = Field(
        default_factory=lambda: {status: 0 for status in TaskStatus}
    )
    by_priority: Dict[int, int] = Field(
        default_factory=lambda: {p: 0 for p in range(MIN_PRIORITY, MAX_PRIORITY + 1)}
    )
    by_type: Dict[str, int] = Field(default_factory=dict)
    average_completion_time: float = Field(
        default=0.0, description="Mean started->completed time in milliseconds"
    )
    failure_rate: float = Field(default=0.0)
    resource_utilization: ResourceUtilization = Field(default_factory=ResourceUtilization)
