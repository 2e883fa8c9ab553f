"""Lifecycle event payloads delivered to subscribers."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Named lifecycle events."""

    TASK_SUBMITTED = "task:submitted"
    TASK_STARTED = "task:started"
    TASK_COMPLETED = "task:completed"
    TASK_FAILED = "task:failed"
    TASK_CANCELLED = "task:cancelled"
    TASK_RETRYING = "task:retrying"
    TASK_DECOMPOSED = "task:decomposed"

    WORKFLOW_STARTED = "workflowStarted"
    STEP_COMPLETED = "stepCompleted"
    STEP_FAILED = "stepFailed"
    WORKFLOW_COMPLETED = "workflowCompleted"
    WORKFLOW_FAILED = "workflowFailed"
    WORKFLOW_PAUSED = "workflowPaused"
    WORKFLOW_RESUMED = "workflowResumed"


class LifecycleEvent(BaseModel):
    """Small structured payload for one lifecycle notification."""

    event_type: EventType
    timestamp: datetime = Field(default_factory=datetime.now)
    task_id: Optional[str] = Field(default=None)
    workflow_id: Optional[str] = Field(default=None)
    step_id: Optional[str] = Field(default=None)
    error: Optional[str] = Field(default=None)
    data: Dict[str, Any] = Field(default_factory=dict)
