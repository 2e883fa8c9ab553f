"""Workflow definition and execution context models."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class WorkflowStatus(str, Enum):
    """Lifecycle status of a workflow."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


class RetryPolicy(BaseModel):
    """Exponential backoff policy for a workflow step (delays in seconds)."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=1.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """
        Delay before retry number ``attempt`` (1-based).

        min(initial_delay * backoff_multiplier ** (attempt - 1), max_delay)
        """
        if attempt < 1:
            return 0.0
        delay = self.initial_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay)


class ConditionType(str, Enum):
    EXPRESSION = "expression"


class StepCondition(BaseModel):
    """Guard evaluated before a step runs; a false guard skips the step."""

    type: ConditionType = Field(default=ConditionType.EXPRESSION)
    value: str = Field(description="Expression over input, variables and results")


class WorkflowStep(BaseModel):
    """One node of the workflow DAG."""

    id: str = Field(description="Step ID, unique within the workflow")
    type: str = Field(description="Step type selecting the registered agent")
    name: Optional[str] = Field(default=None)
    dependencies: List[str] = Field(
        default_factory=list, description="Step IDs that must complete first"
    )
    config: Dict[str, Any] = Field(default_factory=dict)
    retry_policy: Optional[RetryPolicy] = Field(default=None)
    timeout: Optional[float] = Field(default=None, gt=0, description="Seconds per attempt")
    condition: Optional[StepCondition] = Field(default=None)


class WorkflowError(BaseModel):
    """Entry of the append-only step error log."""

    step_id: str
    error: str = Field(description="Human-readable error message")
    error_type: str = Field(default="ExecutionError")
    timestamp: datetime = Field(default_factory=datetime.now)
    attempt: int = Field(ge=1)


class WorkflowContext(BaseModel):
    """Shared data flowing between steps."""

    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)
    step_results: Dict[str, Any] = Field(
        default_factory=dict, description="Step ID -> result, in completion order"
    )
    variables: Dict[str, Any] = Field(default_factory=dict)
    errors: List[WorkflowError] = Field(default_factory=list)

    def errors_for(self, step_id: str) -> List[WorkflowError]:
        return [e for e in self.errors if e.step_id == step_id]


class WorkflowMetadata(BaseModel):
    """Descriptive and timing metadata."""

    created_at: datetime = Field(default_factory=datetime.now)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    owner: str = Field(default="system")
    version: str = Field(default="1.0.0")
    tags: List[str] = Field(default_factory=list)


class Workflow(BaseModel):
    """A named DAG of steps with shared context."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(default="")
    description: Optional[str] = Field(default=None)
    steps: List[WorkflowStep] = Field(default_factory=list)
    status: WorkflowStatus = Field(default=WorkflowStatus.PENDING)
    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)
    context: WorkflowContext = Field(default_factory=WorkflowContext)

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def is_complete(self) -> bool:
        return all(step.id in self.context.step_results for step in self.steps)
