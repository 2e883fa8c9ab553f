"""Base class for the optional durability layer."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type, Union

from ..models.task_models import Task
from ..models.workflow_models import Workflow


Record = Union[Task, Workflow]

TASK = "task"
WORKFLOW = "workflow"

_RECORD_TYPES: Dict[str, Type[Record]] = {TASK: Task, WORKFLOW: Workflow}


def record_kind(record: Record) -> str:
    if isinstance(record, Task):
        return TASK
    if isinstance(record, Workflow):
        return WORKFLOW
    raise TypeError(f"Unsupported record type: {type(record).__name__}")


def serialize_record(record: Record) -> Dict[str, Any]:
    # mode="json" renders datetimes and enums; the cancel token is excluded
    return record.model_dump(mode="json")


def deserialize_record(kind: str, data: Dict[str, Any]) -> Record:
    return _RECORD_TYPES[kind].model_validate(data)


class StateStore(ABC):
    """
    Write-behind store for tasks and workflows.

    The in-memory scheduler state is authoritative; a store only
    replays it across restarts.
    """

    @abstractmethod
    async def save(self, record: Record) -> None:
        pass

    @abstractmethod
    async def load(self, record_id: str, kind: str = TASK) -> Optional[Record]:
        pass

    @abstractmethod
    async def delete(self, record_id: str, kind: str = TASK) -> bool:
        pass

    @abstractmethod
    async def list_all(self, kind: str = TASK) -> List[Record]:
        pass
