"""Optional durability layer for tasks and workflows."""

from .base import TASK, WORKFLOW, StateStore
from .memory import InMemoryStateStore
from .redis_store import RedisStateStore

__all__ = [
    "TASK",
    "WORKFLOW",
    "StateStore",
    "InMemoryStateStore",
    "RedisStateStore",
]
