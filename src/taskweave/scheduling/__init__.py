"""Task scheduling: priority queue, executor registry and task manager."""

from .queue import PriorityTaskQueue
from .executors import ExecutorRegistry, TaskHandler
from .manager import TaskManager

__all__ = [
    "PriorityTaskQueue",
    "ExecutorRegistry",
    "TaskHandler",
    "TaskManager",
]
