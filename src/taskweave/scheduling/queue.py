"""Priority-bucketed holding area for tasks awaiting execution."""

import logging
from collections import deque
from typing import Any, Deque, Dict, Iterator, List, Mapping, Optional

from ..errors import DuplicateTaskError, TaskNotFoundError
from ..models.task_models import MAX_PRIORITY, MIN_PRIORITY, Task, TaskFilter


logger = logging.getLogger(__name__)


class PriorityTaskQueue:
    """
    FIFO bucket per priority level plus an id index kept in lockstep.

    PATTERN: enqueue is O(1), dequeue scans at most MAX_PRIORITY buckets
    CRITICAL: smaller ordinal = more urgent; FIFO within a level
    GOTCHA: a requeued task goes to the tail of its own bucket, no age boost
    """

    def __init__(self) -> None:
        self._buckets: Dict[int, Deque[Task]] = {
            priority: deque() for priority in range(MIN_PRIORITY, MAX_PRIORITY + 1)
        }
        self._index: Dict[str, Task] = {}

    def enqueue(self, task: Task) -> None:
        """
        Append a task to the tail of its priority bucket.

        Raises:
            DuplicateTaskError: If a task with the same id is queued
            ValueError: If the priority is outside the supported range
        """
        if task.id in self._index:
            raise DuplicateTaskError(task.id)

        bucket = self._buckets.get(task.priority)
        if bucket is None:
            raise ValueError(f"Invalid priority: {task.priority}")

        bucket.append(task)
        self._index[task.id] = task
        logger.debug(f"Task enqueued: {task.id} (priority {task.priority}, type {task.type})")

    def dequeue(self) -> Optional[Task]:
        """Remove and return the oldest task of the most urgent non-empty bucket."""
        for priority in range(MIN_PRIORITY, MAX_PRIORITY + 1):
            bucket = self._buckets[priority]
            if bucket:
                task = bucket.popleft()
                del self._index[task.id]
                logger.debug(f"Task dequeued: {task.id} (priority {priority})")
                return task
        return None

    def peek(self) -> Optional[Task]:
        for priority in range(MIN_PRIORITY, MAX_PRIORITY + 1):
            bucket = self._buckets[priority]
            if bucket:
                return bucket[0]
        return None

    def get(self, task_id: str) -> Optional[Task]:
        return self._index.get(task_id)

    def remove(self, task_id: str) -> Optional[Task]:
        """Remove a queued task by id; returns None if it is not queued."""
        task = self._index.pop(task_id, None)
        if task is None:
            return None

        self._buckets[task.priority].remove(task)
        logger.debug(f"Task removed: {task_id}")
        return task

    def update(self, task_id: str, patch: Mapping[str, Any]) -> Task:
        """
        Apply field updates to a queued task in place.

        A priority change moves the task to the tail of its new bucket.

        Raises:
            TaskNotFoundError: If the task is not queued
            ValueError: If the patch changes the id or sets an unknown priority
        """
        task = self._index.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if "id" in patch and patch["id"] != task_id:
            raise ValueError(f"Cannot change the id of queued task {task_id}")

        new_priority = patch.get("priority", task.priority)
        if new_priority not in self._buckets:
            raise ValueError(f"Invalid priority: {new_priority}")

        if new_priority != task.priority:
            self._buckets[task.priority].remove(task)
            self._buckets[new_priority].append(task)

        for field, value in patch.items():
            setattr(task, field, value)

        logger.debug(f"Task updated: {task_id} ({', '.join(patch)})")
        return task

    def filter(self, criteria: Optional[TaskFilter] = None) -> List[Task]:
        """Queued tasks matching the criteria, in dequeue order."""
        if criteria is None:
            return list(self)
        return [task for task in self if criteria.matches(task)]

    def clear(self) -> None:
        for bucket in self._buckets.values():
            bucket.clear()
        self._index.clear()

    def size_by_priority(self) -> Dict[int, int]:
        return {priority: len(bucket) for priority, bucket in self._buckets.items()}

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._index

    def __iter__(self) -> Iterator[Task]:
        for priority in range(MIN_PRIORITY, MAX_PRIORITY + 1):
            yield from list(self._buckets[priority])
