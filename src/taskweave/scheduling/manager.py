"""Admission control and execution loop for ad hoc tasks."""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

from ..cancellation import CancelToken
from ..config.scheduler_config import SchedulerConfig
from ..decomposition.decomposer import TaskDecomposer
from ..errors import (
    DecompositionError,
    DependencyTimeoutError,
    DependencyUnmetError,
    DuplicateTaskError,
    ExecutionError,
    NoExecutorError,
    TaskNotFoundError,
    TaskTimeoutError,
)
from ..events import EventBus
from ..models.event_models import EventType
from ..models.task_models import (
    DependencyKind,
    ResourceUsage,
    ResourceUtilization,
    Task,
    TaskError,
    TaskFilter,
    TaskMetadata,
    TaskOptions,
    TaskStats,
    TaskStatus,
)
from ..monitoring.resources import PsutilResourceSampler, ResourceSampler, ResourceSnapshot
from ..storage.base import TASK, StateStore
from .executors import ExecutorRegistry
from .queue import PriorityTaskQueue


class TaskManager:
    """
    Pulls tasks from the priority queue and drives them to a terminal state.

    PATTERN: single scheduling loop guarded by a processing flag; executions
    run as background coroutines so the loop never blocks on them
    CRITICAL: the queue owns pending tasks, the running map owns running
    tasks; every other component only reads through this API
    GOTCHA: blocked admission parks on a wakeup event (bounded by the
    configured back-off) instead of polling
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        executors: Optional[ExecutorRegistry] = None,
        decomposer: Optional[TaskDecomposer] = None,
        resource_sampler: Optional[ResourceSampler] = None,
        event_bus: Optional[EventBus] = None,
        store: Optional[StateStore] = None,
    ):
        """
        Initialize task manager.

        Args:
            config: Scheduler configuration (read from environment if omitted)
            executors: Executor registry keyed by task type
            decomposer: Decomposition strategy registry
            resource_sampler: Usage source for admission control
            event_bus: Lifecycle notification bus
            store: Optional write-behind store
        """
        self.config = config or SchedulerConfig()
        self.executors = executors or ExecutorRegistry()
        self.decomposer = decomposer or TaskDecomposer()
        self.resource_sampler = resource_sampler or PsutilResourceSampler()
        self.events = event_bus or EventBus()
        self.store = store
        self.logger = logging.getLogger(__name__)

        self._queue = PriorityTaskQueue()
        self._running: Dict[str, Task] = {}
        self._tasks: Dict[str, Task] = {}
        self._consolidations: Dict[str, str] = {}  # consolidation id -> parent id
        self._decomposition_checked: Set[str] = set()
        self._done_events: Dict[str, asyncio.Event] = {}
        self._executions: Set[asyncio.Task] = set()

        self._processing = False
        self._loop_task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self._generation = 0
        self._last_usage = ResourceSnapshot()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def submit_task(
        self,
        task_type: str,
        input: Any = None,
        options: Optional[TaskOptions] = None,
    ) -> Task:
        """
        Create, enqueue and schedule a task.

        Raises:
            NoExecutorError: If the type has neither an executor nor a strategy
            DuplicateTaskError: If an explicit task id is already known
        """
        options = options or TaskOptions()
        if not self._can_handle(task_type):
            raise NoExecutorError(task_type)

        task_id = options.task_id or str(uuid4())
        if task_id in self._tasks:
            raise DuplicateTaskError(task_id)

        task = Task(
            id=task_id,
            type=task_type,
            priority=options.priority or self.config.default_priority,
            input=input,
            metadata=TaskMetadata(
                max_attempts=options.max_attempts or self.config.default_max_attempts,
                timeout=options.timeout,
            ),
            dependencies=list(options.dependencies),
            parent_task_id=options.parent_task_id,
        )

        self._admit(task)
        await self._persist(task)
        self._ensure_processing()
        return task

    async def cancel_task(self, task_id: str) -> Task:
        """
        Cancel a pending or running task and, recursively, its live subtasks.

        Cancellation is cooperative: the token is invalidated and the task
        leaves the queue or running set, but executor code already running
        is not interrupted. Cancelling a terminal task is a no-op.

        Raises:
            TaskNotFoundError: If the task id is unknown
        """
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        if task.status.is_terminal:
            self.logger.debug(f"Task {task_id} already {task.status.value}, not cancelling")
            return task

        task.cancel_token.cancel("cancelled")
        task.status = TaskStatus.CANCELLED
        task.metadata.completed_at = datetime.now()
        self._queue.remove(task_id)
        self._running.pop(task_id, None)

        for subtask_id in task.subtasks or []:
            subtask = self._tasks.get(subtask_id)
            if subtask is not None and not subtask.status.is_terminal:
                await self.cancel_task(subtask_id)

        self.logger.info(f"Task cancelled: {task_id}")
        self.events.emit(EventType.TASK_CANCELLED, task_id=task_id)
        await self._persist(task)
        await self._resolve_parent(task)
        self._mark_done(task)
        self._signal()
        return task

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def list_tasks(self, criteria: Optional[TaskFilter] = None) -> List[Task]:
        tasks = list(self._tasks.values())
        if criteria is None:
            return tasks
        return [task for task in tasks if criteria.matches(task)]

    def pending_tasks(self, criteria: Optional[TaskFilter] = None) -> List[Task]:
        return self._queue.filter(criteria)

    def running_tasks(self) -> List[Task]:
        return list(self._running.values())

    @property
    def is_processing(self) -> bool:
        return self._processing

    async def wait_for(self, task_id: str, timeout: Optional[float] = None) -> Task:
        """
        Wait until a task reaches a terminal status.

        Raises:
            TaskNotFoundError: If the task id is unknown
            asyncio.TimeoutError: If the timeout elapses first
        """
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.status.is_terminal:
            return task

        done = self._done_events.setdefault(task_id, asyncio.Event())
        await asyncio.wait_for(done.wait(), timeout)
        return task

    async def join(self, timeout: Optional[float] = None) -> None:
        """Wait until no task is queued, running, or awaiting its subtasks."""

        async def idle() -> None:
            while any(not t.status.is_terminal for t in self._tasks.values()):
                generation = self._generation
                await self._wait_for_change(generation, None)

        await asyncio.wait_for(idle(), timeout)

    def get_task_stats(self) -> TaskStats:
        """Aggregate snapshot over every known task, computed on demand."""
        stats = TaskStats(
            resource_utilization=ResourceUtilization(
                cpu=self._last_usage.cpu_percent,
                memory=self._last_usage.memory_percent,
            )
        )

        total_completion_ms = 0.0
        completed = 0
        for task in self._tasks.values():
            stats.total += 1
            stats.by_status[task.status] += 1
            stats.by_priority[task.priority] = stats.by_priority.get(task.priority, 0) + 1
            stats.by_type[task.type] = stats.by_type.get(task.type, 0) + 1

            meta = task.metadata
            if task.status == TaskStatus.COMPLETED and meta.completed_at and meta.started_at:
                total_completion_ms += (meta.completed_at - meta.started_at).total_seconds() * 1000
                completed += 1

        if completed:
            stats.average_completion_time = total_completion_ms / completed
        if stats.total:
            stats.failure_rate = stats.by_status[TaskStatus.FAILED] / stats.total
        return stats

    async def restore(self) -> int:
        """
        Reload tasks from the store and requeue the unfinished ones.

        Running tasks are reset to pending; decomposed parents keep waiting
        on their consolidation task, or resolve at once if it already finished.

        Returns:
            Number of tasks requeued
        """
        if self.store is None:
            return 0

        records = await self.store.list_all(TASK)
        restored = [t for t in records if isinstance(t, Task) and t.id not in self._tasks]
        restored.sort(key=lambda t: t.metadata.created_at)

        requeued = 0
        for task in restored:
            self._tasks[task.id] = task
            if task.status.is_terminal:
                continue
            if task.subtasks:
                task.status = TaskStatus.RUNNING
                self._decomposition_checked.add(task.id)
                continue

            task.status = TaskStatus.PENDING
            self._queue.enqueue(task)
            requeued += 1

        for task in restored:
            if not task.subtasks or task.status.is_terminal:
                continue
            consolidation = self._restored_consolidation(task)
            if consolidation is None:
                await self._finalize_failure(
                    task,
                    ExecutionError(
                        f"Subtasks of {task.id} missing from store",
                        task_id=task.id,
                        attempt=task.metadata.attempts,
                    ),
                )
                continue

            self._consolidations[consolidation.id] = task.id
            if consolidation.status.is_terminal:
                # finished before the parent record was written
                await self._resolve_parent(consolidation)

        self.logger.info(f"Restored {len(restored)} tasks from store, {requeued} requeued")
        if requeued:
            self._ensure_processing()
        return requeued

    async def shutdown(self) -> None:
        """Stop the scheduling loop; running executors are left to finish."""
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        self._processing = False
        self._loop_task = None

    # ------------------------------------------------------------------
    # Scheduling loop
    # ------------------------------------------------------------------

    def _ensure_processing(self) -> None:
        self._signal()
        if not self._processing:
            self._processing = True
            self._loop_task = asyncio.ensure_future(self._process_tasks())

    def _signal(self) -> None:
        self._generation += 1
        self._wakeup.set()

    async def _wait_for_change(self, generation: int, timeout: Optional[float]) -> None:
        """Park until a state change newer than ``generation`` or the timeout."""
        if self._generation != generation:
            return
        self._wakeup.clear()
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout)
        except asyncio.TimeoutError:
            pass

    async def _process_tasks(self) -> None:
        self._processing = True
        held: List[Task] = []

        try:
            while True:
                generation = self._generation

                if not self._queue:
                    if not held:
                        break
                    # every queued task is waiting on a dependency
                    self._release(held)
                    await self._wait_for_change(generation, self.config.dependency_poll_interval)
                    continue

                if len(self._running) >= self.config.max_concurrent_tasks:
                    self._release(held)
                    await self._wait_for_change(generation, self.config.concurrency_backoff)
                    continue

                task = self._queue.dequeue()
                if task is None:
                    break

                usage = await self.resource_sampler.get_resource_usage()
                self._last_usage = usage
                if task.status != TaskStatus.PENDING:
                    # cancelled while the sample was taken
                    continue

                if (
                    usage.cpu_percent > self.config.max_cpu_percent
                    or usage.memory_percent > self.config.max_memory_percent
                ):
                    self._queue.enqueue(task)
                    self._release(held)
                    self.logger.debug(
                        f"Admission deferred for {task.id}: cpu={usage.cpu_percent:.1f}% "
                        f"memory={usage.memory_percent:.1f}%"
                    )
                    await self._wait_for_change(generation, self.config.resource_backoff)
                    continue

                try:
                    self._check_dependencies(task)
                except DependencyUnmetError:
                    # re-enqueued when the pass ends
                    held.append(task)
                    continue
                except ExecutionError as e:
                    await self._finalize_failure(task, e)
                    continue

                self._start(task)
        finally:
            self._release(held)
            self._processing = False
            self._loop_task = None

        # work may have arrived between the final check and the flag reset
        if self._queue:
            self._ensure_processing()

    def _release(self, held: List[Task]) -> None:
        """Return dependency-blocked tasks to the tail of their buckets."""
        for task in held:
            if task.status == TaskStatus.PENDING and task.id not in self._queue:
                self._queue.enqueue(task)
        held.clear()

    def _check_dependencies(self, task: Task) -> None:
        """
        Raise DependencyUnmetError while a dependency is unresolved.

        Hard dependencies need the referenced task completed; soft ones are
        satisfied once it completed or failed. A hard dependency that can no
        longer complete, or any dependency past its timeout, fails the task.
        """
        for dep in task.dependencies:
            dep_task = self._tasks.get(dep.task_id)
            status = dep_task.status if dep_task is not None else None

            if status is not None and dep.is_satisfied_by(status):
                continue

            if dep.kind == DependencyKind.HARD and status in (
                TaskStatus.FAILED,
                TaskStatus.CANCELLED,
            ):
                raise ExecutionError(
                    f"Hard dependency {dep.task_id} of task {task.id} is {status.value}",
                    task_id=task.id,
                    attempt=task.metadata.attempts,
                )
            if dep.kind == DependencyKind.SOFT and (
                status is None or status == TaskStatus.CANCELLED
            ):
                continue

            if dep.timeout is not None:
                waited = (datetime.now() - task.metadata.created_at).total_seconds()
                if waited > dep.timeout:
                    raise DependencyTimeoutError(
                        f"Dependency {dep.task_id} of task {task.id} unresolved "
                        f"after {dep.timeout}s",
                        task_id=task.id,
                        attempt=task.metadata.attempts,
                    )

            self.logger.debug(f"Task {task.id} waiting on dependency {dep.task_id}")
            raise DependencyUnmetError(dep.task_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _start(self, task: Task) -> None:
        task.status = TaskStatus.RUNNING
        task.metadata.started_at = datetime.now()
        self._running[task.id] = task
        self.logger.info(f"Task started: {task.id} ({task.type}, priority {task.priority})")
        self.events.emit(EventType.TASK_STARTED, task_id=task.id)

        execution = asyncio.ensure_future(self._process_task(task))
        self._executions.add(execution)
        execution.add_done_callback(self._executions.discard)

    async def _process_task(self, task: Task) -> None:
        try:
            if task.id not in self._decomposition_checked:
                self._decomposition_checked.add(task.id)
                try:
                    decompose = self.decomposer.should_decompose(task)
                except Exception as e:
                    raise DecompositionError(
                        f"Decomposition check failed for {task.id}: {e}", task_id=task.id
                    ) from e
                if decompose:
                    await self._decompose(task)
                    return

            started = time.perf_counter()
            output = await self._execute(task)
            duration = time.perf_counter() - started

            if task.status != TaskStatus.RUNNING:
                self.logger.info(f"Discarding result of {task.id}, task is {task.status.value}")
                return
            await self._complete(task, output, duration)

        except DecompositionError as e:
            # decomposition failures are terminal, no retry budget is spent
            if task.status == TaskStatus.RUNNING:
                await self._finalize_failure(task, e)
        except Exception as e:
            if task.status != TaskStatus.RUNNING:
                self.logger.debug(f"Ignoring failure of {task.id}, task is {task.status.value}")
                return
            await self._handle_failure(task, e)
        finally:
            self._signal()
            if self._queue and not self._processing:
                self._ensure_processing()

    async def _execute(self, task: Task) -> Any:
        timeout = task.metadata.timeout
        if timeout is None:
            return await self.executors.execute(task)

        attempt = asyncio.ensure_future(self.executors.execute(task))
        try:
            return await asyncio.wait_for(asyncio.shield(attempt), timeout)
        except asyncio.TimeoutError:
            task.cancel_token.cancel("timeout")
            # the attempt keeps running cooperatively; its outcome is discarded
            attempt.add_done_callback(_discard_outcome)
            raise TaskTimeoutError(
                f"Task {task.id} timed out after {timeout}s",
                task_id=task.id,
                attempt=task.metadata.attempts + 1,
            )

    async def _decompose(self, task: Task) -> None:
        subtasks = await self.decomposer.decompose(task)

        for subtask in subtasks:
            if subtask.id in self._tasks:
                raise DecompositionError(
                    f"Subtask id {subtask.id} already exists", task_id=task.id
                )
            if not self._can_handle(subtask.type):
                raise DecompositionError(
                    f"No executor registered for subtask type {subtask.type}",
                    task_id=task.id,
                )
        if task.status != TaskStatus.RUNNING:
            return

        consolidation = TaskDecomposer.consolidation_task(subtasks)
        task.subtasks = [s.id for s in subtasks]
        self._consolidations[consolidation.id] = task.id
        # the parent holds no concurrency slot while its subtasks run
        self._running.pop(task.id, None)

        for subtask in subtasks:
            self._admit(subtask)
            await self._persist(subtask)

        self.logger.info(
            f"Task {task.id} decomposed into {len(subtasks)} subtasks "
            f"(consolidation: {consolidation.id})"
        )
        self.events.emit(
            EventType.TASK_DECOMPOSED,
            task_id=task.id,
            data={"subtasks": list(task.subtasks), "consolidation": consolidation.id},
        )
        await self._persist(task)

    async def _complete(self, task: Task, output: Any, duration: float) -> None:
        task.output = output
        task.error = None
        task.metadata.completed_at = datetime.now()
        task.metadata.resource_usage = ResourceUsage(
            cpu_percent=self._last_usage.cpu_percent,
            memory_percent=self._last_usage.memory_percent,
            duration=duration,
        )
        task.status = TaskStatus.COMPLETED
        self._running.pop(task.id, None)

        self.logger.info(f"Task completed: {task.id} in {duration:.3f}s")
        self.events.emit(EventType.TASK_COMPLETED, task_id=task.id, data={"duration": duration})
        await self._persist(task)
        await self._resolve_parent(task)
        self._mark_done(task)

    async def _handle_failure(self, task: Task, error: Exception) -> None:
        task.metadata.attempts += 1
        self._running.pop(task.id, None)

        if task.metadata.attempts < task.metadata.max_attempts:
            task.status = TaskStatus.PENDING
            task.error = None
            if task.cancel_token.cancelled:
                task.cancel_token = CancelToken()
            self.logger.warning(
                f"Task {task.id} failed attempt {task.metadata.attempts}/"
                f"{task.metadata.max_attempts}, requeueing: {error}"
            )
            self.events.emit(
                EventType.TASK_RETRYING,
                task_id=task.id,
                error=str(error),
                data={"attempt": task.metadata.attempts},
            )
            self._queue.enqueue(task)
            await self._persist(task)
            return

        await self._finalize_failure(task, error)

    async def _finalize_failure(self, task: Task, error: Exception) -> None:
        task.status = TaskStatus.FAILED
        task.error = TaskError(
            message=str(error),
            error_type=getattr(error, "error_type", type(error).__name__),
            attempt=task.metadata.attempts,
        )
        task.metadata.completed_at = datetime.now()
        self._running.pop(task.id, None)
        self._queue.remove(task.id)

        self.logger.error(
            f"Task failed: {task.id} after {task.metadata.attempts} attempt(s): {error}"
        )
        self.events.emit(
            EventType.TASK_FAILED,
            task_id=task.id,
            error=str(error),
            data={"attempts": task.metadata.attempts},
        )
        await self._persist(task)
        await self._resolve_parent(task)
        self._mark_done(task)

    async def _resolve_parent(self, task: Task) -> None:
        """Settle a decomposed parent once its consolidation task is terminal."""
        parent_id = self._consolidations.pop(task.id, None)
        if parent_id is None:
            return

        parent = self._tasks.get(parent_id)
        if parent is None or parent.status != TaskStatus.RUNNING:
            return

        if task.status == TaskStatus.COMPLETED:
            started = parent.metadata.started_at or parent.metadata.created_at
            duration = (datetime.now() - started).total_seconds()
            await self._complete(parent, task.output, duration)
        else:
            await self._finalize_failure(
                parent,
                ExecutionError(
                    f"Consolidation task {task.id} {task.status.value}"
                    + (f": {task.error.message}" if task.error else ""),
                    task_id=parent.id,
                    attempt=parent.metadata.attempts,
                ),
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _restored_consolidation(self, parent: Task) -> Optional[Task]:
        children = [self._tasks[s] for s in parent.subtasks or [] if s in self._tasks]
        if not children:
            return None
        try:
            return TaskDecomposer.consolidation_task(children)
        except DecompositionError:
            # siblings lost from the store; strategies list the consolidation task last
            return self._tasks.get(parent.subtasks[-1])

    def _can_handle(self, task_type: str) -> bool:
        return self.executors.has(task_type) or self.decomposer.has_strategy(task_type)

    def _admit(self, task: Task) -> None:
        self._queue.enqueue(task)
        self._tasks[task.id] = task
        self.logger.info(f"Task submitted: {task.id} ({task.type}, priority {task.priority})")
        self.events.emit(
            EventType.TASK_SUBMITTED,
            task_id=task.id,
            data={"type": task.type, "priority": task.priority},
        )

    def _mark_done(self, task: Task) -> None:
        done = self._done_events.pop(task.id, None)
        if done is not None:
            done.set()
        self._signal()

    async def _persist(self, task: Task) -> None:
        if self.store is None:
            return
        try:
            await self.store.save(task)
        except Exception as e:
            self.logger.error(f"Failed to persist task {task.id}: {e}")


def _discard_outcome(future: "asyncio.Future[Any]") -> None:
    if not future.cancelled():
        future.exception()
