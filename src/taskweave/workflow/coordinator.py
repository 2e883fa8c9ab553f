"""Dependency-ordered execution of workflow step graphs."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set, Union

from ..config.scheduler_config import SchedulerConfig
from ..errors import CapacityError, StepTimeoutError, ValidationError, WorkflowNotFoundError
from ..events import EventBus, EventHandler
from ..models.event_models import EventType
from ..models.workflow_models import (
    Workflow,
    WorkflowError,
    WorkflowStatus,
    WorkflowStep,
)
from ..storage.base import StateStore
from .conditions import evaluate_condition
from .registry import StepRegistry
from .validation import validate_workflow

Aggregator = Callable[[Dict[str, Any]], Any]

_LIVE = (WorkflowStatus.RUNNING, WorkflowStatus.PAUSED)


def collect_results(step_results: Dict[str, Any]) -> Dict[str, Any]:
    """Default aggregation: a copy of every step result keyed by step id."""
    return dict(step_results)


class WorkflowCoordinator:
    """
    Runs workflows as DAGs: every step whose dependencies all have results
    is launched, concurrently with its ready siblings.

    PATTERN: ready-frontier recomputation after each step result
    CRITICAL: a workflow's step_results are written only here
    GOTCHA: once a workflow fails, results of steps still in flight are
    dropped instead of advancing the graph
    """

    def __init__(
        self,
        step_registry: Optional[StepRegistry] = None,
        config: Optional[SchedulerConfig] = None,
        event_bus: Optional[EventBus] = None,
        store: Optional[StateStore] = None,
        aggregate: Optional[Aggregator] = None,
    ):
        """
        Initialize workflow coordinator.

        Args:
            step_registry: Agents keyed by step type
            config: Scheduler configuration (workflow ceiling)
            event_bus: Lifecycle notification bus
            store: Optional write-behind store
            aggregate: Maps step_results to context.output
        """
        self.registry = step_registry or StepRegistry()
        self.config = config or SchedulerConfig()
        self.events = event_bus or EventBus()
        self.store = store
        self.aggregate = aggregate or collect_results
        self.logger = logging.getLogger(__name__)

        self._workflows: Dict[str, Workflow] = {}
        self._active: Dict[str, Workflow] = {}
        self._in_flight: Dict[str, Set[str]] = {}
        self._step_tasks: Set[asyncio.Task] = set()
        self._done_events: Dict[str, asyncio.Event] = {}

    @property
    def active_workflows(self) -> List[str]:
        return list(self._active)

    async def start_workflow(self, workflow: Workflow) -> Workflow:
        """
        Validate a workflow and launch its root steps.

        Returns once the root steps are scheduled; use wait_for() or the
        completion events to observe the outcome.

        Raises:
            CapacityError: If the concurrent workflow ceiling is reached
            ValidationError: If the workflow is malformed; nothing is started
        """
        if len(self._active) >= self.config.max_concurrent_workflows:
            raise CapacityError(
                f"Maximum concurrent workflows ({self.config.max_concurrent_workflows}) reached"
            )
        if workflow.id in self._active:
            raise ValidationError(f"Workflow {workflow.id} is already running")

        validate_workflow(workflow, self.registry.has_capability)

        if workflow.status in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED):
            # a finished workflow is rerun from scratch
            workflow.context.step_results.clear()
            workflow.context.errors.clear()
            workflow.context.output = {}

        workflow.status = WorkflowStatus.RUNNING
        workflow.metadata.started_at = datetime.now()
        workflow.metadata.completed_at = None
        self._workflows[workflow.id] = workflow
        self._active[workflow.id] = workflow
        self._in_flight[workflow.id] = set()

        self.logger.info(f"Workflow started: {workflow.id} ({len(workflow.steps)} steps)")
        self.events.emit(
            EventType.WORKFLOW_STARTED,
            workflow_id=workflow.id,
            data={"name": workflow.name, "steps": [s.id for s in workflow.steps]},
        )
        await self._persist(workflow)

        if workflow.is_complete:
            # every step already has a result
            await self._complete(workflow)
        else:
            self._launch_ready(workflow)
        return workflow

    async def run_workflow(self, workflow: Workflow, timeout: Optional[float] = None) -> Workflow:
        """Start a workflow and wait for its terminal status."""
        await self.start_workflow(workflow)
        return await self.wait_for(workflow.id, timeout)

    def get_workflow(self, workflow_id: str) -> Workflow:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    def get_workflow_status(self, workflow_id: str) -> WorkflowStatus:
        return self.get_workflow(workflow_id).status

    async def wait_for(self, workflow_id: str, timeout: Optional[float] = None) -> Workflow:
        """
        Wait until a workflow is completed or failed.

        Raises:
            WorkflowNotFoundError: If the workflow id is unknown
            asyncio.TimeoutError: If the timeout elapses first
        """
        workflow = self.get_workflow(workflow_id)
        if workflow.status in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED):
            return workflow

        done = self._done_events.setdefault(workflow_id, asyncio.Event())
        await asyncio.wait_for(done.wait(), timeout)
        return workflow

    async def pause_workflow(self, workflow_id: str) -> Workflow:
        """Stop launching new steps; steps in flight still record results."""
        workflow = self._get_active(workflow_id)
        if workflow.status != WorkflowStatus.RUNNING:
            return workflow

        workflow.status = WorkflowStatus.PAUSED
        self.logger.info(f"Workflow paused: {workflow_id}")
        self.events.emit(EventType.WORKFLOW_PAUSED, workflow_id=workflow_id)
        await self._persist(workflow)
        return workflow

    async def resume_workflow(self, workflow_id: str) -> Workflow:
        workflow = self._get_active(workflow_id)
        if workflow.status != WorkflowStatus.PAUSED:
            return workflow

        workflow.status = WorkflowStatus.RUNNING
        self.logger.info(f"Workflow resumed: {workflow_id}")
        self.events.emit(EventType.WORKFLOW_RESUMED, workflow_id=workflow_id)
        await self._persist(workflow)

        if workflow.is_complete:
            await self._complete(workflow)
        else:
            self._launch_ready(workflow)
        return workflow

    def on(self, event_type: Union[EventType, str], handler: EventHandler) -> str:
        name = getattr(handler, "__name__", "handler")
        return self.events.subscribe(event_type, handler, subscriber_name=name)

    def on_workflow_completed(self, handler: EventHandler) -> str:
        return self.on(EventType.WORKFLOW_COMPLETED, handler)

    def on_workflow_failed(self, handler: EventHandler) -> str:
        return self.on(EventType.WORKFLOW_FAILED, handler)

    async def shutdown(self) -> None:
        """Cancel steps still in flight and release agent resources."""
        for task in list(self._step_tasks):
            task.cancel()
        if self._step_tasks:
            await asyncio.gather(*self._step_tasks, return_exceptions=True)
        await self.registry.cleanup()

    # ------------------------------------------------------------------
    # Step scheduling
    # ------------------------------------------------------------------

    def ready_steps(self, workflow: Workflow) -> List[WorkflowStep]:
        """Steps not yet executed or in flight whose dependencies all have results."""
        results = workflow.context.step_results
        in_flight = self._in_flight.get(workflow.id, set())
        return [
            step
            for step in workflow.steps
            if step.id not in results
            and step.id not in in_flight
            and all(dep in results for dep in step.dependencies)
        ]

    def _launch_ready(self, workflow: Workflow) -> None:
        if workflow.status != WorkflowStatus.RUNNING:
            return

        for step in self.ready_steps(workflow):
            self._in_flight[workflow.id].add(step.id)
            self.logger.debug(f"Launching step {step.id} of workflow {workflow.id}")
            task = asyncio.ensure_future(self._run_step(workflow, step))
            self._step_tasks.add(task)
            task.add_done_callback(self._step_tasks.discard)

    async def _run_step(self, workflow: Workflow, step: WorkflowStep) -> None:
        try:
            while True:
                try:
                    result = await self._execute_step(workflow, step)
                    break
                except Exception as e:
                    if workflow.status not in _LIVE:
                        return
                    if not await self._handle_step_failure(workflow, step, e):
                        return

            if workflow.status not in _LIVE:
                self.logger.debug(
                    f"Dropping result of step {step.id}: workflow {workflow.id} is "
                    f"{workflow.status.value}"
                )
                return

            workflow.context.step_results[step.id] = result
            self.logger.info(f"Step completed: {step.id} (workflow {workflow.id})")
            self.events.emit(
                EventType.STEP_COMPLETED,
                workflow_id=workflow.id,
                step_id=step.id,
                data={"output": result},
            )
        finally:
            self._in_flight.get(workflow.id, set()).discard(step.id)

        if workflow.is_complete:
            await self._complete(workflow)
        else:
            self._launch_ready(workflow)

    async def _execute_step(self, workflow: Workflow, step: WorkflowStep) -> Any:
        context = workflow.context
        if step.condition is not None:
            namespace = {
                "input": context.input,
                "variables": context.variables,
                "results": context.step_results,
            }
            if not evaluate_condition(step.condition.value, namespace):
                self.logger.info(f"Step skipped: {step.id} (condition false)")
                return None

        request = self.build_step_context(workflow, step)
        execution = self.registry.execute_step(step, request)
        if step.timeout is None:
            return await execution

        try:
            return await asyncio.wait_for(execution, step.timeout)
        except asyncio.TimeoutError:
            raise StepTimeoutError(
                f"Step {step.id} timed out after {step.timeout}s",
                step_id=step.id,
                attempt=len(context.errors_for(step.id)) + 1,
            )

    @staticmethod
    def build_step_context(workflow: Workflow, step: WorkflowStep) -> Dict[str, Any]:
        """
        Execution request for one step.

        Input keys are overlaid by variables; ``stepConfig`` and
        ``previousResults`` (results of the step's own dependencies only)
        are added last.
        """
        results = workflow.context.step_results
        return {
            **workflow.context.input,
            **workflow.context.variables,
            "stepConfig": step.config,
            "previousResults": {dep: results.get(dep) for dep in step.dependencies},
        }

    async def _handle_step_failure(
        self, workflow: Workflow, step: WorkflowStep, error: Exception
    ) -> bool:
        """Record a failed attempt; True when the step should run again."""
        attempt = len(workflow.context.errors_for(step.id)) + 1
        workflow.context.errors.append(
            WorkflowError(
                step_id=step.id,
                error=str(error),
                error_type=getattr(error, "error_type", type(error).__name__),
                attempt=attempt,
            )
        )
        self.events.emit(
            EventType.STEP_FAILED,
            workflow_id=workflow.id,
            step_id=step.id,
            error=str(error),
            data={"attempt": attempt},
        )

        policy = step.retry_policy
        if policy is not None and attempt < policy.max_attempts:
            delay = policy.delay_for(attempt)
            self.logger.warning(
                f"Step {step.id} failed attempt {attempt}/{policy.max_attempts}, "
                f"retrying in {delay}s: {error}"
            )
            await asyncio.sleep(delay)
            return workflow.status in _LIVE

        await self._fail(workflow, step, error)
        return False

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    async def _complete(self, workflow: Workflow) -> None:
        if workflow.status != WorkflowStatus.RUNNING:
            return

        workflow.status = WorkflowStatus.COMPLETED
        workflow.metadata.completed_at = datetime.now()
        workflow.context.output = self.aggregate(workflow.context.step_results)
        self._retire(workflow)

        self.logger.info(f"Workflow completed: {workflow.id}")
        self.events.emit(
            EventType.WORKFLOW_COMPLETED,
            workflow_id=workflow.id,
            data={"output": workflow.context.output},
        )
        await self._persist(workflow)
        self._mark_done(workflow)

    async def _fail(self, workflow: Workflow, step: WorkflowStep, error: Exception) -> None:
        if workflow.status not in _LIVE:
            return

        workflow.status = WorkflowStatus.FAILED
        workflow.metadata.completed_at = datetime.now()
        self._retire(workflow)

        self.logger.error(f"Workflow failed: {workflow.id} at step {step.id}: {error}")
        self.events.emit(
            EventType.WORKFLOW_FAILED,
            workflow_id=workflow.id,
            step_id=step.id,
            error=str(error),
        )
        await self._persist(workflow)
        self._mark_done(workflow)

    def _retire(self, workflow: Workflow) -> None:
        self._active.pop(workflow.id, None)

    def _mark_done(self, workflow: Workflow) -> None:
        done = self._done_events.pop(workflow.id, None)
        if done is not None:
            done.set()

    def _get_active(self, workflow_id: str) -> Workflow:
        workflow = self._active.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def _persist(self, workflow: Workflow) -> None:
        if self.store is None:
            return
        try:
            await self.store.save(workflow)
        except Exception as e:
            self.logger.error(f"Failed to persist workflow {workflow.id}: {e}")

