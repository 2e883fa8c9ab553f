"""Tests for the workflow coordinator."""

import asyncio
from unittest.mock import AsyncMock, call, patch

import pytest

from taskweave.errors import CapacityError, ValidationError, WorkflowNotFoundError
from taskweave.events import EventBus
from taskweave.models.event_models import EventType
from taskweave.models.workflow_models import (
    RetryPolicy,
    StepCondition,
    Workflow,
    WorkflowContext,
    WorkflowStatus,
    WorkflowStep,
)
from taskweave.storage.base import WORKFLOW
from taskweave.storage.memory import InMemoryStateStore
from taskweave.workflow.coordinator import WorkflowCoordinator
from taskweave.workflow.registry import StepRegistry


def step(step_id, *deps, step_type="record", **kwargs):
    return WorkflowStep(id=step_id, type=step_type, dependencies=list(deps), **kwargs)


class Recorder:
    """Step agent logging start/end and the request it received."""

    def __init__(self):
        self.log = []
        self.requests = {}

    async def __call__(self, step, context):
        self.log.append(("start", step.id))
        self.requests[step.id] = context
        await asyncio.sleep(0)
        self.log.append(("end", step.id))
        return f"result-{step.id}"

    def index(self, kind, step_id):
        return self.log.index((kind, step_id))


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def registry(recorder):
    registry = StepRegistry()
    registry.register("record", recorder)
    return registry


@pytest.fixture
def coordinator(registry, fast_config):
    return WorkflowCoordinator(step_registry=registry, config=fast_config, event_bus=EventBus())


@pytest.mark.asyncio
class TestExecution:
    """Dependency ordering and completion."""

    async def test_diamond_scenario(self, coordinator, recorder):
        """A runs first, B and C after A, D after both B and C."""
        workflow = Workflow(
            id="diamond",
            steps=[step("A"), step("B", "A"), step("C", "A"), step("D", "B", "C")],
        )

        await coordinator.start_workflow(workflow)
        assert workflow.status == WorkflowStatus.RUNNING
        assert workflow.metadata.started_at is not None
        assert coordinator.active_workflows == ["diamond"]

        done = await coordinator.wait_for("diamond", timeout=2)

        assert done.status == WorkflowStatus.COMPLETED
        assert set(done.context.step_results) == {"A", "B", "C", "D"}
        assert done.context.output == done.context.step_results
        assert done.metadata.completed_at is not None
        assert coordinator.active_workflows == []

        assert recorder.index("end", "A") < recorder.index("start", "B")
        assert recorder.index("end", "A") < recorder.index("start", "C")
        assert recorder.index("end", "B") < recorder.index("start", "D")
        assert recorder.index("end", "C") < recorder.index("start", "D")

        assert recorder.requests["B"]["previousResults"] == {"A": "result-A"}
        assert recorder.requests["D"]["previousResults"] == {
            "B": "result-B",
            "C": "result-C",
        }

        events = coordinator.events
        assert len(events.recent(EventType.WORKFLOW_STARTED)) == 1
        assert len(events.recent(EventType.STEP_COMPLETED)) == 4
        assert len(events.recent(EventType.WORKFLOW_COMPLETED)) == 1

    async def test_step_request_merges_input_and_variables(self, coordinator, recorder):
        """Test variables overlay input keys in the execution request."""
        workflow = Workflow(
            id="ctx",
            steps=[step("A", config={"mode": "fast"})],
            context=WorkflowContext(input={"a": 1, "b": 1}, variables={"b": 2}),
        )

        await coordinator.run_workflow(workflow, timeout=2)

        assert recorder.requests["A"] == {
            "a": 1,
            "b": 2,
            "stepConfig": {"mode": "fast"},
            "previousResults": {},
        }

    async def test_custom_aggregate(self, registry, fast_config):
        """Test the aggregation hook shapes the output."""
        coordinator = WorkflowCoordinator(
            step_registry=registry,
            config=fast_config,
            aggregate=lambda results: {"count": len(results)},
        )
        workflow = Workflow(id="agg", steps=[step("A"), step("B", "A")])

        done = await coordinator.run_workflow(workflow, timeout=2)

        assert done.context.output == {"count": 2}

    async def test_false_condition_skips_step(self, registry, coordinator, recorder):
        """Test a false condition records None and unblocks dependents."""
        registry.register("gate", lambda s, ctx: {"go": False})
        workflow = Workflow(
            id="cond",
            steps=[
                step("A", step_type="gate"),
                step("B", "A", condition=StepCondition(value="results['A']['go']")),
                step("C", "B"),
            ],
        )

        done = await coordinator.run_workflow(workflow, timeout=2)

        assert done.status == WorkflowStatus.COMPLETED
        assert done.context.step_results["B"] is None
        assert "B" not in recorder.requests
        assert done.context.step_results["C"] == "result-C"

    async def test_completion_handlers(self, coordinator):
        """Test on_workflow_completed handlers fire once."""
        seen = []
        coordinator.on_workflow_completed(lambda event: seen.append(event.workflow_id))

        await coordinator.run_workflow(Workflow(id="cb", steps=[step("A")]), timeout=2)

        assert seen == ["cb"]

    async def test_status_lookup(self, coordinator):
        with pytest.raises(WorkflowNotFoundError):
            coordinator.get_workflow_status("nope")

        await coordinator.run_workflow(Workflow(id="s", steps=[step("A")]), timeout=2)
        assert coordinator.get_workflow_status("s") == WorkflowStatus.COMPLETED

    async def test_store_write_behind(self, registry, fast_config):
        store = InMemoryStateStore()
        coordinator = WorkflowCoordinator(step_registry=registry, config=fast_config, store=store)

        await coordinator.run_workflow(Workflow(id="stored", steps=[step("A")]), timeout=2)

        saved = await store.load("stored", kind=WORKFLOW)
        assert saved.status == WorkflowStatus.COMPLETED
        assert saved.context.step_results == {"A": "result-A"}


@pytest.mark.asyncio
class TestAdmission:
    """Validation and capacity checks at start time."""

    async def test_cycle_leaves_active_unchanged(self, coordinator):
        """Test a cyclic workflow is rejected without a partial start."""
        workflow = Workflow(id="loop", steps=[step("A", "B"), step("B", "A")])

        with pytest.raises(ValidationError, match="circular"):
            await coordinator.start_workflow(workflow)

        assert coordinator.active_workflows == []
        assert workflow.status == WorkflowStatus.PENDING
        assert coordinator.events.recent() == []

    async def test_unknown_step_type(self, coordinator):
        workflow = Workflow(id="u", steps=[step("A", step_type="mystery")])
        with pytest.raises(ValidationError, match="No agent available"):
            await coordinator.start_workflow(workflow)

    async def test_capacity_ceiling(self, registry, fast_config):
        """Test the concurrent workflow ceiling."""
        gate = asyncio.Event()

        async def blocking(s, ctx):
            await gate.wait()
            return "done"

        registry.register("block", blocking)
        config = fast_config.model_copy(update={"max_concurrent_workflows": 1})
        coordinator = WorkflowCoordinator(step_registry=registry, config=config)

        await coordinator.start_workflow(Workflow(id="w1", steps=[step("A", step_type="block")]))
        with pytest.raises(CapacityError):
            await coordinator.start_workflow(Workflow(id="w2", steps=[step("A")]))

        gate.set()
        await coordinator.wait_for("w1", timeout=2)
        done = await coordinator.run_workflow(Workflow(id="w3", steps=[step("A")]), timeout=2)
        assert done.status == WorkflowStatus.COMPLETED

    async def test_prefilled_results_complete_at_start(self, coordinator, recorder):
        """Test a workflow whose steps all have results completes without running them."""
        workflow = Workflow(
            id="cached",
            steps=[step("A")],
            context=WorkflowContext(step_results={"A": "cached"}),
        )

        await coordinator.start_workflow(workflow)

        assert workflow.status == WorkflowStatus.COMPLETED
        assert workflow.context.output == {"A": "cached"}
        assert coordinator.active_workflows == []
        assert recorder.log == []

    async def test_partial_results_run_remaining_steps(self, coordinator, recorder):
        workflow = Workflow(
            id="partial",
            steps=[step("A"), step("B", "A")],
            context=WorkflowContext(step_results={"A": "cached"}),
        )

        done = await coordinator.run_workflow(workflow, timeout=2)

        assert done.status == WorkflowStatus.COMPLETED
        assert "A" not in recorder.requests
        assert done.context.step_results == {"A": "cached", "B": "result-B"}

    async def test_restart_finished_workflow(self, coordinator, recorder):
        """Test rerunning a completed workflow clears its results and runs every step."""
        workflow = Workflow(id="again", steps=[step("A"), step("B", "A")])
        await coordinator.run_workflow(workflow, timeout=2)
        recorder.log.clear()

        done = await coordinator.run_workflow(workflow, timeout=2)

        assert done.status == WorkflowStatus.COMPLETED
        assert recorder.log.count(("start", "A")) == 1
        assert recorder.log.count(("start", "B")) == 1
        assert coordinator.active_workflows == []


@pytest.mark.asyncio
class TestFailures:
    """Step failures, retries and timeouts."""

    async def test_retry_delays_then_failed(self, registry, coordinator):
        """Delays 0.1 and 0.2 between three attempts, then the workflow fails."""
        calls = []

        def flaky(s, ctx):
            calls.append(s.id)
            raise RuntimeError("always down")

        registry.register("flaky", flaky)
        policy = RetryPolicy(
            max_attempts=3, initial_delay=0.1, backoff_multiplier=2, max_delay=1.0
        )
        workflow = Workflow(
            id="retry",
            steps=[step("A", step_type="flaky", retry_policy=policy), step("B", "A")],
        )

        with patch(
            "taskweave.workflow.coordinator.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            done = await coordinator.run_workflow(workflow, timeout=2)

        assert mock_sleep.await_args_list == [call(0.1), call(0.2)]
        assert calls == ["A", "A", "A"]
        assert done.status == WorkflowStatus.FAILED
        assert [e.attempt for e in done.context.errors] == [1, 2, 3]
        assert all(e.step_id == "A" for e in done.context.errors)
        assert "always down" in done.context.errors[-1].error
        assert "B" not in done.context.step_results
        assert len(coordinator.events.recent(EventType.STEP_FAILED)) == 3
        assert len(coordinator.events.recent(EventType.WORKFLOW_FAILED)) == 1

    async def test_retry_then_success(self, registry, coordinator):
        attempts = []

        def flaky(s, ctx):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("first try")
            return "ok"

        registry.register("flaky", flaky)
        policy = RetryPolicy(max_attempts=2, initial_delay=0.001)
        workflow = Workflow(id="ok", steps=[step("A", step_type="flaky", retry_policy=policy)])

        done = await coordinator.run_workflow(workflow, timeout=2)

        assert done.status == WorkflowStatus.COMPLETED
        assert done.context.step_results == {"A": "ok"}
        assert len(done.context.errors) == 1

    async def test_no_policy_fails_immediately(self, registry, coordinator):
        """Test a failing step without a retry policy fails the workflow."""
        failures = []
        registry.register("bad", lambda s, ctx: 1 / 0)
        coordinator.on_workflow_failed(lambda event: failures.append(event.step_id))

        workflow = Workflow(id="f", steps=[step("A", step_type="bad")])
        done = await coordinator.run_workflow(workflow, timeout=2)

        assert done.status == WorkflowStatus.FAILED
        assert done.context.errors[0].error_type == "ZeroDivisionError"
        assert failures == ["A"]
        assert coordinator.active_workflows == []

    async def test_in_flight_result_dropped_after_failure(self, registry, coordinator):
        """Test results arriving after a failure do not advance the graph."""
        gate = asyncio.Event()

        async def slow(s, ctx):
            await gate.wait()
            return "late"

        registry.register("slow", slow)
        registry.register("bad", lambda s, ctx: 1 / 0)
        workflow = Workflow(
            id="drop",
            steps=[step("A", step_type="bad"), step("B", step_type="slow"), step("C", "B")],
        )

        await coordinator.run_workflow(workflow, timeout=2)
        gate.set()
        await asyncio.sleep(0.02)

        assert workflow.status == WorkflowStatus.FAILED
        assert workflow.context.step_results == {}
        assert len(coordinator.events.recent(EventType.WORKFLOW_FAILED)) == 1

    async def test_step_timeout(self, registry, coordinator):
        """Test a step exceeding its timeout fails with StepTimeoutError."""

        async def hang(s, ctx):
            await asyncio.sleep(5)

        registry.register("hang", hang)
        workflow = Workflow(id="t", steps=[step("A", step_type="hang", timeout=0.05)])

        done = await coordinator.run_workflow(workflow, timeout=2)

        assert done.status == WorkflowStatus.FAILED
        assert done.context.errors[0].error_type == "StepTimeoutError"


@pytest.mark.asyncio
async def test_pause_and_resume(registry, coordinator):
    """Test pausing stops new launches and resuming continues the graph."""
    gate = asyncio.Event()

    async def blocking(s, ctx):
        await gate.wait()
        return "a"

    registry.register("block", blocking)
    workflow = Workflow(id="p", steps=[step("A", step_type="block"), step("B", "A")])

    await coordinator.start_workflow(workflow)
    await coordinator.pause_workflow("p")
    gate.set()
    await asyncio.sleep(0.02)

    assert workflow.status == WorkflowStatus.PAUSED
    assert workflow.context.step_results == {"A": "a"}

    await coordinator.resume_workflow("p")
    done = await coordinator.wait_for("p", timeout=2)

    assert done.status == WorkflowStatus.COMPLETED
    assert done.context.step_results == {"A": "a", "B": "result-B"}
    types = [e.event_type for e in coordinator.events.recent()]
    assert EventType.WORKFLOW_PAUSED in types
    assert EventType.WORKFLOW_RESUMED in types
