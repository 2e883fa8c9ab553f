"""Tests for the in-memory state store."""

import pytest

from taskweave.models.task_models import Task, TaskStatus
from taskweave.models.workflow_models import Workflow, WorkflowStep
from taskweave.storage.base import TASK, WORKFLOW, record_kind
from taskweave.storage.memory import InMemoryStateStore


@pytest.mark.asyncio
class TestInMemoryStateStore:
    """Test suite for InMemoryStateStore."""

    async def test_save_and_load_task(self):
        store = InMemoryStateStore()
        task = Task(id="t1", type="work", input={"n": 1})

        await store.save(task)
        task.status = TaskStatus.COMPLETED
        loaded = await store.load("t1")

        assert loaded.id == "t1"
        assert loaded.input == {"n": 1}
        assert loaded.status == TaskStatus.PENDING
        assert loaded is not task

    async def test_kinds_are_separate(self):
        """Test tasks and workflows with the same id do not collide."""
        store = InMemoryStateStore()
        await store.save(Task(id="same", type="work"))
        await store.save(Workflow(id="same", steps=[WorkflowStep(id="A", type="echo")]))

        assert isinstance(await store.load("same", kind=TASK), Task)
        assert isinstance(await store.load("same", kind=WORKFLOW), Workflow)
        assert len(await store.list_all(TASK)) == 1
        assert len(await store.list_all(WORKFLOW)) == 1

    async def test_delete(self):
        store = InMemoryStateStore()
        await store.save(Task(id="t1", type="work"))

        assert await store.delete("t1") is True
        assert await store.delete("t1") is False
        assert await store.load("t1") is None


def test_record_kind_rejects_other_types():
    assert record_kind(Task(type="x")) == TASK
    with pytest.raises(TypeError):
        record_kind({"id": "x"})
