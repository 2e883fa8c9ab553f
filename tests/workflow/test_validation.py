"""Tests for workflow graph validation."""

import pytest

from taskweave.errors import ValidationError
from taskweave.models.workflow_models import StepCondition, Workflow, WorkflowStep
from taskweave.workflow.validation import find_cycle, validate_workflow


def step(step_id, *deps, step_type="echo", **kwargs):
    return WorkflowStep(id=step_id, type=step_type, dependencies=list(deps), **kwargs)


def always(step_type):
    return True


def test_find_cycle_none_for_dag():
    """Test a diamond graph has no cycle."""
    steps = [step("A"), step("B", "A"), step("C", "A"), step("D", "B", "C")]
    assert find_cycle(steps) is None


def test_find_cycle_reports_path():
    """Test a three-step cycle is reported as a closed path."""
    steps = [step("A", "C"), step("B", "A"), step("C", "B")]
    cycle = find_cycle(steps)

    assert cycle[0] == cycle[-1]
    assert set(cycle) == {"A", "B", "C"}


def test_find_cycle_self_dependency():
    assert find_cycle([step("A", "A")]) == ["A", "A"]


def test_missing_fields():
    """Test empty workflows are rejected."""
    with pytest.raises(ValidationError, match="missing required fields"):
        validate_workflow(Workflow(id="wf", steps=[]), always)
    with pytest.raises(ValidationError, match="missing required fields"):
        validate_workflow(Workflow(id="", steps=[step("A")]), always)


def test_duplicate_step_ids():
    with pytest.raises(ValidationError, match="duplicate step ids"):
        validate_workflow(Workflow(id="wf", steps=[step("A"), step("A")]), always)


def test_unknown_dependency():
    with pytest.raises(ValidationError, match="unknown steps"):
        validate_workflow(Workflow(id="wf", steps=[step("A", "Z")]), always)


def test_cycle_rejected():
    """Test cycles fail validation."""
    workflow = Workflow(id="wf", steps=[step("A", "B"), step("B", "A")])
    with pytest.raises(ValidationError, match="circular dependencies detected"):
        validate_workflow(workflow, always)


def test_unknown_step_type():
    """Test steps need a registered capability."""
    workflow = Workflow(id="wf", steps=[step("A"), step("B", step_type="mystery")])
    with pytest.raises(ValidationError, match="No agent available for step type: mystery"):
        validate_workflow(workflow, lambda step_type: step_type == "echo")


def test_unsafe_condition_rejected():
    """Test conditions are vetted at validation time."""
    workflow = Workflow(
        id="wf",
        steps=[step("A", condition=StepCondition(value="__import__('os').system('true')"))],
    )
    with pytest.raises(ValidationError, match="not allowed"):
        validate_workflow(workflow, always)


def test_valid_workflow_passes():
    workflow = Workflow(
        id="wf",
        steps=[step("A"), step("B", "A", condition=StepCondition(value="results['A'] == 1"))],
    )
    validate_workflow(workflow, always)
