"""Tests for the taskweave command line."""

import json

import pytest
import yaml
from click.testing import CliRunner

from taskweave.cli.app import main
from taskweave.cli.loader import load_workflow, parse_vars
from taskweave.errors import ValidationError


def write_definition(tmp_path, data, name="workflow.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data) if name.endswith(".yaml") else json.dumps(data))
    return path


@pytest.fixture
def diamond(tmp_path):
    return write_definition(
        tmp_path,
        {
            "id": "demo",
            "name": "Demo",
            "input": {"region": "eu"},
            "steps": [
                {"id": "A", "type": "echo", "config": {"value": {"a": 1}}},
                {"id": "B", "type": "echo", "dependencies": ["A"], "config": {"value": {"b": 2}}},
                {"id": "C", "type": "delay", "dependencies": ["A"], "config": {"seconds": 0.01}},
                {"id": "D", "type": "merge", "dependencies": ["B", "C"]},
            ],
        },
    )


def test_validate_ok(diamond):
    result = CliRunner().invoke(main, ["validate", str(diamond)])

    assert result.exit_code == 0
    assert "Workflow demo is valid" in result.output


def test_validate_cycle(tmp_path):
    path = write_definition(
        tmp_path,
        {
            "id": "loop",
            "steps": [
                {"id": "A", "type": "echo", "dependencies": ["B"]},
                {"id": "B", "type": "echo", "dependencies": ["A"]},
            ],
        },
    )

    result = CliRunner().invoke(main, ["validate", str(path)])

    assert result.exit_code == 1
    assert "circular dependencies" in result.output


def test_run_completes(diamond):
    result = CliRunner().invoke(main, ["run", str(diamond)])

    assert result.exit_code == 0, result.output
    assert "completed" in result.output


def test_run_failure_exits_nonzero(tmp_path):
    path = write_definition(
        tmp_path,
        {
            "id": "broken",
            "steps": [{"id": "A", "type": "fail", "config": {"message": "planned"}}],
        },
        name="broken.json",
    )

    result = CliRunner().invoke(main, ["run", str(path)])

    assert result.exit_code == 1
    assert "failed" in result.output


def test_run_with_variables(tmp_path):
    """Test --var values reach the steps and conditions."""
    path = write_definition(
        tmp_path,
        {
            "id": "vars",
            "steps": [
                {"id": "A", "type": "echo"},
                {
                    "id": "B",
                    "type": "fail",
                    "dependencies": ["A"],
                    "condition": {"type": "expression", "value": "variables['strict']"},
                },
            ],
        },
    )

    lenient = CliRunner().invoke(main, ["run", str(path), "--var", "strict=false"])
    strict = CliRunner().invoke(main, ["run", str(path), "--var", "strict=true"])

    assert lenient.exit_code == 0, lenient.output
    assert strict.exit_code == 1


def test_config_command():
    result = CliRunner().invoke(main, ["config"])

    assert result.exit_code == 0
    assert "Scheduler Configuration" in result.output
    assert "Storage Configuration" in result.output


def test_load_workflow_moves_context_keys(diamond):
    workflow = load_workflow(diamond)

    assert workflow.context.input == {"region": "eu"}
    assert [s.id for s in workflow.steps] == ["A", "B", "C", "D"]


def test_load_workflow_rejects_non_mapping(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValidationError, match="must be a mapping"):
        load_workflow(path)


def test_parse_vars():
    assert parse_vars(["n=3", "flag=true", "name=eu-west", "empty="]) == {
        "n": 3,
        "flag": True,
        "name": "eu-west",
        "empty": "",
    }
    with pytest.raises(ValidationError):
        parse_vars(["novalue"])
