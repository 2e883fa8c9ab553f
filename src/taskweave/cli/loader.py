"""Workflow definition loading from YAML or JSON files."""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..models.workflow_models import Workflow

logger = logging.getLogger(__name__)


def load_workflow(path: Union[str, Path]) -> Workflow:
    """
    Load a workflow definition.

    Top-level ``input`` and ``variables`` keys are moved into the
    workflow context. JSON is read through the YAML parser.

    Raises:
        ValidationError: If the file cannot be parsed or does not describe a workflow
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ValidationError(f"Cannot read workflow definition {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(f"Workflow definition {path} must be a mapping")

    data = dict(data)
    context: Dict[str, Any] = dict(data.pop("context", None) or {})
    for key in ("input", "variables"):
        if key in data:
            context[key] = data.pop(key) or {}
    data["context"] = context

    try:
        workflow = Workflow.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid workflow definition {path}: {e}") from e

    logger.debug(f"Loaded workflow {workflow.id} from {path}")
    return workflow


def parse_vars(pairs: Iterable[str]) -> Dict[str, Any]:
    """
    Parse ``key=value`` pairs; values are read as YAML scalars.

    Raises:
        ValidationError: If a pair has no '='
    """
    variables: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValidationError(f"Invalid variable {pair!r}, expected key=value")
        variables[key.strip()] = yaml.safe_load(value) if value else ""
    return variables
