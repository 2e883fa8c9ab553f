"""Main CLI application entry point."""

import asyncio
import logging
import sys
from typing import Optional, Tuple

import click

from ..config.scheduler_config import SchedulerConfig, StorageConfig
from ..errors import TaskweaveError
from ..models.workflow_models import Workflow, WorkflowStatus
from ..workflow.builtin_agents import builtin_registry
from ..workflow.coordinator import WorkflowCoordinator
from ..workflow.validation import validate_workflow
from .loader import load_workflow, parse_vars
from .renderer import WorkflowRenderer

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose logging",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """
    taskweave - run and validate workflow definitions.

    Validate a definition:
        taskweave validate pipeline.yaml

    Run it with the built-in agents (echo, delay, merge, fail):
        taskweave run pipeline.yaml --var region=eu
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["renderer"] = WorkflowRenderer()


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate(ctx: click.Context, file: str) -> None:
    """Check a workflow definition against the built-in agents."""
    renderer: WorkflowRenderer = ctx.obj["renderer"]
    try:
        workflow = load_workflow(file)
        validate_workflow(workflow, builtin_registry().has_capability)
    except TaskweaveError as e:
        renderer.render_error(str(e))
        sys.exit(1)

    renderer.render_valid(workflow)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--var", "variables",
    multiple=True,
    help="Workflow variable as key=value (repeatable)",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Give up after this many seconds",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose logging",
)
@click.pass_context
def run(
    ctx: click.Context,
    file: str,
    variables: Tuple[str, ...],
    timeout: Optional[float],
    verbose: bool,
) -> None:
    """Execute a workflow definition and print its step results."""
    renderer: WorkflowRenderer = ctx.obj["renderer"]
    verbose = verbose or ctx.obj["verbose"]
    if verbose:
        _configure_logging(True)

    try:
        workflow = load_workflow(file)
        workflow.context.variables.update(parse_vars(variables))
        workflow = asyncio.run(run_workflow(workflow, timeout))
    except asyncio.TimeoutError:
        renderer.render_error(f"Workflow did not finish within {timeout}s")
        sys.exit(1)
    except TaskweaveError as e:
        if verbose:
            logger.exception("Workflow run failed")
        renderer.render_error(str(e))
        sys.exit(1)

    renderer.render_result(workflow)
    if workflow.status != WorkflowStatus.COMPLETED:
        sys.exit(1)


@main.command()
@click.pass_context
def config(ctx: click.Context) -> None:
    """Print the effective configuration."""
    renderer: WorkflowRenderer = ctx.obj["renderer"]
    renderer.render_config(SchedulerConfig(), "Scheduler Configuration")
    renderer.render_config(StorageConfig(), "Storage Configuration")


async def run_workflow(workflow: Workflow, timeout: Optional[float] = None) -> Workflow:
    """Run one workflow to completion with the built-in agents."""
    coordinator = WorkflowCoordinator(step_registry=builtin_registry())
    try:
        return await coordinator.run_workflow(workflow, timeout)
    finally:
        await coordinator.shutdown()


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )


if __name__ == "__main__":
    main()
