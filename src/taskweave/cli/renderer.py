"""Rich output rendering for the command line."""

import json
from typing import Any, Optional

from pydantic import BaseModel
from rich.console import Console
from rich.table import Table

from ..models.workflow_models import Workflow, WorkflowStatus

_STATUS_STYLES = {
    WorkflowStatus.COMPLETED: "green",
    WorkflowStatus.FAILED: "red",
    WorkflowStatus.RUNNING: "yellow",
    WorkflowStatus.PAUSED: "yellow",
    WorkflowStatus.PENDING: "dim",
}


class WorkflowRenderer:
    """Renders workflows, step results and configuration."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def render_error(self, message: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {message}")

    def render_valid(self, workflow: Workflow) -> None:
        self.console.print(
            f"[green]Workflow {workflow.id} is valid[/green] ({len(workflow.steps)} steps)"
        )

    def render_result(self, workflow: Workflow) -> None:
        """Step result table followed by the final status line."""
        context = workflow.context
        table = Table(title=workflow.name or workflow.id, show_header=True)
        table.add_column("Step", style="cyan")
        table.add_column("Type")
        table.add_column("Status")
        table.add_column("Attempts", justify="right")
        table.add_column("Result")

        for step in workflow.steps:
            errors = context.errors_for(step.id)
            if step.id in context.step_results:
                status = "[green]completed[/green]"
                result = _short(context.step_results[step.id])
            elif errors:
                status = "[red]failed[/red]"
                result = errors[-1].error
            else:
                status = "[dim]not run[/dim]"
                result = ""
            attempts = len(errors) + (1 if step.id in context.step_results else 0)
            table.add_row(step.id, step.type, status, str(attempts), result)

        self.console.print(table)
        style = _STATUS_STYLES.get(workflow.status, "white")
        self.console.print(
            f"Workflow [bold]{workflow.id}[/bold]: [{style}]{workflow.status.value}[/{style}]"
        )

    def render_config(self, config: BaseModel, title: str) -> None:
        table = Table(title=title, show_header=True)
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        table.add_column("Description", style="dim")

        for name, field in type(config).model_fields.items():
            table.add_row(name, str(getattr(config, name)), field.description or "")
        self.console.print(table)


def _short(value: Any, limit: int = 80) -> str:
    try:
        text = json.dumps(value, default=str)
    except (TypeError, ValueError):
        text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."
