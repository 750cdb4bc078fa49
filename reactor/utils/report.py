"""Rich rendering of workspace status and operation reports."""

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from ..models.workspace import ServiceStatus, Workspace, WorkspaceReport

_STATUS_STYLES = {
    "running": ("running", "green"),
    "stopped": ("stopped", "yellow"),
    "absent": ("not found", "dim"),
}

_PATH_WIDTH = 30
_ACCOUNT_WIDTH = 15


def _truncate(value: str, width: int) -> str:
    if len(value) <= width:
        return value
    return value[: width - 3] + "..."


def build_status_table(workspace: Workspace, statuses: List[ServiceStatus]) -> Table:
    """Build the service status table for ``workspace list``."""
    table = Table(
        title=f"Workspace {workspace.file_path}",
        caption=f"Workspace hash: {workspace.workspace_hash[:16]}...",
        box=box.ROUNDED,
    )
    table.add_column("Service", style="cyan")
    table.add_column("Path", style="white")
    table.add_column("Account", style="white")
    table.add_column("Status", justify="center")
    table.add_column("Container", style="dim")

    if not statuses:
        table.add_row("[dim]No services[/dim]", "", "", "", "")
        return table

    for status in sorted(statuses, key=lambda s: s.service):
        label, style = _STATUS_STYLES.get(status.status, (status.status, "white"))
        table.add_row(
            status.service,
            _truncate(status.path, _PATH_WIDTH),
            _truncate(status.account, _ACCOUNT_WIDTH),
            Text(label, style=style),
            status.container_id[:12] if status.container_id else "-",
        )

    return table


def build_report_table(report: WorkspaceReport) -> Table:
    """Build a per-service summary of a workspace operation."""
    table = Table(title=f"Workspace {report.operation}", box=box.ROUNDED)
    table.add_column("Service", style="cyan")
    table.add_column("Result", justify="center")
    table.add_column("Container", style="white")
    table.add_column("Detail", style="dim")

    for name, result in sorted(report.results.items()):
        if result.ok:
            outcome = Text(result.outcome, style="green")
        elif result.outcome == "cancelled":
            outcome = Text(result.outcome, style="yellow")
        else:
            outcome = Text(result.outcome, style="red")

        if result.error is not None:
            detail = result.error.error
        elif result.exit_code is not None:
            detail = f"exit code {result.exit_code}"
        else:
            detail = ""

        table.add_row(name, outcome, result.container_name or "-", detail)

    return table


def print_report(report: WorkspaceReport, console: Optional[Console] = None) -> None:
    """Print the report table followed by a one-line summary."""
    console = console or Console()
    console.print(build_report_table(report))

    total = len(report.results)
    succeeded = len(report.succeeded)
    if report.ok:
        console.print(f"[green]{succeeded}/{total} services succeeded[/green]")
    else:
        console.print(
            f"[green]{succeeded}/{total} succeeded[/green], "
            f"[red]{len(report.failed)}/{total} failed[/red]"
        )
