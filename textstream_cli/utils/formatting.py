"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "Pending": "yellow",
    "Running": "blue",
    "Completed": "green",
    "Cancelled": "magenta",
    "Failed": "red",
}

TERMINAL_STATUSES = frozenset({"Completed", "Cancelled", "Failed"})


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def format_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _preview(text: str | None, length: int = 40) -> str:
    if not text:
        return "-"
    return escape(text[:length] + "..." if len(text) > length else text)


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for the jobs list"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Status", justify="center")
    table.add_column("Progress", justify="right", style="yellow")
    table.add_column("Created", justify="left", style="dim")
    table.add_column("Input", justify="left", style="white")

    for job in jobs:
        table.add_row(
            str(job.get("id", ""))[:8],  # Short ID
            format_status(job.get("status", "")),
            f"{job.get('progress_percentage', 0):.1f}%",
            str(job.get("created_at", ""))[:19],
            _preview(job.get("input_text")),
        )

    return table


def create_job_panel(job: dict[str, Any]) -> Panel:
    """Create formatted panel with the details of one job"""
    status = job.get("status", "")
    lines = [
        f"• ID: [cyan]{job.get('id', '')}[/cyan]",
        f"• Status: {format_status(status)}",
        f"• Progress: [yellow]{job.get('progress_percentage', 0):.2f}%[/yellow]",
        f"• Created: [dim]{job.get('created_at') or '-'}[/dim]",
        f"• Started: [dim]{job.get('started_at') or '-'}[/dim]",
        f"• Finished: [dim]{job.get('completed_at') or '-'}[/dim]",
        "",
        f"[bold]Input[/bold]\n{escape(job.get('input_text', ''))}",
    ]

    if job.get("processed_text"):
        result = escape(job["processed_text"])
        lines.append(f"\n[bold]Result[/bold]\n[green]{result}[/green]")
    if job.get("error_message"):
        error = escape(job["error_message"])
        lines.append(f"\n[bold]Error[/bold]\n[red]{error}[/red]")

    return Panel(
        "\n".join(lines),
        title="Job Details",
        border_style=STATUS_STYLES.get(status, "blue"),
    )
