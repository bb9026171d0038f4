"""Job Commands - inspect and manage submitted jobs"""

import time
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn

from ..client.endpoints import TextStreamClient, TextStreamClientError
from ..utils.config_manager import config
from ..utils.formatting import (
    TERMINAL_STATUSES,
    create_job_panel,
    create_jobs_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Job listing, inspection and cancellation commands")


@app.command("list")
def list_jobs():
    """📋 List jobs submitted from this CLI"""
    try:
        with TextStreamClient() as client:
            data = client.list_jobs()

        jobs = data.get("jobs", [])
        if not jobs:
            console.print(
                Panel(
                    "📭 [yellow]No jobs yet![/yellow]\n\n"
                    "Submit one with: [cyan]textstream process \"Hello\"[/cyan]",
                    title="Empty Results",
                    border_style="yellow",
                )
            )
            return

        console.print(create_jobs_table(jobs))
        print_info(f"Showing {len(jobs)} of {data.get('total', len(jobs))} jobs")

    except TextStreamClientError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None


@app.command("show")
def show_job(job_id: str = typer.Argument(..., help="Job ID")):
    """🔍 Show the details of one job"""
    try:
        with TextStreamClient() as client:
            job = client.get_job(job_id)
        console.print(create_job_panel(job))

    except TextStreamClientError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None


@app.command("cancel")
def cancel_job(job_id: str = typer.Argument(..., help="Job ID")):
    """🛑 Cancel a pending or running job"""
    try:
        with TextStreamClient() as client:
            result = client.cancel_job(job_id)
        print_success(f"Cancellation requested for job {result.get('job_id', job_id)}")

    except TextStreamClientError as e:
        print_error(f"Failed to cancel job: {e}")
        raise typer.Exit(1) from None


def watch_job(client: TextStreamClient, job_id: str) -> dict[str, Any]:
    """
    Poll a job with a progress bar until it reaches a terminal state.

    Ctrl-C requests cancellation instead of abandoning the job.
    """
    poll_interval = float(config.get("client.poll_interval_s", 0.5))
    job = client.get_job(job_id)

    with Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>6.2f}%"),
        console=console,
    ) as progress:
        task = progress.add_task(job.get("status", "Pending"), total=100)

        while True:
            progress.update(
                task,
                completed=job.get("progress_percentage", 0),
                description=job.get("status", ""),
            )
            if job.get("status") in TERMINAL_STATUSES:
                break

            try:
                time.sleep(poll_interval)
            except KeyboardInterrupt:
                print_warning("Interrupted, requesting cancellation...")
                try:
                    client.cancel_job(job_id)
                except TextStreamClientError as e:
                    # Usually the job finished in the meantime
                    print_warning(f"Cancellation not accepted: {e}")

            job = client.get_job(job_id)

    return job
