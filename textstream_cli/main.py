"""Text Stream CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from .client.endpoints import TextStreamClient, TextStreamClientError
from .commands import config, jobs
from .utils.config_manager import config as config_manager
from .utils.formatting import create_job_panel, print_error, print_info, print_success

console = Console()

app = typer.Typer(
    name="textstream",
    help="Text Stream - background text processing CLI",
    rich_markup_mode="rich",
)

app.add_typer(jobs.app, name="jobs")
app.add_typer(config.app, name="config")


@app.command()
def process(
    text: str = typer.Argument(..., help="Text to process"),
    watch: bool = typer.Option(
        True, "--watch/--no-watch", help="Follow progress until the job finishes"
    ),
):
    """⚡ Submit text for processing"""
    try:
        with TextStreamClient() as client:
            job = client.process_text(text)
            print_success(f"Job created: {job['id']}")

            if not watch:
                print_info(f"Follow it with: textstream jobs show {job['id']}")
                return

            job = jobs.watch_job(client, job["id"])

    except TextStreamClientError as e:
        print_error(f"Processing failed: {e}")
        raise typer.Exit(1) from None

    console.print(create_job_panel(job))
    if job.get("status") == "Failed":
        raise typer.Exit(1)


@app.command()
def status():
    """📊 Check system status and connectivity"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with TextStreamClient(base_url) as client:
            health = client.health_check()

    except TextStreamClientError as e:
        print_error(f"Failed to connect: {e}")
        console.print(
            Panel(
                f"🚫 [red]Connection Failed[/red]\n\n"
                f"Make sure the Text Stream API is running at:\n"
                f"[blue]{base_url}[/blue]\n\n"
                f"You can update the API URL with:\n"
                f"[cyan]textstream config set api.base_url <url>[/cyan]",
                title="Connection Error",
                border_style="red",
            )
        )
        raise typer.Exit(1) from None

    worker = health.get("worker") or {}
    healthy = health.get("ok", False)
    console.print(
        Panel(
            f"{'🚀 [green]Healthy[/green]' if healthy else '⚠️ [yellow]Degraded[/yellow]'}"
            f"\n\n"
            f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
            f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
            f"• Worker running: [cyan]{worker.get('running', False)}[/cyan]\n"
            f"• Active jobs: [cyan]{worker.get('active_jobs', 0)}"
            f"/{worker.get('capacity', 0)}[/cyan]\n"
            f"• Queued jobs: [cyan]{worker.get('queue_depth', 0)}[/cyan]\n"
            f"• API URL: [blue]{base_url}[/blue]",
            title="System Status",
            border_style="green" if healthy else "yellow",
        )
    )
    if not healthy:
        raise typer.Exit(1)


@app.command()
def version():
    """📎 Show CLI version information"""
    from . import __version__

    console.print(f"Text Stream CLI v{__version__}")


if __name__ == "__main__":
    app()
