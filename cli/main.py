"""Job Core CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from . import __version__
from .client.endpoints import JobCoreClient, JobCoreError
from .commands import config, dlq, jobs
from .utils.config_manager import config as config_manager
from .utils.formatting import print_error, print_info

console = Console()

# Create main Typer app
app = typer.Typer(
    name="jobcore",
    help="⚙️ Job Core - background job queue admin CLI",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(dlq.app, name="dlq")
app.add_typer(config.app, name="config")

# Job commands live at the top level
app.command("list")(jobs.list_jobs)
app.command("show")(jobs.show_job)
app.command("stats")(jobs.show_stats)
app.command("retry")(jobs.retry_job)
app.command("cancel")(jobs.cancel_job)


@app.command()
def status():
    """📊 Check system status and connectivity"""
    base_url = config_manager.get("api.base_url")
    print_info(f"Checking connection to: {base_url}")

    try:
        with JobCoreClient(base_url) as client:
            health = client.health_check()

    except JobCoreError as e:
        print_error(f"Failed to connect: {e}")
        console.print(Panel(
            f"🚫 [red]Connection Failed[/red]\n\n"
            f"Make sure the Job Core API is running at:\n"
            f"[blue]{base_url}[/blue]\n\n"
            f"You can update the API URL with:\n"
            f"[cyan]jobcore config set api.base_url <url>[/cyan]",
            title="Connection Error",
            border_style="red",
        ))
        raise typer.Exit(1) from None

    jobs_health = health.get("jobs", {})
    console.print(Panel(
        f"🚀 [green]Connected Successfully![/green]\n\n"
        f"• Version: [cyan]{health.get('version', 'unknown')}[/cyan]\n"
        f"• Environment: [yellow]{health.get('environment', 'unknown')}[/yellow]\n"
        f"• Queue: [magenta]{jobs_health.get('message', 'unknown')}[/magenta]\n"
        f"• Status: [green]{jobs_health.get('status', 'unknown')}[/green]\n"
        f"• API URL: [blue]{base_url}[/blue]",
        title="System Status",
        border_style="green",
    ))


def _version_callback(value: bool):
    if value:
        console.print(f"Job Core CLI v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """
    ⚙️ Job Core CLI

    Inspect the job queue, retry or cancel jobs, and manage the dead-letter queue.
    """


if __name__ == "__main__":
    app()
