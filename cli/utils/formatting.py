"""Rich Formatting Utilities for CLI Output"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

STATUS_STYLES = {
    "pending": "yellow",
    "running": "blue",
    "completed": "green",
    "failed": "red",
    "cancelled": "dim",
    "scheduled": "magenta",
}


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


def _status_text(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    """Create a formatted table for a jobs list"""
    table = Table(title="Jobs", box=box.ROUNDED)

    table.add_column("ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Name", justify="left", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Priority", justify="center", style="yellow")
    table.add_column("Attempts", justify="right")
    table.add_column("Created", justify="left", style="blue")

    for job in jobs:
        attempts = f"{job.get('attempts', 0)}/{job.get('maxRetries', 0) + 1}"
        table.add_row(
            job.get("id", ""),
            job.get("name", ""),
            _status_text(job.get("status", "")),
            job.get("priority", "—"),
            attempts,
            job.get("createdAt", "—"),
        )

    return table


def create_stats_panel(stats: dict[str, Any]) -> Panel:
    """Create formatted panel for queue statistics"""
    lines = [f"📊 [bold blue]Total:[/bold blue] {stats.get('total', 0)}", ""]
    for status, style in STATUS_STYLES.items():
        lines.append(f"• {status.title()}: [{style}]{stats.get(status, 0)}[/{style}]")

    return Panel("\n".join(lines), title="Queue Statistics", border_style="green")


def create_job_panel(job: dict[str, Any]) -> Panel:
    """Create formatted panel with the details of one job"""
    lines = [
        f"🆔 [bold]ID:[/bold] [cyan]{job.get('id', 'unknown')}[/cyan]",
        f"📝 [bold]Name:[/bold] [magenta]{job.get('name', 'unknown')}[/magenta]",
        f"✅ [bold]Status:[/bold] {_status_text(job.get('status', 'unknown'))}",
        f"⚡ [bold]Priority:[/bold] [yellow]{job.get('priority', 'unknown')}[/yellow]",
        f"🔁 [bold]Attempts:[/bold] {job.get('attempts', 0)} "
        f"(max retries {job.get('maxRetries', 0)})",
        f"⏱️ [bold]Timeout:[/bold] {job.get('timeout', '—')}ms",
        f"📅 [bold]Created:[/bold] [blue]{job.get('createdAt', '—')}[/blue]",
    ]

    optional = [
        ("cronExpression", "🗓️ Cron"),
        ("nextRun", "⏭️ Next run"),
        ("startedAt", "▶️ Started"),
        ("completedAt", "🏁 Completed"),
        ("failedAt", "💥 Failed"),
        ("error", "⚠️ Error"),
    ]
    for key, label in optional:
        if job.get(key) is not None:
            lines.append(f"{label}: {job[key]}")

    if job.get("data"):
        lines.append(f"📦 [bold]Data:[/bold] {job['data']}")
    if job.get("result") is not None:
        lines.append(f"🎯 [bold]Result:[/bold] {job['result']}")

    return Panel("\n".join(lines), title="Job Details", border_style="blue")


def create_dead_letters_table(entries: list[dict[str, Any]]) -> Table:
    """Create a formatted table for dead-letter entries"""
    table = Table(title="Dead Letters", box=box.ROUNDED)

    table.add_column("Entry ID", justify="left", style="cyan", no_wrap=True)
    table.add_column("Job", justify="left", style="magenta")
    table.add_column("Name", justify="left")
    table.add_column("Retries", justify="right", style="yellow")
    table.add_column("Failed At", justify="left", style="blue")
    table.add_column("Error", justify="left", style="red")

    for entry in entries:
        error = entry.get("error", "")
        table.add_row(
            entry.get("id", ""),
            entry.get("originalJobId", ""),
            entry.get("name", ""),
            str(entry.get("retryCount", 0)),
            entry.get("failedAt", "—"),
            error[:60] + "..." if len(error) > 60 else error,
        )

    return table
