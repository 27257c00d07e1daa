"""Job Commands - Inspect and manage jobs"""

import typer
from rich.console import Console
from rich.panel import Panel

from ..client.endpoints import JobCoreClient, JobCoreError
from ..utils.config_manager import config
from ..utils.formatting import (
    create_job_panel,
    create_jobs_table,
    create_stats_panel,
    print_error,
    print_info,
    print_success,
)

console = Console()


def list_jobs(
    status: list[str] | None = typer.Option(
        None, "--status", "-s", help="Filter by status (repeatable)"
    ),
    name: str | None = typer.Option(None, "--name", "-n", help="Filter by job name"),
    limit: int = typer.Option(20, "--limit", "-l", help="Number of jobs to show"),
    skip: int = typer.Option(0, "--skip", help="Skip first N jobs"),
):
    """📋 List jobs"""
    base_url = config.get("api.base_url")

    try:
        with JobCoreClient(base_url) as client:
            jobs = client.list_jobs(status=status, name=name, limit=limit, skip=skip)

            if not jobs:
                console.print(Panel(
                    "📭 [yellow]No jobs found![/yellow]\n\n"
                    f"• Status: {', '.join(status) if status else 'any'}\n"
                    f"• Name: {name or 'any'}",
                    title="Empty Results",
                    border_style="yellow",
                ))
                return

            console.print(create_jobs_table(jobs))

            if len(jobs) == limit:
                console.print(f"💡 Use [cyan]--skip {skip + limit}[/cyan] to see more")

    except JobCoreError as e:
        print_error(f"Failed to list jobs: {e}")
        raise typer.Exit(1) from None


def show_job(job_id: str = typer.Argument(..., help="Job ID to show")):
    """🔍 Show details of a job"""
    base_url = config.get("api.base_url")

    try:
        with JobCoreClient(base_url) as client:
            job = client.get_job(job_id)
            console.print(create_job_panel(job))

    except JobCoreError as e:
        print_error(f"Failed to get job: {e}")
        raise typer.Exit(1) from None


def show_stats():
    """📊 Show job counts per status"""
    base_url = config.get("api.base_url")

    try:
        with JobCoreClient(base_url) as client:
            console.print(create_stats_panel(client.get_stats()))

    except JobCoreError as e:
        print_error(f"Failed to get stats: {e}")
        raise typer.Exit(1) from None


def retry_job(job_id: str = typer.Argument(..., help="Failed job ID to retry")):
    """🔁 Retry a failed job"""
    base_url = config.get("api.base_url")

    try:
        with JobCoreClient(base_url) as client:
            retried = client.retry_job(job_id)
            print_success(f"Job {job_id} re-enqueued as {retried.get('id')}")

    except JobCoreError as e:
        print_error(f"Failed to retry job: {e}")
        raise typer.Exit(1) from None


def cancel_job(job_id: str = typer.Argument(..., help="Job ID to cancel")):
    """🛑 Cancel a pending or scheduled job"""
    base_url = config.get("api.base_url")

    try:
        with JobCoreClient(base_url) as client:
            print_info(f"Cancelling job: {job_id}")
            client.cancel_job(job_id)
            print_success(f"Job {job_id} cancelled")

    except JobCoreError as e:
        print_error(f"Failed to cancel job: {e}")
        raise typer.Exit(1) from None
