"""Dead Letter Commands - Inspect, replay and purge permanently failed jobs"""

import typer
from rich.console import Console
from rich.prompt import Confirm

from ..client.endpoints import JobCoreClient, JobCoreError
from ..utils.config_manager import config
from ..utils.formatting import create_dead_letters_table, print_error, print_info, print_success

console = Console()
app = typer.Typer(name="dlq", help="Dead-letter queue commands")


@app.command("list")
def list_dead_letters(
    limit: int = typer.Option(20, "--limit", "-l", help="Number of entries to show"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip first N entries"),
):
    """📋 List dead-letter entries, newest first"""
    base_url = config.get("api.base_url")

    try:
        with JobCoreClient(base_url) as client:
            entries = client.list_dead_letters(limit=limit, offset=offset)

            if not entries:
                console.print("[green]Dead-letter queue is empty[/green]")
                return

            console.print(create_dead_letters_table(entries))

    except JobCoreError as e:
        print_error(f"Failed to list dead letters: {e}")
        raise typer.Exit(1) from None


@app.command("replay")
def replay_dead_letter(entry_id: str = typer.Argument(..., help="Dead-letter entry ID")):
    """🔁 Re-enqueue a dead-letter entry as a new job"""
    base_url = config.get("api.base_url")

    try:
        with JobCoreClient(base_url) as client:
            result = client.replay_dead_letter(entry_id)
            print_success(f"Replayed {entry_id} as job {result.get('jobId')}")

    except JobCoreError as e:
        print_error(f"Failed to replay dead letter: {e}")
        raise typer.Exit(1) from None


@app.command("purge")
def purge_dead_letters(
    older_than_days: int | None = typer.Option(
        None, "--older-than-days", "-d", help="Defaults to the server retention window"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """🧹 Delete old dead-letter entries"""
    if not yes and not Confirm.ask("⚠️ Permanently delete old dead-letter entries?"):
        console.print("Purge cancelled.")
        return

    base_url = config.get("api.base_url")

    try:
        with JobCoreClient(base_url) as client:
            result = client.purge_dead_letters(older_than_days=older_than_days)
            purged = result.get("purged", 0)
            if purged:
                print_success(f"Purged {purged} dead-letter entries")
            else:
                print_info("Nothing to purge")

    except JobCoreError as e:
        print_error(f"Failed to purge dead letters: {e}")
        raise typer.Exit(1) from None
