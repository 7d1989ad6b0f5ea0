"""Pulse db command - Browse and prune recorded data."""

from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from pulse_cli.cli.error_handler import handle_errors
from pulse_cli.cli.exit_codes import ExitCode

app = typer.Typer(help="Browse and prune recorded disk usage, tweets and history.")
console = Console()


def _open_store(config_file: Optional[Path]):
    from pulse_cli.config import load_config
    from pulse_cli.database.store import SqlEventStore

    config = load_config(config_file)
    return SqlEventStore(config.database_url)


@app.command("disk")
@handle_errors
def disk_usage(
    mount: Optional[str] = typer.Argument(
        None,
        help="Only show readings for this mount point.",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-l",
        help="Number of readings to show.",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Show recorded disk usage readings, newest first.

    Example:
        pulse db disk /var --limit 5
    """
    store = _open_store(config_file)
    try:
        readings = store.recent_disk_usage(mount, limit)
    finally:
        store.close()

    table = Table(title="Disk Usage")
    table.add_column("Recorded", style="green")
    table.add_column("Mount", style="cyan")
    table.add_column("Used", justify="right")

    for reading in readings:
        table.add_row(reading["recorded_at"] or "", reading["mount"], f"{reading['percent_disk_used']:.2f}%")

    console.print(table)


@app.command("tweets")
@handle_errors
def tweets(
    group_name: Optional[str] = typer.Argument(
        None,
        help="Only show tweets of this term group.",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-l",
        help="Number of tweets to show.",
    ),
    popular: bool = typer.Option(
        False,
        "--popular",
        "-p",
        help="Order by favourites instead of recency.",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Show tweets recorded by track-tweets.

    Example:
        pulse db tweets python --popular
    """
    store = _open_store(config_file)
    try:
        rows = store.recent_tweets(group_name, limit, popular=popular)
    finally:
        store.close()

    table = Table(title="Tweets")
    table.add_column("Tweeted", style="green")
    table.add_column("Group", style="magenta")
    table.add_column("User", style="cyan")
    table.add_column("Favourites", justify="right")
    table.add_column("Text")

    for row in rows:
        table.add_row(
            row["tweeted_at"] or "",
            row["group_name"],
            row["username"] or "",
            str(row["favorite_count"]),
            row["text"],
        )

    console.print(table)


@app.command("prune")
@handle_errors
def prune(
    older_than: str = typer.Option(
        "30d",
        "--older-than",
        "-o",
        help="Delete records older than this duration (e.g. 12h, 30d).",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Skip confirmation prompt.",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Delete events, disk usage, tweets and run history older than a duration.

    Example:
        pulse db prune --older-than 90d --force
    """
    from pulse_cli.config import parse_duration
    from pulse_cli.events.bus import utcnow

    seconds = parse_duration(older_than)
    if seconds <= 0:
        console.print("[red]Error:[/red] --older-than must be positive")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    before = utcnow() - timedelta(seconds=seconds)

    if not force:
        confirm = typer.confirm(f"Delete records older than {before.isoformat()}?")
        if not confirm:
            console.print("[yellow]Nothing deleted.[/yellow]")
            raise typer.Exit(code=ExitCode.CANCELLED)

    store = _open_store(config_file)
    try:
        deleted = store.prune(before)
    finally:
        store.close()

    console.print(f"[green]✓[/green] Deleted {deleted} records older than {before.isoformat()}")
