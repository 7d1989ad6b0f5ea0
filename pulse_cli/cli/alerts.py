"""Pulse alerts command - Inspect alert rules and stored events."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from pulse_cli.cli.error_handler import handle_errors

app = typer.Typer(help="Inspect alert rules and recorded events.")
console = Console()


@app.command("list")
@handle_errors
def list_alerts(
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
    """List configured alert rules.

    Example:
        pulse alerts list
    """
    from pulse_cli.config import load_config
    from pulse_cli.engine import build_alert_rules

    config = load_config(config_file)
    rules = build_alert_rules(config.alerts)

    table = Table(title="Alert Rules")
    table.add_column("Name", style="cyan")
    table.add_column("Event", style="magenta")
    table.add_column("Type", style="bold")
    table.add_column("Interval")
    table.add_column("Mediums", style="green")

    for rule in rules:
        if rule.is_digest:
            kind, interval = "digest", rule.policy.window
        else:
            kind, interval = "alarm", rule.policy.cooldown
        table.add_row(rule.name, rule.event_name, kind, str(interval), ", ".join(rule.mediums))

    console.print(table)


@app.command("events")
@handle_errors
def recent_events(
    event_name: Optional[str] = typer.Argument(
        None,
        help="Only show events with this name.",
    ),
    limit: int = typer.Option(
        10,
        "--limit",
        "-l",
        help="Number of events to show.",
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
    """Show recently recorded events.

    Example:
        pulse alerts events high-disk-usage
    """
    from pulse_cli.config import load_config
    from pulse_cli.database.store import SqlEventStore

    config = load_config(config_file)
    store = SqlEventStore(config.database_url)
    try:
        readings = store.recent_readings(event_name, limit)
    finally:
        store.close()

    table = Table(title="Recent Events")
    table.add_column("Occurred", style="green")
    table.add_column("Event", style="magenta")
    table.add_column("Source", style="cyan")
    table.add_column("ID", style="dim")

    for reading in readings:
        table.add_row(reading["occurred_at"] or "", reading["event_name"], reading["source"], reading["event_id"][:8])

    console.print(table)
