"""Pulse jobs command - Inspect and run scheduled operations."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from pulse_cli.cli.error_handler import handle_errors
from pulse_cli.cli.exit_codes import ExitCode

app = typer.Typer(help="Inspect and run scheduled operations.")
console = Console()

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to configuration file.",
    exists=True,
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
)


@app.command("list")
@handle_errors
def list_jobs(config_file: Optional[Path] = ConfigOption) -> None:
    """List configured schedules and when they fire next.

    Example:
        pulse jobs list
    """
    from pulse_cli.config import load_config
    from pulse_cli.engine import PulseEngine

    config = load_config(config_file)
    engine = PulseEngine(config).build()

    table = Table(title="Scheduled Operations")
    table.add_column("Operation", style="cyan")
    table.add_column("Trigger", style="green")
    table.add_column("Next Run")

    for entry in engine.status()["schedules"]:
        next_fire = entry["next_fire"] or "N/A"
        table.add_row(entry["operation"], entry["trigger"], next_fire)

    console.print(table)

    unscheduled = sorted(set(engine.registry.operations) - {s.operation_name for s in engine.registry.schedules})
    if unscheduled:
        console.print(f"[dim]Unscheduled operations: {', '.join(unscheduled)}[/dim]")


@app.command("run")
@handle_errors
def run_job(
    name: str = typer.Argument(
        ...,
        help="Name of the operation to run immediately.",
    ),
    config_file: Optional[Path] = ConfigOption,
    no_store: bool = typer.Option(
        False,
        "--no-store",
        help="Do not record the event and run in the database.",
    ),
) -> None:
    """Run an operation immediately (outside of its schedule).

    The produced event goes through alert rules and mediums exactly as a
    scheduled one would; pending digests are flushed before exiting.

    Example:
        pulse jobs run check-disk-usage
    """
    from pulse_cli.config import ensure_directories, load_config
    from pulse_cli.database.store import SqlEventStore
    from pulse_cli.engine import PulseEngine

    config = load_config(config_file)
    store = None
    if not no_store:
        ensure_directories(config)
        store = SqlEventStore(config.database_url)

    engine = PulseEngine(config, store=store)
    console.print(f"[bold]Running operation:[/bold] {name}")

    async def execute():
        try:
            return await engine.run_once(name)
        finally:
            await engine.stop(grace=0)

    try:
        run = asyncio.run(execute())
    finally:
        if store is not None:
            store.close()

    if not run.success:
        console.print(f"[red]✗[/red] Operation failed: {run.error}")
        raise typer.Exit(code=ExitCode.OPERATION_ERROR)

    console.print(f"[green]✓[/green] {run.event.name} produced in {run.duration.total_seconds():.2f}s")
    console.print(Syntax(json.dumps(dict(run.event.payload), indent=2, default=str), "json", theme="monokai"))


@app.command("history")
@handle_errors
def job_history(
    name: Optional[str] = typer.Argument(
        None,
        help="Operation to show history for (or all if not specified).",
    ),
    limit: int = typer.Option(
        10,
        "--limit",
        "-l",
        help="Number of history entries to show.",
    ),
    config_file: Optional[Path] = ConfigOption,
) -> None:
    """Show operation execution history.

    Example:
        pulse jobs history
        pulse jobs history check-disk-usage --limit 20
    """
    from pulse_cli.config import load_config
    from pulse_cli.database.store import SqlEventStore

    config = load_config(config_file)
    store = SqlEventStore(config.database_url)
    try:
        history = store.recent_runs(name, limit)
        counts = store.run_counts(name)
    finally:
        store.close()

    table = Table(title=f"Run History{f' for {name}' if name else ''}")
    table.add_column("Operation", style="cyan")
    table.add_column("Started", style="green")
    table.add_column("Tick")
    table.add_column("Status", style="bold")
    table.add_column("Event / Error")

    for record in history:
        status = "[green]success[/green]" if record["success"] else "[red]failed[/red]"
        outcome = record["event_name"] if record["success"] else (record["error"] or "")
        table.add_row(
            record["operation_name"],
            record["started_at"] or "",
            str(record["tick"]) if record["tick"] else "manual",
            status,
            outcome,
        )

    console.print(table)
    console.print(f"[dim]{counts['success']} succeeded, {counts['failure']} failed[/dim]")
