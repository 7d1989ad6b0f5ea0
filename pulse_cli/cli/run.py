"""Pulse run command - Start the daemon and manage the running process."""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from pulse_cli.cli.error_handler import handle_errors
from pulse_cli.cli.exit_codes import ExitCode
from pulse_cli.exceptions import ConfigurationError

app = typer.Typer(help="Start the Pulse daemon and manage the running process.")
console = Console()

PID_FILENAME = "pulse.pid"


def _setup_logging(level: str, format_str: str, log_file: Optional[Path] = None) -> None:
    """Set up logging for the daemon.

    Args:
        level: Log level name
        format_str: Log record format
        log_file: Optional log file path
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=format_str,
        handlers=handlers,
        force=True,
    )


def _pid_file(config_file: Optional[Path]):
    from pulse_cli.config import load_config
    from pulse_cli.daemon.pid import PIDFile

    config = load_config(config_file)
    return config, PIDFile(config.data_dir / PID_FILENAME)


@app.callback(invoke_without_command=True)
@handle_errors
def run(
    ctx: typer.Context,
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
    daemon: bool = typer.Option(
        False,
        "--daemon",
        "-d",
        help="Run in background as daemon.",
    ),
    no_store: bool = typer.Option(
        False,
        "--no-store",
        help="Do not record events and runs in the database.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
) -> None:
    """Start the Pulse daemon.

    The daemon ticks at the configured interval, runs due operations,
    routes their events to alert rules and the live feed, and delivers
    alerts through the configured mediums. SIGTERM or Ctrl+C shuts it
    down gracefully.

    Example:
        pulse run --config pulse.toml
        pulse run --daemon
    """
    if ctx.invoked_subcommand is not None:
        return

    from pulse_cli.config import ensure_directories, validate_config
    from pulse_cli.daemon.service import daemonize, run_daemon

    config, pid_file = _pid_file(config_file)

    # Refuse to start on a structurally broken configuration
    problems = [e for e in validate_config(config) if e.severity == "error"]
    if problems:
        for problem in problems:
            console.print(f"[red]✗[/red] {problem.field}: {problem.message}")
        raise ConfigurationError(f"Configuration has {len(problems)} error(s)")

    ensure_directories(config)

    if pid_file.is_running():
        console.print(f"[red]Error: Daemon is already running[/red] (PID: {pid_file.read()})")
        raise typer.Exit(code=ExitCode.DAEMON_ERROR)

    if pid_file.clear_if_stale():
        console.print("[dim]Removed stale PID file[/dim]")

    console.print("[bold green]Starting Pulse daemon...[/bold green]")
    if verbose:
        console.print(f"Config: {config_file or 'default'}")
        console.print(f"Tick interval: {config.scheduler.tick_interval}s")
        console.print(f"Data directory: {config.data_dir}")

    log_file = config.logging.file
    if daemon and log_file is None:
        log_file = config.data_dir / "daemon.log"
    _setup_logging("DEBUG" if verbose else config.logging.level, config.logging.format, log_file)

    if daemon:
        if sys.platform == "win32":
            console.print("[yellow]Warning: Daemon mode not supported on Windows, running in foreground[/yellow]")
        else:
            console.print("[dim]Forking to background...[/dim]")
            daemonize(log_file)

    try:
        with pid_file:
            asyncio.run(run_daemon(config, {"persist": not no_store}))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
    except RuntimeError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=ExitCode.DAEMON_ERROR)


@app.command()
@handle_errors
def status(
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
    """Check daemon status.

    Example:
        pulse run status
    """
    config, pid_file = _pid_file(config_file)

    pid = pid_file.get_pid()
    if pid is not None:
        console.print(f"[green]● Daemon is running[/green] (PID: {pid})")
        console.print(f"  Data directory: {config.data_dir}")
        console.print(f"  Database: {config.database_url}")
        console.print(f"  Tick interval: {config.scheduler.tick_interval}s")
    else:
        console.print("[yellow]○ Daemon is not running[/yellow]")
        if pid_file.clear_if_stale():
            console.print("[dim]  (removed stale PID file)[/dim]")


@app.command()
@handle_errors
def stop(
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
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Force kill the daemon (SIGKILL).",
    ),
) -> None:
    """Stop the daemon.

    Sends SIGTERM so the daemon finishes in-flight operations and flushes
    pending digests. Use --force to send SIGKILL instead.

    Example:
        pulse run stop
        pulse run stop --force
    """
    _, pid_file = _pid_file(config_file)

    if pid_file.read() is None:
        console.print("[yellow]Daemon is not running (no PID file found)[/yellow]")
        raise typer.Exit(code=ExitCode.DAEMON_ERROR)

    if pid_file.clear_if_stale():
        console.print("[yellow]Daemon is not running (removed stale PID file)[/yellow]")
        raise typer.Exit(code=ExitCode.DAEMON_ERROR)

    sig = signal.SIGKILL if force else signal.SIGTERM
    try:
        pid = pid_file.send_signal(sig)
    except ProcessLookupError:
        console.print("[yellow]Daemon process not found (already stopped)[/yellow]")
        return
    except PermissionError:
        console.print(f"[red]Permission denied: cannot signal process {pid_file.read()}[/red]")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    if force:
        pid_file.path.unlink(missing_ok=True)
        console.print(f"[red]Force killed daemon (PID: {pid})[/red]")
    else:
        console.print(f"[green]Shutdown signal sent to daemon (PID: {pid})[/green]")
        console.print("[dim]Daemon will shut down gracefully...[/dim]")
