"""CLI command modules for Pulse."""

from pulse_cli.cli import alerts, config, db, jobs, run
from pulse_cli.cli.error_handler import handle_errors
from pulse_cli.cli.exit_codes import ExitCode

__all__ = [
    "alerts",
    "config",
    "db",
    "jobs",
    "run",
    "ExitCode",
    "handle_errors",
]
