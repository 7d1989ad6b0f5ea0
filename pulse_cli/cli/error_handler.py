"""Consistent error reporting for Pulse CLI commands."""

import logging
from functools import wraps
from typing import Any, Callable, TypeVar

import typer
from rich.console import Console

from pulse_cli.cli.exit_codes import ExitCode
from pulse_cli.exceptions import (
    ConfigurationError,
    DispatchError,
    OperationError,
    PulseError,
    SendError,
    UnknownOperation,
)

# Errors go to stderr
console = Console(stderr=True)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def exit_code_for(error: PulseError) -> int:
    """Map a Pulse exception to the exit code reported by the CLI."""
    if isinstance(error, UnknownOperation) and "schedule" not in error.details:
        return ExitCode.NOT_FOUND
    if isinstance(error, ConfigurationError):
        return ExitCode.CONFIGURATION_ERROR
    if isinstance(error, OperationError):
        return ExitCode.OPERATION_ERROR
    if isinstance(error, (SendError, DispatchError)):
        return ExitCode.DELIVERY_ERROR
    return ExitCode.GENERAL_ERROR


def print_error(error: PulseError) -> None:
    """Print a diagnostic naming the offending item."""
    console.print(f"[red]Error:[/red] {error.message}")
    for key, value in error.details.items():
        console.print(f"  [dim]{key}:[/dim] {value}")


def handle_errors(func: F) -> F:
    """Decorator turning exceptions into a diagnostic and an exit code.

    - PulseError subclasses: message, details and a specific exit code
    - KeyboardInterrupt: cancellation message with exit code 130
    - Anything else: generic error with exit code 1

    Example:
        @app.command()
        @handle_errors
        def validate():
            raise ConfigurationError("Invalid config")
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except PulseError as e:
            code = exit_code_for(e)
            logger.error(f"{type(e).__name__}: {e}")
            print_error(e)
            raise typer.Exit(code=code)
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            raise typer.Exit(code=ExitCode.CANCELLED)
        except typer.Exit:
            raise
        except Exception as e:
            logger.exception("Unexpected error occurred")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --debug for more details[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]
