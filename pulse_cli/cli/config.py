"""Pulse config command - Configuration management."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from pulse_cli.cli.error_handler import handle_errors
from pulse_cli.cli.exit_codes import ExitCode

app = typer.Typer(help="Manage Pulse configuration.")
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


@app.command("show")
@handle_errors
def show_config(
    section: Optional[str] = typer.Argument(
        None,
        help="Configuration section to show (e.g., scheduler, email, alerts).",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, yaml, json).",
    ),
    unmask: bool = typer.Option(
        False,
        "--unmask",
        help="Show unmasked secrets (use with caution).",
    ),
    config_file: Optional[Path] = ConfigOption,
) -> None:
    """Show current configuration.

    Example:
        pulse config show
        pulse config show scheduler
        pulse config show --format yaml
    """
    from pulse_cli.config import config_to_dict, export_config_json, export_config_yaml, load_config

    config = load_config(config_file)

    if format == "yaml":
        console.print(Syntax(export_config_yaml(config, mask_secrets=not unmask), "yaml", theme="monokai"))
        return
    elif format == "json":
        console.print(Syntax(export_config_json(config, mask_secrets=not unmask), "json", theme="monokai"))
        return
    elif format != "table":
        console.print(f"[red]Unknown format: {format}[/red]")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    data = config_to_dict(config, mask_secrets=not unmask)
    sections = [section] if section else list(data.keys())

    for sec in sections:
        if sec not in data:
            console.print(f"[red]Unknown section: {sec}[/red]")
            continue

        value = data[sec]
        table = Table(title=sec.replace("_", " ").capitalize())
        if isinstance(value, dict):
            table.add_column("Key", style="cyan")
            table.add_column("Value", style="green")
            for key, item in value.items():
                table.add_row(key, "" if item is None else str(item))
        elif isinstance(value, list):
            table.add_column("#", style="dim")
            table.add_column("Entry", style="green")
            for i, item in enumerate(value):
                entry = ", ".join(f"{k}={v}" for k, v in item.items()) if isinstance(item, dict) else str(item)
                table.add_row(str(i), entry)
        else:
            table.add_column("Value", style="green")
            table.add_row(str(value))

        console.print(table)
        console.print()


@app.command("validate")
@handle_errors
def validate(config_file: Optional[Path] = ConfigOption) -> None:
    """Validate the configuration.

    Checks schedules, cron expressions, alert rules and medium references.
    Exits with a configuration error code if any error is found.

    Example:
        pulse config validate
    """
    from pulse_cli.config import get_config_path, load_config, validate_config

    config_path = config_file or get_config_path()
    config = load_config(config_file)

    console.print("[bold]Validating configuration...[/bold]")
    console.print()

    exists = config_path.exists()
    status = "[green]✓[/green]" if exists else "[yellow]![/yellow]"
    console.print(f"  {status} Config file {config_path}" + ("" if exists else " [dim](not found, using defaults)[/dim]"))

    all_passed = True
    errors = validate_config(config)
    if errors:
        console.print()
        console.print("[bold yellow]Validation Results:[/bold yellow]")
        for error in errors:
            if error.severity == "error":
                status = "[red]✗[/red]"
                all_passed = False
            else:
                status = "[yellow]![/yellow]"
            console.print(f"  {status} {error.field}: {error.message}")

    console.print()
    if all_passed:
        console.print("[green]Configuration is valid.[/green]")
    else:
        console.print("[red]Configuration has errors.[/red]")
        raise typer.Exit(code=ExitCode.CONFIGURATION_ERROR)


@app.command("init")
@handle_errors
def init_config(
    path: Optional[Path] = typer.Argument(
        None,
        help="Where to write the config file (default: ~/.config/pulse/config.toml).",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration.",
    ),
) -> None:
    """Write an example configuration file.

    Example:
        pulse config init
        pulse config init ./pulse.toml --force
    """
    from pulse_cli.config import get_config_path, write_example_config

    target = write_example_config(path or get_config_path(), force=force)
    console.print(f"[green]✓[/green] Configuration written to {target}")


@app.command("path")
def config_path() -> None:
    """Show configuration file path.

    Example:
        pulse config path
    """
    from pulse_cli.config import get_config_path

    path = get_config_path()
    console.print(f"[bold]Config directory:[/bold] {path.parent}")
    console.print(f"[bold]Config file:[/bold] {path}")
    console.print(f"[bold]Exists:[/bold] {path.exists()}")
