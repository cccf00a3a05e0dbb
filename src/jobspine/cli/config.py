"""
CLI for ``jobspine config``: inspect the ``jobScheduler.*`` properties.
"""

from __future__ import annotations

from pathlib import Path

import typer

from jobspine.cli.utils import cli_errors, console, output_dict

app = typer.Typer(no_args_is_help=True)


def load_properties(config: Path | None, assignments: list[str] | None):
    """Property source from *config* (or the configured file) plus ``--set`` overrides."""
    from jobspine.core.config import ConfigProperties, get_settings, parse_assignments

    path = config or Path(get_settings().config_file)
    return ConfigProperties.from_toml(path, overrides=parse_assignments(assignments), missing_ok=config is None)


@app.command("show")
def show_config(
    config: Path | None = typer.Option(None, "--config", "-c", help="TOML property file"),
    assignments: list[str] | None = typer.Option(None, "--set", "-s", help="Override: key=value"),
    prefix: str = typer.Option("jobScheduler", "--prefix", "-p", help="Only keys under this prefix"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show resolved properties (file, then environment, then --set)."""
    with cli_errors():
        properties = load_properties(config, assignments)
    head = prefix.rstrip(".") + "." if prefix else ""
    values = {key: properties.get(key) for key in sorted(properties.keys()) if key.startswith(head)}

    if json_out:
        output_dict(values, as_json=True)
        return
    console.print(f"[bold]Source:[/bold] {properties.source or '(none)'}")
    if not values:
        console.print("[dim]No properties.[/dim]")
        return
    output_dict(values)


@app.command("validate")
def validate_config(
    config: Path | None = typer.Option(None, "--config", "-c", help="TOML property file"),
    assignments: list[str] | None = typer.Option(None, "--set", "-s", help="Override: key=value"),
) -> None:
    """Validate the scheduler keys (enabled, pollInterval, maxParallelJobs, exitWhenIdle)."""
    from jobspine.core.config import JobSchedulerSettings

    with cli_errors():
        settings = JobSchedulerSettings.from_properties(load_properties(config, assignments))
    console.print("[green]Configuration valid[/green]")
    output_dict(settings.model_dump(mode="json", by_alias=True))
