"""
Root Typer application for the jobspine CLI.
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from jobspine.cli.utils import cli_errors, console

app = Typer(
    name="jobspine",
    help="jobspine: persistent, multi-tenant job scheduling.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from jobspine import __version__

        typer.echo(f"jobspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """jobspine CLI: run the scheduler, administer jobs and read run history."""


# ── Scheduler ────────────────────────────────────────────────────────────


@app.command("run")
def run(
    target: str = typer.Option(..., "--app", "-a", help="Job registry as module:attribute"),
    config: Path | None = typer.Option(None, "--config", "-c", help="TOML property file"),
    assignments: list[str] | None = typer.Option(None, "--set", "-s", help="Override: key=value"),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
) -> None:
    """Reconcile declared jobs, then run the dispatch loop until stopped.

    Exits with code 0 when ``jobScheduler.exitWhenIdle`` ends the loop.

    Example::

        jobspine run --app myapp.jobs:registry --config jobspine.toml
        jobspine run --app myapp.jobs:registry --set jobScheduler.exitWhenIdle=true
    """
    from jobspine.cli.config import load_properties
    from jobspine.core.config import get_settings
    from jobspine.core.logging import configure_logging
    from jobspine.scheduling.runtime import JobSchedulerRuntime, load_registry

    settings = get_settings()
    if database:
        settings = settings.model_copy(update={"database_url": database})
    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.json_logs,
        service=settings.application_name,
    )

    with cli_errors():
        registry = load_registry(target)
        runtime = JobSchedulerRuntime(registry, properties=load_properties(config, assignments), settings=settings)
        try:
            exit_code = runtime.run()
        except KeyboardInterrupt:
            console.print("\n[yellow]Scheduler stopped by user[/yellow]")
            exit_code = 0
        finally:
            runtime.close()
    raise typer.Exit(code=exit_code)


# ── Sub-command registration ─────────────────────────────────────────────

from jobspine.cli.config import app as config_app  # noqa: E402
from jobspine.cli.db import app as db_app  # noqa: E402
from jobspine.cli.executions import app as executions_app  # noqa: E402
from jobspine.cli.jobs import app as jobs_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(jobs_app, name="jobs", help="Job administration.")
app.add_typer(executions_app, name="executions", help="Run history.")
app.add_typer(config_app, name="config", help="Scheduler configuration.")
