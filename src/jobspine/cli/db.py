"""
CLI for ``jobspine db``: database management commands.
"""

from __future__ import annotations

import typer

from jobspine.cli.utils import cli_errors, console, output_dict

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create the jobs and job_executions tables and their indexes."""
    from jobspine.core.config import get_settings
    from jobspine.core.orm import create_jobspine_engine, create_schema

    settings = get_settings()
    engine = create_jobspine_engine(database or settings.database_url)
    try:
        with cli_errors():
            tables = create_schema(engine)
    finally:
        engine.dispose()

    if json_out:
        output_dict({"url": engine.url.render_as_string(hide_password=True), "tables": tables}, as_json=True)
        return
    console.print(f"[green]Schema ready[/green] ({', '.join(tables)})")
