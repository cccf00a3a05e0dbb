"""
CLI utility helpers: output formatting, service construction and error mapping.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from jobspine.core.config import JobSpineSettings, get_settings
from jobspine.core.errors import JobSpineError
from jobspine.core.orm import create_jobspine_engine
from jobspine.scheduling.repository import JobExecutionRepository, JobRepository
from jobspine.scheduling.service import JobService

console = Console()
err_console = Console(stderr=True)


# ── Service helpers ──────────────────────────────────────────────────────


def make_service(database: str | None = None) -> tuple[JobService, JobSpineSettings]:
    """Build a :class:`JobService` against *database* or the configured URL."""
    settings = get_settings()
    engine = create_jobspine_engine(database or settings.database_url, echo=settings.database_echo)
    service = JobService(JobRepository(engine), JobExecutionRepository(engine))
    return service, settings


def parse_uuid(value: str, label: str = "id") -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise typer.BadParameter(f"{label} must be a UUID, got {value!r}") from exc


def resolve_tenant(tenant: str | None, settings: JobSpineSettings) -> UUID:
    """``--tenant`` if given, else the configured owning tenant."""
    return parse_uuid(tenant, "tenant") if tenant else settings.tenant_id


def fail(message: str, code: int = 1) -> None:
    err_console.print(f"[bold red]Error[/bold red]: {message}")
    raise typer.Exit(code=code)


@contextmanager
def cli_errors() -> Iterator[None]:
    """Turn library errors into a red message and exit code 1."""
    try:
        yield
    except JobSpineError as exc:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
        raise typer.Exit(code=1) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def output_dict(data: dict[str, Any], *, as_json: bool = False, title: str = "") -> None:
    """Render one record as JSON or key-value lines."""
    if as_json:
        console.print_json(json.dumps(data, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for key, value in data.items():
        console.print(f"  [cyan]{key}[/cyan]: {value}")


def output_items(
    items: Sequence[dict[str, Any]],
    *,
    as_json: bool = False,
    title: str = "",
    columns: Sequence[str] | None = None,
    total: int | None = None,
    offset: int = 0,
) -> None:
    """Render a list of records as a Rich table, or JSON with paging info."""
    if as_json:
        payload = {
            "items": list(items),
            "total": total if total is not None else len(items),
            "offset": offset,
            "has_more": total is not None and offset + len(items) < total,
        }
        console.print_json(json.dumps(payload, default=str))
        return

    if not items:
        console.print("[dim]No items.[/dim]")
        return

    table = Table(title=title or None, show_lines=False, pad_edge=False)
    keys = list(columns or items[0].keys())
    for key in keys:
        table.add_column(key, overflow="fold")
    for item in items:
        table.add_row(*("" if item.get(key) is None else str(item.get(key)) for key in keys))
    console.print(table)

    if total is not None:
        console.print(f"\n[dim]Showing {len(items)} of {total} (offset {offset})[/dim]")
