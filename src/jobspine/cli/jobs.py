"""
CLI for ``jobspine jobs``: inspect and administer stored jobs.
"""

from __future__ import annotations

from datetime import UTC, datetime

import typer

from jobspine.cli.utils import (
    cli_errors,
    console,
    fail,
    make_service,
    output_dict,
    output_items,
    parse_uuid,
    resolve_tenant,
)

app = typer.Typer(no_args_is_help=True)

LIST_COLUMNS = (
    "id",
    "name",
    "schedule",
    "config_enabled",
    "user_enabled",
    "next_execution",
    "execution_count",
    "job_execution_id",
)


@app.command("list")
def list_jobs(
    match: str | None = typer.Option(None, "--match", "-m", help="Substring of bean or method name"),
    enabled_only: bool = typer.Option(False, "--enabled-only", help="Hide jobs disabled on either axis"),
    offset: int = typer.Option(0, "--offset", min=0),
    limit: int = typer.Option(50, "--limit", min=1),
    tenant: str | None = typer.Option(None, "--tenant", "-t", help="Tenant UUID"),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List jobs, ordered by bean and method."""
    from jobspine.scheduling.models import JobFilter

    service, settings = make_service(database)
    with cli_errors():
        page = service.find_jobs(
            resolve_tenant(tenant, settings),
            JobFilter(match=match, exclude_disabled=enabled_only),
            offset,
            limit,
        )
    output_items(
        [job.to_dict() for job in page.items],
        as_json=json_out,
        title="Jobs",
        columns=LIST_COLUMNS,
        total=page.total,
        offset=offset,
    )


@app.command("show")
def show_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    tenant: str | None = typer.Option(None, "--tenant", "-t"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one job with its scheduling state."""
    service, settings = make_service(database)
    with cli_errors():
        job = service.get_job(resolve_tenant(tenant, settings), parse_uuid(job_id, "job id"))
    output_dict(job.to_dict(), as_json=json_out, title=f"Job: {job.display_name}")


@app.command("enable")
def enable_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    tenant: str | None = typer.Option(None, "--tenant", "-t"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Set the operator flag (user_enabled) on."""
    _set_user_enabled(job_id, True, tenant, database)


@app.command("disable")
def disable_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    tenant: str | None = typer.Option(None, "--tenant", "-t"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Set the operator flag (user_enabled) off. A running job finishes its run."""
    _set_user_enabled(job_id, False, tenant, database)


def _set_user_enabled(job_id: str, enabled: bool, tenant: str | None, database: str | None) -> None:
    service, settings = make_service(database)
    with cli_errors():
        changed = service.set_user_enabled(resolve_tenant(tenant, settings), parse_uuid(job_id, "job id"), enabled)
    if not changed:
        fail(f"Job not found: {job_id}")
    console.print(f"[green]Job {job_id} {'enabled' if enabled else 'disabled'}[/green]")


@app.command("trigger")
def trigger_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    tenant: str | None = typer.Option(None, "--tenant", "-t"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Make a job due now. Ignored while the job is running."""
    service, settings = make_service(database)
    with cli_errors():
        changed = service.trigger(resolve_tenant(tenant, settings), parse_uuid(job_id, "job id"))
    if not changed:
        fail(f"Job {job_id} not found or currently running")
    console.print(f"[green]Job {job_id} triggered[/green]")


@app.command("reschedule")
def reschedule_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    at: datetime = typer.Option(..., "--at", help="Next execution (ISO-8601; naive means UTC)"),
    tenant: str | None = typer.Option(None, "--tenant", "-t"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Set a job's next execution time. Ignored while the job is running."""
    when = at if at.tzinfo is not None else at.replace(tzinfo=UTC)
    service, settings = make_service(database)
    with cli_errors():
        changed = service.set_next_execution(resolve_tenant(tenant, settings), parse_uuid(job_id, "job id"), when)
    if not changed:
        fail(f"Job {job_id} not found or currently running")
    console.print(f"[green]Job {job_id} rescheduled for {when.isoformat()}[/green]")


@app.command("unstick")
def unstick_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    tenant: str | None = typer.Option(None, "--tenant", "-t"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Clear a claim left behind by a crashed worker.

    Only do this when no worker is still running the job; otherwise it may
    run twice.
    """
    service, settings = make_service(database)
    with cli_errors():
        changed = service.clear_running_status(resolve_tenant(tenant, settings), parse_uuid(job_id, "job id"))
    if not changed:
        fail(f"Job not found: {job_id}")
    console.print(f"[green]Running status of job {job_id} cleared[/green]")


@app.command("delete")
def delete_job(
    job_id: str = typer.Argument(..., help="Job ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    tenant: str | None = typer.Option(None, "--tenant", "-t"),
    database: str | None = typer.Option(None, "--database", "-d"),
) -> None:
    """Delete a job. Reconciliation recreates it if it is still declared."""
    if not yes:
        typer.confirm(f"Delete job {job_id}?", abort=True)
    service, settings = make_service(database)
    with cli_errors():
        changed = service.delete_job(resolve_tenant(tenant, settings), parse_uuid(job_id, "job id"))
    if not changed:
        fail(f"Job not found: {job_id}")
    console.print(f"[green]Job {job_id} deleted[/green]")
