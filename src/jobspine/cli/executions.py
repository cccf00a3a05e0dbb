"""
CLI for ``jobspine executions``: run history.
"""

from __future__ import annotations

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

LIST_COLUMNS = ("id", "job_id", "success", "created_date")


@app.command("list")
def list_executions(
    job_id: str | None = typer.Option(None, "--job", "-j", help="Only runs of this job"),
    success: bool | None = typer.Option(None, "--succeeded/--failed", help="Filter by outcome"),
    offset: int = typer.Option(0, "--offset", min=0),
    limit: int = typer.Option(50, "--limit", min=1),
    tenant: str | None = typer.Option(None, "--tenant", "-t"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List runs, newest first."""
    service, settings = make_service(database)
    tenant_id = resolve_tenant(tenant, settings)
    with cli_errors():
        if job_id is not None:
            executions = service.find_executions(
                tenant_id, parse_uuid(job_id, "job id"), offset, limit, success=success
            )
            total = None
        else:
            page = service.find_tenant_executions(tenant_id, success, offset, limit)
            executions, total = page.items, page.total
    output_items(
        [execution.to_dict() for execution in executions],
        as_json=json_out,
        title="Executions",
        columns=LIST_COLUMNS,
        total=total,
        offset=offset,
    )


@app.command("show")
def show_execution(
    execution_id: str = typer.Argument(..., help="Execution ID (the job_execution_id of the run)"),
    tenant: str | None = typer.Option(None, "--tenant", "-t"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show one run, including the stack trace of a failure."""
    service, settings = make_service(database)
    with cli_errors():
        execution = service.find_execution(resolve_tenant(tenant, settings), parse_uuid(execution_id, "execution id"))
    if execution is None:
        fail(f"Execution not found: {execution_id}")

    data = execution.to_dict()
    if json_out:
        output_dict(data, as_json=True)
        return
    stack_trace = data.pop("stack_trace")
    output_dict(data, title=f"Execution: {execution_id}")
    if stack_trace:
        console.print("\n[bold red]Stack trace[/bold red]")
        console.print(stack_trace, markup=False, highlight=False)
