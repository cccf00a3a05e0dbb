"""Scheduler table definitions: jobs and job executions.

``jobs`` carries one row per declared work unit per application, plus
the in-flight markers (``job_execution_id``, ``popped_for_execution``)
that make claiming atomic. ``job_executions`` is the append-only run
history.

Index layout:

* ``uq_jobs_application_name``: one job per ``(application_name, bean, method)``
* ``ix_jobs_next_to_schedule``: partial on ``next_execution`` for claimable
  rows; serves both the claim and the next-wake-up query
* ``ix_job_executions_job_id_created`` / ``ix_job_executions_created`` -
  history, newest first

Tags:
    jobspine, orm, sqlalchemy, tables, scheduling

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime
import uuid
from datetime import UTC

from sqlalchemy import ColumnElement, Index, Table, Text, UniqueConstraint, and_, true
from sqlalchemy.orm import Mapped, mapped_column

from jobspine.core.orm.base import JobSpineBase


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(UTC)


class JobTable(JobSpineBase):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(index=True)
    application_name: Mapped[str]
    bean: Mapped[str]
    method: Mapped[str]
    schedule: Mapped[dict]
    config_enabled: Mapped[bool] = mapped_column(default=True)
    user_enabled: Mapped[bool] = mapped_column(default=True)
    next_execution: Mapped[datetime.datetime | None]
    popped_for_execution: Mapped[datetime.datetime | None]
    job_execution_id: Mapped[uuid.UUID | None]
    execution_count: Mapped[int] = mapped_column(default=0)
    last_successfully_executed: Mapped[datetime.datetime | None]
    last_failed_execution: Mapped[datetime.datetime | None]
    created_date: Mapped[datetime.datetime] = mapped_column(default=_utcnow)
    last_modified_date: Mapped[datetime.datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        UniqueConstraint("application_name", "bean", "method", name="uq_jobs_application_name"),
    )


class JobExecutionTable(JobSpineBase):
    __tablename__ = "job_executions"

    # Same value as jobs.job_execution_id at the time of the run
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(index=True)
    job_id: Mapped[uuid.UUID]
    success: Mapped[bool]
    stack_trace: Mapped[str | None] = mapped_column(Text)
    created_date: Mapped[datetime.datetime] = mapped_column(default=_utcnow)


def next_to_schedule(table: Table) -> ColumnElement[bool]:
    """Claimable predicate without the time clause.

    Shared by the partial index, the claim statement and the next-wake-up
    query so that the planner can match them.
    """
    return and_(
        table.c.config_enabled == true(),
        table.c.user_enabled == true(),
        table.c.job_execution_id.is_(None),
    )


jobs_table: Table = JobTable.__table__  # type: ignore[assignment]
job_executions_table: Table = JobExecutionTable.__table__  # type: ignore[assignment]

Index(
    "ix_jobs_next_to_schedule",
    jobs_table.c.next_execution,
    sqlite_where=next_to_schedule(jobs_table),
    postgresql_where=next_to_schedule(jobs_table),
)
Index(
    "ix_job_executions_job_id_created",
    job_executions_table.c.job_id,
    job_executions_table.c.created_date.desc(),
)
Index(
    "ix_job_executions_created",
    job_executions_table.c.created_date.desc(),
)


__all__ = [
    "JobTable",
    "JobExecutionTable",
    "jobs_table",
    "job_executions_table",
    "next_to_schedule",
]
