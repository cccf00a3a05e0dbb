"""Job store - persistence of jobs and execution records.

Manifesto:
    Every scheduler replica talks to the same tables, so the store is the
    only place where "who runs what" can be decided. The one delicate
    operation is :meth:`JobRepository.pop_for_execution`: it picks the most
    overdue claimable job and stamps it with a fresh run id in a single
    statement evaluated by the database. Reading a candidate and then
    updating it from Python would let two replicas claim the same job.

    Everything else is ordinary CRUD. Store errors are wrapped in
    :class:`~jobspine.core.errors.DatabaseError` and propagate; retrying is
    the dispatch loop's business.

Tags:
    jobspine, scheduling, repository, sqlalchemy, atomic-claim

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  ATOMIC CLAIM                                                                 │
│                                                                               │
│   UPDATE jobs                                                                 │
│      SET job_execution_id = :fresh_uuid, popped_for_execution = :now          │
│    WHERE id = (SELECT candidate.id FROM jobs AS candidate                     │
│                 WHERE config_enabled AND user_enabled                         │
│                   AND job_execution_id IS NULL                                │
│                   AND next_execution <= :now                                  │
│                 ORDER BY next_execution LIMIT 1                               │
│                 FOR UPDATE SKIP LOCKED)          -- PostgreSQL only           │
│      AND job_execution_id IS NULL                -- losers update 0 rows      │
│   RETURNING *                                                                 │
│                                                                               │
│  SQLite serializes writers on the database lock (WAL + busy timeout);         │
│  PostgreSQL row locks let concurrent claimers skip to the next due job.      │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import ColumnElement, delete, func, or_, select, true, tuple_, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jobspine.core.errors import DatabaseError
from jobspine.core.logging import get_logger
from jobspine.core.orm import (
    JobExecutionTable,
    JobTable,
    jobspine_session_factory,
    jobs_table,
    next_to_schedule,
)

from .models import Job, JobExecution, JobFilter, JobName, Page, utcnow
from .schedules import schedule_from_dict, schedule_to_dict

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _job_from_values(values: Mapping[str, Any]) -> Job:
    return Job(
        id=values["id"],
        tenant_id=values["tenant_id"],
        application_name=values["application_name"],
        name=JobName(values["bean"], values["method"]),
        schedule=schedule_from_dict(values["schedule"]),
        config_enabled=bool(values["config_enabled"]),
        user_enabled=bool(values["user_enabled"]),
        next_execution=values["next_execution"],
        popped_for_execution=values["popped_for_execution"],
        job_execution_id=values["job_execution_id"],
        execution_count=values["execution_count"],
        last_successfully_executed=values["last_successfully_executed"],
        last_failed_execution=values["last_failed_execution"],
        created_date=values["created_date"],
        last_modified_date=values["last_modified_date"],
    )


def _job_from_row(row: JobTable) -> Job:
    return _job_from_values({column.key: getattr(row, column.key) for column in jobs_table.c})


def _copy_to_row(job: Job, row: JobTable) -> None:
    row.tenant_id = job.tenant_id
    row.application_name = job.application_name
    row.bean = job.name.bean
    row.method = job.name.method
    row.schedule = schedule_to_dict(job.schedule)
    row.config_enabled = job.config_enabled
    row.user_enabled = job.user_enabled
    row.next_execution = job.next_execution
    row.popped_for_execution = job.popped_for_execution
    row.job_execution_id = job.job_execution_id
    row.execution_count = job.execution_count
    row.last_successfully_executed = job.last_successfully_executed
    row.last_failed_execution = job.last_failed_execution


def _execution_from_row(row: JobExecutionTable) -> JobExecution:
    return JobExecution(
        id=row.id,
        tenant_id=row.tenant_id,
        job_id=row.job_id,
        success=bool(row.success),
        stack_trace=row.stack_trace,
        created_date=row.created_date,
    )


class _SqlRepository:
    """Session handling shared by the repositories."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = jobspine_session_factory(engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise DatabaseError(f"{type(self).__name__}: {exc.__class__.__name__}", cause=exc) from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


class JobRepository(_SqlRepository):
    """Persistence for :class:`Job`.

    Args:
        engine: SQLAlchemy engine for the shared store.
        application_name: When set, claiming and the next-wake-up query only
            consider this application's jobs, so applications sharing one
            database never pick up each other's work.
    """

    def __init__(self, engine: Engine, application_name: str | None = None) -> None:
        super().__init__(engine)
        self.application_name = application_name

    # === Writes ===

    def save(self, job: Job) -> Job:
        """Insert or fully overwrite *job* by id. Returns the stored snapshot."""
        return self.save_all([job])[0]

    def save_all(self, jobs: Iterable[Job]) -> list[Job]:
        with self._session() as session:
            rows = []
            for job in jobs:
                row = session.get(JobTable, job.id)
                if row is None:
                    row = JobTable(id=job.id)
                    session.add(row)
                _copy_to_row(job, row)
                rows.append(row)
            session.flush()
            return [_job_from_row(row) for row in rows]

    def delete(self, tenant_id: UUID, job_id: UUID) -> int:
        with self._session() as session:
            result = session.execute(
                delete(JobTable).where(JobTable.tenant_id == tenant_id, JobTable.id == job_id)
            )
            return result.rowcount

    def set_user_enabled(self, tenant_id: UUID, job_id: UUID, enabled: bool) -> int:
        return self._update(tenant_id, job_id, user_enabled=enabled)

    def set_next_execution(self, tenant_id: UUID, job_id: UUID, next_execution: datetime | None) -> int:
        """Reschedule a job. No-op (returns 0) while the job is in flight."""
        return self._update(
            tenant_id,
            job_id,
            JobTable.job_execution_id.is_(None),
            next_execution=next_execution,
        )

    def clear_running_status(self, tenant_id: UUID, job_id: UUID) -> int:
        """Release a stuck claim so the job becomes claimable again."""
        return self._update(tenant_id, job_id, popped_for_execution=None, job_execution_id=None)

    def _update(self, tenant_id: UUID, job_id: UUID, *criteria: ColumnElement[bool], **values: Any) -> int:
        with self._session() as session:
            result = session.execute(
                update(JobTable)
                .where(JobTable.tenant_id == tenant_id, JobTable.id == job_id, *criteria)
                .values(**values, last_modified_date=utcnow())
            )
            return result.rowcount

    # === Dispatch ===

    def pop_for_execution(self, now: datetime | None = None) -> Job | None:
        """Atomically claim the most overdue claimable job.

        Returns the post-update snapshot (with ``job_execution_id`` and
        ``popped_for_execution`` set), or ``None`` when nothing is due or a
        competing scheduler won the race.
        """
        now = now or utcnow()
        candidate = jobs_table.alias("candidate")
        conditions = [next_to_schedule(candidate), candidate.c.next_execution <= now]
        if self.application_name is not None:
            conditions.append(candidate.c.application_name == self.application_name)

        next_due = (
            select(candidate.c.id)
            .where(*conditions)
            .order_by(candidate.c.next_execution)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        statement = (
            update(jobs_table)
            .where(jobs_table.c.id == next_due, jobs_table.c.job_execution_id.is_(None))
            .values(job_execution_id=uuid4(), popped_for_execution=now, last_modified_date=now)
            .returning(*jobs_table.c)
        )

        try:
            with self.engine.begin() as connection:
                values = connection.execute(statement).mappings().first()
        except SQLAlchemyError as exc:
            raise DatabaseError("pop_for_execution failed", cause=exc) from exc

        if values is None:
            return None
        job = _job_from_values(values)
        logger.debug("job_claimed", job=job.display_name, job_execution_id=str(job.job_execution_id))
        return job

    def find_next_execution_time(self) -> datetime | None:
        """Earliest ``next_execution`` among jobs that could be claimed, due or not."""
        conditions = [next_to_schedule(jobs_table), jobs_table.c.next_execution.is_not(None)]
        if self.application_name is not None:
            conditions.append(jobs_table.c.application_name == self.application_name)
        with self._session() as session:
            return session.execute(
                select(jobs_table.c.next_execution)
                .where(*conditions)
                .order_by(jobs_table.c.next_execution)
                .limit(1)
            ).scalar_one_or_none()

    # === Reconciliation queries ===

    def find_by_application(self, application_name: str) -> list[Job]:
        with self._session() as session:
            rows = session.scalars(
                select(JobTable)
                .where(JobTable.application_name == application_name)
                .order_by(JobTable.bean, JobTable.method)
            )
            return [_job_from_row(row) for row in rows]

    def find_names(self, application_name: str) -> set[JobName]:
        with self._session() as session:
            rows = session.execute(
                select(JobTable.bean, JobTable.method).where(
                    JobTable.application_name == application_name
                )
            )
            return {JobName(bean, method) for bean, method in rows}

    def find_config_enabled_by_name(self, application_name: str, names: Iterable[JobName]) -> list[Job]:
        return self._find_by_names(application_name, names, JobTable.config_enabled == true())

    def find_config_disabled_by_name(self, application_name: str, names: Iterable[JobName]) -> list[Job]:
        return self._find_by_names(application_name, names, JobTable.config_enabled != true())

    def _find_by_names(
        self, application_name: str, names: Iterable[JobName], criterion: ColumnElement[bool]
    ) -> list[Job]:
        pairs = [(name.bean, name.method) for name in names]
        if not pairs:
            return []
        with self._session() as session:
            rows = session.scalars(
                select(JobTable)
                .where(
                    JobTable.application_name == application_name,
                    tuple_(JobTable.bean, JobTable.method).in_(pairs),
                    criterion,
                )
                .order_by(JobTable.bean, JobTable.method)
            )
            return [_job_from_row(row) for row in rows]

    # === Administrative queries ===

    def find_by_id(self, tenant_id: UUID, job_id: UUID) -> Job | None:
        with self._session() as session:
            row = session.scalars(
                select(JobTable).where(JobTable.tenant_id == tenant_id, JobTable.id == job_id)
            ).first()
            return _job_from_row(row) if row is not None else None

    def find_by_ids(self, tenant_id: UUID, job_ids: Iterable[UUID]) -> list[Job]:
        ids = list(job_ids)
        if not ids:
            return []
        with self._session() as session:
            rows = session.scalars(
                select(JobTable)
                .where(JobTable.tenant_id == tenant_id, JobTable.id.in_(ids))
                .order_by(JobTable.bean, JobTable.method)
            )
            return [_job_from_row(row) for row in rows]

    def find(self, tenant_id: UUID, job_filter: JobFilter | None = None, offset: int = 0, limit: int = 50) -> list[Job]:
        with self._session() as session:
            rows = session.scalars(
                select(JobTable)
                .where(*self._filter_criteria(tenant_id, job_filter))
                .order_by(JobTable.bean, JobTable.method)
                .offset(offset)
                .limit(limit)
            )
            return [_job_from_row(row) for row in rows]

    def find_ids(self, tenant_id: UUID, job_filter: JobFilter | None = None) -> list[UUID]:
        with self._session() as session:
            return list(
                session.scalars(
                    select(JobTable.id)
                    .where(*self._filter_criteria(tenant_id, job_filter))
                    .order_by(JobTable.bean, JobTable.method)
                )
            )

    def count(self, tenant_id: UUID, job_filter: JobFilter | None = None) -> int:
        with self._session() as session:
            return session.execute(
                select(func.count()).select_from(JobTable).where(*self._filter_criteria(tenant_id, job_filter))
            ).scalar_one()

    @staticmethod
    def _filter_criteria(tenant_id: UUID, job_filter: JobFilter | None) -> list[ColumnElement[bool]]:
        criteria: list[ColumnElement[bool]] = [JobTable.tenant_id == tenant_id]
        if job_filter is None:
            return criteria
        if job_filter.match:
            criteria.append(
                or_(
                    JobTable.bean.icontains(job_filter.match, autoescape=True),
                    JobTable.method.icontains(job_filter.match, autoescape=True),
                )
            )
        if job_filter.exclude_disabled:
            criteria.append(JobTable.config_enabled == true())
            criteria.append(JobTable.user_enabled == true())
        return criteria


# ---------------------------------------------------------------------------
# Executions
# ---------------------------------------------------------------------------


class JobExecutionRepository(_SqlRepository):
    """Append-only run history."""

    def save(self, execution: JobExecution) -> JobExecution:
        with self._session() as session:
            row = JobExecutionTable(
                id=execution.id,
                tenant_id=execution.tenant_id,
                job_id=execution.job_id,
                success=execution.success,
                stack_trace=execution.stack_trace,
            )
            if execution.created_date is not None:
                row.created_date = execution.created_date
            session.add(row)
            session.flush()
            return _execution_from_row(row)

    def find_by_id(self, tenant_id: UUID, execution_id: UUID) -> JobExecution | None:
        with self._session() as session:
            row = session.scalars(
                select(JobExecutionTable).where(
                    JobExecutionTable.tenant_id == tenant_id, JobExecutionTable.id == execution_id
                )
            ).first()
            return _execution_from_row(row) if row is not None else None

    def find_by_job_id(
        self,
        tenant_id: UUID,
        job_id: UUID,
        offset: int = 0,
        limit: int = 50,
        *,
        success: bool | None = None,
    ) -> list[JobExecution]:
        """Runs of one job, newest first, optionally only one outcome."""
        criteria = [JobExecutionTable.tenant_id == tenant_id, JobExecutionTable.job_id == job_id]
        if success is not None:
            criteria.append(JobExecutionTable.success == success)
        with self._session() as session:
            rows = session.scalars(
                select(JobExecutionTable)
                .where(*criteria)
                .order_by(JobExecutionTable.created_date.desc())
                .offset(offset)
                .limit(limit)
            )
            return [_execution_from_row(row) for row in rows]

    def find_by_tenant(self, tenant_id: UUID, offset: int = 0, limit: int = 50) -> Page[JobExecution]:
        return self._page([JobExecutionTable.tenant_id == tenant_id], offset, limit)

    def find_by_success(
        self, tenant_id: UUID, success: bool, offset: int = 0, limit: int = 50
    ) -> Page[JobExecution]:
        return self._page(
            [JobExecutionTable.tenant_id == tenant_id, JobExecutionTable.success == success],
            offset,
            limit,
        )

    def _page(self, criteria: list[ColumnElement[bool]], offset: int, limit: int) -> Page[JobExecution]:
        with self._session() as session:
            total = session.execute(
                select(func.count()).select_from(JobExecutionTable).where(*criteria)
            ).scalar_one()
            rows = session.scalars(
                select(JobExecutionTable)
                .where(*criteria)
                .order_by(JobExecutionTable.created_date.desc())
                .offset(offset)
                .limit(limit)
            )
            return Page(
                items=[_execution_from_row(row) for row in rows],
                total=total,
                offset=offset,
                limit=limit,
            )


__all__ = ["JobRepository", "JobExecutionRepository"]
