"""Scheduler domain models: jobs, job names and execution records.

A :class:`Job` is a snapshot of one row of the ``jobs`` table. Snapshots are
read-only by convention, except between claim and completion: the worker
that claimed a job holds the only mutable copy and writes it back once.

Tags:
    jobspine, scheduling, models, dataclass

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from .schedules import (
    Cron,
    Delay,
    Manual,
    Rate,
    calculate_next_execution,
    describe,
    schedule_to_dict,
)

ADMIN_TENANT_ID = UUID(int=0)

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, order=True)
class JobName:
    """Identifies a declared work unit inside an application."""

    bean: str
    method: str

    @property
    def display_name(self) -> str:
        return f"{self.bean}.{self.method}"

    @property
    def config_key(self) -> str:
        """Suffix of the ``jobScheduler.jobsEnabled.*`` property for this job."""
        return f"{self.bean}-{self.method}"

    @classmethod
    def parse(cls, text: str) -> JobName:
        """Parse ``bean.method``."""
        bean, sep, method = text.rpartition(".")
        if not sep or not bean or not method:
            raise ValueError(f"Job name must look like 'bean.method': {text!r}")
        return cls(bean, method)

    def __str__(self) -> str:
        return self.display_name


@dataclass
class Job:
    """Persistent unit of scheduled work plus its scheduling state.

    A job is claimable when both enable flags are set, no run is in flight
    (``job_execution_id is None``) and ``next_execution`` has passed.
    ``popped_for_execution`` and ``job_execution_id`` are set and cleared
    together.
    """

    id: UUID
    tenant_id: UUID
    application_name: str
    name: JobName
    schedule: Cron | Delay | Rate | Manual
    config_enabled: bool = True
    user_enabled: bool = True
    next_execution: datetime | None = None
    popped_for_execution: datetime | None = None
    job_execution_id: UUID | None = None
    execution_count: int = 0
    last_successfully_executed: datetime | None = None
    last_failed_execution: datetime | None = None
    created_date: datetime | None = None
    last_modified_date: datetime | None = None

    @classmethod
    def create(
        cls,
        tenant_id: UUID,
        application_name: str,
        name: JobName,
        schedule: Cron | Delay | Rate | Manual,
        now: datetime | None = None,
    ) -> Job:
        """New job, enabled on both axes, first fire time from its schedule."""
        now = now or utcnow()
        job = cls(
            id=uuid4(),
            tenant_id=tenant_id,
            application_name=application_name,
            name=name,
            schedule=schedule,
        )
        job.next_execution = calculate_next_execution(schedule, now)
        return job

    @property
    def display_name(self) -> str:
        return self.name.display_name

    @property
    def enabled(self) -> bool:
        return self.config_enabled and self.user_enabled

    @property
    def in_flight(self) -> bool:
        return self.job_execution_id is not None

    def is_claimable(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return (
            self.enabled
            and not self.in_flight
            and self.next_execution is not None
            and self.next_execution <= now
        )

    def register_completed_successfully(self, now: datetime | None = None) -> None:
        now = now or utcnow()
        self._update_after_execution(now)
        self.last_successfully_executed = now

    def register_failed(self, now: datetime | None = None) -> None:
        now = now or utcnow()
        self._update_after_execution(now)
        self.last_failed_execution = now

    def _update_after_execution(self, now: datetime) -> None:
        self.popped_for_execution = None
        self.job_execution_id = None
        self.execution_count += 1
        self.next_execution = calculate_next_execution(self.schedule, now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "application_name": self.application_name,
            "name": self.display_name,
            "schedule": describe(self.schedule),
            "config_enabled": self.config_enabled,
            "user_enabled": self.user_enabled,
            "next_execution": _iso(self.next_execution),
            "popped_for_execution": _iso(self.popped_for_execution),
            "job_execution_id": str(self.job_execution_id) if self.job_execution_id else None,
            "execution_count": self.execution_count,
            "last_successfully_executed": _iso(self.last_successfully_executed),
            "last_failed_execution": _iso(self.last_failed_execution),
            "schedule_data": schedule_to_dict(self.schedule),
        }


@dataclass(frozen=True)
class JobExecution:
    """Immutable record of one run.

    ``id`` is the ``job_execution_id`` the job carried while the run was in
    flight, so history rows join back to the claim without another key.
    """

    id: UUID
    tenant_id: UUID
    job_id: UUID
    success: bool
    stack_trace: str | None = None
    created_date: datetime | None = None

    def __post_init__(self) -> None:
        if self.success != (self.stack_trace is None):
            raise ValueError("stack_trace must be present exactly when the run failed")

    @classmethod
    def of(cls, job: Job, success: bool, stack_trace: str | None = None) -> JobExecution:
        """Record for the run *job* is currently claimed for.

        Must be called before the job's running fields are cleared.
        """
        if job.job_execution_id is None:
            raise ValueError(f"Job {job.display_name} is not in flight")
        return cls(
            id=job.job_execution_id,
            tenant_id=job.tenant_id,
            job_id=job.id,
            success=success,
            stack_trace=stack_trace,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "tenant_id": str(self.tenant_id),
            "job_id": str(self.job_id),
            "success": self.success,
            "created_date": _iso(self.created_date),
            "stack_trace": self.stack_trace,
        }


@dataclass(frozen=True)
class JobFilter:
    """Administrative job query.

    ``match`` is a case-insensitive substring of the bean or method name;
    ``exclude_disabled`` keeps only jobs enabled on both axes.
    """

    match: str | None = None
    exclude_disabled: bool = False


@dataclass
class Page(Generic[T]):
    """One page of a larger result."""

    items: list[T] = field(default_factory=list)
    total: int = 0
    offset: int = 0
    limit: int = 50

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


__all__ = [
    "ADMIN_TENANT_ID",
    "JobName",
    "Job",
    "JobExecution",
    "JobFilter",
    "Page",
    "utcnow",
]
