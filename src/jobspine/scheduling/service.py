"""Administrative facade over the job store.

Everything an operator does to jobs goes through :class:`JobService`:
listing and filtering, enabling and disabling (the ``user_enabled`` axis),
rescheduling, triggering a run now, unsticking a job whose worker died,
and reading run history. All calls are scoped to a tenant.

Mutations return ``True`` iff exactly one job was changed, so callers can
tell "done" from "no such job" or "job is running" without a second read.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from uuid import UUID

from jobspine.core.errors import JobNotFoundError
from jobspine.core.logging import get_logger

from .models import Job, JobExecution, JobFilter, Page, utcnow
from .reconciler import JobReconciler, ReconcileReport
from .repository import JobExecutionRepository, JobRepository

logger = get_logger(__name__)


class JobService:
    """Tenant-scoped job administration.

    Args:
        job_repository: Job store.
        execution_repository: Run history.
        reconciler: Enables :meth:`scan_for_jobs`; ``None`` when
            reconciliation is not wired for this application.
        clock: Current time (UTC); replaceable in tests.
    """

    def __init__(
        self,
        job_repository: JobRepository,
        execution_repository: JobExecutionRepository,
        reconciler: JobReconciler | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.job_repository = job_repository
        self.execution_repository = execution_repository
        self.reconciler = reconciler
        self.clock = clock

    # === Queries ===

    def find_jobs(
        self,
        tenant_id: UUID,
        job_filter: JobFilter | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Page[Job]:
        items = self.job_repository.find(tenant_id, job_filter, offset, limit)
        total = self.job_repository.count(tenant_id, job_filter)
        return Page(items=items, total=total, offset=offset, limit=limit)

    def find_job_ids(self, tenant_id: UUID, job_filter: JobFilter | None = None) -> list[UUID]:
        return self.job_repository.find_ids(tenant_id, job_filter)

    def find_jobs_by_ids(self, tenant_id: UUID, job_ids: Iterable[UUID]) -> list[Job]:
        return self.job_repository.find_by_ids(tenant_id, job_ids)

    def find_job(self, tenant_id: UUID, job_id: UUID) -> Job | None:
        return self.job_repository.find_by_id(tenant_id, job_id)

    def get_job(self, tenant_id: UUID, job_id: UUID) -> Job:
        """Like :meth:`find_job` but raises :class:`JobNotFoundError`."""
        job = self.job_repository.find_by_id(tenant_id, job_id)
        if job is None:
            raise JobNotFoundError(str(job_id), str(tenant_id))
        return job

    # === Mutations ===

    def set_user_enabled(self, tenant_id: UUID, job_id: UUID, enabled: bool) -> bool:
        changed = self.job_repository.set_user_enabled(tenant_id, job_id, enabled) == 1
        if changed:
            logger.info("job_user_enabled_changed", job_id=str(job_id), enabled=enabled)
        return changed

    def set_next_execution(self, tenant_id: UUID, job_id: UUID, next_execution: datetime | None) -> bool:
        """Reschedule a job. ``False`` if it does not exist or is running."""
        changed = self.job_repository.set_next_execution(tenant_id, job_id, next_execution) == 1
        if changed:
            logger.info(
                "job_rescheduled",
                job_id=str(job_id),
                next_execution=next_execution.isoformat() if next_execution else None,
            )
        return changed

    def trigger(self, tenant_id: UUID, job_id: UUID) -> bool:
        """Make a job due now; the next poll picks it up."""
        return self.set_next_execution(tenant_id, job_id, self.clock())

    def clear_running_status(self, tenant_id: UUID, job_id: UUID) -> bool:
        changed = self.job_repository.clear_running_status(tenant_id, job_id) == 1
        if changed:
            logger.warning("job_running_status_cleared", job_id=str(job_id))
        return changed

    def delete_job(self, tenant_id: UUID, job_id: UUID) -> bool:
        changed = self.job_repository.delete(tenant_id, job_id) == 1
        if changed:
            logger.info("job_deleted", job_id=str(job_id))
        return changed

    def scan_for_jobs(self) -> ReconcileReport | None:
        """Run reconciliation again, if it is wired."""
        if self.reconciler is None:
            return None
        return self.reconciler.scan_for_jobs()

    # === Run history ===

    def find_executions(
        self,
        tenant_id: UUID,
        job_id: UUID,
        offset: int = 0,
        limit: int = 50,
        *,
        success: bool | None = None,
    ) -> list[JobExecution]:
        return self.execution_repository.find_by_job_id(tenant_id, job_id, offset, limit, success=success)

    def find_execution(self, tenant_id: UUID, execution_id: UUID) -> JobExecution | None:
        return self.execution_repository.find_by_id(tenant_id, execution_id)

    def find_tenant_executions(
        self,
        tenant_id: UUID,
        success: bool | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Page[JobExecution]:
        if success is None:
            return self.execution_repository.find_by_tenant(tenant_id, offset, limit)
        return self.execution_repository.find_by_success(tenant_id, success, offset, limit)


__all__ = ["JobService"]
