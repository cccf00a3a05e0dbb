"""Worker: runs one claimed job and records its outcome.

Manifesto:
    A job's failure belongs to that job. Whatever the work unit raises,
    including "this bean no longer exists", is caught here, written to the
    run history and folded into the job's next fire time. Only store
    errors leave this module.

Tags:
    jobspine, scheduling, worker, execution

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────────────┐
│  execute(job)            job.job_execution_id is set (claimed)                │
│                                                                               │
│   with job_context(jobId, jobName):                                           │
│     1. target = cache[job.name] or registry.resolve(job.name)                 │
│     2. target()                                                               │
│     3. executions.save(JobExecution.of(job, success, trace))   <- needs id    │
│     4. job.register_completed_successfully() / register_failed()              │
│        (clears job_execution_id, bumps count, recomputes next_execution)      │
│     5. jobs.save(job)                                                         │
│                                                                               │
│  Step 3 happens before 4: the execution id IS the job_execution_id.          │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import traceback
from collections.abc import Callable
from datetime import datetime
from typing import Any

from jobspine.core.logging import get_logger

from .context import job_context
from .models import Job, JobExecution, JobName, utcnow
from .registry import JobRegistry
from .repository import JobExecutionRepository, JobRepository

logger = get_logger(__name__)


class JobExecutionService:
    """Invokes work units for claimed jobs.

    Args:
        registry: Resolves a :class:`JobName` to its callable.
        job_repository: Where the updated job is written back.
        execution_repository: Run history.
        clock: Current time (UTC); replaceable in tests.
    """

    def __init__(
        self,
        registry: JobRegistry,
        job_repository: JobRepository,
        execution_repository: JobExecutionRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.registry = registry
        self.job_repository = job_repository
        self.execution_repository = execution_repository
        self.clock = clock
        # Insertions are idempotent, so concurrent workers may race on a miss.
        self._targets: dict[JobName, Callable[[], Any]] = {}

    def execute(self, job: Job) -> JobExecution:
        """Run *job* and persist the outcome.

        Returns the stored :class:`JobExecution`. Exceptions from the work
        unit are recorded, not raised; :class:`~jobspine.core.errors.DatabaseError`
        from either write is raised.
        """
        with job_context(job.job_execution_id, job.display_name):
            stack_trace: str | None = None
            try:
                self._target(job.name)()
            except Exception as exc:
                logger.error("job_failed", job=job.display_name, error=str(exc), exc_info=True)
                stack_trace = "".join(traceback.format_exception(exc))
            else:
                logger.debug("job_completed", job=job.display_name)

            execution = self.execution_repository.save(JobExecution.of(job, stack_trace is None, stack_trace))
            now = self.clock()
            if stack_trace is None:
                job.register_completed_successfully(now)
            else:
                job.register_failed(now)
            self.job_repository.save(job)
            logger.debug(
                "job_rescheduled",
                job=job.display_name,
                next_execution=job.next_execution.isoformat() if job.next_execution else None,
            )
            return execution

    def _target(self, name: JobName) -> Callable[[], Any]:
        target = self._targets.get(name)
        if target is None:
            target = self._targets.setdefault(name, self.registry.resolve(name))
        return target


__all__ = ["JobExecutionService"]
