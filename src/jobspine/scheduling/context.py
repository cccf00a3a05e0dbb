"""Diagnostic context for job runs.

Every log record written while a job runs carries ``jobId`` (the run's
``job_execution_id``) and ``jobName`` (``bean.method``). The keys are bound
through structlog's contextvars, so they are private to the worker thread
running the job and are removed on every exit path.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar
from uuid import UUID

from jobspine.core.logging import LogContext

JOB_ID = "jobId"
JOB_NAME = "jobName"

R = TypeVar("R")


@contextmanager
def job_context(job_execution_id: UUID | str | None, job_name: str) -> Iterator[None]:
    """Bind the job keys for the duration of the ``with`` block."""
    with LogContext(**{JOB_ID: str(job_execution_id) if job_execution_id else None, JOB_NAME: job_name}):
        yield


def apply_and_run(job_execution_id: UUID | str | None, job_name: str, body: Callable[[], R]) -> R:
    """Run *body* with the job keys bound; they are cleared even if it raises."""
    with job_context(job_execution_id, job_name):
        return body()


__all__ = ["JOB_ID", "JOB_NAME", "apply_and_run", "job_context"]
