"""Tests for JobExecutionService (running one claimed job)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from structlog.testing import capture_logs

from jobspine.core.errors import DatabaseError
from jobspine.core.logging import current_context
from jobspine.scheduling.executor import JobExecutionService
from jobspine.scheduling.models import ADMIN_TENANT_ID, Job, JobName
from jobspine.scheduling.schedules import Cron, Delay

pytestmark = pytest.mark.integration

FINISHED = datetime(2024, 5, 1, 10, 2, tzinfo=UTC)


@pytest.fixture
def executor(registry, job_repository, execution_repository) -> JobExecutionService:
    return JobExecutionService(registry, job_repository, execution_repository, clock=lambda: FINISHED)


@pytest.fixture
def claimed(job_repository, make_job, now):
    """Store a due 'svc.work' job and claim it."""

    def _claim(**fields):
        make_job("svc.work", next_execution=now, **fields)
        return job_repository.pop_for_execution(now)

    return _claim


class TestSuccessfulRun:
    def test_records_success_and_reschedules(self, registry, executor, claimed, job_repository, execution_repository):
        calls = []
        registry.add("svc", "work", lambda: calls.append("ran"))
        job = claimed()
        run_id = job.job_execution_id

        execution = executor.execute(job)

        assert calls == ["ran"]
        assert execution.id == run_id
        assert execution.success is True
        assert execution.stack_trace is None
        stored = job_repository.find_by_id(ADMIN_TENANT_ID, job.id)
        assert stored.job_execution_id is None
        assert stored.popped_for_execution is None
        assert stored.execution_count == 1
        assert stored.last_successfully_executed == FINISHED
        assert stored.next_execution == FINISHED + timedelta(minutes=5)
        assert execution_repository.find_by_id(ADMIN_TENANT_ID, run_id) == execution

    def test_context_bound_during_run(self, registry, executor, claimed):
        """The work unit sees jobId and jobName; they are gone afterwards."""
        seen = {}
        registry.add("svc", "work", lambda: seen.update(current_context()))
        job = claimed()
        run_id = job.job_execution_id
        executor.execute(job)
        assert seen == {"jobId": str(run_id), "jobName": "svc.work"}
        assert current_context() == {}


class TestFailedRun:
    def test_failure_is_recorded_not_raised(self, registry, executor, claimed, job_repository):
        """An hourly cron job that raises: failed record, next run on the hour."""

        def explode():
            raise RuntimeError("disk full")

        registry.add("svc", "work", explode)
        job = claimed(schedule=Cron(cron="0 0 * * * *"))
        with capture_logs() as logs:
            execution = executor.execute(job)

        assert execution.success is False
        assert "RuntimeError: disk full" in execution.stack_trace
        assert "Traceback" in execution.stack_trace
        stored = job_repository.find_by_id(ADMIN_TENANT_ID, job.id)
        assert stored.job_execution_id is None
        assert stored.execution_count == 1
        assert stored.last_failed_execution == FINISHED
        assert stored.last_successfully_executed is None
        assert stored.next_execution == datetime(2024, 5, 1, 11, 0, tzinfo=UTC)
        failures = [entry for entry in logs if entry["event"] == "job_failed"]
        assert failures[0]["log_level"] == "error"
        assert failures[0]["job"] == "svc.work"

    def test_unresolvable_job_is_a_failed_run(self, executor, claimed, job_repository):
        """A job whose work unit is gone fails like any other run."""
        job = claimed()
        execution = executor.execute(job)
        assert execution.success is False
        assert "JobResolutionError" in execution.stack_trace
        assert job_repository.find_by_id(ADMIN_TENANT_ID, job.id).job_execution_id is None


class TestOrdering:
    def test_execution_saved_before_job_update(self, registry, now):
        """The record is written while the job still carries its claim."""
        registry.add("svc", "work", lambda: None)
        order = []
        job_repository = MagicMock()
        execution_repository = MagicMock()
        execution_repository.save.side_effect = lambda execution: order.append("execution") or execution
        job_repository.save.side_effect = lambda job: order.append("job") or job

        job = Job.create(ADMIN_TENANT_ID, "app", JobName("svc", "work"), Delay(delay=timedelta(minutes=1)), now)
        job.job_execution_id = uuid4()
        job.popped_for_execution = now

        JobExecutionService(registry, job_repository, execution_repository, clock=lambda: now).execute(job)
        assert order == ["execution", "job"]

    def test_store_failure_propagates(self, registry, claimed, job_repository):
        """Store errors are not swallowed; the job keeps its claim."""
        registry.add("svc", "work", lambda: None)
        execution_repository = MagicMock()
        execution_repository.save.side_effect = DatabaseError("down")
        job = claimed()
        with pytest.raises(DatabaseError):
            JobExecutionService(registry, job_repository, execution_repository).execute(job)
        assert job_repository.find_by_id(ADMIN_TENANT_ID, job.id).job_execution_id == job.job_execution_id
