"""Tests for the atomic claim (JobRepository.pop_for_execution)."""

from __future__ import annotations

import threading
from datetime import timedelta
from uuid import uuid4

import pytest

from jobspine.scheduling.models import ADMIN_TENANT_ID
from jobspine.scheduling.repository import JobRepository
from jobspine.scheduling.schedules import Manual

pytestmark = pytest.mark.integration


class TestPopForExecution:
    def test_nothing_due(self, job_repository, make_job, now):
        make_job(next_execution=now + timedelta(seconds=1))
        assert job_repository.pop_for_execution(now) is None

    def test_claims_due_job(self, job_repository, make_job, now):
        """The returned snapshot carries the fresh claim."""
        job = make_job(next_execution=now - timedelta(seconds=5))
        claimed = job_repository.pop_for_execution(now)
        assert claimed.id == job.id
        assert claimed.job_execution_id is not None
        assert claimed.popped_for_execution == now
        stored = job_repository.find_by_id(ADMIN_TENANT_ID, job.id)
        assert stored.job_execution_id == claimed.job_execution_id

    def test_claimed_job_is_not_claimed_again(self, job_repository, make_job, now):
        make_job(next_execution=now)
        assert job_repository.pop_for_execution(now) is not None
        assert job_repository.pop_for_execution(now) is None

    def test_most_overdue_first(self, job_repository, make_job, now):
        """Jobs are claimed in next_execution order."""
        make_job("a.recent", next_execution=now - timedelta(minutes=1))
        make_job("a.oldest", next_execution=now - timedelta(hours=1))
        make_job("a.middle", next_execution=now - timedelta(minutes=10))
        order = [job_repository.pop_for_execution(now).display_name for _ in range(3)]
        assert order == ["a.oldest", "a.middle", "a.recent"]

    @pytest.mark.parametrize(
        "fields",
        [
            {"config_enabled": False},
            {"user_enabled": False},
            {"job_execution_id": uuid4()},
        ],
    )
    def test_skips_unclaimable(self, job_repository, make_job, now, fields):
        """Disabled or in-flight jobs are never claimed."""
        if "job_execution_id" in fields:
            fields["popped_for_execution"] = now
        make_job(next_execution=now - timedelta(minutes=1), **fields)
        assert job_repository.pop_for_execution(now) is None

    def test_manual_job_is_never_claimed(self, job_repository, make_job, now):
        make_job(schedule=Manual())
        assert job_repository.pop_for_execution(now + timedelta(days=365)) is None

    def test_scoped_to_application(self, engine, make_job, now):
        """A scheduler only claims its own application's jobs."""
        make_job("a.mine", next_execution=now)
        make_job("a.theirs", next_execution=now - timedelta(hours=1), application_name="other-app")
        assert JobRepository(engine, "test-app").pop_for_execution(now).display_name == "a.mine"
        assert JobRepository(engine, "test-app").pop_for_execution(now) is None

    def test_unscoped_claims_any_application(self, engine, make_job, now):
        make_job("a.theirs", next_execution=now, application_name="other-app")
        assert JobRepository(engine).pop_for_execution(now).application_name == "other-app"


@pytest.mark.slow
class TestConcurrentClaims:
    def test_each_job_claimed_exactly_once(self, engine, make_job, now):
        """Ten racing claimers over five due jobs: five wins, no duplicates."""
        for index in range(5):
            make_job(f"race.job{index}", next_execution=now - timedelta(minutes=index))

        barrier = threading.Barrier(10)
        results = []
        errors = []
        lock = threading.Lock()

        def claimer() -> None:
            repository = JobRepository(engine, "test-app")
            barrier.wait()
            try:
                job = repository.pop_for_execution(now)
            except Exception as exc:  # noqa: BLE001
                with lock:
                    errors.append(exc)
                return
            with lock:
                results.append(job)

        threads = [threading.Thread(target=claimer) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        claimed = [job for job in results if job is not None]
        assert len(claimed) == 5
        assert len({job.id for job in claimed}) == 5
        assert len({job.job_execution_id for job in claimed}) == 5
