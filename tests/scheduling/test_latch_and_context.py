"""Tests for the initialization latch and the job log context."""

from __future__ import annotations

import threading
from datetime import timedelta
from uuid import UUID

import pytest
from structlog.testing import capture_logs

from jobspine.core.logging import current_context
from jobspine.scheduling.context import JOB_ID, JOB_NAME, apply_and_run, job_context
from jobspine.scheduling.latch import JobInitializationLatch

RUN_ID = UUID("12345678-1234-5678-1234-567812345678")


class TestJobInitializationLatch:
    def test_released_when_no_reconciler(self):
        """Without a reconciler nothing would release it, so it starts open."""
        latch = JobInitializationLatch(expects_reconciler=False)
        assert latch.released
        assert latch.wait() is True

    def test_wait_returns_after_release(self):
        latch = JobInitializationLatch(expects_reconciler=True, timeout=timedelta(seconds=5))
        assert not latch.released
        timer = threading.Timer(0.05, latch.release)
        timer.start()
        assert latch.wait() is True
        timer.join()

    def test_timeout_is_logged_and_proceeds(self):
        """A latch that is never released gives up after its timeout."""
        latch = JobInitializationLatch(expects_reconciler=True, timeout=timedelta(milliseconds=20))
        with capture_logs() as logs:
            assert latch.wait() is False
        assert logs[0]["event"] == "job_initialization_timeout"
        assert logs[0]["log_level"] == "error"

    def test_release_is_idempotent(self):
        latch = JobInitializationLatch(expects_reconciler=True)
        latch.release()
        latch.release()
        assert latch.wait() is True


class TestJobContext:
    def test_keys_bound_inside(self):
        with job_context(RUN_ID, "reports.nightly"):
            assert current_context() == {JOB_ID: str(RUN_ID), JOB_NAME: "reports.nightly"}
        assert current_context() == {}

    def test_keys_removed_when_body_raises(self):
        with pytest.raises(ValueError):
            with job_context(RUN_ID, "reports.nightly"):
                raise ValueError("boom")
        assert JOB_ID not in current_context()
        assert JOB_NAME not in current_context()

    def test_apply_and_run_returns_result(self):
        """The body sees the keys; its return value passes through."""
        result = apply_and_run(RUN_ID, "a.b", lambda: dict(current_context()))
        assert result == {JOB_ID: str(RUN_ID), JOB_NAME: "a.b"}
        assert current_context() == {}

    def test_context_is_thread_local(self):
        """Keys bound on one worker thread are invisible to another."""
        seen = {}
        entered = threading.Event()
        checked = threading.Event()

        def worker():
            with job_context(RUN_ID, "a.b"):
                entered.set()
                checked.wait(5)

        thread = threading.Thread(target=worker)
        thread.start()
        entered.wait(5)
        seen.update(current_context())
        checked.set()
        thread.join(5)
        assert seen == {}
