"""Dispatch loop: claims due jobs and hands them to workers.

One thread polls, a pool of ``maxParallelJobs`` threads runs jobs. The
poller only claims a job once it holds a permit, so the pool never has a
claimed job waiting in its queue.

Usage (programmatic)::

    from jobspine.scheduling.dispatcher import JobScheduler

    scheduler = JobScheduler(job_repository, executor, settings, latch)
    exit_code = scheduler.start()      # blocking, until stop() or exitWhenIdle

Usage (CLI)::

    jobspine run --app myapp.jobs:registry
"""

from __future__ import annotations

import signal
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from jobspine.core.config.settings import SCHEDULER_PREFIX, JobSchedulerSettings
from jobspine.core.errors import MissingConfigError
from jobspine.core.logging import get_logger

from .executor import JobExecutionService
from .latch import JobInitializationLatch
from .models import Job, utcnow
from .repository import JobRepository

logger = get_logger(__name__)

BACKSTOP_DELAY = timedelta(minutes=10)

# Upper bound on a single permit wait, so stop() is noticed while saturated.
_PERMIT_WAIT_SECONDS = 0.5


@dataclass
class SchedulerStats:
    """Counters for one scheduler instance."""

    jobs_dispatched: int = 0
    jobs_finished: int = 0
    worker_errors: int = 0
    polls: int = 0
    backstops: int = 0
    last_poll_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs_dispatched": self.jobs_dispatched,
            "jobs_finished": self.jobs_finished,
            "worker_errors": self.worker_errors,
            "polls": self.polls,
            "backstops": self.backstops,
            "last_poll_at": self.last_poll_at.isoformat() if self.last_poll_at else None,
        }


class JobScheduler:
    """Bounded-parallelism poller over :meth:`JobRepository.pop_for_execution`.

    Loop:
        1. Take a permit (blocks while ``maxParallelJobs`` jobs run).
        2. Claim the most overdue job.
        3. Claimed: submit it to the pool; the worker returns the permit.
        4. Nothing due: return the permit, then either stop (``exitWhenIdle``
           with no job in flight, exit code 0) or sleep until the earliest
           ``next_execution``, capped by ``pollInterval``.
        5. Any other error: log it and back off for ten minutes.

    Args:
        job_repository: Job store to claim from.
        executor: Runs claimed jobs.
        settings: ``jobScheduler.*`` configuration; ``max_parallel_jobs``
            must be set.
        latch: Awaited once before the first claim.
        shutdown_callback: Called with the exit code when the loop decides
            to stop on its own (``exitWhenIdle``).
        backstop: Sleep after an unexpected error.
        clock: Current time (UTC); replaceable in tests.
        install_signal_handlers: Stop on SIGINT / SIGTERM (main thread only).
    """

    def __init__(
        self,
        job_repository: JobRepository,
        executor: JobExecutionService,
        settings: JobSchedulerSettings,
        latch: JobInitializationLatch | None = None,
        *,
        shutdown_callback: Callable[[int], None] | None = None,
        backstop: timedelta = BACKSTOP_DELAY,
        clock: Callable[[], datetime] = utcnow,
        install_signal_handlers: bool = False,
        scheduler_id: str | None = None,
    ) -> None:
        if settings.max_parallel_jobs is None:
            raise MissingConfigError(f"{SCHEDULER_PREFIX}.maxParallelJobs")

        self.job_repository = job_repository
        self.executor = executor
        self.latch = latch
        self.max_parallel_jobs = settings.max_parallel_jobs
        self.poll_interval = settings.poll_interval
        self.exit_when_idle = settings.exit_when_idle
        self.backstop = backstop
        self.clock = clock
        self.exit_code: int | None = None
        self.stats = SchedulerStats()

        self._scheduler_id = scheduler_id or f"scheduler-{uuid.uuid4().hex[:8]}"
        self._shutdown_callback = shutdown_callback
        self._install_signal_handlers = install_signal_handlers
        self._shutdown = threading.Event()
        self._permits = threading.BoundedSemaphore(self.max_parallel_jobs)
        self._held = 0
        self._held_lock = threading.Lock()
        self._previous_handlers: dict[int, Any] = {}
        self._pool = ThreadPoolExecutor(
            max_workers=self.max_parallel_jobs,
            thread_name_prefix=self._scheduler_id,
        )

    @property
    def scheduler_id(self) -> str:
        return self._scheduler_id

    @property
    def in_flight(self) -> int:
        """Permits currently held (jobs running or being claimed)."""
        with self._held_lock:
            return self._held

    @property
    def stopped(self) -> bool:
        return self._shutdown.is_set()

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> int | None:
        """Run the loop until stopped (blocking).

        Returns:
            ``0`` when the loop stopped itself because it was idle,
            ``None`` when it was stopped from outside.
        """
        logger.info(
            "job_scheduler_starting",
            scheduler_id=self._scheduler_id,
            max_parallel_jobs=self.max_parallel_jobs,
            poll_interval_seconds=self.poll_interval.total_seconds(),
            exit_when_idle=self.exit_when_idle,
        )

        if self._install_signal_handlers:
            try:
                for signum in (signal.SIGINT, signal.SIGTERM):
                    self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)
            except (ValueError, OSError):
                logger.debug("signal_handlers_skipped", reason="not in main thread")

        try:
            if self.latch is not None:
                self.latch.wait()
            logger.info("job_scheduler_started", scheduler_id=self._scheduler_id)
            self._run_loop()
        finally:
            self._cleanup()
        return self.exit_code

    def start_background(self) -> threading.Thread:
        """Start the loop in a daemon thread. Returns the thread."""
        thread = threading.Thread(target=self.start, name=f"{self._scheduler_id}-loop", daemon=True)
        thread.start()
        return thread

    def stop(self) -> None:
        """Request graceful shutdown. Running jobs are not interrupted."""
        if not self._shutdown.is_set():
            logger.info("job_scheduler_stopping", scheduler_id=self._scheduler_id)
        self._shutdown.set()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        logger.info("signal_received", signal=signal.Signals(signum).name)
        self.stop()

    def _cleanup(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()
        # Waits for in-flight jobs, however long they take.
        self._pool.shutdown(wait=True)
        logger.info("job_scheduler_stopped", scheduler_id=self._scheduler_id, **self.stats.to_dict())

    # ------------------------------------------------------------------ #
    # Main loop
    # ------------------------------------------------------------------ #

    def _run_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                self.run_once()
            except Exception:
                self.stats.backstops += 1
                logger.exception(
                    "job_scheduler_error",
                    scheduler_id=self._scheduler_id,
                    backoff_seconds=self.backstop.total_seconds(),
                )
                self._shutdown.wait(self.backstop.total_seconds())

    def run_once(self) -> Job | None:
        """One loop iteration. Returns the job handed to a worker, if any."""
        if not self._acquire_permit():
            return None

        try:
            job = self.job_repository.pop_for_execution(self.clock())
        except BaseException:
            self._release_permit()
            raise
        finally:
            self.stats.polls += 1
            self.stats.last_poll_at = self.clock()

        if job is not None:
            self._dispatch(job)
            return job

        self._release_permit()
        if self.exit_when_idle and self.in_flight == 0:
            self._exit_idle()
            return None

        delay = self.compute_sleep()
        logger.debug("job_scheduler_sleeping", seconds=delay.total_seconds())
        self._shutdown.wait(delay.total_seconds())
        return None

    def compute_sleep(self) -> timedelta:
        """Time until the earliest scheduled job, capped by ``pollInterval``."""
        next_execution = self.job_repository.find_next_execution_time()
        if next_execution is None:
            return self.poll_interval
        return max(timedelta(0), min(self.poll_interval, next_execution - self.clock()))

    def _exit_idle(self) -> None:
        logger.info("job_scheduler_idle", message="No jobs found and exitWhenIdle set; shutting down")
        self.exit_code = 0
        self.stop()
        if self._shutdown_callback is not None:
            self._shutdown_callback(0)

    # ------------------------------------------------------------------ #
    # Permits and workers
    # ------------------------------------------------------------------ #

    def _acquire_permit(self) -> bool:
        while not self._shutdown.is_set():
            if self._permits.acquire(timeout=_PERMIT_WAIT_SECONDS):
                with self._held_lock:
                    self._held += 1
                return True
        return False

    def _release_permit(self) -> None:
        with self._held_lock:
            self._held -= 1
        self._permits.release()

    def _dispatch(self, job: Job) -> None:
        logger.debug("job_dispatched", job=job.display_name, job_execution_id=str(job.job_execution_id))
        self.stats.jobs_dispatched += 1
        try:
            self._pool.submit(self._run_job, job)
        except RuntimeError:
            # Pool already shut down; the claim stays for an operator to clear.
            self._release_permit()
            raise

    def _run_job(self, job: Job) -> None:
        try:
            self.executor.execute(job)
            with self._held_lock:
                self.stats.jobs_finished += 1
        except Exception:
            # Store failure after the work unit ran; the job stays claimed.
            with self._held_lock:
                self.stats.worker_errors += 1
            logger.exception(
                "job_outcome_not_recorded",
                job=job.display_name,
                job_execution_id=str(job.job_execution_id),
            )
        finally:
            self._release_permit()


__all__ = ["BACKSTOP_DELAY", "JobScheduler", "SchedulerStats"]
