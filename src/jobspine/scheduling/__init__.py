"""Persistent job scheduling.

Manifesto:
    Jobs live in the database, not in memory. Any number of scheduler
    replicas can poll the same store; the only thing that keeps a job from
    running twice is the atomic claim in
    :meth:`JobRepository.pop_for_execution`. A job whose worker died stays
    claimed ("stuck but visible") until an operator clears it.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOBSPINE SCHEDULING                                                          │
│                                                                               │
│   JobRegistry ──(startup)──► JobReconciler ──► JobRepository (jobs)           │
│                                   │                   ▲                       │
│                                   ▼ release           │ pop_for_execution     │
│                       JobInitializationLatch ──► JobScheduler (poll loop)    │
│                                                       │ submit                │
│                                                       ▼                       │
│                                         JobExecutionService (worker)         │
│                                           ├─► JobExecutionRepository          │
│                                           └─► JobRepository (next fire time)  │
│                                                                               │
│  Quick Start:                                                                 │
│                                                                               │
│   registry = JobRegistry()                                                    │
│                                                                               │
│   @registry.job("reports", cron="0 0 2 * * *")                               │
│   def nightly() -> None: ...                                                  │
│                                                                               │
│   JobSchedulerRuntime(registry).run()                                         │
└──────────────────────────────────────────────────────────────────────────────┘

Tags:
    jobspine, scheduling, cron, dispatch, reconciliation, persistence

Doc-Types:
    package-overview, architecture-map, module-index
"""

from __future__ import annotations

from .context import JOB_ID, JOB_NAME, apply_and_run, job_context
from .dispatcher import JobScheduler, SchedulerStats
from .executor import JobExecutionService
from .latch import JobInitializationLatch
from .models import ADMIN_TENANT_ID, Job, JobExecution, JobFilter, JobName, Page, utcnow
from .reconciler import JobReconciler, ReconcileReport, jobs_enabled_key
from .registry import JobRegistry, ScheduledJobSpec, scheduled_job
from .repository import JobExecutionRepository, JobRepository
from .runtime import JobInitializer, JobSchedulerRuntime, load_registry
from .schedules import Cron, Delay, JobSchedule, Manual, Rate, calculate_next_execution
from .service import JobService

__all__ = [
    # Model
    "ADMIN_TENANT_ID",
    "Job",
    "JobExecution",
    "JobFilter",
    "JobName",
    "Page",
    "utcnow",
    # Schedules
    "Cron",
    "Delay",
    "Rate",
    "Manual",
    "JobSchedule",
    "calculate_next_execution",
    # Declaration
    "JobRegistry",
    "ScheduledJobSpec",
    "scheduled_job",
    # Store
    "JobRepository",
    "JobExecutionRepository",
    # Startup
    "JobReconciler",
    "ReconcileReport",
    "JobInitializer",
    "JobInitializationLatch",
    "jobs_enabled_key",
    # Execution
    "JobScheduler",
    "SchedulerStats",
    "JobExecutionService",
    "JOB_ID",
    "JOB_NAME",
    "apply_and_run",
    "job_context",
    # Administration and wiring
    "JobService",
    "JobSchedulerRuntime",
    "load_registry",
]
