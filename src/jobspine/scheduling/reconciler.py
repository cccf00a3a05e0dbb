"""Startup reconciliation of declared jobs with stored jobs.

Manifesto:
    The store is the single source of truth for which jobs exist; code
    declarations drive creation and obsolescence, configuration drives the
    ``config_enabled`` axis, and operators own ``user_enabled``, which
    reconciliation never touches. Jobs are never deleted here.

The reconciler is itself a declared job with a manual schedule
(``jobReconciler.scanForJobs``), so an operator can trigger it again later.

Tags:
    jobspine, scheduling, reconciliation, startup

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────────────┐
│  scan_for_jobs()                                                              │
│                                                                               │
│   1. declarations = registry.declarations()                                   │
│   2. validate each: no parameters, at most one of cron/delay/rate             │
│      + read jobScheduler.jobsEnabled.<bean>-<method> (required)               │
│   3. existing = store.find_names(application)                                 │
│   4. create   declared - existing       (both flags on, next from schedule)  │
│   5. disable  existing - declared       (config_enabled = false)             │
│   6. flip     config_enabled to match the property for declared jobs         │
│                                                                               │
│  Step 2 reads all properties before the first write, so a missing property   │
│  fails startup without leaving a half-reconciled store.                       │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from jobspine.core.config.properties import ConfigProperties
from jobspine.core.config.settings import SCHEDULER_PREFIX
from jobspine.core.errors import DatabaseError, DeclarationError, ScheduleError
from jobspine.core.logging import get_logger

from .models import ADMIN_TENANT_ID, Job, JobName, utcnow
from .registry import JobDeclaration, JobRegistry, declared_parameters, scheduled_job
from .repository import JobRepository
from .schedules import Cron, Delay, Manual, Rate, build_schedule

logger = get_logger(__name__)

RECONCILER_BEAN = "jobReconciler"
RECONCILER_METHOD = "scanForJobs"


def jobs_enabled_key(name: JobName) -> str:
    return f"{SCHEDULER_PREFIX}.jobsEnabled.{name.config_key}"


@dataclass
class ReconcileReport:
    """What a reconciliation pass changed."""

    created: list[JobName] = field(default_factory=list)
    disabled_obsolete: list[JobName] = field(default_factory=list)
    enabled_by_config: list[JobName] = field(default_factory=list)
    disabled_by_config: list[JobName] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.created or self.disabled_obsolete or self.enabled_by_config or self.disabled_by_config
        )

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "created": [name.display_name for name in self.created],
            "disabled_obsolete": [name.display_name for name in self.disabled_obsolete],
            "enabled_by_config": [name.display_name for name in self.enabled_by_config],
            "disabled_by_config": [name.display_name for name in self.disabled_by_config],
        }


class JobReconciler:
    """Syncs the registry's declarations into the job store.

    Args:
        registry: Declared jobs.
        repository: Job store.
        properties: Source of ``jobScheduler.jobsEnabled.*``.
        application_name: Application that owns the declared jobs.
        tenant_id: Tenant assigned to newly created jobs.
        clock: Current time (UTC); replaceable in tests.
    """

    def __init__(
        self,
        registry: JobRegistry,
        repository: JobRepository,
        properties: ConfigProperties,
        application_name: str,
        tenant_id: UUID = ADMIN_TENANT_ID,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.registry = registry
        self.repository = repository
        self.properties = properties
        self.application_name = application_name
        self.tenant_id = tenant_id
        self.clock = clock

    @scheduled_job(name=RECONCILER_METHOD)
    def scan_for_jobs(self) -> ReconcileReport:
        declarations = self.registry.declarations()
        logger.debug("scanning_for_jobs", application=self.application_name, declared=len(declarations))

        schedules = {declaration.name: self._schedule_for(declaration) for declaration in declarations}
        enabled_in_config = {
            name for name in schedules if self.properties.get_required_bool(jobs_enabled_key(name))
        }
        disabled_in_config = set(schedules) - enabled_in_config

        report = ReconcileReport()
        existing = self.repository.find_names(self.application_name)

        # Create jobs for declarations that have none
        now = self.clock()
        for name in sorted(set(schedules) - existing):
            job = Job.create(self.tenant_id, self.application_name, name, schedules[name], now)
            if self._create(job):
                report.created.append(name)

        # Disable obsolete jobs
        obsolete = self.repository.find_config_enabled_by_name(self.application_name, existing - set(schedules))
        for job in obsolete:
            logger.info("disabling_obsolete_job", job=job.display_name, reason="no longer declared")
            job.config_enabled = False
            report.disabled_obsolete.append(job.name)
        if obsolete:
            self.repository.save_all(obsolete)

        # Apply configuration
        to_disable = self.repository.find_config_enabled_by_name(self.application_name, disabled_in_config)
        for job in to_disable:
            logger.info("disabling_job", job=job.display_name, reason="disabled in configuration")
            job.config_enabled = False
            report.disabled_by_config.append(job.name)
        if to_disable:
            self.repository.save_all(to_disable)

        to_enable = self.repository.find_config_disabled_by_name(self.application_name, enabled_in_config)
        for job in to_enable:
            logger.info("enabling_job", job=job.display_name, reason="enabled in configuration")
            job.config_enabled = True
            report.enabled_by_config.append(job.name)
        if to_enable:
            self.repository.save_all(to_enable)

        logger.info("jobs_reconciled", application=self.application_name, **report.to_dict())
        return report

    def _schedule_for(self, declaration: JobDeclaration) -> Cron | Delay | Rate | Manual:
        name = declaration.display_name
        parameters = declared_parameters(declaration.target)
        if parameters:
            raise DeclarationError(
                f"{name} is declared as a scheduled job but has parameters "
                f"({', '.join(parameters)}). No parameters are allowed."
            ).with_context(job_name=name)
        fields = declaration.spec.schedule_fields
        if len(fields) > 1:
            raise DeclarationError(
                f"{name} is declared as a scheduled job with {len(fields)} schedule arguments "
                f"({', '.join(fields)}). At most one is allowed."
            ).with_context(job_name=name)
        spec = declaration.spec
        try:
            return build_schedule(cron=spec.cron, delay=spec.delay, rate=spec.rate, timezone=spec.timezone)
        except ScheduleError as exc:
            raise DeclarationError(f"{name} has an invalid schedule: {exc.message}", cause=exc).with_context(
                job_name=name
            ) from exc

    def _create(self, job: Job) -> bool:
        logger.info(
            "creating_job",
            job=job.display_name,
            schedule=job.schedule.type,
            next_execution=job.next_execution.isoformat() if job.next_execution else None,
        )
        try:
            self.repository.save(job)
        except DatabaseError as exc:
            if not isinstance(exc.cause, IntegrityError):
                raise
            logger.info("job_created_concurrently", job=job.display_name)
            return False
        return True


__all__ = [
    "JobReconciler",
    "ReconcileReport",
    "RECONCILER_BEAN",
    "RECONCILER_METHOD",
    "jobs_enabled_key",
]
