"""Wiring for one application's scheduler.

Manifesto:
    The components are plain objects; this module decides which of them
    exist for a given configuration, the way the host application's
    container would. Reconciliation and its barrier exist only when
    ``jobScheduler.jobsEnabled.jobReconciler-scanForJobs`` is true; the
    dispatch loop exists only when ``jobScheduler.enabled`` is true.

Tags:
    jobspine, scheduling, runtime, wiring

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────────────┐
│  JobSchedulerRuntime(registry, properties, settings)                          │
│                                                                               │
│   engine ─► JobRepository ───────────┬──► JobExecutionService ─► JobScheduler │
│         └─► JobExecutionRepository ──┘                              ▲         │
│                                                                     │ waits   │
│   JobReconciler ─► JobInitializer ─── releases ──► JobInitializationLatch    │
│   (registered as jobReconciler.scanForJobs, manual schedule)                  │
│                                                                               │
│   run():  create schema → initialize() → scheduler.start() → exit code        │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import importlib
import threading
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.engine import Engine

from jobspine.core.config.properties import ConfigProperties
from jobspine.core.config.settings import JobSchedulerSettings, JobSpineSettings, get_settings
from jobspine.core.errors import ConfigError
from jobspine.core.logging import get_logger
from jobspine.core.orm.session import create_jobspine_engine, create_schema

from .dispatcher import JobScheduler
from .executor import JobExecutionService
from .latch import JobInitializationLatch
from .models import JobName, utcnow
from .reconciler import RECONCILER_BEAN, RECONCILER_METHOD, JobReconciler, ReconcileReport, jobs_enabled_key
from .registry import JobRegistry
from .repository import JobExecutionRepository, JobRepository
from .service import JobService

logger = get_logger(__name__)

RECONCILER_JOB = JobName(RECONCILER_BEAN, RECONCILER_METHOD)


class JobInitializer:
    """Runs reconciliation once and opens the barrier, whatever happens."""

    def __init__(self, reconciler: JobReconciler, latch: JobInitializationLatch) -> None:
        self.reconciler = reconciler
        self.latch = latch

    def run(self) -> ReconcileReport:
        try:
            return self.reconciler.scan_for_jobs()
        finally:
            self.latch.release()
            logger.debug("job_initialization_latch_released")


def load_registry(target: str) -> JobRegistry:
    """Import ``package.module:attribute`` and return the registry it names.

    The attribute may be a :class:`JobRegistry` or a zero-argument callable
    returning one.

    Raises:
        ConfigError: the path is malformed or does not name a registry.
    """
    module_name, sep, attribute = target.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigError(f"Expected 'module:attribute', got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"Cannot import {module_name!r}: {exc}", cause=exc) from exc

    obj = module
    for part in attribute.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as exc:
            raise ConfigError(f"{module_name!r} has no attribute {attribute!r}", cause=exc) from exc

    if not isinstance(obj, JobRegistry) and callable(obj):
        obj = obj()
    if not isinstance(obj, JobRegistry):
        raise ConfigError(f"{target!r} is not a JobRegistry (got {type(obj).__name__})")
    return obj


class JobSchedulerRuntime:
    """Builds and runs the scheduler for one application.

    Args:
        registry: Declared jobs of the application.
        properties: ``jobScheduler.*`` property source. Loaded from
            ``settings.config_file`` when omitted.
        settings: Process settings. :func:`get_settings` when omitted.
        engine: Existing engine; created from ``settings.database_url``
            when omitted.
        clock: Current time (UTC); replaceable in tests.
    """

    def __init__(
        self,
        registry: JobRegistry,
        *,
        properties: ConfigProperties | None = None,
        settings: JobSpineSettings | None = None,
        engine: Engine | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.properties = properties or ConfigProperties.from_toml(self.settings.config_file)
        self.registry = registry
        self.clock = clock
        self.scheduler_settings = JobSchedulerSettings.from_properties(self.properties)
        self.reconciler_enabled = bool(self.properties.get_bool(jobs_enabled_key(RECONCILER_JOB), False))

        self._owns_engine = engine is None
        self.engine = engine or create_jobspine_engine(
            self.settings.database_url,
            echo=self.settings.database_echo,
            pool_size=self.settings.database_pool_size,
        )
        self.job_repository = JobRepository(self.engine, self.settings.application_name)
        self.execution_repository = JobExecutionRepository(self.engine)
        self.executor = JobExecutionService(registry, self.job_repository, self.execution_repository, clock)
        self.latch = JobInitializationLatch(expects_reconciler=self.reconciler_enabled)

        self.reconciler: JobReconciler | None = None
        self.initializer: JobInitializer | None = None
        if self.reconciler_enabled:
            self.reconciler = JobReconciler(
                registry,
                self.job_repository,
                self.properties,
                self.settings.application_name,
                self.settings.tenant_id,
                clock,
            )
            if RECONCILER_JOB not in registry:
                registry.register_bean(self.reconciler, RECONCILER_BEAN)
            self.initializer = JobInitializer(self.reconciler, self.latch)

        self.service = JobService(self.job_repository, self.execution_repository, self.reconciler, clock)
        self.scheduler: JobScheduler | None = None

    def build_scheduler(self, *, install_signal_handlers: bool = False) -> JobScheduler | None:
        """Create the dispatch loop, or ``None`` when ``jobScheduler.enabled`` is false."""
        if not self.scheduler_settings.enabled:
            return None
        if self.scheduler is None:
            self.scheduler = JobScheduler(
                self.job_repository,
                self.executor,
                self.scheduler_settings,
                self.latch,
                clock=self.clock,
                install_signal_handlers=install_signal_handlers,
            )
        return self.scheduler

    # === Lifecycle ===

    def initialize(self) -> ReconcileReport | None:
        """Reconcile declared jobs, if reconciliation is wired."""
        if self.initializer is None:
            return None
        return self.initializer.run()

    def run(self, *, create_tables: bool = True, install_signal_handlers: bool = True) -> int:
        """Reconcile, then run the dispatch loop until it stops (blocking).

        Declaration and configuration errors from reconciliation propagate
        before the loop starts.

        Returns:
            Process exit code.
        """
        if create_tables:
            create_schema(self.engine)
        self.initialize()

        scheduler = self.build_scheduler(install_signal_handlers=install_signal_handlers)
        if scheduler is None:
            logger.info("job_scheduler_disabled", application=self.settings.application_name)
            return 0
        exit_code = scheduler.start()
        return exit_code if exit_code is not None else 0

    def start_background(self, *, create_tables: bool = True) -> threading.Thread | None:
        """Start the dispatch loop in a daemon thread, then reconcile here.

        The loop waits on the barrier until reconciliation finishes.
        """
        if create_tables:
            create_schema(self.engine)
        scheduler = self.build_scheduler()
        thread = scheduler.start_background() if scheduler is not None else None
        try:
            self.initialize()
        except Exception:
            if scheduler is not None:
                scheduler.stop()
            raise
        return thread

    def stop(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()

    def close(self) -> None:
        """Stop the loop and dispose of an engine this runtime created."""
        self.stop()
        if self._owns_engine:
            self.engine.dispose()


__all__ = ["JobInitializer", "JobSchedulerRuntime", "RECONCILER_JOB", "load_registry"]
