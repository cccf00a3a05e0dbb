"""
jobspine - persistent, multi-tenant job scheduling.

- jobspine.core: errors, logging, configuration and persistence primitives
- jobspine.scheduling: declarations, reconciliation, dispatch and workers
- jobspine.cli: the ``jobspine`` command
"""

__version__ = "0.3.0"

from jobspine.scheduling import (  # noqa: E402
    JobRegistry,
    JobSchedulerRuntime,
    JobService,
    scheduled_job,
)

__all__ = ["JobRegistry", "JobSchedulerRuntime", "JobService", "scheduled_job", "__version__"]
