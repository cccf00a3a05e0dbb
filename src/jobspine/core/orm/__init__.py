"""SQLAlchemy 2.0 persistence layer for jobspine.

Modules
-------
base        JobSpineBase (declarative base) + UTCDateTime
session     Engine factory, JobSpineSession, create_schema
tables      JobTable, JobExecutionTable and their indexes

Tags:
    jobspine, orm, sqlalchemy, declarative

Doc-Types:
    package-overview, module-index
"""

from __future__ import annotations

from jobspine.core.orm.base import JobSpineBase, UTCDateTime
from jobspine.core.orm.session import (
    JobSpineSession,
    create_jobspine_engine,
    create_schema,
    jobspine_session_factory,
)
from jobspine.core.orm.tables import (
    JobExecutionTable,
    JobTable,
    job_executions_table,
    jobs_table,
    next_to_schedule,
)

__all__ = [
    "JobSpineBase",
    "UTCDateTime",
    "JobSpineSession",
    "create_jobspine_engine",
    "create_schema",
    "jobspine_session_factory",
    "JobTable",
    "JobExecutionTable",
    "jobs_table",
    "job_executions_table",
    "next_to_schedule",
]
