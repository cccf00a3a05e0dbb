"""SQLAlchemy engine factory, session factory and schema creation.

This module provides:

* ``create_jobspine_engine``   -- Create a SA engine from a URL.
* ``JobSpineSession``          -- Session with ``expire_on_commit=False``.
* ``jobspine_session_factory`` -- ``sessionmaker`` bound to an engine.
* ``create_schema``            -- Create the ``jobs`` / ``job_executions`` tables and indexes.

Supported stores are SQLite (3.35 or newer, for ``UPDATE ... RETURNING``)
and PostgreSQL.

Tags:
    jobspine, orm, sqlalchemy, session, engine

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from jobspine.core.logging import get_logger

logger = get_logger(__name__)


def create_jobspine_engine(
    url: str = "sqlite:///data/jobspine.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    busy_timeout: float = 30.0,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql+psycopg://…``)
    echo:
        If ``True``, log all SQL.
    pool_size, max_overflow:
        Connection pool parameters (ignored for SQLite).
    busy_timeout:
        Seconds a SQLite writer waits for the lock held by a competing
        claimer before failing.
    """
    if url.startswith("sqlite"):
        database = make_url(url).database
        if database and database != ":memory:" and not database.startswith("file:"):
            Path(database).parent.mkdir(parents=True, exist_ok=True)

        kwargs.setdefault("connect_args", {"check_same_thread": False, "timeout": busy_timeout})
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


class JobSpineSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Snapshots loaded inside a session stay readable after commit, which is
    what the repositories hand out.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def jobspine_session_factory(engine: Engine) -> sessionmaker[JobSpineSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``JobSpineSession`` instances."""
    return sessionmaker(bind=engine, class_=JobSpineSession)


def create_schema(engine: Engine) -> list[str]:
    """Create all tables and indexes that do not exist yet.

    Returns:
        Names of the managed tables.
    """
    from jobspine.core.orm.base import JobSpineBase
    from jobspine.core.orm import tables  # noqa: F401  (registers the mapped tables)

    JobSpineBase.metadata.create_all(engine)
    names = sorted(JobSpineBase.metadata.tables)
    logger.info("schema_created", tables=names, url=engine.url.render_as_string(hide_password=True))
    return names
