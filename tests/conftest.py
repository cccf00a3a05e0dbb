"""
Shared pytest fixtures and configuration for jobspine tests.

This module provides:
- A file-backed SQLite database per test (WAL mode, like production)
- Repositories and a registry bound to it
- A fixed clock and a job factory for store-level tests

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.

    def test_something(job_repository, make_job):
        job = make_job("reports.nightly")
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
import structlog

from jobspine.core.config import clear_settings_cache
from jobspine.core.logging import clear_context
from jobspine.core.orm import create_jobspine_engine, create_schema
from jobspine.scheduling.models import ADMIN_TENANT_ID, Job, JobName
from jobspine.scheduling.registry import JobRegistry
from jobspine.scheduling.repository import JobExecutionRepository, JobRepository
from jobspine.scheduling.schedules import Delay

APPLICATION = "test-app"
NOW = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_process_state() -> Generator[None, None, None]:
    """Fresh settings cache and an empty log context for every test."""
    clear_settings_cache()
    clear_context()
    yield
    clear_context()
    clear_settings_cache()
    structlog.reset_defaults()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'jobspine.db'}"


@pytest.fixture
def engine(database_url: str):
    engine = create_jobspine_engine(database_url)
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def job_repository(engine) -> JobRepository:
    return JobRepository(engine, APPLICATION)


@pytest.fixture
def execution_repository(engine) -> JobExecutionRepository:
    return JobExecutionRepository(engine)


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


# =============================================================================
# Jobs
# =============================================================================


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_job(job_repository: JobRepository) -> Callable[..., Job]:
    """Create and store a job; keyword arguments override Job fields."""

    def _make(name: str = "worker.run", schedule: Any = None, **fields: Any) -> Job:
        job = Job.create(
            fields.pop("tenant_id", ADMIN_TENANT_ID),
            fields.pop("application_name", APPLICATION),
            JobName.parse(name),
            schedule or Delay(delay=timedelta(minutes=5)),
            fields.pop("created_at", NOW),
        )
        for key, value in fields.items():
            setattr(job, key, value)
        return job_repository.save(job)

    return _make
