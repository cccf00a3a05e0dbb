"""
Centralized settings for jobspine.

Manifesto:
    Two kinds of configuration exist and they are validated separately.
    Process settings (database URL, logging, owning tenant) come from the
    environment through ``JobSpineSettings``. Scheduler properties use the
    dotted ``jobScheduler.*`` keys shared by every replica of a deployment
    and are read from a :class:`~jobspine.core.config.properties.ConfigProperties`
    source into ``JobSchedulerSettings``.

Tags:
    jobspine, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jobspine.core.errors import InvalidConfigError, MissingConfigError

if TYPE_CHECKING:
    from .properties import ConfigProperties

SCHEDULER_PREFIX = "jobScheduler"


class JobSpineSettings(BaseSettings):
    """Process-level configuration.

    All fields can be set via ``JOBSPINE_*`` environment variables (e.g.
    ``JOBSPINE_DATABASE_URL=postgresql+psycopg://...``) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="JOBSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///data/jobspine.db")
    database_pool_size: int = Field(default=5)
    database_echo: bool = Field(default=False)

    # ── Identity ─────────────────────────────────────────────────
    application_name: str = Field(
        default="jobspine",
        description="Logical application that owns the declared jobs",
    )
    tenant_id: UUID = Field(
        default=UUID(int=0),
        description="Tenant assigned to jobs created by reconciliation (the admin tenant)",
    )

    # ── Scheduler properties ─────────────────────────────────────
    config_file: str = Field(default="jobspine.toml")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="json, console or auto")

    @property
    def json_logs(self) -> bool | None:
        match self.log_format.lower():
            case "json":
                return True
            case "console":
                return False
            case _:
                return None


class JobSchedulerSettings(BaseModel):
    """The ``jobScheduler.*`` keys that drive the dispatch loop.

    Attribute names are snake_case; the camelCase property names are
    accepted as aliases so the model validates straight from the property
    source.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    enabled: bool = False
    poll_interval: timedelta = Field(default=timedelta(minutes=1), alias="pollInterval")
    max_parallel_jobs: int | None = Field(default=None, alias="maxParallelJobs", ge=1)
    exit_when_idle: bool = Field(default=False, alias="exitWhenIdle")

    @field_validator("poll_interval")
    @classmethod
    def _positive_interval(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("pollInterval must be positive")
        return value

    @classmethod
    def from_properties(cls, properties: ConfigProperties) -> JobSchedulerSettings:
        """Validate the ``jobScheduler`` keys of *properties*.

        Raises:
            MissingConfigError: ``maxParallelJobs`` is absent while the
                scheduler is enabled.
            InvalidConfigError: any key has a malformed value.
        """
        raw: dict[str, Any] = {}
        for alias in ("enabled", "pollInterval", "maxParallelJobs", "exitWhenIdle"):
            value = properties.get(f"{SCHEDULER_PREFIX}.{alias}")
            if value is not None:
                raw[alias] = value

        try:
            settings = cls.model_validate(raw)
        except ValidationError as exc:
            first = exc.errors()[0]
            alias = str(first["loc"][0]) if first["loc"] else SCHEDULER_PREFIX
            key = f"{SCHEDULER_PREFIX}.{alias}"
            raise InvalidConfigError(key, raw.get(alias), f"Invalid configuration for {key}: {first['msg']}") from exc

        if settings.enabled and settings.max_parallel_jobs is None:
            raise MissingConfigError(f"{SCHEDULER_PREFIX}.maxParallelJobs")
        return settings


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, JobSpineSettings] = {}


def get_settings(*, _force_reload: bool = False) -> JobSpineSettings:
    """Load, validate, and cache a :class:`JobSpineSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = JobSpineSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
