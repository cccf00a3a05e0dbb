"""
Structured error types for jobspine.

Provides a small hierarchy of typed errors with metadata for error
categorization, structured logging, and root cause analysis through error
chaining.

Instead of generic exceptions that lose context, JobSpineError and its
subclasses carry:
- **Category:** What kind of error (config, declaration, schedule, database)
- **Retryable:** Whether the operation can be retried automatically
- **Context:** Job name, job id, tenant and custom metadata
- **Cause:** Chained underlying exception for root cause analysis

Manifesto:
    - **Typed Error Hierarchy:** Startup failures, schedule failures and
      store failures are different things and are caught at different places
    - **Fail Fast at Startup:** Declaration and configuration errors are
      never retryable; the process refuses to start
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       JobSpineError                              │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError          DeclarationError     ScheduleError        │
        │  (CONFIG)             (DECLARATION)        (SCHEDULE)           │
        │       │                                                          │
        │  MissingConfigError                                              │
        │  InvalidConfigError                                              │
        │                                                                  │
        │  JobResolutionError   JobNotFoundError     DatabaseError        │
        │  (EXECUTION)          (NOT_FOUND)          (DATABASE)           │
        └─────────────────────────────────────────────────────────────────┘

Where they are handled:
    - ConfigError / DeclarationError: fatal at startup (reconciler, runtime)
    - ScheduleError: fatal at first use (job creation, next-fire computation)
    - JobResolutionError: recorded as a failed run by the executor
    - DatabaseError and raw SQLAlchemy errors: the dispatch loop's backstop

Examples:
    >>> error = MissingConfigError("jobScheduler.jobsEnabled.reports-nightly")
    >>> error.category
    <ErrorCategory.CONFIG: 'CONFIG'>
    >>> error.retryable
    False

    >>> try:
    ...     raise ValueError("bad field")
    ... except ValueError as e:
    ...     raise ScheduleError("Invalid cron expression", cause=e)
    Traceback (most recent call last):
    ...
    ScheduleError: Invalid cron expression

Tags:
    error-handling, exception-hierarchy, error-context, jobspine, scheduling

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Categories are grouped by their typical handling:
    - **Startup (never retryable):** CONFIG, DECLARATION
    - **Scheduling:** SCHEDULE
    - **Runtime:** EXECUTION, NOT_FOUND
    - **Infrastructure:** DATABASE
    - **Internal:** INTERNAL
    """

    CONFIG = "CONFIG"              # Missing config, invalid settings
    DECLARATION = "DECLARATION"    # Bad @scheduled_job declarations
    SCHEDULE = "SCHEDULE"          # Cron / duration parse failures
    EXECUTION = "EXECUTION"        # Work unit could not be resolved or run
    NOT_FOUND = "NOT_FOUND"        # Administrative lookups
    DATABASE = "DATABASE"          # Store failures
    INTERNAL = "INTERNAL"          # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields cover what the scheduler knows about a failure; anything
    else goes into ``metadata``. ``to_dict()`` serializes all non-None
    fields for logging.

    Attributes:
        job_name: Display name of the job (``bean.method``)
        job_id: Persistent job identifier
        tenant_id: Owning tenant
        job_execution_id: Identifier of the run in flight, if any
        config_key: Configuration key involved
        metadata: Additional key-value pairs
    """

    job_name: str | None = None
    job_id: str | None = None
    tenant_id: str | None = None
    job_execution_id: str | None = None
    config_key: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_name", "job_id", "tenant_id", "job_execution_id", "config_key"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class JobSpineError(Exception):
    """
    Base exception for all jobspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` to provide
    sensible defaults for their domain.

    Examples:
        >>> error = JobSpineError("Test error", category=ErrorCategory.DATABASE)
        >>> d = error.to_dict()
        >>> d["category"]
        'DATABASE'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DeclarationError("Too many schedules").with_context(
                job_name="reports.nightly"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(JobSpineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(
            message or f"Missing required configuration: {key}",
            context=ErrorContext(config_key=key),
        )


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(
            message or f"Invalid configuration for {key}: {value!r}",
            context=ErrorContext(config_key=key),
        )


# =============================================================================
# DECLARATION / SCHEDULE ERRORS
# =============================================================================


class DeclarationError(JobSpineError):
    """A declared job is malformed (parameters, several schedules, bad duration)."""

    default_category = ErrorCategory.DECLARATION
    default_retryable = False


class ScheduleError(JobSpineError):
    """Schedule could not be parsed or evaluated."""

    default_category = ErrorCategory.SCHEDULE
    default_retryable = False


# =============================================================================
# RUNTIME ERRORS
# =============================================================================


class JobResolutionError(JobSpineError):
    """The work unit behind a job name is no longer registered."""

    default_category = ErrorCategory.EXECUTION
    default_retryable = False

    def __init__(self, job_name: str, available: list[str] | None = None):
        self.job_name = job_name
        hint = f" Available: {', '.join(sorted(available))}" if available else ""
        super().__init__(
            f"No work unit registered for job: {job_name}.{hint}",
            context=ErrorContext(job_name=job_name),
        )


class JobNotFoundError(JobSpineError):
    """Job not found for the given tenant."""

    default_category = ErrorCategory.NOT_FOUND
    default_retryable = False

    def __init__(self, job_id: str, tenant_id: str | None = None):
        self.job_id = job_id
        super().__init__(
            f"Job not found: {job_id}",
            context=ErrorContext(job_id=job_id, tenant_id=tenant_id),
        )


class DatabaseError(JobSpineError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "JobSpineError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "DeclarationError",
    "ScheduleError",
    "JobResolutionError",
    "JobNotFoundError",
    "DatabaseError",
]
