"""Job declarations and the registry that maps job names to callables.

Manifesto:
    The scheduler does not care how work units are discovered. A host
    registers objects ("beans") or plain functions under a bean name, and
    the registry answers two questions: which jobs are declared, and which
    callable runs a given :class:`~jobspine.scheduling.models.JobName`.

Declaring jobs::

    class ReportService:
        @scheduled_job(cron="0 0 2 * * *")
        def nightly(self) -> None: ...

        @scheduled_job(rate="PT5M")
        def refresh(self) -> None: ...

    registry = JobRegistry()
    registry.register_bean(ReportService())      # bean name "reportService"

    @registry.job("maintenance", delay="PT1H")
    def vacuum() -> None: ...

Each declaration needs a ``jobScheduler.jobsEnabled.<bean>-<method>``
property; see :mod:`jobspine.scheduling.reconciler`.

Tags:
    jobspine, scheduling, registry, decorator, discovery

Doc-Types:
    api-reference
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, TypeVar

from jobspine.core.errors import JobResolutionError
from jobspine.core.logging import get_logger

from .models import JobName

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

MARKER = "__scheduled_job__"


@dataclass(frozen=True)
class ScheduledJobSpec:
    """Fields given to :func:`scheduled_job`; at most one of cron/delay/rate."""

    cron: str | None = None
    delay: str | timedelta | None = None
    rate: str | timedelta | None = None
    timezone: str = "UTC"
    name: str | None = None

    @property
    def schedule_fields(self) -> list[str]:
        return [field for field in ("cron", "delay", "rate") if getattr(self, field)]


@dataclass(frozen=True)
class JobDeclaration:
    """A declared work unit: its name, the callable and its schedule fields."""

    name: JobName
    target: Callable[..., Any]
    spec: ScheduledJobSpec

    @property
    def display_name(self) -> str:
        return self.name.display_name


def scheduled_job(
    *,
    cron: str | None = None,
    delay: str | timedelta | None = None,
    rate: str | timedelta | None = None,
    timezone: str = "UTC",
    name: str | None = None,
) -> Callable[[F], F]:
    """Mark a method as a scheduled job.

    Args:
        cron: Cron expression, six fields with seconds first.
        delay: ISO-8601 duration between the end of a run and the next start.
        rate: ISO-8601 duration between start times.
        timezone: Time zone the cron expression is evaluated in.
        name: Job method name, if it should differ from the Python name.

    With none of cron/delay/rate the job is manual. The fields are checked
    when the reconciler runs, not here.
    """

    def decorator(fn: F) -> F:
        setattr(fn, MARKER, ScheduledJobSpec(cron=cron, delay=delay, rate=rate, timezone=timezone, name=name))
        return fn

    return decorator


def default_bean_name(obj: object) -> str:
    """``ReportService`` instance -> ``reportService``."""
    cls_name = type(obj).__name__
    return cls_name[:1].lower() + cls_name[1:]


def declared_parameters(target: Callable[..., Any]) -> list[str]:
    """Parameters a caller would have to supply (none allowed for jobs)."""
    try:
        signature = inspect.signature(target)
    except (TypeError, ValueError):
        return []
    return [
        parameter.name
        for parameter in signature.parameters.values()
        if parameter.default is inspect.Parameter.empty
        and parameter.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]


class JobRegistry:
    """Caller-supplied map ``JobName -> callable``."""

    def __init__(self) -> None:
        self._beans: dict[str, object] = {}
        self._declarations: dict[JobName, JobDeclaration] = {}
        self._attributes: dict[JobName, str] = {}
        self._functions: dict[JobName, Callable[..., Any]] = {}

    # === Registration ===

    def register_bean(self, bean: object, name: str | None = None) -> object:
        """Register *bean* and every method on it marked with :func:`scheduled_job`."""
        bean_name = name or default_bean_name(bean)
        if bean_name in self._beans:
            raise ValueError(f"Bean '{bean_name}' is already registered")
        self._beans[bean_name] = bean

        for attribute in sorted(dir(type(bean))):
            member = getattr(type(bean), attribute, None)
            spec = getattr(member, MARKER, None)
            if not isinstance(spec, ScheduledJobSpec):
                continue
            job_name = JobName(bean_name, spec.name or attribute)
            self._declare(JobDeclaration(job_name, getattr(bean, attribute), spec))
            self._attributes[job_name] = attribute
        return bean

    def add(
        self,
        bean: str,
        method: str,
        target: Callable[..., Any],
        spec: ScheduledJobSpec | None = None,
    ) -> JobDeclaration:
        """Register a plain callable as ``bean.method``."""
        declaration = JobDeclaration(JobName(bean, method), target, spec or ScheduledJobSpec())
        self._declare(declaration)
        self._functions[declaration.name] = target
        return declaration

    def job(
        self,
        bean: str,
        *,
        cron: str | None = None,
        delay: str | timedelta | None = None,
        rate: str | timedelta | None = None,
        timezone: str = "UTC",
        name: str | None = None,
    ) -> Callable[[F], F]:
        """Decorator form of :meth:`add` for module-level functions."""

        def decorator(fn: F) -> F:
            spec = ScheduledJobSpec(cron=cron, delay=delay, rate=rate, timezone=timezone, name=name)
            setattr(fn, MARKER, spec)
            self.add(bean, name or fn.__name__, fn, spec)
            return fn

        return decorator

    def _declare(self, declaration: JobDeclaration) -> None:
        if declaration.name in self._declarations:
            raise ValueError(f"Job '{declaration.display_name}' is already registered")
        self._declarations[declaration.name] = declaration
        logger.debug("job_declared", job=declaration.display_name, schedule=declaration.spec.schedule_fields)

    # === Lookup ===

    def declarations(self) -> list[JobDeclaration]:
        return [self._declarations[name] for name in sorted(self._declarations)]

    def names(self) -> set[JobName]:
        return set(self._declarations)

    def __contains__(self, name: object) -> bool:
        return name in self._declarations

    def __len__(self) -> int:
        return len(self._declarations)

    def resolve(self, name: JobName) -> Callable[[], Any]:
        """Callable for *name*.

        Bean methods are looked up on the bean at call time, so a method
        that has since been removed fails here rather than at registration.

        Raises:
            JobResolutionError: no bean or function answers to *name*.
        """
        if name in self._functions:
            return self._functions[name]
        bean = self._beans.get(name.bean)
        if bean is not None:
            target = getattr(bean, self._attributes.get(name, name.method), None)
            if callable(target):
                return target
        raise JobResolutionError(
            name.display_name, [declared.display_name for declared in self._declarations]
        )


__all__ = [
    "JobDeclaration",
    "JobRegistry",
    "ScheduledJobSpec",
    "declared_parameters",
    "default_bean_name",
    "scheduled_job",
]
