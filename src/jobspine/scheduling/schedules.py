"""Schedule algebra - when should a job next run.

Manifesto:
    A schedule is data, not behaviour. The four variants are plain pydantic
    models tagged with ``type`` so they round-trip through the ``jobs.schedule``
    JSON column unchanged, and a single function,
    :func:`calculate_next_execution`, matches on them exhaustively.

    The algebra is evaluated at exactly two moments: when a job is created
    and right after one of its runs completes. It never has to reason about
    overlapping runs because a job is never claimable while in flight.

Tags:
    jobspine, scheduling, cron, croniter, pydantic, discriminated-union

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULE VARIANTS                                                            │
│                                                                               │
│  type      fields                    next(now)                                │
│  ───────   ────────────────────────  ──────────────────────────────────────  │
│  cron      cron, timezone            first cron match strictly after now     │
│  delay     delay                     now + delay                              │
│  rate      rate, firstExecution      first tick of the rate grid after now   │
│                                      (missed ticks are skipped, not queued)  │
│  manual    -                         None (only an operator sets a time)     │
│                                                                               │
│  Persisted as JSON, e.g.                                                      │
│    {"type": "rate", "rate": "PT1M", "firstExecution": "2024-05-01T10:00Z"}   │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Annotated, Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from jobspine.core.errors import ScheduleError


class Cron(BaseModel):
    """Cron-like trigger.

    Six-field expressions put the seconds first
    (``second minute hour day-of-month month day-of-week``, e.g.
    ``"0 */5 * * * MON-FRI"``); in that form day-of-month and day-of-week
    must both match and ``?`` means "any". Classic five-field expressions
    and ``@daily``-style macros are also accepted.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["cron"] = "cron"
    cron: str
    timezone: str = "UTC"


class Delay(BaseModel):
    """Fixed gap between the end of one run and the start of the next."""

    model_config = ConfigDict(frozen=True)

    type: Literal["delay"] = "delay"
    delay: timedelta

    @field_validator("delay")
    @classmethod
    def _positive(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("delay must be positive")
        return value


class Rate(BaseModel):
    """Fixed period between start times, anchored at the first execution.

    ``first_execution`` is schedule-local state: it is set on the first
    evaluation and persisted with the job.
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    type: Literal["rate"] = "rate"
    rate: timedelta
    first_execution: datetime | None = Field(default=None, alias="firstExecution")

    @field_validator("rate")
    @classmethod
    def _positive(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("rate must be positive")
        return value

    @field_validator("first_execution")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class Manual(BaseModel):
    """Never fires on its own; runs only when an operator sets ``nextExecution``."""

    model_config = ConfigDict(frozen=True)

    type: Literal["manual"] = "manual"


JobSchedule = Annotated[Cron | Delay | Rate | Manual, Field(discriminator="type")]

_SCHEDULE_ADAPTER: TypeAdapter[Any] = TypeAdapter(JobSchedule)
_DURATION_ADAPTER = TypeAdapter(timedelta)


# ---------------------------------------------------------------------------
# Construction / persistence
# ---------------------------------------------------------------------------


def parse_duration(value: str | timedelta, field_name: str = "duration") -> timedelta:
    """Parse an ISO-8601 duration such as ``PT1M`` or ``P1DT2H``."""
    try:
        return _DURATION_ADAPTER.validate_python(value)
    except ValidationError as exc:
        raise ScheduleError(f"Invalid ISO-8601 {field_name}: {value!r}", cause=exc) from exc


def build_schedule(
    *,
    cron: str | None = None,
    delay: str | timedelta | None = None,
    rate: str | timedelta | None = None,
    timezone: str = "UTC",
) -> Cron | Delay | Rate | Manual:
    """Build a schedule from declaration fields; none set means :class:`Manual`.

    Raises:
        ScheduleError: more than one field is set, or a value is malformed.
    """
    given = [name for name, value in (("cron", cron), ("delay", delay), ("rate", rate)) if value]
    if len(given) > 1:
        raise ScheduleError(f"At most one of cron, delay and rate may be set, got {', '.join(given)}")

    try:
        if cron:
            croniter_expression(cron)
            return Cron(cron=cron, timezone=timezone)
        if delay:
            return Delay(delay=parse_duration(delay, "delay"))
        if rate:
            return Rate(rate=parse_duration(rate, "rate"))
    except ValidationError as exc:
        raise ScheduleError(str(exc.errors()[0]["msg"]), cause=exc) from exc
    return Manual()


def schedule_from_dict(data: dict[str, Any]) -> Cron | Delay | Rate | Manual:
    """Rebuild a schedule from its persisted form."""
    try:
        return _SCHEDULE_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise ScheduleError(f"Unreadable schedule: {data!r}", cause=exc) from exc


def schedule_to_dict(schedule: Cron | Delay | Rate | Manual) -> dict[str, Any]:
    """Persisted form: JSON-compatible, tagged with ``type``, durations as ISO-8601."""
    return schedule.model_dump(mode="json", by_alias=True)


def describe(schedule: Cron | Delay | Rate | Manual) -> str:
    """Short human-readable form for listings."""
    match schedule:
        case Cron(cron=expr, timezone=tz):
            return f"cron {expr}" if tz == "UTC" else f"cron {expr} ({tz})"
        case Delay(delay=delay):
            return f"delay {_DURATION_ADAPTER.dump_python(delay, mode='json')}"
        case Rate(rate=rate):
            return f"rate {_DURATION_ADAPTER.dump_python(rate, mode='json')}"
        case Manual():
            return "manual"


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


@lru_cache(maxsize=256)
def croniter_expression(expression: str) -> tuple[str, bool]:
    """Translate *expression* to croniter form.

    Returns the croniter expression and whether day-of-month and
    day-of-week are OR-ed (classic UN*X) rather than AND-ed.

    Raises:
        ScheduleError: the expression does not parse.
    """
    text = expression.strip()
    if text.startswith("@"):
        converted, day_or = text.lower(), True
    else:
        fields = text.replace("?", "*").split()
        if len(fields) == 6:
            # croniter expects the seconds field last
            converted, day_or = " ".join(fields[1:] + fields[:1]), False
        elif len(fields) == 5:
            converted, day_or = " ".join(fields), True
        else:
            raise ScheduleError(f"Cron expression must have 5 or 6 fields: {expression!r}")

    if not croniter.is_valid(converted):
        raise ScheduleError(f"Invalid cron expression: {expression!r}")
    return converted, day_or


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ScheduleError(f"Unknown time zone: {name!r}", cause=exc) from exc


def _next_cron(schedule: Cron, now: datetime) -> datetime:
    expression, day_or = croniter_expression(schedule.cron)
    local_now = now.astimezone(_zone(schedule.timezone))
    iterator = croniter(expression, local_now, day_or=day_or)
    candidate: datetime = iterator.get_next(datetime)
    while candidate <= local_now:
        candidate = iterator.get_next(datetime)
    return candidate.astimezone(UTC)


def _next_rate(schedule: Rate, now: datetime) -> datetime:
    if schedule.first_execution is None:
        schedule.first_execution = now
        return now
    first = schedule.first_execution
    if now < first:
        return first
    ticks = (now - first) // schedule.rate
    return first + schedule.rate * (ticks + 1)


def calculate_next_execution(
    schedule: Cron | Delay | Rate | Manual, now: datetime | None = None
) -> datetime | None:
    """Compute the next fire instant, in UTC, or ``None`` for manual jobs.

    Called on job creation and after every completed run; never while the
    job is in flight. May mutate :class:`Rate` (``first_execution``).

    Raises:
        ScheduleError: the cron expression or time zone is invalid.
    """
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    match schedule:
        case Cron():
            return _next_cron(schedule, now)
        case Delay(delay=delay):
            return now + delay
        case Rate():
            return _next_rate(schedule, now)
        case Manual():
            return None
        case _:
            raise TypeError(f"Unknown schedule type: {type(schedule).__name__}")


__all__ = [
    "Cron",
    "Delay",
    "Rate",
    "Manual",
    "JobSchedule",
    "build_schedule",
    "calculate_next_execution",
    "croniter_expression",
    "describe",
    "parse_duration",
    "schedule_from_dict",
    "schedule_to_dict",
]
