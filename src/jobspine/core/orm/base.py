"""Declarative base and type-map for all jobspine ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types.

Timestamps
----------
Every instant is stored as naive UTC and handed back as an aware UTC
``datetime`` by :class:`UTCDateTime`, so comparisons such as
``next_execution <= now`` behave the same on SQLite (text) and
PostgreSQL (``timestamp``).
"""

from __future__ import annotations

import datetime
import uuid
from datetime import UTC
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, TypeDecorator, Uuid
from sqlalchemy.orm import DeclarativeBase


class UTCDateTime(TypeDecorator):
    """``DateTime`` that refuses naive input and always returns UTC-aware values."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> datetime.datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Any) -> datetime.datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class JobSpineBase(DeclarativeBase):
    """Shared declarative base for every jobspine table.

    * ``str``   → ``String(255)``
    * ``int``   → ``Integer``
    * ``bool``  → ``Boolean``  (0/1 on SQLite, native on PostgreSQL)
    * ``uuid.UUID`` → ``Uuid``
    * ``datetime.datetime`` → :class:`UTCDateTime`
    * ``dict``  → ``JSON``
    """

    type_annotation_map = {
        str: String(255),
        int: Integer,
        bool: Boolean,
        uuid.UUID: Uuid,
        datetime.datetime: UTCDateTime(),
        dict: JSON,
    }


__all__ = ["JobSpineBase", "UTCDateTime"]
