"""Declarative base and shared column mixins for the state store."""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, DateTime, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp; SQLite has no timezone-aware DATETIME."""
    return datetime.datetime.now(datetime.UTC).replace(tzinfo=None)


class DashBase(DeclarativeBase):
    """Shared declarative base for every dashboard-spine table.

    ``type_annotation_map`` lets Mapped columns use plain Python types:

    * ``str``   → ``Text``
    * ``int``   → ``Integer``
    * ``datetime.datetime`` → ``DateTime``
    * ``dict``  → ``JSON``
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime,
        dict: JSON,
        list: JSON,
    }


class TimestampMixin:
    """Adds ``created_at`` / ``updated_at`` populated on the Python side.

    Client-side defaults keep the same DDL valid on SQLite and PostgreSQL.
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime, nullable=True, default=utcnow, onupdate=utcnow
    )
