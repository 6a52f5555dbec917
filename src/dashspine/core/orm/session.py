"""
Engine and session helpers for the state store.

The state store holds dashboard records, tenant leases and credentials. It
is SQLite for single-host installs and tests, Postgres when several
scheduler instances share it.
"""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

_MEMORY_URLS = ("sqlite://", "sqlite:///", "sqlite:///:memory:")


def _sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        # WAL lets the CLI read while a scheduler writes
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
    finally:
        cursor.close()


def create_engine(url: str = "sqlite:///dashspine.db", *, echo: bool = False) -> Engine:
    """Engine for the state store at *url*.

    An in-memory SQLite URL gets a single shared connection, otherwise each
    session would see its own empty database.
    """
    if not url.startswith("sqlite"):
        return sa.create_engine(url, echo=echo, pool_pre_ping=True)

    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if url in _MEMORY_URLS:
        options["poolclass"] = StaticPool
    engine = sa.create_engine(url, echo=echo, **options)
    sa.event.listen(engine, "connect", _sqlite_pragmas)
    return engine


def session_factory(engine: Engine) -> sessionmaker[Session]:
    """Sessions whose records stay readable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> list[str]:
    """Create missing state store tables; return the table names."""
    from dashspine.core.orm import tables  # noqa: F401  (register mappers)
    from dashspine.core.orm.base import DashBase

    DashBase.metadata.create_all(engine)
    return sorted(DashBase.metadata.tables)
