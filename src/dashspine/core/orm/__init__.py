"""SQLAlchemy state store: declarative base, tables and session helpers."""

from dashspine.core.orm.base import DashBase, TimestampMixin, utcnow
from dashspine.core.orm.session import create_engine, init_db, session_factory
from dashspine.core.orm.tables import CredentialTable, DashboardTable, TenantLockTable

__all__ = [
    "DashBase",
    "TimestampMixin",
    "utcnow",
    "create_engine",
    "init_db",
    "session_factory",
    "CredentialTable",
    "DashboardTable",
    "TenantLockTable",
]
