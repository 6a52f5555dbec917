"""Table definitions: dashboard records, tenant locks, tenant credentials.

Tags:
    dashboard-spine, orm, sqlalchemy, tables

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, DateTime, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dashspine.core.orm.base import DashBase, TimestampMixin


class DashboardTable(TimestampMixin, DashBase):
    """One published dashboard per (tenant, category, logical key).

    ``sent_at`` maps destination kind → ISO timestamp (absent or None means
    not yet delivered). ``dependency_state`` maps placeholder token → whether
    the table behind it existed when the dashboard was last published.

    JSON columns are replaced wholesale on change; SQLAlchemy does not track
    in-place mutation of plain ``JSON`` values.
    """

    __tablename__ = "dashboards"
    __table_args__ = (
        UniqueConstraint("tenant_id", "category", "logical_key", name="uq_dashboards_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    username: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    logical_key: Mapped[str] = mapped_column(Text, nullable=False)
    template_type: Mapped[str] = mapped_column(Text, nullable=False)
    remote_uid: Mapped[str | None] = mapped_column(Text)
    remote_url: Mapped[str] = mapped_column(Text, nullable=False)
    snapshot_path: Mapped[str | None] = mapped_column(Text)
    sent_at: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    delivery_attempts: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    dependency_state: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class TenantLockTable(DashBase):
    __tablename__ = "tenant_locks"

    lock_key: Mapped[str] = mapped_column(Text, primary_key=True)
    locked_by: Mapped[str] = mapped_column(Text, nullable=False)
    locked_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)


class CredentialTable(TimestampMixin, DashBase):
    __tablename__ = "credentials"
    __table_args__ = (
        UniqueConstraint("tenant_id", "key_name", name="uq_credentials_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    username: Mapped[str | None] = mapped_column(Text)
    key_name: Mapped[str] = mapped_column(Text, nullable=False)
    key_value: Mapped[str | None] = mapped_column(Text)


__all__ = ["DashboardTable", "TenantLockTable", "CredentialTable"]
