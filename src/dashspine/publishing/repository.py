"""
Persistence for dashboard records.

One record per (tenant, category, logical key). The record is the memory the
pipeline relies on across passes: it holds the remote URL used when nothing
changed, the dependency state compared to detect changes, the snapshot path,
and per-destination delivery state.

JSON columns are always replaced with new dicts; in-place mutation would
not be flushed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from dashspine.core.logging import get_logger
from dashspine.core.orm.base import utcnow
from dashspine.core.orm.tables import DashboardTable

logger = get_logger(__name__)


@dataclass(frozen=True)
class DashboardRecord:
    id: int
    tenant_id: str
    category: str
    logical_key: str
    template_type: str
    remote_url: str
    remote_uid: str | None = None
    username: str | None = None
    snapshot_path: str | None = None
    sent_at: dict[str, str | None] = field(default_factory=dict)
    delivery_attempts: dict[str, int] = field(default_factory=dict)
    dependency_state: dict[str, bool] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_sent(self, kind: str) -> bool:
        return bool(self.sent_at.get(kind))

    def attempts(self, kind: str) -> int:
        return int(self.delivery_attempts.get(kind, 0))


def _to_record(row: DashboardTable) -> DashboardRecord:
    return DashboardRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        category=row.category,
        logical_key=row.logical_key,
        template_type=row.template_type,
        remote_url=row.remote_url,
        remote_uid=row.remote_uid,
        username=row.username,
        snapshot_path=row.snapshot_path,
        sent_at=dict(row.sent_at or {}),
        delivery_attempts=dict(row.delivery_attempts or {}),
        dependency_state=dict(row.dependency_state or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _iso_now() -> str:
    return datetime.now(UTC).isoformat()


class DashboardRepository:
    def __init__(self, sessions: sessionmaker[Session]) -> None:
        self._sessions = sessions

    def get(self, tenant_id: str, category: str, logical_key: str) -> DashboardRecord | None:
        with self._sessions() as session:
            row = session.execute(
                select(DashboardTable).where(
                    DashboardTable.tenant_id == tenant_id,
                    DashboardTable.category == category,
                    DashboardTable.logical_key == logical_key,
                )
            ).scalar_one_or_none()
            return _to_record(row) if row else None

    def get_by_id(self, record_id: int) -> DashboardRecord | None:
        with self._sessions() as session:
            row = session.get(DashboardTable, record_id)
            return _to_record(row) if row else None

    def list_for_tenant(self, tenant_id: str, category: str | None = None) -> list[DashboardRecord]:
        stmt = select(DashboardTable).where(DashboardTable.tenant_id == tenant_id)
        if category is not None:
            stmt = stmt.where(DashboardTable.category == category)
        with self._sessions() as session:
            rows = session.execute(stmt.order_by(DashboardTable.id)).scalars().all()
            return [_to_record(r) for r in rows]

    def create(
        self,
        *,
        tenant_id: str,
        category: str,
        logical_key: str,
        template_type: str,
        remote_url: str,
        remote_uid: str | None = None,
        username: str | None = None,
        dependency_state: dict[str, bool] | None = None,
    ) -> DashboardRecord:
        with self._sessions() as session:
            row = DashboardTable(
                tenant_id=tenant_id,
                username=username,
                category=category,
                logical_key=logical_key,
                template_type=template_type,
                remote_url=remote_url,
                remote_uid=remote_uid,
                sent_at={},
                delivery_attempts={},
                dependency_state=dict(dependency_state or {}),
            )
            session.add(row)
            session.commit()
            return _to_record(row)

    def update_publication(
        self,
        record_id: int,
        *,
        remote_url: str,
        remote_uid: str | None,
        dependency_state: dict[str, bool],
    ) -> DashboardRecord:
        """Overwrite URL and dependency state in place; the old snapshot is dropped."""
        with self._sessions() as session:
            row = session.get(DashboardTable, record_id)
            if row is None:
                raise LookupError(f"Dashboard record {record_id} does not exist")
            row.remote_url = remote_url
            row.remote_uid = remote_uid
            row.dependency_state = dict(dependency_state)
            row.snapshot_path = None
            session.commit()
            return _to_record(row)

    def set_snapshot(self, record_id: int, path: str | None) -> None:
        with self._sessions() as session:
            session.execute(
                update(DashboardTable)
                .where(DashboardTable.id == record_id)
                .values(snapshot_path=path, updated_at=utcnow())
            )
            session.commit()

    # ── Delivery state ───────────────────────────────────────────────

    def pending_notifications(
        self,
        tenant_id: str,
        kinds: Iterable[str],
        *,
        max_attempts: int = 0,
    ) -> list[DashboardRecord]:
        """Records with at least one of *kinds* not yet delivered.

        Destinations that already failed ``max_attempts`` times are treated as
        abandoned (``0`` disables the cap).
        """
        kinds = list(kinds)
        if not kinds:
            return []
        pending = []
        for record in self.list_for_tenant(tenant_id):
            for kind in kinds:
                if record.is_sent(kind):
                    continue
                if max_attempts and record.attempts(kind) >= max_attempts:
                    continue
                pending.append(record)
                break
        return pending

    def mark_sent(self, record_id: int, kind: str, at: str | None = None) -> DashboardRecord:
        with self._sessions() as session:
            row = session.get(DashboardTable, record_id)
            if row is None:
                raise LookupError(f"Dashboard record {record_id} does not exist")
            sent = dict(row.sent_at or {})
            sent[kind] = at or _iso_now()
            row.sent_at = sent
            session.commit()
            return _to_record(row)

    def record_failure(self, record_id: int, kind: str) -> int:
        """Increment the failed-delivery counter; returns the new count."""
        with self._sessions() as session:
            row = session.get(DashboardTable, record_id)
            if row is None:
                raise LookupError(f"Dashboard record {record_id} does not exist")
            attempts = dict(row.delivery_attempts or {})
            attempts[kind] = int(attempts.get(kind, 0)) + 1
            row.delivery_attempts = attempts
            session.commit()
            return attempts[kind]

    def clear_snapshot_paths(self, paths: Iterable[str]) -> int:
        paths = list(paths)
        if not paths:
            return 0
        with self._sessions() as session:
            result = session.execute(
                update(DashboardTable)
                .where(DashboardTable.snapshot_path.in_(paths))
                .values(snapshot_path=None)
            )
            session.commit()
            return result.rowcount


__all__ = ["DashboardRecord", "DashboardRepository"]
