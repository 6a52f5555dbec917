"""
Per-tenant mutual exclusion for pipeline passes.

A pass for a tenant must never overlap another pass for the same tenant, no
matter which process or thread triggered it. The lock is non-blocking: a
caller that cannot acquire it skips the pass instead of waiting.

Every acquisition returns an owner token. Release only succeeds with the
token that acquired the lock, so a slow holder whose lock already expired and
was re-acquired by someone else cannot release the new holder's lock.

Backends:
    - ``DatabaseTenantMutex``: row in ``tenant_locks`` with a TTL, shared by
      every process pointing at the same state store. An expired row is
      reclaimed on the next acquire, so a crashed holder cannot deadlock.
    - ``InMemoryTenantMutex``: process-local, for tests and single-process use.

Example:
    >>> mutex = InMemoryTenantMutex()
    >>> with mutex.hold("tenant-7") as token:
    ...     if token is None:
    ...         pass  # another pass is running
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Protocol, runtime_checkable
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dashspine.core.errors import LockError
from dashspine.core.logging import get_logger
from dashspine.core.orm.tables import TenantLockTable

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def _lock_key(tenant_id: str) -> str:
    return f"tenant:{tenant_id}"


@runtime_checkable
class TenantMutex(Protocol):
    """Non-blocking, owner-checked lock keyed by tenant id."""

    def try_acquire(self, tenant_id: str) -> str | None:
        """Return an owner token, or None if another holder has the lock."""
        ...

    def release(self, tenant_id: str, token: str) -> bool:
        """Release the lock if *token* still owns it."""
        ...

    def refresh(self, tenant_id: str, token: str) -> bool:
        """Extend the lock if *token* still owns it; False means it was lost."""
        ...


class _HoldMixin:
    def _new_token(self) -> str:
        return f"{self.instance_id}:{uuid4().hex[:12]}"  # type: ignore[attr-defined]

    @contextmanager
    def hold(self, tenant_id: str) -> Iterator[str | None]:
        """Acquire for the duration of a block; yields None when contended.

        The lock is released on every exit path, including exceptions.
        """
        token = self.try_acquire(tenant_id)  # type: ignore[attr-defined]
        try:
            yield token
        finally:
            if token is not None:
                self.release(tenant_id, token)  # type: ignore[attr-defined]


class InMemoryTenantMutex(_HoldMixin):
    """Process-local tenant lock."""

    def __init__(self, instance_id: str | None = None) -> None:
        self.instance_id = instance_id or str(uuid4())
        self._guard = threading.Lock()
        self._holders: dict[str, str] = {}

    def try_acquire(self, tenant_id: str) -> str | None:
        with self._guard:
            if tenant_id in self._holders:
                logger.debug("tenant_lock_busy", tenant=tenant_id)
                return None
            token = self._new_token()
            self._holders[tenant_id] = token
            return token

    def release(self, tenant_id: str, token: str) -> bool:
        with self._guard:
            if self._holders.get(tenant_id) != token:
                return False
            del self._holders[tenant_id]
            return True

    def refresh(self, tenant_id: str, token: str) -> bool:
        with self._guard:
            return self._holders.get(tenant_id) == token

    def is_locked(self, tenant_id: str) -> bool:
        with self._guard:
            return tenant_id in self._holders


class DatabaseTenantMutex(_HoldMixin):
    """TTL lock stored in the ``tenant_locks`` table.

    Acquire deletes an expired row for the key, then inserts a fresh one. A
    primary-key conflict means another holder is live. Backend errors raise
    ``LockError`` so the caller can tell contention from breakage.
    """

    def __init__(
        self,
        sessions: sessionmaker[Session],
        *,
        ttl_seconds: int = 900,
        instance_id: str | None = None,
    ) -> None:
        self._sessions = sessions
        self.ttl_seconds = ttl_seconds
        self.instance_id = instance_id or str(uuid4())

    def try_acquire(self, tenant_id: str) -> str | None:
        key = _lock_key(tenant_id)
        now = _now()
        token = self._new_token()
        try:
            with self._sessions() as session:
                session.execute(
                    delete(TenantLockTable).where(
                        TenantLockTable.lock_key == key,
                        TenantLockTable.expires_at < now,
                    )
                )
                session.add(
                    TenantLockTable(
                        lock_key=key,
                        locked_by=token,
                        locked_at=now,
                        expires_at=now + timedelta(seconds=self.ttl_seconds),
                    )
                )
                session.commit()
        except IntegrityError:
            logger.debug("tenant_lock_busy", tenant=tenant_id)
            return None
        except SQLAlchemyError as e:
            raise LockError(f"Lock acquire failed for tenant {tenant_id}", cause=e).with_context(
                tenant_id=tenant_id
            ) from e

        logger.debug("tenant_lock_acquired", tenant=tenant_id, owner=token)
        return token

    def release(self, tenant_id: str, token: str) -> bool:
        try:
            with self._sessions() as session:
                result = session.execute(
                    delete(TenantLockTable).where(
                        TenantLockTable.lock_key == _lock_key(tenant_id),
                        TenantLockTable.locked_by == token,
                    )
                )
                session.commit()
        except SQLAlchemyError as e:
            logger.error("tenant_lock_release_failed", tenant=tenant_id, error=str(e))
            return False

        released = result.rowcount > 0
        if released:
            logger.debug("tenant_lock_released", tenant=tenant_id)
        else:
            logger.warning("tenant_lock_not_owned", tenant=tenant_id, owner=token)
        return released

    def refresh(self, tenant_id: str, token: str) -> bool:
        """Extend the expiry of a lock still owned by *token*."""
        try:
            with self._sessions() as session:
                row = session.execute(
                    select(TenantLockTable).where(
                        TenantLockTable.lock_key == _lock_key(tenant_id),
                        TenantLockTable.locked_by == token,
                    )
                ).scalar_one_or_none()
                if row is None:
                    return False
                row.expires_at = _now() + timedelta(seconds=self.ttl_seconds)
                session.commit()
        except SQLAlchemyError as e:
            raise LockError(f"Lock refresh failed for tenant {tenant_id}", cause=e).with_context(
                tenant_id=tenant_id
            ) from e
        return True

    def is_locked(self, tenant_id: str) -> bool:
        with self._sessions() as session:
            row = session.execute(
                select(TenantLockTable.lock_key).where(
                    TenantLockTable.lock_key == _lock_key(tenant_id),
                    TenantLockTable.expires_at > _now(),
                )
            ).first()
            return row is not None

    def get_lock_holder(self, tenant_id: str) -> str | None:
        with self._sessions() as session:
            return session.execute(
                select(TenantLockTable.locked_by).where(
                    TenantLockTable.lock_key == _lock_key(tenant_id),
                    TenantLockTable.expires_at > _now(),
                )
            ).scalar_one_or_none()

    def cleanup_expired_locks(self) -> int:
        """Remove all expired locks left behind by crashed holders."""
        with self._sessions() as session:
            result = session.execute(
                delete(TenantLockTable).where(TenantLockTable.expires_at < _now())
            )
            session.commit()
        count = result.rowcount
        if count > 0:
            logger.info("tenant_locks_cleaned", count=count)
        return count


__all__ = ["TenantMutex", "InMemoryTenantMutex", "DatabaseTenantMutex"]
