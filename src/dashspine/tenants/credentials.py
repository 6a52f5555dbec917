"""
Per-tenant credential storage.

Credentials are plain key/value strings scoped to a tenant: database names,
Grafana URL and key, datasource uids, chat tokens. The pipeline only reads
them, except datasource sync which writes the uid Grafana assigned back as
``GRAFANA_UID_<CATEGORY>``.

Two implementations share the ``CredentialStore`` protocol:

- ``SqlCredentialStore`` over the ``credentials`` table of the state store
- ``InMemoryCredentialStore`` for tests and embedding

Both also answer ``tenants()``, the directory of tenants that have at least
one credential, which the scheduler iterates over.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from dashspine.core.logging import get_logger
from dashspine.core.orm.tables import CredentialTable

logger = get_logger(__name__)


@dataclass(frozen=True)
class Tenant:
    """A tenant known to the credential store."""

    tenant_id: str
    username: str | None = None


@runtime_checkable
class CredentialStore(Protocol):
    def get(self, tenant_id: str, key: str) -> str | None: ...

    def set(self, tenant_id: str, key: str, value: str | None, *, username: str | None = None) -> None: ...

    def all(self, tenant_id: str) -> dict[str, str]: ...

    def tenants(self) -> list[Tenant]: ...


class InMemoryCredentialStore:
    """Dictionary-backed credential store."""

    def __init__(self, data: dict[str, dict[str, str]] | None = None) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, str]] = {t: dict(v) for t, v in (data or {}).items()}
        self._usernames: dict[str, str | None] = {}

    def get(self, tenant_id: str, key: str) -> str | None:
        with self._lock:
            return self._data.get(tenant_id, {}).get(key)

    def set(self, tenant_id: str, key: str, value: str | None, *, username: str | None = None) -> None:
        with self._lock:
            values = self._data.setdefault(tenant_id, {})
            if value is None:
                values.pop(key, None)
            else:
                values[key] = value
            if username is not None:
                self._usernames[tenant_id] = username

    def all(self, tenant_id: str) -> dict[str, str]:
        with self._lock:
            return dict(self._data.get(tenant_id, {}))

    def tenants(self) -> list[Tenant]:
        with self._lock:
            return [
                Tenant(tenant_id, self._usernames.get(tenant_id))
                for tenant_id, values in sorted(self._data.items())
                if values
            ]


class SqlCredentialStore:
    """Credential store over the ``credentials`` table."""

    def __init__(self, sessions: sessionmaker[Session]) -> None:
        self._sessions = sessions

    def get(self, tenant_id: str, key: str) -> str | None:
        with self._sessions() as session:
            return session.execute(
                select(CredentialTable.key_value).where(
                    CredentialTable.tenant_id == tenant_id,
                    CredentialTable.key_name == key,
                )
            ).scalar_one_or_none()

    def set(self, tenant_id: str, key: str, value: str | None, *, username: str | None = None) -> None:
        with self._sessions() as session:
            row = session.execute(
                select(CredentialTable).where(
                    CredentialTable.tenant_id == tenant_id,
                    CredentialTable.key_name == key,
                )
            ).scalar_one_or_none()
            if row is None:
                row = CredentialTable(tenant_id=tenant_id, key_name=key)
                session.add(row)
            row.key_value = value
            if username is not None:
                row.username = username
            session.commit()
        logger.debug("credential_set", tenant=tenant_id, key=key)

    def all(self, tenant_id: str) -> dict[str, str]:
        with self._sessions() as session:
            rows = session.execute(
                select(CredentialTable.key_name, CredentialTable.key_value).where(
                    CredentialTable.tenant_id == tenant_id
                )
            ).all()
        return {name: value for name, value in rows if value is not None}

    def tenants(self) -> list[Tenant]:
        with self._sessions() as session:
            rows = session.execute(
                select(CredentialTable.tenant_id, CredentialTable.username)
                .where(CredentialTable.key_value.is_not(None))
                .order_by(CredentialTable.tenant_id)
            ).all()
        seen: dict[str, str | None] = {}
        for tenant_id, username in rows:
            if seen.get(tenant_id) is None:
                seen[tenant_id] = username
        return [Tenant(tenant_id, username) for tenant_id, username in seen.items()]


__all__ = ["Tenant", "CredentialStore", "InMemoryCredentialStore", "SqlCredentialStore"]
