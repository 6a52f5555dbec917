"""Tenant directory: which tenants the scheduler runs passes for."""

from __future__ import annotations

from dashspine.core.settings import DashSpineSettings
from dashspine.tenants.context import TenantContext
from dashspine.tenants.credentials import CredentialStore, Tenant


class TenantDirectory:
    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def active_tenants(self) -> list[Tenant]:
        """Tenants with at least one credential set, ordered by id."""
        return sorted(
            (t for t in self._store.tenants() if self._store.all(t.tenant_id)),
            key=lambda t: t.tenant_id,
        )

    def context_for(self, tenant: Tenant, settings: DashSpineSettings) -> TenantContext:
        return TenantContext.load(self._store, tenant.tenant_id, settings, username=tenant.username)


__all__ = ["TenantDirectory"]
