"""
Datasource sync: make sure Grafana has a Postgres datasource per category.

For every category database a tenant has configured, look the datasource up
by name (the database name) and create it when absent. The uid Grafana
reports is written back to the credential store as ``GRAFANA_UID_<CATEGORY>``
so rendering can point panels at it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from dashspine.catalog.categories import Category
from dashspine.core.errors import ConfigurationMissing, DashSpineError
from dashspine.core.logging import get_logger
from dashspine.core.settings import DashSpineSettings
from dashspine.grafana.client import GrafanaClient
from dashspine.tenants.context import DB_PASS, DB_USER, TenantContext
from dashspine.tenants.credentials import CredentialStore

logger = get_logger(__name__)

GrafanaFactory = Callable[[str, str], GrafanaClient]


@dataclass
class SyncReport:
    """Outcome of one datasource sync for a tenant."""

    synced: dict[str, str] = field(default_factory=dict)
    created: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


def build_datasource_payload(
    tenant: TenantContext,
    database: str,
    settings: DashSpineSettings,
) -> dict[str, Any]:
    """Grafana datasource body for one tenant database."""
    return {
        "name": database,
        "type": "postgres",
        "access": "proxy",
        "url": f"{tenant.require_db_host()}:{tenant.require_db_port()}",
        "user": tenant.db_user,
        "database": database,
        "secureJsonData": {"password": str(tenant.db_pass)},
        "jsonData": {
            "sslmode": "require" if settings.db_ssl else "disable",
            "maxOpenConnections": 20,
            "maxIdleConnections": 20,
            "maxConnectionLifetime": 14400,
        },
        "basicAuth": False,
        "isDefault": False,
    }


class DatasourceSync:
    def __init__(
        self,
        store: CredentialStore,
        settings: DashSpineSettings,
        grafana_factory: GrafanaFactory | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._grafana_factory = grafana_factory or (
            lambda url, key: GrafanaClient(url, key, timeout=settings.http_timeout)
        )

    def sync(self, tenant: TenantContext) -> tuple[TenantContext, SyncReport]:
        """Ensure datasources exist; returns the context with fresh uids."""
        report = SyncReport()
        categories = tenant.configured_categories()
        if not categories:
            return tenant, report

        try:
            url, key = tenant.require_grafana()
            tenant.require_db_host()
            tenant.require_db_port()
            if not tenant.db_user:
                raise ConfigurationMissing(DB_USER)
            if not tenant.db_pass:
                raise ConfigurationMissing(DB_PASS)
        except ConfigurationMissing as e:
            logger.warning("datasource_sync_skipped", tenant=tenant.tenant_id, missing=e.key)
            report.errors["*"] = e.message
            return tenant, report

        with self._grafana_factory(url, key) as grafana:
            for category in categories:
                try:
                    uid, created = self._ensure(grafana, tenant, category)
                except DashSpineError as e:
                    logger.error(
                        "datasource_sync_failed",
                        tenant=tenant.tenant_id,
                        category=category.value,
                        error=e.message,
                    )
                    report.errors[category.value] = e.message
                    continue

                report.synced[category.value] = uid
                if created:
                    report.created.append(category.value)
                if tenant.values.get(category.datasource_uid_key) != uid:
                    self._store.set(
                        tenant.tenant_id,
                        category.datasource_uid_key,
                        uid,
                        username=tenant.username,
                    )
                tenant = tenant.with_datasource_uid(category, uid)

        logger.info(
            "datasource_sync_complete",
            tenant=tenant.tenant_id,
            synced=len(report.synced),
            created=len(report.created),
            failed=len(report.errors),
        )
        return tenant, report

    def _ensure(
        self,
        grafana: GrafanaClient,
        tenant: TenantContext,
        category: Category,
    ) -> tuple[str, bool]:
        database = tenant.database_for(category)
        existing = grafana.find_datasource(database)
        if existing and existing.get("uid"):
            return existing["uid"], False

        datasource = grafana.create_datasource(
            build_datasource_payload(tenant, database, self._settings)
        )
        logger.info(
            "datasource_created",
            tenant=tenant.tenant_id,
            category=category.value,
            name=database,
        )
        return datasource["uid"], True


__all__ = ["DatasourceSync", "SyncReport", "build_datasource_payload"]
