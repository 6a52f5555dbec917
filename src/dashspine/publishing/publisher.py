"""
Dashboard publisher: idempotent reconciliation of rendered dashboards.

For one (tenant, category, logical key):

    no record                        → create remotely, persist record
    record, dependency state equal   → return stored URL, no remote call
    record, dependency state differs → overwrite remotely, update record in place

A dependency flip in either direction counts: a missing slot whose table
appeared, or a table that disappeared. Remote failures raise
``RemoteAPIFailure`` for the caller to isolate to this key.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from dashspine.core.errors import DashSpineError
from dashspine.core.logging import get_logger
from dashspine.grafana.client import GrafanaClient
from dashspine.publishing.repository import DashboardRecord, DashboardRepository
from dashspine.rendering.renderer import RenderedDashboard
from dashspine.tenants.context import TenantContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class PublishResult:
    url: str
    created: bool
    updated: bool
    record: DashboardRecord

    @property
    def changed(self) -> bool:
        """True when a remote call was made this pass."""
        return self.created or self.updated


class Publisher:
    def __init__(self, repository: DashboardRepository, grafana: GrafanaClient) -> None:
        self._repository = repository
        self._grafana = grafana

    def publish(
        self,
        tenant: TenantContext,
        category: str,
        logical_key: str,
        rendered: RenderedDashboard,
        dependency_state: dict[str, bool] | None = None,
    ) -> PublishResult:
        state = dict(dependency_state or {})
        record = self._repository.get(tenant.tenant_id, category, logical_key)

        if record is not None and record.dependency_state == state:
            logger.debug(
                "dashboard_unchanged",
                tenant=tenant.tenant_id,
                category=category,
                key=logical_key,
            )
            return PublishResult(url=record.remote_url, created=False, updated=False, record=record)

        try:
            published = self._grafana.upsert_dashboard(rendered.definition)
        except DashSpineError as e:
            e.with_context(
                tenant_id=tenant.tenant_id,
                category=category,
                logical_key=logical_key,
                template_type=rendered.template_type.value,
            )
            raise

        if record is None:
            try:
                record = self._repository.create(
                    tenant_id=tenant.tenant_id,
                    username=tenant.username,
                    category=category,
                    logical_key=logical_key,
                    template_type=rendered.template_type.value,
                    remote_url=published.url,
                    remote_uid=published.uid or rendered.uid,
                    dependency_state=state,
                )
            except IntegrityError:
                # Another writer persisted the key between our read and insert
                existing = self._repository.get(tenant.tenant_id, category, logical_key)
                if existing is None:
                    raise
                record = self._repository.update_publication(
                    existing.id,
                    remote_url=published.url,
                    remote_uid=published.uid or rendered.uid,
                    dependency_state=state,
                )
                return PublishResult(url=published.url, created=False, updated=True, record=record)

            logger.info(
                "dashboard_created",
                tenant=tenant.tenant_id,
                category=category,
                key=logical_key,
                url=published.url,
            )
            return PublishResult(url=published.url, created=True, updated=False, record=record)

        record = self._repository.update_publication(
            record.id,
            remote_url=published.url,
            remote_uid=published.uid or rendered.uid,
            dependency_state=state,
        )
        logger.info(
            "dashboard_updated",
            tenant=tenant.tenant_id,
            category=category,
            key=logical_key,
            url=published.url,
        )
        return PublishResult(url=published.url, created=False, updated=True, record=record)


__all__ = ["Publisher", "PublishResult"]
