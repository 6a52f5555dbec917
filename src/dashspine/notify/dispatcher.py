"""
Notification dispatcher.

For one tenant, finds dashboard records with an undelivered configured
destination and delivers each pending destination once. Delivery flags are
independent: Slack succeeding while Teams fails leaves only the Teams flag
unset for the next pass. Nothing is retried within a pass.

Failures increment ``delivery_attempts[kind]``; once the count reaches
``max_attempts`` the destination is abandoned for that record.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from dashspine.core.logging import get_logger
from dashspine.notify.protocol import Destination, Notification
from dashspine.notify.slack import SlackDestination
from dashspine.notify.teams import TeamsDestination
from dashspine.publishing.repository import DashboardRepository
from dashspine.tenants.context import TenantContext

logger = get_logger(__name__)

DestinationFactory = Callable[[TenantContext], list[Destination]]


def build_destinations(
    tenant: TenantContext,
    *,
    timeout: float = 30.0,
    transport: httpx.BaseTransport | None = None,
) -> list[Destination]:
    """Destinations the tenant has credentials for."""
    destinations: list[Destination] = []
    if tenant.slack_configured:
        destinations.append(
            SlackDestination(
                tenant.slack_bot_token or "",
                tenant.slack_channel_id or "",
                timeout=timeout,
                transport=transport,
            )
        )
    if tenant.teams_configured:
        destinations.append(
            TeamsDestination(tenant.teams_webhook_url or "", timeout=timeout, transport=transport)
        )
    return destinations


@dataclass
class DispatchReport:
    tenant_id: str
    sent: dict[str, int] = field(default_factory=dict)
    failed: dict[str, int] = field(default_factory=dict)
    abandoned: list[str] = field(default_factory=list)

    @property
    def total_sent(self) -> int:
        return sum(self.sent.values())

    def tally(self, bucket: dict[str, int], kind: str) -> None:
        bucket[kind] = bucket.get(kind, 0) + 1


class Dispatcher:
    def __init__(
        self,
        repository: DashboardRepository,
        *,
        max_attempts: int = 20,
        destination_factory: DestinationFactory = build_destinations,
    ) -> None:
        self._repository = repository
        self._max_attempts = max_attempts
        self._destination_factory = destination_factory

    def dispatch(self, tenant: TenantContext) -> DispatchReport:
        report = DispatchReport(tenant_id=tenant.tenant_id)
        destinations = self._destination_factory(tenant)
        if not destinations:
            logger.debug("no_destinations", tenant=tenant.tenant_id)
            return report

        kinds = [d.kind.value for d in destinations]
        pending = self._repository.pending_notifications(
            tenant.tenant_id, kinds, max_attempts=self._max_attempts
        )
        try:
            for record in pending:
                notification = Notification.from_record(record, tenant)
                for destination in destinations:
                    kind = destination.kind.value
                    if record.is_sent(kind):
                        continue
                    if self._max_attempts and record.attempts(kind) >= self._max_attempts:
                        continue
                    self._deliver(destination, notification, report)
        finally:
            for destination in destinations:
                close = getattr(destination, "close", None)
                if close is not None:
                    close()

        if pending:
            logger.info(
                "notifications_dispatched",
                tenant=tenant.tenant_id,
                pending=len(pending),
                sent=report.sent,
                failed=report.failed,
            )
        return report

    def _deliver(self, destination: Destination, notification: Notification, report: DispatchReport) -> None:
        kind = destination.kind.value
        try:
            result = destination.send(notification)
        except Exception as e:
            # Custom destinations may raise; keep the record isolated
            logger.error("delivery_error", destination=kind, key=notification.table_name, error=str(e))
            success, message = False, str(e)
        else:
            success, message = result.success, result.message

        if success:
            self._repository.mark_sent(notification.record_id, kind)
            report.tally(report.sent, kind)
            logger.info(
                "notification_sent",
                tenant=notification.tenant_id,
                destination=kind,
                key=notification.table_name,
            )
            return

        attempts = self._repository.record_failure(notification.record_id, kind)
        report.tally(report.failed, kind)
        logger.warning(
            "notification_failed",
            tenant=notification.tenant_id,
            destination=kind,
            key=notification.table_name,
            attempts=attempts,
            error=message,
        )
        if self._max_attempts and attempts >= self._max_attempts:
            report.abandoned.append(f"{notification.table_name}:{kind}")
            logger.warning(
                "notification_abandoned",
                tenant=notification.tenant_id,
                destination=kind,
                key=notification.table_name,
                attempts=attempts,
            )


__all__ = ["Dispatcher", "DispatchReport", "build_destinations"]
