"""
Notification protocol and data classes.

A ``Destination`` delivers one ``Notification`` (a published dashboard) to
one chat or webhook target and reports the outcome as a ``DeliveryResult``.
Destinations never raise for delivery problems; the dispatcher decides what
a failure means for the record's delivery state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from dashspine.publishing.repository import DashboardRecord
from dashspine.tenants.context import TenantContext


class DestinationKind(str, Enum):
    """Delivery state keys stored on dashboard records."""

    SLACK = "slack"
    TEAMS = "teams"


@dataclass(frozen=True)
class Notification:
    """A published dashboard to announce."""

    record_id: int
    tenant_id: str
    creator: str
    table_name: str
    dashboard_url: str
    snapshot_path: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_record(cls, record: DashboardRecord, tenant: TenantContext) -> Notification:
        return cls(
            record_id=record.id,
            tenant_id=record.tenant_id,
            creator=record.username or tenant.display_name,
            table_name=record.logical_key,
            dashboard_url=record.remote_url,
            snapshot_path=record.snapshot_path,
        )


@dataclass
class DeliveryResult:
    """Result of one delivery attempt."""

    kind: DestinationKind
    success: bool
    message: str | None = None
    response: dict[str, Any] | None = None
    error: Exception | None = None
    delivered_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def ok(cls, kind: DestinationKind, message: str | None = None, **kwargs: Any) -> DeliveryResult:
        return cls(kind=kind, success=True, message=message, **kwargs)

    @classmethod
    def fail(cls, kind: DestinationKind, error: Exception) -> DeliveryResult:
        return cls(kind=kind, success=False, error=error, message=str(error))


@runtime_checkable
class Destination(Protocol):
    """
    Protocol for notification destinations.

    Implementations must provide:
    - kind: delivery state key
    - send(): deliver a notification
    """

    @property
    def kind(self) -> DestinationKind: ...

    def send(self, notification: Notification) -> DeliveryResult: ...


__all__ = ["DestinationKind", "Notification", "DeliveryResult", "Destination"]
