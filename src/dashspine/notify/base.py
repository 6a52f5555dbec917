"""Destination base class: owns the HTTP client and failure wrapping."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx

from dashspine.core.errors import NotificationFailure
from dashspine.notify.protocol import DeliveryResult, DestinationKind, Notification


class BaseDestination(ABC):
    def __init__(
        self,
        kind: DestinationKind,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._kind = kind
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @property
    def kind(self) -> DestinationKind:
        return self._kind

    def __enter__(self) -> BaseDestination:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def send(self, notification: Notification) -> DeliveryResult:
        """Deliver, turning any transport or protocol error into a failed result."""
        try:
            return self._send(notification)
        except NotificationFailure as e:
            return DeliveryResult.fail(self._kind, e)
        except httpx.HTTPError as e:
            failure = NotificationFailure(f"{self._kind.value} delivery failed: {e}", cause=e)
            return DeliveryResult.fail(self._kind, failure)

    def _failure(self, message: str, notification: Notification, **metadata: Any) -> NotificationFailure:
        return NotificationFailure(message).with_context(
            tenant_id=notification.tenant_id,
            logical_key=notification.table_name,
            destination=self._kind.value,
            **metadata,
        )

    @abstractmethod
    def _send(self, notification: Notification) -> DeliveryResult:
        """Deliver the notification; may raise ``NotificationFailure`` or ``httpx.HTTPError``."""
        ...
