"""Teams destination (incoming webhook, MessageCard payload)."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx

from dashspine.notify.base import BaseDestination
from dashspine.notify.protocol import DeliveryResult, DestinationKind, Notification

CARD_SUMMARY = "New Grafana Dashboard Entry"
CARD_COLOR = "0078D7"


def build_message_card(notification: Notification, *, now: datetime | None = None) -> dict[str, Any]:
    timestamp = (now or datetime.now(UTC)).isoformat()
    return {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "summary": CARD_SUMMARY,
        "themeColor": CARD_COLOR,
        "sections": [
            {
                "activityTitle": f"**{CARD_SUMMARY}**",
                "facts": [
                    {"name": "User", "value": notification.creator or "N/A"},
                    {"name": "Table Name", "value": notification.table_name or "N/A"},
                    {"name": "Timestamp", "value": timestamp},
                ],
                "markdown": True,
            }
        ],
        "potentialAction": [
            {
                "@type": "OpenUri",
                "name": "Open Dashboard",
                "targets": [{"os": "default", "uri": notification.dashboard_url}],
            }
        ],
    }


class TeamsDestination(BaseDestination):
    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(DestinationKind.TEAMS, timeout=timeout, transport=transport)
        self._webhook_url = webhook_url

    def _send(self, notification: Notification) -> DeliveryResult:
        response = self._client.post(self._webhook_url, json=build_message_card(notification))
        # Only a plain 200 counts as accepted
        if response.status_code != 200:
            raise self._failure(
                f"Teams webhook returned HTTP {response.status_code}",
                notification,
                http_status=response.status_code,
            )
        return DeliveryResult.ok(self.kind, message=response.text)


__all__ = ["TeamsDestination", "build_message_card"]
