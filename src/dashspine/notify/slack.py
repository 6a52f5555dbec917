"""
Slack destination (bot token + channel id, Web API).

Delivery is the link message. When it is accepted and a snapshot exists the
GIF goes up through the external upload flow:

    files.getUploadURLExternal  → upload_url, file_id
    POST <upload_url>           → raw file bytes
    files.completeUploadExternal → shared file object

followed by a message with an image block. The image steps are best effort:
a failed upload is logged and the delivery still counts as sent.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import httpx

from dashspine.core.errors import NotificationFailure
from dashspine.core.logging import get_logger
from dashspine.notify.base import BaseDestination
from dashspine.notify.protocol import DeliveryResult, DestinationKind, Notification

logger = get_logger(__name__)

SLACK_API_URL = "https://slack.com/api"
UPLOAD_FILENAME = "dashboard.gif"
UPLOAD_TITLE = "Dashboard GIF"
ANALYSIS_TEXT = "This dashboard provides in-depth analysis and visualizations for your data."


def build_link_blocks(notification: Notification) -> list[dict[str, Any]]:
    creator = notification.creator
    return [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"New Dashboard Created by {creator}", "emoji": True},
        },
        {"type": "section", "text": {"type": "mrkdwn", "text": "A new dashboard has been created!"}},
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Creator:* {creator}"},
                {"type": "mrkdwn", "text": f"*Table Name:* {notification.table_name}"},
            ],
        },
        {"type": "section", "text": {"type": "mrkdwn", "text": ANALYSIS_TEXT}},
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Dashboard Link:*\n{notification.dashboard_url}"},
        },
    ]


def build_image_blocks(table_name: str, image_url: str) -> list[dict[str, Any]]:
    return [
        {"type": "section", "text": {"type": "mrkdwn", "text": f"*Dashboard Preview for {table_name}*"}},
        {
            "type": "image",
            "title": {"type": "plain_text", "text": f"Dashboard Preview for {table_name}"},
            "image_url": image_url,
            "alt_text": "Dashboard Preview",
        },
    ]


class SlackDestination(BaseDestination):
    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        *,
        api_url: str = SLACK_API_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(DestinationKind.SLACK, timeout=timeout, transport=transport)
        self._token = bot_token
        self._channel_id = channel_id
        self._api_url = api_url.rstrip("/")

    @property
    def _auth(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    def _api(self, method: str, **kwargs: Any) -> dict[str, Any]:
        response = self._client.post(f"{self._api_url}/{method}", headers=self._auth, **kwargs)
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError as e:
            raise NotificationFailure(f"Slack {method} returned a non-JSON body", cause=e) from e
        if not isinstance(body, dict):
            raise NotificationFailure(f"Slack {method} returned an unexpected body")
        return body

    def _send(self, notification: Notification) -> DeliveryResult:
        body = self._api(
            "chat.postMessage",
            json={"channel": self._channel_id, "blocks": build_link_blocks(notification)},
        )
        if not body.get("ok"):
            raise self._failure(
                f"Slack rejected dashboard link: {body.get('error', 'unknown error')}",
                notification,
            )

        result = DeliveryResult.ok(self.kind, message="link posted", response=body)
        if notification.snapshot_path:
            self._share_snapshot(notification)
        return result

    # ── snapshot upload ──────────────────────────────────────────────

    def _share_snapshot(self, notification: Notification) -> bool:
        path = Path(notification.snapshot_path or "")
        if not path.is_file():
            logger.warning("snapshot_missing", path=str(path), key=notification.table_name)
            return False
        try:
            shared = self.upload_file(path)
            image_url = shared.get("url_private") or shared.get("url_private_download")
            if not image_url:
                raise NotificationFailure("Uploaded file has no private URL")
            self._api(
                "chat.postMessage",
                json={
                    "channel": self._channel_id,
                    "text": f"Dashboard Preview for {notification.table_name}",
                    "blocks": build_image_blocks(notification.table_name, image_url),
                },
            )
        except Exception as e:
            # The link is already posted; the preview never decides delivery
            logger.warning(
                "snapshot_upload_failed",
                tenant=notification.tenant_id,
                key=notification.table_name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False
        logger.info("snapshot_shared", tenant=notification.tenant_id, key=notification.table_name)
        return True

    def upload_file(self, path: Path) -> dict[str, Any]:
        """Upload a file and share it in the channel; returns Slack's file object."""
        content = path.read_bytes()
        if not content:
            raise NotificationFailure(f"Snapshot {path} is empty")

        step1 = self._api(
            "files.getUploadURLExternal",
            data={"filename": UPLOAD_FILENAME, "length": str(len(content))},
        )
        if not step1.get("ok") or not step1.get("upload_url") or not step1.get("file_id"):
            reason = step1.get("error", "incomplete response")
            raise NotificationFailure(f"Failed to get upload URL: {reason}")

        upload = self._client.post(
            step1["upload_url"],
            files={"file": (UPLOAD_FILENAME, content, "image/gif")},
        )
        upload.raise_for_status()

        step3 = self._api(
            "files.completeUploadExternal",
            json={
                "files": [{"id": step1["file_id"], "title": UPLOAD_TITLE}],
                "channel_id": self._channel_id,
            },
        )
        files = step3.get("files") or []
        if not step3.get("ok") or not files:
            raise NotificationFailure("Upload completion failed")
        return files[0]


__all__ = ["SlackDestination", "build_link_blocks", "build_image_blocks", "SLACK_API_URL"]
