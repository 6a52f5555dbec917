"""Tests for the Slack destination."""

from __future__ import annotations

import json
from dataclasses import replace
from urllib.parse import parse_qs

import httpx
import pytest

from dashspine.notify.protocol import DestinationKind, Notification
from dashspine.notify.slack import SlackDestination, build_image_blocks, build_link_blocks

UPLOAD_URL = "https://files.slack.com/upload/v1/abc"


class FakeSlack:
    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.post_ok = True
        self.complete_ok = True
        self.upload_status = 200
        self.upload_url_response: httpx.Response | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url.endswith("/chat.postMessage"):
            if self.post_ok:
                return httpx.Response(200, json={"ok": True, "ts": "1.0"})
            return httpx.Response(200, json={"ok": False, "error": "channel_not_found"})
        if url.endswith("/files.getUploadURLExternal"):
            if self.upload_url_response is not None:
                return self.upload_url_response
            return httpx.Response(200, json={"ok": True, "upload_url": UPLOAD_URL, "file_id": "F1"})
        if url == UPLOAD_URL:
            return httpx.Response(self.upload_status, text="OK")
        if url.endswith("/files.completeUploadExternal"):
            if not self.complete_ok:
                return httpx.Response(200, json={"ok": False, "error": "invalid"})
            return httpx.Response(
                200, json={"ok": True, "files": [{"id": "F1", "url_private": "https://files/F1.gif"}]}
            )
        return httpx.Response(404)

    def calls(self) -> list[str]:
        return [str(r.url).rsplit("/", 1)[-1] for r in self.requests]


@pytest.fixture
def slack_fake() -> FakeSlack:
    return FakeSlack()


@pytest.fixture
def destination(slack_fake):
    with SlackDestination("xoxb-token", "C123", transport=httpx.MockTransport(slack_fake.handler)) as d:
        yield d


@pytest.fixture
def notification() -> Notification:
    return Notification(
        record_id=1,
        tenant_id="7",
        creator="alice",
        table_name="foo_grafana_pd",
        dashboard_url="https://grafana.example.com/d/qor-1/dash",
    )


def _with_snapshot(notification, path):
    return replace(notification, snapshot_path=str(path))


class TestBlocks:
    def test_link_blocks(self, notification):
        blocks = build_link_blocks(notification)
        assert blocks[0]["text"]["text"] == "New Dashboard Created by alice"
        assert blocks[2]["fields"][1]["text"] == "*Table Name:* foo_grafana_pd"
        assert blocks[-1]["text"]["text"].endswith(notification.dashboard_url)

    def test_image_blocks(self):
        image = build_image_blocks("foo", "https://files/F1.gif")[1]
        assert image["type"] == "image"
        assert image["image_url"] == "https://files/F1.gif"
        assert image["alt_text"] == "Dashboard Preview"


class TestSlackDestination:
    def test_link_only(self, destination, slack_fake, notification):
        result = destination.send(notification)

        assert result.success
        assert result.kind is DestinationKind.SLACK
        assert slack_fake.calls() == ["chat.postMessage"]
        request = slack_fake.requests[0]
        assert request.headers["Authorization"] == "Bearer xoxb-token"
        assert json.loads(request.content)["channel"] == "C123"

    def test_rejected_link_fails(self, destination, slack_fake, notification):
        slack_fake.post_ok = False
        result = destination.send(notification)
        assert not result.success
        assert "channel_not_found" in result.message
        assert result.error.context.destination == "slack"

    def test_http_error_fails(self, notification):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with SlackDestination("t", "C", transport=httpx.MockTransport(handler)) as d:
            result = d.send(notification)
        assert not result.success
        assert isinstance(result.error.cause, httpx.ConnectError)

    def test_snapshot_upload_flow(self, destination, slack_fake, notification, tmp_path):
        gif = tmp_path / "dashboard_1.gif"
        gif.write_bytes(b"GIF89a-data")

        result = destination.send(_with_snapshot(notification, gif))

        assert result.success
        assert slack_fake.calls() == [
            "chat.postMessage",
            "files.getUploadURLExternal",
            "abc",
            "files.completeUploadExternal",
            "chat.postMessage",
        ]
        step1 = parse_qs(slack_fake.requests[1].content.decode())
        assert step1 == {"filename": ["dashboard.gif"], "length": [str(len(b"GIF89a-data"))]}
        complete = json.loads(slack_fake.requests[3].content)
        assert complete == {"files": [{"id": "F1", "title": "Dashboard GIF"}], "channel_id": "C123"}
        image_post = json.loads(slack_fake.requests[4].content)
        assert image_post["blocks"][1]["image_url"] == "https://files/F1.gif"

    def test_failed_upload_still_counts_as_sent(self, destination, slack_fake, notification, tmp_path):
        gif = tmp_path / "dashboard_1.gif"
        gif.write_bytes(b"GIF89a")
        slack_fake.complete_ok = False
        assert destination.send(_with_snapshot(notification, gif)).success
        assert slack_fake.calls()[-1] == "files.completeUploadExternal"

    def test_upload_http_error_still_counts_as_sent(self, destination, slack_fake, notification, tmp_path):
        gif = tmp_path / "dashboard_1.gif"
        gif.write_bytes(b"GIF89a")
        slack_fake.upload_status = 500
        assert destination.send(_with_snapshot(notification, gif)).success

    def test_missing_snapshot_file_skips_upload(self, destination, slack_fake, notification, tmp_path):
        result = destination.send(_with_snapshot(notification, tmp_path / "gone.gif"))
        assert result.success
        assert slack_fake.calls() == ["chat.postMessage"]

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>maintenance</html>"),
            httpx.Response(200, json={"ok": True}),
            httpx.Response(200, json=["unexpected"]),
        ],
        ids=["html-body", "missing-upload-url", "non-object"],
    )
    def test_malformed_upload_reply_still_counts_as_sent(
        self, destination, slack_fake, notification, tmp_path, response
    ):
        gif = tmp_path / "dashboard_1.gif"
        gif.write_bytes(b"GIF89a")
        slack_fake.upload_url_response = response

        result = destination.send(_with_snapshot(notification, gif))

        assert result.success
        assert slack_fake.calls() == ["chat.postMessage", "files.getUploadURLExternal"]

    def test_non_json_link_reply_fails_cleanly(self, notification):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with SlackDestination("t", "C", transport=httpx.MockTransport(handler)) as d:
            result = d.send(notification)
        assert not result.success
        assert "non-JSON" in result.message
