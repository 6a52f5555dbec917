"""Tests for PipelineOrchestrator passes."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import httpx
import pytest
from structlog.testing import capture_logs

from dashspine.catalog.rules import TemplateType
from dashspine.core.errors import ConnectionFailure, LockError, RenderError
from dashspine.notify.dispatcher import DispatchReport
from dashspine.pipeline.orchestrator import CancellationToken, PipelineOrchestrator, Stage
from dashspine.rendering.renderer import Renderer
from dashspine.tenants.credentials import InMemoryCredentialStore, Tenant


class FakeScanner:
    """Returns canned table lists per category, or raises."""

    def __init__(self, tables: dict[str, list[str]] | None = None) -> None:
        self.tables = tables or {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.on_scan = None

    def scan(self, tenant, category):
        self.calls.append(category.value)
        if self.on_scan is not None:
            self.on_scan()
        if category.value in self.errors:
            raise self.errors[category.value]
        return list(self.tables.get(category.value, []))


class SchemaUrlScanner(FakeScanner):
    """Builds the connection URL first, like the real scanner."""

    def scan(self, tenant, category):
        tenant.schema_url(category)
        return super().scan(tenant, category)


@pytest.fixture
def scanner() -> FakeScanner:
    return FakeScanner(
        {
            "timing_report": ["clk_skew", "run1_cts", "run1_route", "users"],
            "reports": ["foo_grafana_pd", "foo_pathgroups_pd"],
        }
    )


@pytest.fixture
def seeded_grafana(grafana_fake):
    grafana_fake.datasources = [
        {"name": "timing_db", "uid": "ds-timing"},
        {"name": "reports_db", "uid": "ds-reports"},
    ]
    return grafana_fake


@pytest.fixture
def dispatcher():
    d = MagicMock(name="dispatcher")
    d.dispatch.side_effect = lambda ctx: DispatchReport(tenant_id=ctx.tenant_id)
    return d


def _orchestrator(store, repository, mutex, settings, scanner, grafana_fake, dispatcher, **kwargs):
    return PipelineOrchestrator(
        store,
        repository,
        mutex,
        settings,
        scanner=scanner,
        renderer=kwargs.pop("renderer", Renderer(clock=lambda: 1)),
        grafana_factory=grafana_fake.factory,
        dispatcher=dispatcher,
        **kwargs,
    )


@pytest.fixture
def orchestrator(store, repository, mutex, settings, scanner, seeded_grafana, dispatcher):
    return _orchestrator(store, repository, mutex, settings, scanner, seeded_grafana, dispatcher)


TENANT = Tenant("7", "alice")


def _posted_uid(request: httpx.Request) -> str:
    return json.loads(request.content)["dashboard"]["uid"]


# =============================================================================
# Full passes
# =============================================================================


class TestRunPass:
    def test_first_pass_creates_dashboards(self, orchestrator, repository, seeded_grafana, dispatcher):
        report = orchestrator.run_pass(TENANT)

        assert not report.skipped and not report.cancelled
        assert report.stage is Stage.LOCK_RELEASED
        timing = report.categories["timing_report"]
        assert sorted(timing.created) == ["clk_skew", "run1-delay-compare", "run1-slack-compare"]
        assert timing.tables == 4
        assert report.categories["reports"].created == ["foo_grafana_pd"]
        assert report.categories["qor"].skipped == "not configured"
        assert report.created == 4
        assert len(seeded_grafana.dashboard_posts()) == 4
        dispatcher.dispatch.assert_called_once()

    def test_second_pass_is_a_no_op(self, orchestrator, repository, seeded_grafana):
        orchestrator.run_pass(TENANT)
        report = orchestrator.run_pass(TENANT)

        assert report.created == 0 and report.updated == 0
        assert report.categories["timing_report"].unchanged == 3
        assert len(seeded_grafana.dashboard_posts()) == 4
        assert len(repository.list_for_tenant("7")) == 4

    def test_new_table_updates_group(self, orchestrator, scanner, seeded_grafana):
        scanner.tables["reports"] = ["foo_grafana_pd"]
        orchestrator.run_pass(TENANT)
        scanner.tables["reports"] = ["foo_grafana_pd", "foo_violations_pd"]
        report = orchestrator.run_pass(TENANT)
        assert report.categories["reports"].updated == ["foo_grafana_pd"]

    def test_records_use_datasource_uid(self, orchestrator, seeded_grafana):
        orchestrator.run_pass(TENANT)
        skew = next(d for d in seeded_grafana.dashboards.values() if d["uid"].startswith("skew-"))
        assert '"ds-timing"' in json.dumps(skew)


# =============================================================================
# Locking / cancellation
# =============================================================================


class TestLocking:
    def test_held_lock_skips_pass(self, orchestrator, mutex, scanner):
        mutex.try_acquire("7")
        report = orchestrator.run_pass(TENANT)
        assert report.skipped
        assert scanner.calls == []

    def test_lock_released_after_crash(self, orchestrator, mutex, scanner):
        scanner.errors["timing_report"] = RuntimeError("bug")
        with pytest.raises(RuntimeError):
            orchestrator.run_pass(TENANT)
        assert not mutex.is_locked("7")

    def test_cancelled_before_start(self, orchestrator, mutex, scanner, dispatcher):
        token = CancellationToken()
        token.cancel()
        report = orchestrator.run_pass(TENANT, token)
        assert report.cancelled
        assert scanner.calls == []
        dispatcher.dispatch.assert_not_called()
        assert not mutex.is_locked("7")

    def test_cancel_mid_category_stops_new_work(self, orchestrator, scanner, seeded_grafana, dispatcher):
        token = CancellationToken()
        scanner.on_scan = token.cancel
        report = orchestrator.run_pass(TENANT, token)
        assert report.cancelled
        assert seeded_grafana.dashboard_posts() == []
        assert scanner.calls == ["timing_report"]
        dispatcher.dispatch.assert_not_called()

    def test_lease_renewed_while_capturing(
        self, store, repository, mutex, settings, scanner, seeded_grafana, dispatcher
    ):
        mutex.refresh = MagicMock(wraps=mutex.refresh)
        held = []
        capturer = MagicMock(name="capturer")
        capturer.capture.side_effect = lambda url, token: held.append(mutex.is_locked("7"))
        orchestrator = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher,
            capturer=capturer, lease_refresh_seconds=0,
        )
        report = orchestrator.run_pass(TENANT)

        assert not report.lease_lost
        assert held == [True] * 4
        # one renewal per published key and per capture, at least
        assert mutex.refresh.call_count >= 8
        assert all(c.args[0] == "7" and c.args[1].startswith("test:") for c in mutex.refresh.call_args_list)
        assert not mutex.is_locked("7")

    def test_lease_not_renewed_before_interval(self, orchestrator, mutex):
        mutex.refresh = MagicMock(wraps=mutex.refresh)
        orchestrator.run_pass(TENANT)
        mutex.refresh.assert_not_called()

    def test_lost_lease_halts_pass(
        self, store, repository, mutex, settings, scanner, seeded_grafana, dispatcher
    ):
        taken_over = []
        mutex.refresh = MagicMock(side_effect=lambda tenant_id, token: not taken_over)
        capturer = MagicMock(name="capturer")
        capturer.capture.side_effect = lambda url, token: taken_over.append(url)
        orchestrator = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher,
            capturer=capturer, lease_refresh_seconds=0,
        )
        report = orchestrator.run_pass(TENANT)

        assert report.lease_lost and not report.cancelled
        assert report.created == 4
        assert capturer.capture.call_count == 1
        dispatcher.dispatch.assert_not_called()

    def test_lease_backend_error_is_retried(
        self, store, repository, mutex, settings, scanner, seeded_grafana, dispatcher
    ):
        mutex.refresh = MagicMock(side_effect=[LockError("state store busy"), True, True, True] * 10)
        orchestrator = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher,
            lease_refresh_seconds=0,
        )
        report = orchestrator.run_pass(TENANT)
        assert not report.lease_lost
        assert report.created == 4
        dispatcher.dispatch.assert_called_once()


# =============================================================================
# Failure isolation
# =============================================================================


class TestIsolation:
    def test_unreachable_category_does_not_stop_others(self, orchestrator, scanner):
        scanner.errors["timing_report"] = ConnectionFailure("refused")
        report = orchestrator.run_pass(TENANT)
        assert report.categories["timing_report"].skipped == "connection failed"
        assert report.categories["reports"].created == ["foo_grafana_pd"]

    def test_missing_grafana_key_skips_categories(
        self, tenant_values, repository, mutex, settings, scanner, grafana_fake, dispatcher
    ):
        values = {k: v for k, v in tenant_values.items() if k != "GRAFANA_API_KEY"}
        store = InMemoryCredentialStore({"7": values})
        orchestrator = _orchestrator(store, repository, mutex, settings, scanner, grafana_fake, dispatcher)
        report = orchestrator.run_pass(TENANT)
        assert report.categories["reports"].skipped == "missing GRAFANA_API_KEY"
        assert grafana_fake.dashboard_posts() == []

    def test_render_failure_is_key_level(self, store, repository, mutex, settings, scanner, seeded_grafana, dispatcher):
        class FailingSkew(Renderer):
            def render(self, template_type, resolution, datasource_uid=None, *, dedupe=True):
                if template_type is TemplateType.SKEW:
                    raise RenderError("left over", unresolved=["{{TABLE_NAME}}"])
                return super().render(template_type, resolution, datasource_uid, dedupe=dedupe)

        orchestrator = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher,
            renderer=FailingSkew(clock=lambda: 1),
        )
        report = orchestrator.run_pass(TENANT)
        timing = report.categories["timing_report"]
        assert list(timing.failed) == ["clk_skew"]
        assert sorted(timing.created) == ["run1-delay-compare", "run1-slack-compare"]

    def test_remote_failure_is_key_level(self, orchestrator, seeded_grafana):
        original = seeded_grafana.handler

        def flaky(request):
            if request.url.path == "/api/dashboards/db" and _posted_uid(request).startswith("skew-"):
                seeded_grafana.requests.append(request)
                return httpx.Response(500, json={"message": "boom"})
            return original(request)

        seeded_grafana.handler = flaky
        report = orchestrator.run_pass(TENANT)
        assert "clk_skew" in report.categories["timing_report"].failed
        assert report.categories["reports"].created == ["foo_grafana_pd"]

    def test_invalid_db_port_skips_categories_not_the_pass(
        self, tenant_values, repository, mutex, settings, grafana_fake, dispatcher
    ):
        store = InMemoryCredentialStore({"7": {**tenant_values, "DB_PORT": "5432x"}})
        scanner = SchemaUrlScanner({"timing_report": ["clk_skew"], "reports": ["foo_grafana_pd"]})
        orchestrator = _orchestrator(store, repository, mutex, settings, scanner, grafana_fake, dispatcher)

        report = orchestrator.run_pass(TENANT)

        assert report.categories["timing_report"].skipped == "missing DB_PORT"
        assert report.categories["reports"].skipped == "missing DB_PORT"
        assert grafana_fake.requests == []
        dispatcher.dispatch.assert_called_once()
        assert not mutex.is_locked("7")

    def test_datasource_sync_crash_is_not_fatal(
        self, store, repository, mutex, settings, scanner, seeded_grafana, dispatcher
    ):
        sync = MagicMock(name="datasource_sync")
        sync.sync.side_effect = RuntimeError("unexpected datasource payload")
        orchestrator = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher,
            datasource_sync=sync,
        )
        with capture_logs() as logs:
            report = orchestrator.run_pass(TENANT)

        assert report.created == 4
        dispatcher.dispatch.assert_called_once()
        error = next(e for e in logs if e["event"] == "datasource_sync_error")
        assert error["error_category"] == "UNKNOWN"
        assert error["retryable"] is False

    def test_datasource_sync_connection_error_is_retryable(
        self, store, repository, mutex, settings, scanner, seeded_grafana, dispatcher
    ):
        sync = MagicMock(name="datasource_sync")
        sync.sync.side_effect = ConnectionError("grafana reset the connection")
        orchestrator = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher,
            datasource_sync=sync,
        )
        with capture_logs() as logs:
            orchestrator.run_pass(TENANT)
        error = next(e for e in logs if e["event"] == "datasource_sync_error")
        assert error["error_category"] == "DATABASE"
        assert error["retryable"] is True


# =============================================================================
# Whole-table categories
# =============================================================================


class TestWholeTable:
    def test_one_dashboard_per_table_once(
        self, tenant_values, repository, mutex, settings, grafana_fake, dispatcher
    ):
        store = InMemoryCredentialStore(
            {"7": {**tenant_values, "DB_NAME_QOR": "qor_db", "GRAFANA_UID_QOR": "ds-qor"}}
        )
        grafana_fake.datasources = [
            {"name": "timing_db", "uid": "ds-timing"},
            {"name": "reports_db", "uid": "ds-reports"},
            {"name": "qor_db", "uid": "ds-qor"},
        ]
        scanner = FakeScanner({"qor": ["block_a", "block_b"]})
        orchestrator = _orchestrator(store, repository, mutex, settings, scanner, grafana_fake, dispatcher)

        first = orchestrator.run_pass(TENANT)
        second = orchestrator.run_pass(TENANT)

        assert sorted(first.categories["qor"].created) == ["block_a", "block_b"]
        assert second.categories["qor"].classified == 0
        titles = sorted(p["dashboard"]["title"] for p in grafana_fake.dashboard_posts())
        assert titles == ["QOR Dashboard: block_a (1)", "QOR Dashboard: block_b (1)"]


# =============================================================================
# Capture
# =============================================================================


class TestCapture:
    @pytest.fixture
    def capturer(self, tmp_path):
        c = MagicMock(name="capturer")
        c.capture.side_effect = lambda url, token: tmp_path / f"dashboard_{abs(hash(url))}.gif"
        return c

    def test_changed_dashboards_captured(self, store, repository, mutex, settings, scanner, seeded_grafana, dispatcher, capturer):
        orchestrator = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher, capturer=capturer
        )
        report = orchestrator.run_pass(TENANT)

        assert len(report.captured) == 4
        assert capturer.capture.call_args.args[1] == "glsa_key"
        assert all(r.snapshot_path for r in repository.list_for_tenant("7"))

        capturer.capture.reset_mock()
        orchestrator.run_pass(TENANT)
        capturer.capture.assert_not_called()

    def test_capture_failure_is_not_fatal(self, store, repository, mutex, settings, scanner, seeded_grafana, dispatcher, capturer):
        capturer.capture.side_effect = lambda url, token: None
        orchestrator = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher, capturer=capturer
        )
        report = orchestrator.run_pass(TENANT)
        assert report.captured == []
        assert report.created == 4
        dispatcher.dispatch.assert_called_once()

    def test_slack_pending_without_snapshot_recaptured(
        self, tenant_values, repository, mutex, settings, scanner, seeded_grafana, dispatcher, capturer
    ):
        store = InMemoryCredentialStore(
            {"7": {**tenant_values, "SLACK_BOT_TOKEN": "xoxb", "SLACK_CHANNEL_ID": "C1"}}
        )
        failing = MagicMock(name="capturer")
        failing.capture.return_value = None
        first = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher, capturer=failing
        )
        first.run_pass(TENANT)

        second = _orchestrator(
            store, repository, mutex, settings, scanner, seeded_grafana, dispatcher, capturer=capturer
        )
        report = second.run_pass(TENANT)
        assert report.created == 0
        assert len(report.captured) == 4
