"""Tests for SchedulerService ticks."""

from __future__ import annotations

import os
import time
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from dashspine.core.errors import TemplateError
from dashspine.pipeline.orchestrator import PassReport
from dashspine.rendering.templates import TemplateStore
from dashspine.scheduling.service import SchedulerService
from dashspine.tenants.credentials import InMemoryCredentialStore, Tenant
from dashspine.tenants.directory import TenantDirectory


@pytest.fixture
def directory():
    return TenantDirectory(
        InMemoryCredentialStore({"7": {"DB_HOST": "h"}, "8": {"DB_HOST": "h"}})
    )


@pytest.fixture
def orchestrator():
    o = MagicMock(name="orchestrator")
    o.run_pass.side_effect = lambda tenant, cancel: PassReport(tenant_id=tenant.tenant_id)
    return o


@pytest.fixture
def backend():
    b = MagicMock(name="backend")
    b.name = "mock"
    return b


class TestTick:
    def test_runs_every_active_tenant(self, orchestrator, directory, settings):
        service = SchedulerService(orchestrator, directory, settings)
        report = service.tick()
        assert [p.tenant_id for p in report.passes] == ["7", "8"]
        assert service.get_stats().passes_run == 2

    def test_thread_pool_when_workers_allowed(self, orchestrator, directory, settings):
        s = settings.model_copy(update={"max_workers": 4})
        report = SchedulerService(orchestrator, directory, s).tick()
        assert sorted(p.tenant_id for p in report.passes) == ["7", "8"]

    def test_failed_pass_is_isolated(self, orchestrator, directory, settings):
        def run_pass(tenant, cancel):
            if tenant.tenant_id == "7":
                raise RuntimeError("bug")
            return PassReport(tenant_id=tenant.tenant_id)

        orchestrator.run_pass.side_effect = run_pass
        service = SchedulerService(orchestrator, directory, settings)
        report = service.tick()
        assert report.errors == {"7": "bug"}
        assert [p.tenant_id for p in report.passes] == ["8"]
        assert service.get_stats().passes_failed == 1

    def test_failed_pass_logs_error_category(self, orchestrator, directory, settings):
        orchestrator.run_pass.side_effect = ConnectionError("state store down")
        with capture_logs() as logs:
            SchedulerService(orchestrator, directory, settings).tick()
        failed = [e for e in logs if e["event"] == "pass_failed"]
        assert len(failed) == 2
        assert failed[0]["error_category"] == "DATABASE"
        assert failed[0]["retryable"] is True

    def test_skipped_passes_counted(self, orchestrator, directory, settings):
        orchestrator.run_pass.side_effect = lambda t, c: PassReport(tenant_id=t.tenant_id, skipped=True)
        service = SchedulerService(orchestrator, directory, settings)
        service.tick()
        assert service.get_stats().passes_skipped == 2

    def test_lock_cleanup_runs_first(self, orchestrator, directory, settings):
        cleanup = MagicMock(return_value=0)
        SchedulerService(orchestrator, directory, settings, lock_cleanup=cleanup).tick()
        cleanup.assert_called_once()

    def test_prunes_old_snapshots(self, orchestrator, directory, settings):
        settings.capture_dir.mkdir(parents=True)
        old = settings.capture_dir / "dashboard_1.gif"
        old.write_bytes(b"GIF89a")
        ts = time.time() - 30 * 86400
        os.utime(old, (ts, ts))

        report = SchedulerService(orchestrator, directory, settings).tick()
        assert report.pruned == 1
        assert not old.exists()


class TestLifecycle:
    def test_start_validates_templates_then_starts_backend(self, orchestrator, directory, settings, backend):
        service = SchedulerService(orchestrator, directory, settings, backend=backend)
        service.start()
        backend.start.assert_called_once_with(
            service.tick, float(settings.scan_interval_seconds), run_immediately=True
        )
        assert service.is_running

        service.stop()
        backend.stop.assert_called_once()
        assert not service.is_running

    def test_broken_templates_refuse_start(self, orchestrator, directory, settings, backend, tmp_path):
        service = SchedulerService(
            orchestrator, directory, settings, backend=backend, templates=TemplateStore(tmp_path)
        )
        with pytest.raises(TemplateError):
            service.start()
        backend.start.assert_not_called()

    def test_stop_cancels_remaining_passes(self, orchestrator, directory, settings, backend):
        service = SchedulerService(orchestrator, directory, settings, backend=backend)
        service.start()
        service.stop()
        report = service.tick()
        assert report.passes == []
        assert report.pruned == 0

    def test_health(self, orchestrator, directory, settings, backend):
        backend.is_running = True
        backend.health.return_value = {"backend": "mock"}
        service = SchedulerService(orchestrator, directory, settings, backend=backend)
        service.start()
        health = service.health()
        assert health["healthy"] is True
        assert health["stats"]["tick_count"] == 0


def test_directory_passes_usernames(orchestrator, settings):
    store = InMemoryCredentialStore()
    store.set("7", "DB_HOST", "h", username="alice")
    SchedulerService(orchestrator, TenantDirectory(store), settings).tick()
    assert orchestrator.run_pass.call_args.args[0] == Tenant("7", "alice")
