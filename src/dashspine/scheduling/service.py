"""
Scheduler service: periodic provisioning passes over every active tenant.

Each tick:
    1. reclaim expired tenant locks
    2. run one pass per active tenant (sequentially, or in a thread pool when
       ``max_workers`` > 1; the tenant lock keeps passes from overlapping)
    3. prune old snapshot files

Templates are validated once at start; a missing or broken template raises
``TemplateError`` and the service does not start.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from dashspine.capture.retention import prune_snapshots
from dashspine.core.errors import categorize_error, is_retryable
from dashspine.core.logging import get_logger
from dashspine.core.settings import DashSpineSettings
from dashspine.pipeline.orchestrator import CancellationToken, PassReport, PipelineOrchestrator
from dashspine.publishing.repository import DashboardRepository
from dashspine.rendering.templates import TemplateStore, validate_templates
from dashspine.scheduling.backend import ThreadTickBackend
from dashspine.tenants.credentials import Tenant
from dashspine.tenants.directory import TenantDirectory

logger = get_logger(__name__)


@dataclass
class SchedulerStats:
    tick_count: int = 0
    passes_run: int = 0
    passes_skipped: int = 0
    passes_failed: int = 0
    last_tick: datetime | None = None
    last_error: str | None = None


@dataclass
class TickReport:
    started_at: datetime
    passes: list[PassReport] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    pruned: int = 0


class SchedulerService:
    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        directory: TenantDirectory,
        settings: DashSpineSettings,
        *,
        repository: DashboardRepository | None = None,
        backend: ThreadTickBackend | None = None,
        templates: TemplateStore | None = None,
        lock_cleanup: Callable[[], int] | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.directory = directory
        self.settings = settings
        self.repository = repository
        self.backend = backend or ThreadTickBackend()
        self.templates = templates or TemplateStore()
        self._lock_cleanup = lock_cleanup
        self._cancel = CancellationToken()
        self._stats = SchedulerStats()
        self._running = False

    # === Lifecycle ===

    def start(self, *, run_immediately: bool = True) -> None:
        if self._running:
            logger.warning("scheduler_already_running")
            return

        validate_templates(self.templates)

        logger.info(
            "scheduler_starting",
            backend=self.backend.name,
            interval_seconds=self.settings.scan_interval_seconds,
            max_workers=self.settings.max_workers,
        )
        self.backend.start(
            self.tick,
            float(self.settings.scan_interval_seconds),
            run_immediately=run_immediately,
        )
        self._running = True

    def stop(self) -> None:
        """Cancel in-flight passes and stop the backend."""
        if not self._running:
            return
        logger.info("scheduler_stopping")
        self._cancel.cancel()
        self.backend.stop()
        self._running = False
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # === Tick ===

    def tick(self) -> TickReport:
        self._stats.tick_count += 1
        self._stats.last_tick = datetime.now(UTC)
        report = TickReport(started_at=self._stats.last_tick)

        if self._lock_cleanup is not None:
            self._lock_cleanup()

        tenants = self.directory.active_tenants()
        logger.info("tick_started", tick=self._stats.tick_count, tenants=len(tenants))

        if self.settings.max_workers > 1 and len(tenants) > 1:
            with ThreadPoolExecutor(
                max_workers=self.settings.max_workers, thread_name_prefix="dashspine-pass"
            ) as pool:
                futures = {t.tenant_id: pool.submit(self._run_one, t) for t in tenants}
                for tenant_id, future in futures.items():
                    self._collect(report, tenant_id, future.result())
        else:
            for tenant in tenants:
                if self._cancel.cancelled:
                    break
                self._collect(report, tenant.tenant_id, self._run_one(tenant))

        if not self._cancel.cancelled:
            report.pruned = self._prune()
        return report

    def _run_one(self, tenant: Tenant) -> PassReport | Exception:
        try:
            return self.orchestrator.run_pass(tenant, self._cancel)
        except Exception as e:
            logger.exception(
                "pass_failed",
                tenant=tenant.tenant_id,
                error=str(e),
                error_category=categorize_error(e).value,
                retryable=is_retryable(e),
            )
            return e

    def _collect(self, report: TickReport, tenant_id: str, outcome: PassReport | Exception) -> None:
        if isinstance(outcome, Exception):
            self._stats.passes_failed += 1
            self._stats.last_error = str(outcome)
            report.errors[tenant_id] = str(outcome)
            return
        if outcome.skipped:
            self._stats.passes_skipped += 1
        else:
            self._stats.passes_run += 1
        report.passes.append(outcome)

    def _prune(self) -> int:
        days = self.settings.snapshot_retention_days
        if days <= 0:
            return 0
        result = prune_snapshots(self.settings.capture_dir, days, self.repository)
        return len(result.deleted)

    # === Stats ===

    def health(self) -> dict[str, Any]:
        return {
            "healthy": self._running and self.backend.is_running,
            "backend": self.backend.health(),
            "stats": {
                "tick_count": self._stats.tick_count,
                "passes_run": self._stats.passes_run,
                "passes_skipped": self._stats.passes_skipped,
                "passes_failed": self._stats.passes_failed,
                "last_error": self._stats.last_error,
            },
        }

    def get_stats(self) -> SchedulerStats:
        return self._stats


__all__ = ["SchedulerService", "SchedulerStats", "TickReport"]
