"""
Pipeline orchestrator: one provisioning pass for one tenant.

Stages:
    ::

        Idle
          │ try-acquire tenant lock (held → pass skipped)
          ▼
        LockAcquired ── datasource sync (uids written back)
          │
          ▼  per category
        ScanAndClassify ── list tables once, classify
          │
          ▼  per classification
        ResolveAndRender ── slot resolution, template render
          │
          ▼
        Publish ── create / overwrite / no-op by dependency state
          │
          ▼
        Capture ── GIF snapshot for changed dashboards
          │
          ▼
        Notify ── Slack / Teams for undelivered records
          │
          ▼
        LockReleased (every exit path)

Failure isolation follows the smallest unit that failed:

    - key-level   (render, remote API): logged, next key
    - category    (missing credential, schema unreachable): logged, next category
    - datasource sync, capture   never fatal
    - lock held   pass skipped

The cancellation token is checked before classify, publish, capture and
notify. An in-flight call finishes; no new stage starts.

The same checkpoints renew the tenant lease once a third of the lock TTL
has passed, so a long pass keeps its lock. A lease taken over by another
holder halts the pass like a cancellation.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from dashspine.capture.capturer import SnapshotCapturer
from dashspine.catalog.categories import CategorySpec, default_categories
from dashspine.catalog.classifier import classify
from dashspine.catalog.resolver import TableSetProbe, resolve, resolve_whole_table
from dashspine.core.errors import (
    ConfigurationMissing,
    ConnectionFailure,
    DashSpineError,
    LockError,
    categorize_error,
    is_retryable,
)
from dashspine.core.locks import TenantMutex
from dashspine.core.logging import get_logger, tenant_scope
from dashspine.core.settings import DashSpineSettings
from dashspine.grafana.client import GrafanaClient
from dashspine.grafana.datasources import DatasourceSync, GrafanaFactory
from dashspine.notify.dispatcher import Dispatcher, DispatchReport
from dashspine.notify.protocol import DestinationKind
from dashspine.pipeline.schema import SchemaScanner
from dashspine.publishing.publisher import Publisher, PublishResult
from dashspine.publishing.repository import DashboardRecord, DashboardRepository
from dashspine.rendering.renderer import Renderer
from dashspine.tenants.context import TenantContext
from dashspine.tenants.credentials import CredentialStore, Tenant

logger = get_logger(__name__)


class Stage(str, Enum):
    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    SCAN_AND_CLASSIFY = "scan_and_classify"
    RESOLVE_AND_RENDER = "resolve_and_render"
    PUBLISH = "publish"
    CAPTURE = "capture"
    NOTIFY = "notify"
    LOCK_RELEASED = "lock_released"


class CancellationToken:
    """Cooperative cancellation shared between the scheduler and passes."""

    def __init__(self, event: threading.Event | None = None) -> None:
        self._event = event or threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _Lease:
    """Tenant lock held by a running pass."""

    def __init__(self, mutex: TenantMutex, tenant_id: str, token: str, interval: float) -> None:
        self._mutex = mutex
        self.tenant_id = tenant_id
        self.token = token
        self._interval = interval
        self._renewed_at = time.monotonic()
        self.lost = False

    def keep_alive(self) -> bool:
        """Renew when due; False once the lock no longer belongs to this pass."""
        if self.lost:
            return False
        now = time.monotonic()
        if now - self._renewed_at < self._interval:
            return True
        try:
            owned = self._mutex.refresh(self.tenant_id, self.token)
        except LockError as e:
            # Retried at the next checkpoint
            logger.warning("tenant_lease_refresh_failed", tenant=self.tenant_id, error=e.message)
            return True
        if not owned:
            logger.error("tenant_lease_lost", tenant=self.tenant_id, owner=self.token)
            self.lost = True
            return False
        self._renewed_at = now
        return True


@dataclass
class CategoryReport:
    category: str
    tables: int = 0
    classified: int = 0
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: int = 0
    failed: dict[str, str] = field(default_factory=dict)
    skipped: str | None = None


@dataclass
class PassReport:
    tenant_id: str
    skipped: bool = False
    cancelled: bool = False
    lease_lost: bool = False
    stage: Stage = Stage.IDLE
    categories: dict[str, CategoryReport] = field(default_factory=dict)
    captured: list[str] = field(default_factory=list)
    notifications: DispatchReport | None = None

    @property
    def halted(self) -> bool:
        return self.cancelled or self.lease_lost

    @property
    def created(self) -> int:
        return sum(len(c.created) for c in self.categories.values())

    @property
    def updated(self) -> int:
        return sum(len(c.updated) for c in self.categories.values())

    @property
    def failed(self) -> int:
        return sum(len(c.failed) for c in self.categories.values())


class PipelineOrchestrator:
    def __init__(
        self,
        store: CredentialStore,
        repository: DashboardRepository,
        mutex: TenantMutex,
        settings: DashSpineSettings,
        *,
        categories: tuple[CategorySpec, ...] | None = None,
        scanner: SchemaScanner | None = None,
        renderer: Renderer | None = None,
        grafana_factory: GrafanaFactory | None = None,
        datasource_sync: DatasourceSync | None = None,
        capturer: SnapshotCapturer | None = None,
        dispatcher: Dispatcher | None = None,
        lease_refresh_seconds: float | None = None,
    ) -> None:
        self._store = store
        self._repository = repository
        self._mutex = mutex
        self._settings = settings
        self._categories = categories or default_categories()
        self._scanner = scanner or SchemaScanner(
            connect_timeout=settings.db_connect_timeout, ssl=settings.db_ssl
        )
        self._renderer = renderer or Renderer()
        self._grafana_factory: Callable[[str, str], GrafanaClient] = grafana_factory or (
            lambda url, key: GrafanaClient(url, key, timeout=settings.http_timeout)
        )
        self._datasource_sync = datasource_sync or DatasourceSync(
            store, settings, self._grafana_factory
        )
        self._capturer = capturer
        self._dispatcher = dispatcher or Dispatcher(
            repository, max_attempts=settings.notify_max_attempts
        )
        self._lease_refresh_seconds = (
            settings.lock_ttl_seconds / 3 if lease_refresh_seconds is None else lease_refresh_seconds
        )

    # ── pass ─────────────────────────────────────────────────────────

    def run_pass(self, tenant: Tenant, cancel: CancellationToken | None = None) -> PassReport:
        cancel = cancel or CancellationToken()
        report = PassReport(tenant_id=tenant.tenant_id)

        token = self._mutex.try_acquire(tenant.tenant_id)
        if token is None:
            logger.info("pass_skipped_locked", tenant=tenant.tenant_id)
            report.skipped = True
            return report

        lease = _Lease(self._mutex, tenant.tenant_id, token, self._lease_refresh_seconds)
        try:
            report.stage = Stage.LOCK_ACQUIRED
            with tenant_scope(tenant.tenant_id):
                self._run_locked(tenant, report, cancel, lease)
        finally:
            self._mutex.release(tenant.tenant_id, token)
            report.stage = Stage.LOCK_RELEASED

        logger.info(
            "pass_complete",
            tenant=tenant.tenant_id,
            created=report.created,
            updated=report.updated,
            failed=report.failed,
            captured=len(report.captured),
            cancelled=report.cancelled,
            lease_lost=report.lease_lost,
        )
        return report

    def _run_locked(
        self,
        tenant: Tenant,
        report: PassReport,
        cancel: CancellationToken,
        lease: _Lease,
    ) -> None:
        ctx = TenantContext.load(self._store, tenant.tenant_id, self._settings, username=tenant.username)
        ctx = self._sync_datasources(ctx)

        to_capture: list[DashboardRecord] = []
        for category_spec in self._categories:
            if self._halted(report, cancel, lease):
                return
            category_report, records = self._run_category(ctx, category_spec, report, cancel, lease)
            report.categories[category_spec.category.value] = category_report
            to_capture.extend(records)
            if report.halted:
                return

        if self._halted(report, cancel, lease):
            return
        report.stage = Stage.CAPTURE
        self._capture(ctx, to_capture, report, cancel, lease)

        if self._halted(report, cancel, lease):
            return
        report.stage = Stage.NOTIFY
        report.notifications = self._dispatcher.dispatch(ctx)

    def _halted(self, report: PassReport, cancel: CancellationToken, lease: _Lease) -> bool:
        if cancel.cancelled:
            report.cancelled = True
        elif not lease.keep_alive():
            report.lease_lost = True
        return report.halted

    def _sync_datasources(self, ctx: TenantContext) -> TenantContext:
        try:
            ctx, _ = self._datasource_sync.sync(ctx)
        except Exception as e:
            # Categories fall back to the uids already stored
            logger.exception(
                "datasource_sync_error",
                error=str(e),
                error_category=categorize_error(e).value,
                retryable=is_retryable(e),
            )
        return ctx

    # ── category ─────────────────────────────────────────────────────

    def _run_category(
        self,
        ctx: TenantContext,
        category_spec: CategorySpec,
        report: PassReport,
        cancel: CancellationToken,
        lease: _Lease,
    ) -> tuple[CategoryReport, list[DashboardRecord]]:
        category = category_spec.category
        result = CategoryReport(category=category.value)
        if category not in ctx.configured_categories():
            result.skipped = "not configured"
            return result, []

        try:
            datasource_uid = ctx.datasource_uid_for(category)
            url, key = ctx.require_grafana()
            report.stage = Stage.SCAN_AND_CLASSIFY
            tables = self._scanner.scan(ctx, category)
        except ConfigurationMissing as e:
            logger.warning("category_skipped", category=category.value, missing=e.key)
            result.skipped = f"missing {e.key}"
            return result, []
        except ConnectionFailure as e:
            logger.error("category_aborted", category=category.value, error=e.message)
            result.skipped = "connection failed"
            return result, []

        result.tables = len(tables)
        published: list[PublishResult] = []
        with self._grafana_factory(url, key) as grafana:
            publisher = Publisher(self._repository, grafana)
            if category_spec.is_whole_table:
                work = self._whole_table_work(ctx, category_spec, tables, datasource_uid)
            else:
                work = self._classified_work(category_spec, tables, datasource_uid)

            for logical_key, render in work:
                if self._halted(report, cancel, lease):
                    break
                result.classified += 1
                try:
                    report.stage = Stage.RESOLVE_AND_RENDER
                    rendered_and_state = render()
                    if rendered_and_state is None:
                        continue
                    rendered, state = rendered_and_state
                    report.stage = Stage.PUBLISH
                    outcome = publisher.publish(ctx, category.value, logical_key, rendered, state)
                except DashSpineError as e:
                    logger.error(
                        "dashboard_failed",
                        category=category.value,
                        key=logical_key,
                        error=e.message,
                        error_type=type(e).__name__,
                    )
                    result.failed[logical_key] = e.message
                    continue
                except Exception as e:
                    logger.exception("dashboard_failed_unexpected", category=category.value, key=logical_key)
                    result.failed[logical_key] = str(e)
                    continue

                published.append(outcome)
                if outcome.created:
                    result.created.append(logical_key)
                elif outcome.updated:
                    result.updated.append(logical_key)
                else:
                    result.unchanged += 1

        logger.info(
            "category_complete",
            category=category.value,
            tables=result.tables,
            created=len(result.created),
            updated=len(result.updated),
            unchanged=result.unchanged,
            failed=len(result.failed),
        )
        return result, [p.record for p in published if self._needs_capture(ctx, p)]

    def _classified_work(self, category_spec: CategorySpec, tables: list[str], datasource_uid: str):
        probe = TableSetProbe(tables)
        for classification in classify(tables, category_spec.rules):

            def render(c=classification):
                resolution = resolve(c, probe)
                if resolution is None:
                    logger.debug("classification_unresolved", key=c.logical_key)
                    return None
                rendered = self._renderer.render(c.template_type, resolution, datasource_uid)
                return rendered, resolution.dependency_state

            yield classification.logical_key, render

    def _whole_table_work(
        self,
        ctx: TenantContext,
        category_spec: CategorySpec,
        tables: list[str],
        datasource_uid: str,
    ):
        for table in tables:
            # Created once per table; an existing record is left alone
            if self._repository.get(ctx.tenant_id, category_spec.category.value, table) is not None:
                continue

            def render(t=table):
                rendered = self._renderer.render(
                    category_spec.whole_table, resolve_whole_table(t), datasource_uid, dedupe=False
                )
                return rendered, {}

            yield table, render

    # ── capture ──────────────────────────────────────────────────────

    def _needs_capture(self, ctx: TenantContext, outcome: PublishResult) -> bool:
        if outcome.changed:
            return True
        record = outcome.record
        return (
            record.snapshot_path is None
            and ctx.slack_configured
            and not record.is_sent(DestinationKind.SLACK.value)
        )

    def _capture(
        self,
        ctx: TenantContext,
        records: list[DashboardRecord],
        report: PassReport,
        cancel: CancellationToken,
        lease: _Lease,
    ) -> None:
        if self._capturer is None or not self._settings.capture_enabled or not records:
            return
        for record in records:
            if self._halted(report, cancel, lease):
                return
            path = self._capturer.capture(record.remote_url, ctx.grafana_api_key)
            if path is None:
                continue
            self._repository.set_snapshot(record.id, str(path))
            report.captured.append(record.logical_key)


__all__ = [
    "PipelineOrchestrator",
    "PassReport",
    "CategoryReport",
    "CancellationToken",
    "Stage",
]
