"""
CLI utility helpers: runtime wiring and output formatting.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from rich.console import Console
from rich.table import Table
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from dashspine.capture.capturer import CaptureConfig, SnapshotCapturer
from dashspine.core.locks import DatabaseTenantMutex
from dashspine.core.logging import configure_logging
from dashspine.core.orm.session import create_engine, init_db, session_factory
from dashspine.core.settings import DashSpineSettings, get_settings
from dashspine.pipeline.orchestrator import PipelineOrchestrator
from dashspine.publishing.repository import DashboardRepository
from dashspine.tenants.credentials import SqlCredentialStore, Tenant
from dashspine.tenants.directory import TenantDirectory

console = Console()
err_console = Console(stderr=True)


# ── Runtime wiring ───────────────────────────────────────────────────────


@dataclass
class Runtime:
    """Everything a command needs, built from one settings object."""

    settings: DashSpineSettings
    engine: Engine
    sessions: sessionmaker[Session]
    store: SqlCredentialStore
    repository: DashboardRepository
    mutex: DatabaseTenantMutex
    directory: TenantDirectory
    _orchestrator: PipelineOrchestrator | None = field(default=None, repr=False)

    @property
    def orchestrator(self) -> PipelineOrchestrator:
        if self._orchestrator is None:
            capturer = (
                SnapshotCapturer(CaptureConfig.from_settings(self.settings))
                if self.settings.capture_enabled
                else None
            )
            self._orchestrator = PipelineOrchestrator(
                self.store,
                self.repository,
                self.mutex,
                self.settings,
                capturer=capturer,
            )
        return self._orchestrator

    def tenant(self, tenant_id: str) -> Tenant:
        for tenant in self.store.tenants():
            if tenant.tenant_id == tenant_id:
                return tenant
        return Tenant(tenant_id, None)


def build_runtime(
    settings: DashSpineSettings | None = None,
    *,
    database_url: str | None = None,
    log_level: str | None = None,
) -> Runtime:
    settings = settings or get_settings()
    configure_logging(level=log_level or settings.log_level, json_format=settings.log_json)

    engine = create_engine(database_url or settings.database_url)
    init_db(engine)
    sessions = session_factory(engine)
    store = SqlCredentialStore(sessions)
    return Runtime(
        settings=settings,
        engine=engine,
        sessions=sessions,
        store=store,
        repository=DashboardRepository(sessions),
        mutex=DatabaseTenantMutex(sessions, ttl_seconds=settings.lock_ttl_seconds),
        directory=TenantDirectory(store),
    )


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_table(items: list[Any], *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        table.add_row(*(str(v) for v in _to_dict(item).values()))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
