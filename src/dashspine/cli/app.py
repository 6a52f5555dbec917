"""
Root Typer application for the dashspine CLI.

Pass-level commands (``run``, ``serve``, ``notify``) live here; management
commands are registered as sub-apps.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from dashspine.cli.credentials import app as credentials_app
from dashspine.cli.db import app as db_app
from dashspine.cli.snapshots import app as snapshots_app
from dashspine.cli.templates import app as templates_app
from dashspine.cli.utils import build_runtime, console, err_console, print_dict, print_table

app = Typer(
    name="dashspine",
    help="dashspine: Grafana dashboard provisioning and notification pipeline.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("dashboard-spine")
        except PackageNotFoundError:
            from dashspine import __version__ as v
        typer.echo(f"dashspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """dashspine CLI: run passes, serve the scheduler, manage state."""


# ── Pass commands ────────────────────────────────────────────────────────


@app.command()
def run(
    tenant_id: str = typer.Argument(..., help="Tenant to run one pass for"),
    database: str | None = typer.Option(None, "--database", "-d", help="State store URL"),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    """Run one provisioning pass for one tenant."""
    rt = build_runtime(database_url=database, log_level=log_level)
    report = rt.orchestrator.run_pass(rt.tenant(tenant_id))

    if report.skipped:
        console.print(f"[yellow]Tenant {tenant_id} is locked by another pass; skipped.[/yellow]")
        return

    rows = [
        {
            "category": c.category,
            "tables": c.tables,
            "created": len(c.created),
            "updated": len(c.updated),
            "unchanged": c.unchanged,
            "failed": len(c.failed),
            "skipped": c.skipped or "",
        }
        for c in report.categories.values()
    ]
    print_table(rows, title=f"Pass for tenant {tenant_id}")
    if report.notifications is not None:
        print_dict(
            {"sent": report.notifications.sent, "failed": report.notifications.failed},
            title="Notifications",
        )
    if report.lease_lost:
        err_console.print(f"[bold red]Lost the lock for tenant {tenant_id}; pass stopped early[/bold red]")
        raise typer.Exit(code=1)
    if report.failed:
        err_console.print(f"[bold red]{report.failed} dashboard(s) failed[/bold red]")
        raise typer.Exit(code=1)


@app.command()
def notify(
    tenant_id: str = typer.Argument(..., help="Tenant to dispatch notifications for"),
    database: str | None = typer.Option(None, "--database", "-d", help="State store URL"),
) -> None:
    """Deliver pending notifications without running a pass."""
    from dashspine.notify.dispatcher import Dispatcher
    from dashspine.tenants.context import TenantContext

    rt = build_runtime(database_url=database)
    tenant = rt.tenant(tenant_id)
    ctx = TenantContext.load(rt.store, tenant.tenant_id, rt.settings, username=tenant.username)
    dispatcher = Dispatcher(
        rt.repository,
        max_attempts=rt.settings.notify_max_attempts,
    )
    report = dispatcher.dispatch(ctx)
    print_dict(
        {"sent": report.sent, "failed": report.failed, "abandoned": report.abandoned},
        title=f"Notifications for tenant {tenant_id}",
    )


@app.command()
def serve(
    database: str | None = typer.Option(None, "--database", "-d", help="State store URL"),
    once: bool = typer.Option(False, "--once", help="Run a single tick and exit"),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    """Run provisioning passes for every active tenant on an interval."""
    from dashspine.scheduling.service import SchedulerService

    rt = build_runtime(database_url=database, log_level=log_level)
    service = SchedulerService(
        rt.orchestrator,
        rt.directory,
        rt.settings,
        repository=rt.repository,
        lock_cleanup=rt.mutex.cleanup_expired_locks,
    )

    if once:
        tick = service.tick()
        console.print(
            f"[bold green]Tick complete[/bold green]: {len(tick.passes)} pass(es), "
            f"{len(tick.errors)} error(s), {tick.pruned} snapshot(s) pruned"
        )
        return

    console.print(
        f"[bold green]Starting scheduler[/bold green] "
        f"(interval={rt.settings.scan_interval_seconds}s, workers={rt.settings.max_workers})"
    )
    service.start()
    try:
        while service.is_running and not service.backend.wait(1.0):
            pass
    except KeyboardInterrupt:
        console.print("[dim]Stopping...[/dim]")
    finally:
        service.stop()


# ── Sub-command registration ─────────────────────────────────────────────

app.add_typer(templates_app, name="templates", help="Dashboard template catalogue.")
app.add_typer(snapshots_app, name="snapshots", help="Snapshot file retention.")
app.add_typer(db_app, name="db", help="State store operations.")
app.add_typer(credentials_app, name="credentials", help="Tenant credential management.")
