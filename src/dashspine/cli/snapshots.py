"""
``dashspine snapshots`` commands: snapshot file retention.
"""

from __future__ import annotations

import typer

from dashspine.capture.retention import prune_snapshots
from dashspine.cli.utils import build_runtime, print_dict

app = typer.Typer(no_args_is_help=True)


@app.command()
def prune(
    older_than_days: int | None = typer.Option(
        None, "--days", help="Delete snapshots older than N days (default: configured retention)"
    ),
    database: str | None = typer.Option(None, "--database", "-d", help="State store URL"),
) -> None:
    """Delete old snapshot GIFs and clear records that referenced them."""
    rt = build_runtime(database_url=database)
    days = rt.settings.snapshot_retention_days if older_than_days is None else older_than_days
    report = prune_snapshots(rt.settings.capture_dir, days, rt.repository)
    print_dict(
        {
            "directory": str(rt.settings.capture_dir),
            "cutoff": report.cutoff,
            "deleted": len(report.deleted),
            "records_cleared": report.records_cleared,
            "errors": len(report.errors),
        },
        title="Snapshot Prune",
    )
    if not report.success:
        raise typer.Exit(code=1)
