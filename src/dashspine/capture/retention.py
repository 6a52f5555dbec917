"""
Snapshot retention.

Snapshot files are only useful until the chat upload that consumes them has
happened. ``prune_snapshots`` deletes ``dashboard_*.gif`` files older than
the cutoff and clears any record that still points at a deleted file, so a
late notification is sent without an image instead of failing on a missing
file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

from dashspine.core.logging import get_logger
from dashspine.publishing.repository import DashboardRepository

logger = get_logger(__name__)

SNAPSHOT_GLOB = "dashboard_*.gif"


@dataclass
class PruneReport:
    cutoff: str
    deleted: list[str] = field(default_factory=list)
    records_cleared: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


def compute_cutoff(days: int) -> datetime:
    return datetime.now(UTC) - timedelta(days=days)


def prune_snapshots(
    directory: Path,
    older_than_days: int,
    repository: DashboardRepository | None = None,
) -> PruneReport:
    """Delete snapshot files older than *older_than_days*.

    ``older_than_days`` of 0 keeps everything.
    """
    cutoff = compute_cutoff(older_than_days)
    report = PruneReport(cutoff=cutoff.strftime("%Y-%m-%dT%H:%M:%S"))
    if older_than_days <= 0 or not directory.is_dir():
        return report

    cutoff_ts = cutoff.timestamp()
    for path in sorted(directory.glob(SNAPSHOT_GLOB)):
        try:
            if path.stat().st_mtime >= cutoff_ts:
                continue
            path.unlink()
        except OSError as e:
            report.errors[str(path)] = str(e)
            continue
        report.deleted.append(str(path))

    if repository is not None and report.deleted:
        report.records_cleared = repository.clear_snapshot_paths(report.deleted)

    logger.info(
        "snapshots_pruned",
        directory=str(directory),
        deleted=len(report.deleted),
        records_cleared=report.records_cleared,
        cutoff=report.cutoff,
    )
    return report


__all__ = ["PruneReport", "compute_cutoff", "prune_snapshots", "SNAPSHOT_GLOB"]
