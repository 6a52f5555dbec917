"""Tests for snapshot retention."""

from __future__ import annotations

import os
import time

from dashspine.capture.retention import prune_snapshots


def _snapshot(directory, name, age_days):
    path = directory / name
    path.write_bytes(b"GIF89a")
    ts = time.time() - age_days * 86400
    os.utime(path, (ts, ts))
    return path


class TestPruneSnapshots:
    def test_deletes_only_old_snapshot_files(self, tmp_path):
        old = _snapshot(tmp_path, "dashboard_1.gif", 30)
        fresh = _snapshot(tmp_path, "dashboard_2.gif", 1)
        other = _snapshot(tmp_path, "notes.gif", 30)

        report = prune_snapshots(tmp_path, 14)

        assert report.success
        assert report.deleted == [str(old)]
        assert not old.exists()
        assert fresh.exists()
        assert other.exists()

    def test_zero_days_keeps_everything(self, tmp_path):
        old = _snapshot(tmp_path, "dashboard_1.gif", 365)
        report = prune_snapshots(tmp_path, 0)
        assert report.deleted == []
        assert old.exists()

    def test_missing_directory(self, tmp_path):
        assert prune_snapshots(tmp_path / "nope", 14).deleted == []

    def test_clears_referencing_records(self, tmp_path, repository):
        old = _snapshot(tmp_path, "dashboard_1.gif", 30)
        record = repository.create(
            tenant_id="7",
            category="reports",
            logical_key="foo",
            template_type="qor",
            remote_url="https://g/d/foo",
        )
        repository.set_snapshot(record.id, str(old))

        report = prune_snapshots(tmp_path, 14, repository)

        assert report.records_cleared == 1
        assert repository.get_by_id(record.id).snapshot_path is None
