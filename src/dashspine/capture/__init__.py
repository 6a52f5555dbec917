"""Dashboard snapshot capture and snapshot file retention."""

from dashspine.capture.capturer import CaptureConfig, SnapshotCapturer, write_gif
from dashspine.capture.retention import PruneReport, prune_snapshots

__all__ = ["CaptureConfig", "SnapshotCapturer", "write_gif", "PruneReport", "prune_snapshots"]
