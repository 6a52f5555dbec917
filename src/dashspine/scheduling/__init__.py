"""Periodic provisioning passes."""

from dashspine.scheduling.backend import ThreadTickBackend
from dashspine.scheduling.service import SchedulerService, SchedulerStats, TickReport

__all__ = ["ThreadTickBackend", "SchedulerService", "SchedulerStats", "TickReport"]
