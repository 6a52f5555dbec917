"""Dashboard records and idempotent publishing."""

from dashspine.publishing.publisher import Publisher, PublishResult
from dashspine.publishing.repository import DashboardRecord, DashboardRepository

__all__ = ["Publisher", "PublishResult", "DashboardRecord", "DashboardRepository"]
