"""Grafana API access: dashboards and datasources."""

from dashspine.grafana.client import GrafanaClient, PublishedDashboard
from dashspine.grafana.datasources import DatasourceSync, SyncReport

__all__ = ["GrafanaClient", "PublishedDashboard", "DatasourceSync", "SyncReport"]
