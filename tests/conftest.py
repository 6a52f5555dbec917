"""
Shared pytest fixtures and configuration for dashspine tests.

This module provides:
- In-memory SQLite state store (engine, sessions, repository, stores)
- Settings built without touching the environment
- Fake Grafana API over ``httpx.MockTransport``
- Tenant credential snapshots for a fully configured tenant

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.

    def test_something(repository, grafana_fake):
        ...
"""

from __future__ import annotations

import json
from collections.abc import Generator
from pathlib import Path
from typing import Any

import httpx
import pytest

from dashspine.core.locks import InMemoryTenantMutex
from dashspine.core.orm.session import create_engine, init_db, session_factory
from dashspine.core.settings import DashSpineSettings
from dashspine.grafana.client import GrafanaClient
from dashspine.publishing.repository import DashboardRepository
from dashspine.tenants.context import TenantContext
from dashspine.tenants.credentials import InMemoryCredentialStore, SqlCredentialStore

# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# State store
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    eng = create_engine("sqlite:///:memory:")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def sessions(engine):
    return session_factory(engine)


@pytest.fixture
def repository(sessions) -> DashboardRepository:
    return DashboardRepository(sessions)


@pytest.fixture
def sql_store(sessions) -> SqlCredentialStore:
    return SqlCredentialStore(sessions)


@pytest.fixture
def mutex() -> InMemoryTenantMutex:
    return InMemoryTenantMutex(instance_id="test")


# =============================================================================
# Settings / tenants
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> DashSpineSettings:
    """Settings that ignore the process environment and any .env file."""
    return DashSpineSettings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        grafana_base_url=None,
        grafana_api_key=None,
        default_db_user=None,
        default_db_pass=None,
        capture_dir=tmp_path / "gifs",
        capture_enabled=True,
        notify_max_attempts=3,
        snapshot_retention_days=14,
        log_json=False,
    )


TENANT_VALUES: dict[str, str] = {
    "DB_HOST": "db.internal",
    "DB_PORT": "5433",
    "DB_USER": "grafana_reader",
    "DB_PASS": "s3cret",
    "GRAFANA_URL": "https://grafana.example.com/",
    "GRAFANA_API_KEY": "glsa_key",
    "DB_NAME_TIMING_REPORT": "timing_db",
    "GRAFANA_UID_TIMING_REPORT": "ds-timing",
    "DB_NAME_REPORTS": "reports_db",
    "GRAFANA_UID_REPORTS": "ds-reports",
}


@pytest.fixture
def store() -> InMemoryCredentialStore:
    s = InMemoryCredentialStore({"7": dict(TENANT_VALUES)})
    s.set("7", "DB_HOST", "db.internal", username="alice")
    return s


@pytest.fixture
def tenant_values() -> dict[str, str]:
    """Fresh copy of the fully configured tenant's credentials."""
    return dict(TENANT_VALUES)


@pytest.fixture
def tenant(store, settings) -> TenantContext:
    return TenantContext.load(store, "7", settings, username="alice")


# =============================================================================
# Fake Grafana
# =============================================================================


class FakeGrafana:
    """Records requests and answers like Grafana's HTTP API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.dashboards: dict[str, dict[str, Any]] = {}
        self.datasources: list[dict[str, Any]] = []
        self.fail_with: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "boom"})

        path = request.url.path
        if request.method == "POST" and path == "/api/dashboards/db":
            body = json.loads(request.content)
            dashboard = body["dashboard"]
            self.dashboards[dashboard["uid"]] = dashboard
            return httpx.Response(
                200,
                json={
                    "status": "success",
                    "uid": dashboard["uid"],
                    "url": f"/d/{dashboard['uid']}/dash",
                    "version": 1,
                },
            )
        if request.method == "GET" and path == "/api/datasources":
            return httpx.Response(200, json=self.datasources)
        if request.method == "POST" and path == "/api/datasources":
            body = json.loads(request.content)
            created = {"name": body["name"], "uid": f"uid-{body['name']}", "id": len(self.datasources) + 1}
            self.datasources.append(created)
            return httpx.Response(200, json={"datasource": created, "message": "Datasource added"})
        return httpx.Response(404, json={"message": "not found"})

    def dashboard_posts(self) -> list[dict[str, Any]]:
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == "POST" and r.url.path == "/api/dashboards/db"
        ]

    def client(self, base_url: str = "https://grafana.example.com", api_key: str = "glsa_key") -> GrafanaClient:
        return GrafanaClient(base_url, api_key, transport=httpx.MockTransport(self.handler))

    def factory(self, base_url: str, api_key: str) -> GrafanaClient:
        return self.client(base_url, api_key)


@pytest.fixture
def grafana_fake() -> FakeGrafana:
    return FakeGrafana()


@pytest.fixture
def grafana(grafana_fake) -> Generator[GrafanaClient, None, None]:
    with grafana_fake.client() as client:
        yield client
