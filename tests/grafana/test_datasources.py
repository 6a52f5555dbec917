"""Tests for datasource sync."""

from __future__ import annotations

import json

import pytest

from dashspine.catalog.categories import Category
from dashspine.grafana.datasources import DatasourceSync, build_datasource_payload
from dashspine.tenants.context import TenantContext
from dashspine.tenants.credentials import InMemoryCredentialStore


@pytest.fixture
def sync(store, settings, grafana_fake) -> DatasourceSync:
    return DatasourceSync(store, settings, grafana_fake.factory)


class TestPayload:
    def test_postgres_payload(self, tenant, settings):
        payload = build_datasource_payload(tenant, "timing_db", settings)
        assert payload["name"] == "timing_db"
        assert payload["type"] == "postgres"
        assert payload["url"] == "db.internal:5433"
        assert payload["user"] == "grafana_reader"
        assert payload["secureJsonData"] == {"password": "s3cret"}
        assert payload["jsonData"]["sslmode"] == "disable"


class TestDatasourceSync:
    def test_existing_datasource_reused(self, sync, tenant, grafana_fake, store):
        grafana_fake.datasources = [
            {"name": "timing_db", "uid": "ds-timing"},
            {"name": "reports_db", "uid": "ds-reports"},
        ]
        updated, report = sync.sync(tenant)

        assert report.success
        assert report.created == []
        assert report.synced == {"timing_report": "ds-timing", "reports": "ds-reports"}
        assert not [r for r in grafana_fake.requests if r.method == "POST"]

    def test_missing_datasource_created_and_uid_stored(self, sync, tenant, grafana_fake, store):
        grafana_fake.datasources = [{"name": "timing_db", "uid": "ds-timing"}]
        updated, report = sync.sync(tenant)

        assert report.created == ["reports"]
        assert store.get("7", "GRAFANA_UID_REPORTS") == "uid-reports_db"
        assert updated.datasource_uid_for(Category.REPORTS) == "uid-reports_db"
        posted = [json.loads(r.content) for r in grafana_fake.requests if r.method == "POST"]
        assert [p["name"] for p in posted] == ["reports_db"]

    def test_missing_grafana_config_skips(self, settings, grafana_fake):
        store = InMemoryCredentialStore({"9": {"DB_HOST": "h", "DB_NAME_QOR": "qor_db"}})
        tenant = TenantContext.load(store, "9", settings)
        updated, report = DatasourceSync(store, settings, grafana_fake.factory).sync(tenant)
        assert not report.success
        assert "*" in report.errors
        assert grafana_fake.requests == []
        assert updated is tenant

    def test_invalid_db_port_skips(self, tenant_values, settings, grafana_fake):
        store = InMemoryCredentialStore({"9": {**tenant_values, "DB_PORT": "five"}})
        tenant = TenantContext.load(store, "9", settings)
        _, report = DatasourceSync(store, settings, grafana_fake.factory).sync(tenant)
        assert "DB_PORT" in report.errors["*"]
        assert grafana_fake.requests == []

    def test_category_failure_is_isolated(self, sync, tenant, grafana_fake):
        grafana_fake.fail_with = 500
        _, report = sync.sync(tenant)
        assert set(report.errors) == {"timing_report", "reports"}
        assert report.synced == {}

    def test_no_categories_no_calls(self, settings, grafana_fake):
        store = InMemoryCredentialStore({"9": {"GRAFANA_URL": "https://g"}})
        tenant = TenantContext.load(store, "9", settings)
        _, report = DatasourceSync(store, settings, grafana_fake.factory).sync(tenant)
        assert report.success
        assert grafana_fake.requests == []
