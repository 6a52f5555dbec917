"""
TenantContext: everything one pipeline pass needs to know about a tenant.

Built from a credential snapshot taken at the start of the pass, with process
settings as fallback for connection values. Category-specific lookups go
through ``database_for`` / ``datasource_uid_for`` and raise
``ConfigurationMissing`` when the category is not configured.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from urllib.parse import quote_plus

from dashspine.catalog.categories import Category
from dashspine.core.errors import ConfigurationMissing
from dashspine.core.logging import get_logger, redact
from dashspine.core.settings import DashSpineSettings
from dashspine.tenants.credentials import CredentialStore

DB_HOST = "DB_HOST"
DB_PORT = "DB_PORT"
DB_USER = "DB_USER"
DB_PASS = "DB_PASS"
GRAFANA_URL = "GRAFANA_URL"
GRAFANA_API_KEY = "GRAFANA_API_KEY"
SLACK_BOT_TOKEN = "SLACK_BOT_TOKEN"
SLACK_CHANNEL_ID = "SLACK_CHANNEL_ID"
TEAMS_WEBHOOK_URL = "TEAMS_WEBHOOK_URL"

SECRET_KEYS = frozenset({DB_PASS, GRAFANA_API_KEY, SLACK_BOT_TOKEN, TEAMS_WEBHOOK_URL})

logger = get_logger(__name__)


def _parse_port(raw: str) -> int | None:
    try:
        port = int(raw)
    except ValueError:
        return None
    return port if 0 < port < 65536 else None


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    username: str | None
    db_host: str | None
    db_port: int | None
    db_user: str | None
    db_pass: str | None
    grafana_url: str | None
    grafana_api_key: str | None
    slack_bot_token: str | None = None
    slack_channel_id: str | None = None
    teams_webhook_url: str | None = None
    values: dict[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def load(
        cls,
        store: CredentialStore,
        tenant_id: str,
        settings: DashSpineSettings,
        *,
        username: str | None = None,
    ) -> TenantContext:
        values = store.all(tenant_id)

        def pick(key: str, fallback: str | None = None) -> str | None:
            return values.get(key) or fallback

        port_raw = pick(DB_PORT)
        port = _parse_port(port_raw) if port_raw else settings.default_db_port
        if port is None:
            logger.warning("invalid_db_port", tenant=tenant_id, value=port_raw)
        return cls(
            tenant_id=tenant_id,
            username=username,
            db_host=pick(DB_HOST),
            db_port=port,
            db_user=pick(DB_USER, settings.default_db_user),
            db_pass=pick(DB_PASS, settings.default_db_pass),
            grafana_url=(pick(GRAFANA_URL, settings.grafana_base_url) or "").rstrip("/") or None,
            grafana_api_key=pick(GRAFANA_API_KEY, settings.grafana_api_key),
            slack_bot_token=pick(SLACK_BOT_TOKEN),
            slack_channel_id=pick(SLACK_CHANNEL_ID),
            teams_webhook_url=pick(TEAMS_WEBHOOK_URL),
            values=values,
        )

    # ── category lookups ─────────────────────────────────────────────

    def database_for(self, category: Category) -> str:
        name = self.values.get(category.db_name_key)
        if not name:
            raise ConfigurationMissing(category.db_name_key).with_context(
                tenant_id=self.tenant_id, category=category.value
            )
        return name

    def datasource_uid_for(self, category: Category) -> str:
        uid = self.values.get(category.datasource_uid_key)
        if not uid:
            raise ConfigurationMissing(category.datasource_uid_key).with_context(
                tenant_id=self.tenant_id, category=category.value
            )
        return uid

    def configured_categories(self) -> list[Category]:
        """Categories with a database name set."""
        return [c for c in Category if self.values.get(c.db_name_key)]

    def with_datasource_uid(self, category: Category, uid: str) -> TenantContext:
        values = dict(self.values)
        values[category.datasource_uid_key] = uid
        return replace(self, values=values)

    def require_grafana(self) -> tuple[str, str]:
        if not self.grafana_url:
            raise ConfigurationMissing(GRAFANA_URL).with_context(tenant_id=self.tenant_id)
        if not self.grafana_api_key:
            raise ConfigurationMissing(GRAFANA_API_KEY).with_context(tenant_id=self.tenant_id)
        return self.grafana_url, self.grafana_api_key

    def require_db_host(self) -> str:
        if not self.db_host:
            raise ConfigurationMissing(DB_HOST).with_context(tenant_id=self.tenant_id)
        return self.db_host

    def require_db_port(self) -> int:
        if self.db_port is None:
            raise ConfigurationMissing(
                DB_PORT, f"{DB_PORT} is not a valid port: {self.values.get(DB_PORT)!r}"
            ).with_context(tenant_id=self.tenant_id)
        return self.db_port

    def schema_url(self, category: Category) -> str:
        """SQLAlchemy URL of the category's tenant database."""
        host = self.require_db_host()
        port = self.require_db_port()
        user = quote_plus(self.db_user or "")
        password = quote_plus(self.db_pass or "")
        auth = f"{user}:{password}@" if password else (f"{user}@" if user else "")
        return f"postgresql+psycopg2://{auth}{host}:{port}/{self.database_for(category)}"

    # ── notifications ────────────────────────────────────────────────

    @property
    def slack_configured(self) -> bool:
        return bool(self.slack_bot_token and self.slack_channel_id)

    @property
    def teams_configured(self) -> bool:
        return bool(self.teams_webhook_url)

    @property
    def display_name(self) -> str:
        return self.username or self.tenant_id

    def describe(self) -> dict[str, str]:
        """Log-safe summary with secrets redacted."""
        return {
            "tenant": self.tenant_id,
            "db_host": self.db_host or "NOT SET",
            "grafana_url": self.grafana_url or "NOT SET",
            "grafana_api_key": redact(self.grafana_api_key),
            "slack": redact(self.slack_bot_token),
            "teams": redact(self.teams_webhook_url),
        }


__all__ = [
    "TenantContext",
    "SECRET_KEYS",
    "DB_HOST",
    "DB_PORT",
    "DB_USER",
    "DB_PASS",
    "GRAFANA_URL",
    "GRAFANA_API_KEY",
    "SLACK_BOT_TOKEN",
    "SLACK_CHANNEL_ID",
    "TEAMS_WEBHOOK_URL",
]
