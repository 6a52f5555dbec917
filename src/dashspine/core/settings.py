"""Process-wide settings for dashboard-spine.

Everything that is not per-tenant lives here: where the state database is,
how long remote calls may take, how snapshots are captured and kept, and how
often the scheduler ticks. Per-tenant values (database names, Grafana keys,
chat tokens) come from the credential store instead.

Values are read from ``DASHSPINE_*`` environment variables and an optional
``.env`` file. A few legacy names (``GRAFANA_BASE_URL``, ``GIF_CAPTURE_DIR``,
``DASHBOARD_SCAN_INTERVAL``, ``CAPTURE_*``) are accepted as aliases so
existing deployments keep working.

Examples:
    >>> from dashspine.core.settings import DashSpineSettings
    >>> s = DashSpineSettings(capture_frames=4)
    >>> s.capture_frames
    4

Tags:
    settings, configuration, pydantic, environment, dashboard-spine
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env(name: str, *legacy: str) -> AliasChoices:
    return AliasChoices(f"DASHSPINE_{name.upper()}", *legacy)


class DashSpineSettings(BaseSettings):
    """Validated process configuration.

    Fields
    ──────
    database_url          : SQLAlchemy URL of the state store
    grafana_base_url      : Fallback Grafana URL when a tenant has none
    grafana_api_key       : Fallback Grafana key when a tenant has none
    default_db_*          : Fallback tenant schema connection values
    http_timeout          : Seconds allowed for every remote HTTP call
    capture_*             : Snapshot capture geometry and timing
    scan_interval_seconds : Scheduler tick interval
    lock_ttl_seconds      : Tenant lock expiry for crashed holders
    notify_max_attempts   : Failed deliveries before a destination is abandoned
    snapshot_retention_days : Age after which snapshot files are pruned
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── State store ──────────────────────────────────────────────
    database_url: str = Field(
        default="sqlite:///dashspine.db",
        validation_alias=_env("database_url"),
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias=_env("log_level"))
    log_json: bool | None = Field(default=None, validation_alias=_env("log_json"))

    # ── Grafana fallbacks ────────────────────────────────────────
    grafana_base_url: str | None = Field(
        default=None, validation_alias=_env("grafana_base_url", "GRAFANA_BASE_URL")
    )
    grafana_api_key: str | None = Field(
        default=None, validation_alias=_env("grafana_api_key", "GRAFANA_API_KEY")
    )

    # ── Tenant schema fallbacks ──────────────────────────────────
    default_db_port: int = Field(
        default=5432, ge=1, le=65535, validation_alias=_env("default_db_port", "DEFAULT_DB_PORT")
    )
    default_db_user: str | None = Field(
        default=None, validation_alias=_env("default_db_user", "DEFAULT_DB_USER")
    )
    default_db_pass: str | None = Field(
        default=None, validation_alias=_env("default_db_pass", "DEFAULT_DB_PASS")
    )
    db_ssl: bool = Field(default=False, validation_alias=_env("db_ssl", "DB_SSL"))
    db_connect_timeout: int = Field(
        default=5, ge=1, validation_alias=_env("db_connect_timeout")
    )

    # ── Remote calls ─────────────────────────────────────────────
    http_timeout: float = Field(default=30.0, gt=0, validation_alias=_env("http_timeout"))

    # ── Snapshot capture ─────────────────────────────────────────
    capture_enabled: bool = Field(default=True, validation_alias=_env("capture_enabled"))
    capture_dir: Path = Field(
        default=Path("gif_captures"), validation_alias=_env("capture_dir", "GIF_CAPTURE_DIR")
    )
    capture_width: int = Field(
        default=1920, gt=0, validation_alias=_env("capture_width", "CAPTURE_WIDTH")
    )
    capture_height: int = Field(
        default=1080, gt=0, validation_alias=_env("capture_height", "CAPTURE_HEIGHT")
    )
    capture_frames: int = Field(
        default=10, gt=0, validation_alias=_env("capture_frames", "CAPTURE_FRAMES")
    )
    capture_frame_delay_ms: int = Field(
        default=500, gt=0, validation_alias=_env("capture_frame_delay_ms", "CAPTURE_FRAME_DELAY")
    )
    capture_scroll_step: int = Field(
        default=100, gt=0, validation_alias=_env("capture_scroll_step")
    )
    capture_max_scroll_steps: int = Field(
        default=200, gt=0, validation_alias=_env("capture_max_scroll_steps")
    )
    capture_timeout_ms: int = Field(
        default=120_000, gt=0, validation_alias=_env("capture_timeout_ms", "CAPTURE_TIMEOUT")
    )

    # ── Scheduling ───────────────────────────────────────────────
    scan_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        validation_alias=_env("scan_interval_seconds", "DASHBOARD_SCAN_INTERVAL"),
    )
    lock_ttl_seconds: int = Field(default=900, gt=0, validation_alias=_env("lock_ttl_seconds"))
    max_workers: int = Field(default=1, ge=1, validation_alias=_env("max_workers"))

    # ── Delivery / retention ─────────────────────────────────────
    notify_max_attempts: int = Field(
        default=20, ge=0, validation_alias=_env("notify_max_attempts")
    )
    snapshot_retention_days: int = Field(
        default=14, ge=0, validation_alias=_env("snapshot_retention_days")
    )


@lru_cache(maxsize=1)
def get_settings() -> DashSpineSettings:
    """Return the cached process settings."""
    return DashSpineSettings()


__all__ = ["DashSpineSettings", "get_settings"]
