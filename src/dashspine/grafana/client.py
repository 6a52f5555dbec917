"""
Grafana HTTP API client.

Covers the three calls the pipeline needs:

- ``POST /api/dashboards/db``  create or overwrite a dashboard
- ``GET  /api/datasources``    list datasources (lookup by name)
- ``POST /api/datasources``    create a datasource

All calls use bearer auth and an explicit timeout and are never retried here.
Transport errors, non-2xx responses and 2xx responses missing required
fields are raised as ``RemoteAPIFailure`` with the cause chained.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from dashspine.core.errors import RemoteAPIFailure
from dashspine.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PublishedDashboard:
    uid: str | None
    url: str
    status: str | None = None
    version: int | None = None


class GrafanaClient:
    """Synchronous Grafana API client.

    Example:
        >>> with GrafanaClient("https://grafana.example.com", "key") as grafana:
        ...     published = grafana.upsert_dashboard(definition)
        ...     published.url
        'https://grafana.example.com/d/skew-1a2b3c4d5e/...'
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> GrafanaClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteAPIFailure(
                f"Grafana {method} {path} returned {e.response.status_code}",
                retryable=e.response.status_code >= 500,
                cause=e,
            ).with_context(url=f"{self.base_url}{path}", http_status=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise RemoteAPIFailure(f"Grafana {method} {path} failed: {e}", cause=e).with_context(
                url=f"{self.base_url}{path}"
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise RemoteAPIFailure(f"Grafana {method} {path} returned non-JSON body", cause=e) from e

    # ── Dashboards ───────────────────────────────────────────────────

    def upsert_dashboard(
        self,
        dashboard: dict[str, Any],
        *,
        folder_id: int = 0,
        overwrite: bool = True,
    ) -> PublishedDashboard:
        """Create or overwrite a dashboard; returns its absolute URL."""
        body = self._request(
            "POST",
            "/api/dashboards/db",
            json={"dashboard": dashboard, "overwrite": overwrite, "folderId": folder_id},
        )
        relative = body.get("url") if isinstance(body, dict) else None
        if not relative:
            raise RemoteAPIFailure(
                "Grafana accepted the dashboard but returned no url",
                retryable=False,
            ).with_context(url=f"{self.base_url}/api/dashboards/db")

        url = relative if relative.startswith("http") else f"{self.base_url}{relative}"
        logger.debug("grafana_dashboard_saved", uid=body.get("uid"), url=url)
        return PublishedDashboard(
            uid=body.get("uid"),
            url=url,
            status=body.get("status"),
            version=body.get("version"),
        )

    # ── Datasources ──────────────────────────────────────────────────

    def list_datasources(self) -> list[dict[str, Any]]:
        body = self._request("GET", "/api/datasources")
        return body if isinstance(body, list) else []

    def find_datasource(self, name: str) -> dict[str, Any] | None:
        for datasource in self.list_datasources():
            if datasource.get("name") == name:
                return datasource
        return None

    def create_datasource(self, payload: dict[str, Any]) -> dict[str, Any]:
        body = self._request("POST", "/api/datasources", json=payload)
        datasource = body.get("datasource") if isinstance(body, dict) else None
        if not datasource or not datasource.get("uid"):
            raise RemoteAPIFailure(
                f"Grafana created datasource {payload.get('name')!r} but returned no uid",
                retryable=False,
            )
        return datasource


__all__ = ["GrafanaClient", "PublishedDashboard"]
