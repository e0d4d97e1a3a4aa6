"""HTTP client for the Toolwatch management API.

Async wrapper around the ``/manage/v1/`` endpoints, used by
``toolwatch status`` to query a running server.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from toolwatch.constants import MANAGEMENT_API_PREFIX
from toolwatch.server.management.schemas import (
    DashboardResponse,
    EventsResponse,
    HealthResponse,
    HistoryResponse,
    IncidentsResponse,
    MetricsResponse,
    ReloadResponse,
    StatusResponse,
    TargetsResponse,
)

logger = logging.getLogger(__name__)

# Default timeout for regular API calls (seconds).
_DEFAULT_TIMEOUT = 10.0

# Timeout for a config reload, which re-registers targets.
_MUTATING_TIMEOUT = 30.0


class ApiClientError(Exception):
    """Raised when the management API returns an unexpected status."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail}")


class ApiClient:
    """Async HTTP client for the Toolwatch Management API.

    Parameters
    ----------
    base_url:
        Root URL of the Toolwatch server, e.g. ``http://127.0.0.1:9100``.
    transport:
        Optional httpx transport (tests pass a ``MockTransport``).

    Usage::

        async with ApiClient("http://127.0.0.1:9100") as api:
            targets = await api.get_targets()
    """

    def __init__(
        self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_url = f"{self._base_url}{MANAGEMENT_API_PREFIX}/"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ── Lifecycle ────────────────────────────────────────────────

    async def connect(self) -> None:
        """Create the underlying ``httpx.AsyncClient``."""
        self._client = httpx.AsyncClient(
            base_url=self._api_url,
            headers={"Accept": "application/json"},
            timeout=_DEFAULT_TIMEOUT,
            transport=self._transport,
        )
        logger.debug("ApiClient connected to %s", self._api_url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ApiClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self._client is not None and not self._client.is_closed

    # ── Private helpers ──────────────────────────────────────────

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            raise RuntimeError("ApiClient is not connected, call connect() first")
        return self._client

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        client = self._ensure_client()
        resp = await client.get(path, params=params)
        return self._json(resp)

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("message", resp.text)
            except ValueError:
                detail = resp.text
            raise ApiClientError(resp.status_code, detail)
        return resp.json()

    # ── Read-only endpoints ──────────────────────────────────────

    async def get_health(self) -> HealthResponse:
        """``GET /manage/v1/health``"""
        return HealthResponse.model_validate(await self._get("health"))

    async def get_status(self) -> StatusResponse:
        """``GET /manage/v1/status``"""
        return StatusResponse.model_validate(await self._get("status"))

    async def get_targets(self) -> TargetsResponse:
        """``GET /manage/v1/targets``"""
        return TargetsResponse.model_validate(await self._get("targets"))

    async def get_history(self, target_id: str, limit: int = 50) -> HistoryResponse:
        return HistoryResponse.model_validate(
            await self._get(f"targets/{target_id}/history", {"limit": limit})
        )

    async def get_metrics(
        self, target_id: str, metric: Optional[str] = None, hours: Optional[float] = None
    ) -> MetricsResponse:
        """``GET /manage/v1/targets/{id}/metrics``

        Parameters
        ----------
        metric:
            Restrict to one metric (``response_time``, ``availability``, ...).
        hours:
            Only buckets from the last *hours* hours.
        """
        params: Dict[str, Any] = {}
        if metric:
            params["metric"] = metric
        if hours is not None:
            params["hours"] = hours
        return MetricsResponse.model_validate(
            await self._get(f"targets/{target_id}/metrics", params)
        )

    async def get_incidents(self, include_resolved: bool = False) -> IncidentsResponse:
        params = {"include_resolved": "true"} if include_resolved else None
        return IncidentsResponse.model_validate(await self._get("incidents", params))

    async def get_dashboard(self) -> DashboardResponse:
        return DashboardResponse.model_validate(await self._get("dashboard"))

    async def get_events(self, limit: int = 50) -> EventsResponse:
        return EventsResponse.model_validate(await self._get("events", {"limit": limit}))

    # ── Mutating endpoints ───────────────────────────────────────

    async def post_reload(self) -> ReloadResponse:
        """``POST /manage/v1/reload``

        A reload that fails validation answers 422 with the same body, so
        it is returned rather than raised.
        """
        client = self._ensure_client()
        resp = await client.post("reload", timeout=_MUTATING_TIMEOUT)
        if resp.status_code == 422:
            return ReloadResponse.model_validate(resp.json())
        return ReloadResponse.model_validate(self._json(resp))

    # ── Composite ────────────────────────────────────────────────

    async def fetch_overview(self) -> Dict[str, Any]:
        """Dashboard, targets and open incidents as plain JSON dicts."""
        dashboard = await self.get_dashboard()
        targets = await self.get_targets()
        incidents = await self.get_incidents()
        return {
            "dashboard": dashboard.model_dump(mode="json"),
            "targets": [t.model_dump(mode="json") for t in targets.targets],
            "incidents": [i.model_dump(mode="json") for i in incidents.incidents],
        }
