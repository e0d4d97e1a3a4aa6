"""Webhook delivery statistics sources.

The webhook-delivery checker never sees individual deliveries; it asks a
:class:`DeliveryStatsSource` for aggregate ``(successful, total)`` counts
over a trailing window.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

import httpx

from toolwatch.errors import ProbeConnectionError, ProbeProtocolError, ProbeTimeout

logger = logging.getLogger(__name__)

STATS_PATH = "/api/webhooks/stats"


@dataclass(frozen=True)
class DeliveryStats:
    total: int = 0
    successful: int = 0
    last_received: Optional[str] = None

    @property
    def success_rate(self) -> float:
        return delivery_success_rate(self.successful, self.total)


def delivery_success_rate(successful: int, total: int) -> float:
    """Percentage of successful deliveries, rounded to 2 decimals.

    With no deliveries in the window the rate is 100.
    """
    if total <= 0:
        return 100.0
    return round(successful / total * 100, 2)


class DeliveryStatsSource(ABC):
    """Where delivery counts come from."""

    @abstractmethod
    async def fetch(self, tool: str, window_hours: int) -> DeliveryStats:
        """Counts for *tool* over the last *window_hours*.  Raises on failure."""


class StaticDeliveryStatsSource(DeliveryStatsSource):
    """In-process counts, for tests and offline use.

    Tools with no entry report zero deliveries.
    """

    def __init__(self, counts: Optional[Mapping[str, DeliveryStats]] = None) -> None:
        self._counts: Dict[str, DeliveryStats] = dict(counts or {})

    def set(self, tool: str, stats: DeliveryStats) -> None:
        self._counts[tool] = stats

    async def fetch(self, tool: str, window_hours: int) -> DeliveryStats:
        return self._counts.get(tool, DeliveryStats())


class HttpDeliveryStatsSource(DeliveryStatsSource):
    """Reads counts from the webhook-ingress service.

    ``GET {base_url}/api/webhooks/stats?tool=<slug>&hours=<n>`` must return
    ``{"total": int, "successful": int, "last_received": str | null}``.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str, timeout: float = 5.0) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def fetch(self, tool: str, window_hours: int) -> DeliveryStats:
        url = f"{self._base_url}{STATS_PATH}"
        try:
            response = await self._client.get(
                url,
                params={"tool": tool, "hours": window_hours},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProbeTimeout(f"delivery stats request timed out: {exc}", tool) from exc
        except httpx.TransportError as exc:
            raise ProbeConnectionError(f"delivery stats unreachable: {exc}", tool) from exc

        if response.status_code != 200:
            raise ProbeProtocolError(
                f"delivery stats returned HTTP {response.status_code}", tool
            )
        try:
            data = response.json()
            total = int(data.get("total", 0))
            successful = int(data.get("successful", 0))
        except (ValueError, TypeError, AttributeError) as exc:
            raise ProbeProtocolError(f"malformed delivery stats: {exc}", tool) from exc

        logger.debug("Delivery stats for '%s' (%dh): %d/%d", tool, window_hours, successful, total)
        return DeliveryStats(
            total=total, successful=successful, last_received=data.get("last_received")
        )
