"""Webhook delivery success-ratio checker."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from toolwatch.constants import DEFAULT_DELIVERY_WINDOW_HOURS
from toolwatch.monitor.checkers.base import HealthChecker
from toolwatch.monitor.delivery import DeliveryStatsSource
from toolwatch.monitor.models import HealthStatus, ProbeOutcome, Target

logger = logging.getLogger(__name__)

DEFAULT_MIN_SUCCESS_RATE = 90.0


class WebhookDeliveryChecker(HealthChecker):
    """Healthy only while the delivery success rate is strictly above 90%.

    Makes no request to the target itself.  Options: ``tool`` (slug sent
    to the stats source, defaults to the target id), ``window_hours`` and
    ``min_success_rate``.
    """

    name = "webhook-delivery"

    def __init__(
        self,
        source: DeliveryStatsSource,
        client: Optional[httpx.AsyncClient] = None,
        window_hours: int = DEFAULT_DELIVERY_WINDOW_HOURS,
    ) -> None:
        super().__init__(client)
        self._source = source
        self._window_hours = window_hours

    async def probe(self, target: Target) -> ProbeOutcome:
        opts = target.probe.options
        tool = opts.get("tool", target.id)
        window = int(opts.get("window_hours", self._window_hours))
        threshold = float(opts.get("min_success_rate", DEFAULT_MIN_SUCCESS_RATE))

        stats = await self._source.fetch(tool, window)
        rate = stats.success_rate
        status = HealthStatus.HEALTHY if rate > threshold else HealthStatus.DEGRADED
        if status != HealthStatus.HEALTHY:
            logger.info(
                "[%s] Webhook delivery rate %.2f%% (%d/%d) at or below %.1f%%",
                target.id,
                rate,
                stats.successful,
                stats.total,
                threshold,
            )
        return ProbeOutcome(
            status=status,
            metrics={"webhook_delivery_success_rate": rate},
            detail={
                "tool": tool,
                "window_hours": window,
                "total": stats.total,
                "successful": stats.successful,
                "last_received": stats.last_received,
            },
        )
