"""Checker lookup by name.

Targets pick a checker by their ``checker`` key, else by their ``kind``;
anything unmatched falls back to the generic HTTP checker.  Adding a
specialised checker is a :meth:`CheckerRegistry.register` call.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from toolwatch.constants import DEFAULT_DELIVERY_WINDOW_HOURS
from toolwatch.errors import ConfigurationError
from toolwatch.monitor.checkers.base import HealthChecker
from toolwatch.monitor.checkers.http import HttpChecker
from toolwatch.monitor.checkers.queue_depth import QueueDepthChecker
from toolwatch.monitor.checkers.rate_limit import RateLimitChecker
from toolwatch.monitor.checkers.webhook_delivery import WebhookDeliveryChecker
from toolwatch.monitor.delivery import DeliveryStatsSource, StaticDeliveryStatsSource
from toolwatch.monitor.models import Target, TargetKind

logger = logging.getLogger(__name__)

# Keys installed by ``create_default``; used to validate configs offline.
DEFAULT_CHECKER_KEYS = (
    TargetKind.SERVICE.value,
    TargetKind.TOOL_INTEGRATION.value,
    RateLimitChecker.name,
    QueueDepthChecker.name,
    WebhookDeliveryChecker.name,
)


class CheckerRegistry:
    """Maps registry keys to checker instances."""

    def __init__(self, fallback: HealthChecker) -> None:
        self._fallback = fallback
        self._checkers: Dict[str, HealthChecker] = {}

    def register(self, key: str, checker: HealthChecker) -> None:
        if key in self._checkers:
            logger.debug("Replacing checker '%s'", key)
        self._checkers[key] = checker

    def keys(self) -> List[str]:
        return list(self._checkers)

    def get(self, key: str) -> Optional[HealthChecker]:
        return self._checkers.get(key)

    def resolve(self, target: Target) -> HealthChecker:
        """Checker for *target*.

        Raises :class:`ConfigurationError` when the target names a
        ``checker`` that is not registered.
        """
        if target.checker is not None:
            checker = self._checkers.get(target.checker)
            if checker is None:
                raise ConfigurationError(
                    f"Target '{target.id}': unknown checker '{target.checker}' "
                    f"(known: {', '.join(sorted(self._checkers))})"
                )
            return checker
        return self._checkers.get(target.kind.value, self._fallback)

    @classmethod
    def create_default(
        cls,
        client: httpx.AsyncClient,
        delivery_source: Optional[DeliveryStatsSource] = None,
        delivery_window_hours: int = DEFAULT_DELIVERY_WINDOW_HOURS,
    ) -> "CheckerRegistry":
        """Registry with the generic and all built-in specialised checkers."""
        generic = HttpChecker(client)
        registry = cls(fallback=generic)
        registry.register(TargetKind.SERVICE.value, generic)
        registry.register(TargetKind.TOOL_INTEGRATION.value, generic)
        registry.register(RateLimitChecker.name, RateLimitChecker(client))
        registry.register(QueueDepthChecker.name, QueueDepthChecker(client))
        registry.register(
            WebhookDeliveryChecker.name,
            WebhookDeliveryChecker(
                delivery_source or StaticDeliveryStatsSource(),
                client,
                window_hours=delivery_window_hours,
            ),
        )
        return registry
