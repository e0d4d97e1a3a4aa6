"""Persists probe results: the status row, the history and the metrics."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from toolwatch.errors import PersistenceError
from toolwatch.monitor.metrics import MetricsAggregator
from toolwatch.monitor.models import (
    BreakerSnapshot,
    HealthResult,
    HealthStatus,
    Target,
    TargetStatus,
)
from toolwatch.monitor.store import MemoryHealthStore

logger = logging.getLogger(__name__)

PersistenceCallback = Callable[[str, PersistenceError], None]


def apply_result(
    status: TargetStatus, result: HealthResult, breaker: Optional[BreakerSnapshot] = None
) -> TargetStatus:
    """Fold *result* into the status row in place.

    Healthy results bump ``consecutive_successes`` and reset failures;
    degraded and unhealthy ones do the opposite; skipped ones leave both
    counters alone.
    """
    status.status = result.status
    status.last_check = result.timestamp
    status.detail = dict(result.detail)
    if breaker is not None:
        status.breaker = breaker

    if result.status == HealthStatus.SKIPPED:
        return status

    status.response_time_ms = result.response_time_ms
    status.error = result.error
    if result.status == HealthStatus.HEALTHY:
        status.last_healthy = result.timestamp
        status.consecutive_successes += 1
        status.consecutive_failures = 0
    else:
        status.consecutive_failures += 1
        status.consecutive_successes = 0
    return status


def result_metrics(result: HealthResult) -> Dict[str, float]:
    """Samples recorded for a completed probe (none for skipped ones)."""
    if result.status == HealthStatus.SKIPPED:
        return {}
    samples: Dict[str, float] = {
        "response_time": float(result.response_time_ms or 0.0),
        "availability": 100.0 if result.status == HealthStatus.HEALTHY else 0.0,
    }
    for name, value in result.metrics.items():
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            samples[name] = float(value)
    return samples


class ResultRecorder:
    """Writes every probe result through to the store.

    Parameters
    ----------
    store:
        Status, history and bucket storage.
    aggregator:
        Folds each result's metrics into time buckets.
    on_persistence_error:
        Called as ``(target_id, exc)`` when a write fails.  Failures are
        logged and never stop scheduling.
    """

    def __init__(
        self,
        store: MemoryHealthStore,
        aggregator: MetricsAggregator,
        on_persistence_error: Optional[PersistenceCallback] = None,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._on_persistence_error = on_persistence_error
        self.persistence_failures = 0

    async def ensure_row(self, target: Target) -> TargetStatus:
        """Create the ``unknown`` status row for a newly registered target.

        An existing row (e.g. restored from a snapshot) is refreshed with
        the target's current name and thresholds but keeps its history.
        """
        async with self._store.locked(f"status:{target.id}"):
            existing = await self._store.get_status(target.id)
            fresh = TargetStatus.for_target(target)
            if existing is not None:
                existing.display_name = fresh.display_name
                existing.kind = fresh.kind
                existing.critical = fresh.critical
                fresh = existing
            await self._guard(target.id, self._store.put_status(fresh))
        await self._guard(target.id, self._store.flush())
        return fresh

    async def record(
        self, target: Target, result: HealthResult, breaker: Optional[BreakerSnapshot] = None
    ) -> TargetStatus:
        """Apply *result* to the row, append it to history and fold its metrics.

        The store is flushed once, after every write for the result.
        """
        async with self._store.locked(f"status:{target.id}"):
            status = await self._store.get_status(target.id) or TargetStatus.for_target(target)
            apply_result(status, result, breaker)
            await self._guard(target.id, self._store.put_status(status))
            await self._guard(target.id, self._store.append_result(result))

        for metric, value in result_metrics(result).items():
            await self._guard(
                target.id, self._aggregator.record(target.id, metric, value, result.timestamp)
            )
        await self._guard(target.id, self._store.flush())
        return status

    async def _guard(self, target_id: str, op) -> None:
        try:
            await op
        except PersistenceError as exc:
            self.persistence_failures += 1
            logger.error("[%s] %s", target_id, exc)
            if self._on_persistence_error is not None:
                self._on_persistence_error(target_id, exc)
