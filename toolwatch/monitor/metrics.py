"""Incremental metric aggregation into fixed time buckets.

Each sample is folded into the running average, min and max of its bucket
and then discarded::

    new_avg = (old_avg * n + v) / (n + 1)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Tuple

from toolwatch.monitor.models import MetricBucket, utcnow
from toolwatch.monitor.store import MemoryHealthStore

logger = logging.getLogger(__name__)


class AggregationPeriod(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"

    @property
    def delta(self) -> timedelta:
        return _DELTAS[self]


_DELTAS = {
    AggregationPeriod.MINUTE: timedelta(minutes=1),
    AggregationPeriod.HOUR: timedelta(hours=1),
    AggregationPeriod.DAY: timedelta(days=1),
}


def bucket_bounds(at: datetime, period: AggregationPeriod) -> Tuple[datetime, datetime]:
    """``[start, end)`` of the *period* bucket containing *at* (UTC)."""
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    at = at.astimezone(timezone.utc)
    if period == AggregationPeriod.MINUTE:
        start = at.replace(second=0, microsecond=0)
    elif period == AggregationPeriod.HOUR:
        start = at.replace(minute=0, second=0, microsecond=0)
    else:
        start = at.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + period.delta


def fold(bucket: MetricBucket, value: float) -> MetricBucket:
    """Add one sample to *bucket* in place and return it."""
    n = bucket.sample_count
    bucket.avg = (bucket.avg * n + value) / (n + 1)
    bucket.min = value if bucket.min is None else min(bucket.min, value)
    bucket.max = value if bucket.max is None else max(bucket.max, value)
    bucket.sample_count = n + 1
    return bucket


class MetricsAggregator:
    """Folds samples into the store's buckets.

    Parameters
    ----------
    store:
        Bucket storage.
    period:
        Aggregation period for new samples.
    clock:
        Wall-clock source used when a sample has no timestamp.
    """

    def __init__(
        self,
        store: MemoryHealthStore,
        period: AggregationPeriod = AggregationPeriod.HOUR,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self.period = AggregationPeriod(period)
        self._clock = clock

    async def record(
        self, target_id: str, metric: str, value: float, at: Optional[datetime] = None
    ) -> MetricBucket:
        """Fold *value* into the bucket for ``(target_id, metric, period, at)``."""
        start, end = bucket_bounds(at or self._clock(), self.period)
        key = (target_id, metric, self.period.value, start)
        async with self._store.locked(f"bucket:{target_id}:{metric}"):
            bucket = await self._store.get_bucket(key)
            if bucket is None:
                bucket = MetricBucket(
                    target_id=target_id,
                    metric=metric,
                    period=self.period.value,
                    period_start=start,
                    period_end=end,
                )
            fold(bucket, float(value))
            await self._store.put_bucket(bucket)
        return bucket

    async def record_many(
        self, target_id: str, values: Mapping[str, float], at: Optional[datetime] = None
    ) -> Dict[str, MetricBucket]:
        return {
            metric: await self.record(target_id, metric, value, at)
            for metric, value in values.items()
        }
