"""Storage for status rows, result history, metric buckets and incidents.

:class:`MemoryHealthStore` is the default.  :class:`FileHealthStore` keeps
the same data in memory, marks itself dirty on every change and writes a
JSON snapshot when :meth:`~MemoryHealthStore.flush` is awaited (once per
recorded result), reloading it on start.

Read-modify-write sequences take the per-key lock from :meth:`locked`;
there are no cross-target locks.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Deque, Dict, List, Optional, Tuple

from toolwatch.constants import DEFAULT_HISTORY_SIZE
from toolwatch.errors import PersistenceError
from toolwatch.monitor.models import CascadeIncident, HealthResult, MetricBucket, TargetStatus

logger = logging.getLogger(__name__)

BucketKey = Tuple[str, str, str, datetime]

_SNAPSHOT_VERSION = 1


def bucket_key(bucket: MetricBucket) -> BucketKey:
    return (bucket.target_id, bucket.metric, bucket.period, bucket.period_start)


class MemoryHealthStore:
    """In-process store.

    Parameters
    ----------
    history_size:
        Results kept per target for trend queries; older ones drop off.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        self.history_size = history_size
        self._statuses: Dict[str, TargetStatus] = {}
        self._history: Dict[str, Deque[HealthResult]] = {}
        self._buckets: Dict[BucketKey, MetricBucket] = {}
        self._incidents: Dict[str, CascadeIncident] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ── Locking ──────────────────────────────────────────────────────

    @asynccontextmanager
    async def locked(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for *key* (e.g. ``status:<id>``) for a read-modify-write."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        async with lock:
            yield

    # ── Lifecycle ────────────────────────────────────────────────────

    async def load(self) -> None:
        """Nothing to load for the in-memory store."""

    async def close(self) -> None:
        pass

    async def flush(self) -> None:
        """Nothing to write for the in-memory store."""

    # ── Status rows ──────────────────────────────────────────────────

    async def get_status(self, target_id: str) -> Optional[TargetStatus]:
        status = self._statuses.get(target_id)
        return status.model_copy(deep=True) if status is not None else None

    async def put_status(self, status: TargetStatus) -> None:
        self._statuses[status.target_id] = status.model_copy(deep=True)
        self._changed()

    async def list_statuses(self) -> List[TargetStatus]:
        return [s.model_copy(deep=True) for s in self._statuses.values()]

    async def delete_target(self, target_id: str) -> None:
        """Drop the status row, history and buckets of *target_id*."""
        self._statuses.pop(target_id, None)
        self._history.pop(target_id, None)
        for key in [k for k in self._buckets if k[0] == target_id]:
            del self._buckets[key]
        self._locks.pop(f"status:{target_id}", None)
        self._changed()

    # ── History ──────────────────────────────────────────────────────

    async def append_result(self, result: HealthResult) -> None:
        history = self._history.get(result.target_id)
        if history is None:
            history = self._history[result.target_id] = deque(maxlen=self.history_size)
        history.append(result)
        self._changed()

    async def get_history(self, target_id: str, limit: Optional[int] = None) -> List[HealthResult]:
        """Most recent results first."""
        results = list(reversed(self._history.get(target_id, ())))
        return results[:limit] if limit is not None else results

    # ── Metric buckets ───────────────────────────────────────────────

    async def get_bucket(self, key: BucketKey) -> Optional[MetricBucket]:
        bucket = self._buckets.get(key)
        return bucket.model_copy() if bucket is not None else None

    async def put_bucket(self, bucket: MetricBucket) -> None:
        self._buckets[bucket_key(bucket)] = bucket.model_copy()
        self._changed()

    async def query_buckets(
        self,
        target_id: str,
        metric: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        period: Optional[str] = None,
    ) -> List[MetricBucket]:
        """Buckets overlapping ``[start, end)``, oldest first."""
        found = []
        for (tid, name, bucket_period, _), bucket in self._buckets.items():
            if tid != target_id:
                continue
            if metric is not None and name != metric:
                continue
            if period is not None and bucket_period != period:
                continue
            if start is not None and bucket.period_end <= start:
                continue
            if end is not None and bucket.period_start >= end:
                continue
            found.append(bucket.model_copy())
        found.sort(key=lambda b: (b.metric, b.period_start))
        return found

    # ── Incidents ────────────────────────────────────────────────────

    async def get_open_incident(self, root_cause: str) -> Optional[CascadeIncident]:
        for incident in self._incidents.values():
            if incident.root_cause == root_cause and incident.is_open:
                return incident.model_copy(deep=True)
        return None

    async def put_incident(self, incident: CascadeIncident) -> None:
        self._incidents[incident.incident_id] = incident.model_copy(deep=True)
        self._changed()

    async def list_incidents(self, include_resolved: bool = False) -> List[CascadeIncident]:
        incidents = [
            i.model_copy(deep=True)
            for i in self._incidents.values()
            if include_resolved or i.is_open
        ]
        incidents.sort(key=lambda i: i.started_at)
        return incidents

    # ── Snapshot helpers ─────────────────────────────────────────────

    def _changed(self) -> None:
        """Called after every mutation."""

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "version": _SNAPSHOT_VERSION,
            "statuses": [s.model_dump(mode="json") for s in self._statuses.values()],
            "history": {
                tid: [r.model_dump(mode="json") for r in results]
                for tid, results in self._history.items()
            },
            "buckets": [b.model_dump(mode="json") for b in self._buckets.values()],
            "incidents": [i.model_dump(mode="json") for i in self._incidents.values()],
        }

    def restore_snapshot(self, payload: Dict[str, Any]) -> None:
        self._statuses = {}
        for raw in payload.get("statuses", []):
            status = TargetStatus.model_validate(raw)
            self._statuses[status.target_id] = status
        self._history = {
            tid: deque(
                (HealthResult.model_validate(r) for r in results), maxlen=self.history_size
            )
            for tid, results in payload.get("history", {}).items()
        }
        self._buckets = {}
        for raw in payload.get("buckets", []):
            bucket = MetricBucket.model_validate(raw)
            self._buckets[bucket_key(bucket)] = bucket
        self._incidents = {}
        for raw in payload.get("incidents", []):
            incident = CascadeIncident.model_validate(raw)
            self._incidents[incident.incident_id] = incident


class FileHealthStore(MemoryHealthStore):
    """Memory store mirrored to a JSON snapshot file.

    Mutations only mark the store dirty.  :meth:`flush` rewrites the
    snapshot atomically (temp file + rename) in a worker thread.  A failed
    write raises :class:`PersistenceError` and leaves the store dirty; the
    in-memory state is already updated, so the next successful flush
    reconciles the file.

    Parameters
    ----------
    path:
        Snapshot file.  Its directory is created on first write.
    """

    def __init__(self, path: str, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        super().__init__(history_size=history_size)
        self._path = path
        self._dirty = False
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._path

    @property
    def dirty(self) -> bool:
        return self._dirty

    async def load(self) -> None:
        if not os.path.exists(self._path):
            logger.info("No state snapshot at %s, starting empty", self._path)
            return
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                payload = json.load(fh)
            self.restore_snapshot(payload)
        except (OSError, ValueError) as exc:
            # ValueError also covers pydantic.ValidationError.
            logger.warning("Corrupt state snapshot %s, starting empty: %s", self._path, exc)
            return
        logger.info(
            "Loaded state snapshot %s (%d status row(s), %d bucket(s), %d incident(s))",
            self._path,
            len(self._statuses),
            len(self._buckets),
            len(self._incidents),
        )

    def _changed(self) -> None:
        self._dirty = True

    async def flush(self) -> None:
        """Write the snapshot if anything changed since the last write."""
        async with self._write_lock:
            if not self._dirty:
                return
            payload = self.to_snapshot()
            self._dirty = False
            try:
                await asyncio.to_thread(self._write_snapshot, payload)
            except PersistenceError:
                self._dirty = True
                raise
        logger.debug("State snapshot written: %s", self._path)

    def _write_snapshot(self, payload: Dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self._path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".toolwatch-", suffix=".json", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, indent=2)
                os.replace(tmp_path, self._path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise PersistenceError(f"cannot write snapshot {self._path}", orig_exc=exc) from exc

    async def close(self) -> None:
        try:
            await self.flush()
        except PersistenceError as exc:
            logger.error("Final state flush failed: %s", exc)

