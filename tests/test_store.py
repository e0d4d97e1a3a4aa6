"""Tests for the in-memory and file-backed health stores."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from toolwatch.errors import PersistenceError
from toolwatch.monitor.models import (
    CascadeIncident,
    HealthResult,
    HealthStatus,
    MetricBucket,
    ResolutionStatus,
    TargetStatus,
)
from toolwatch.monitor.store import FileHealthStore, MemoryHealthStore

_T0 = datetime(2024, 5, 1, 0, 0, tzinfo=timezone.utc)


def _bucket(hour: int, metric: str = "response_time") -> MetricBucket:
    start = _T0 + timedelta(hours=hour)
    return MetricBucket(
        target_id="svc",
        metric=metric,
        period="hour",
        period_start=start,
        period_end=start + timedelta(hours=1),
        avg=float(hour),
        sample_count=1,
    )


def _result(n: int) -> HealthResult:
    return HealthResult(
        target_id="svc",
        timestamp=_T0 + timedelta(seconds=n),
        status=HealthStatus.HEALTHY,
        response_time_ms=float(n),
    )


class TestMemoryStore:
    def test_history_newest_first_and_bounded(self) -> None:
        async def _go():
            store = MemoryHealthStore(history_size=3)
            for n in range(5):
                await store.append_result(_result(n))
            return await store.get_history("svc"), await store.get_history("svc", limit=1)

        full, latest = asyncio.run(_go())
        assert [r.response_time_ms for r in full] == [4.0, 3.0, 2.0]
        assert latest[0].response_time_ms == 4.0

    def test_status_rows_are_copies(self) -> None:
        async def _go():
            store = MemoryHealthStore()
            await store.put_status(TargetStatus(target_id="svc"))
            row = await store.get_status("svc")
            row.consecutive_failures = 99
            return await store.get_status("svc")

        assert asyncio.run(_go()).consecutive_failures == 0

    def test_query_buckets_by_range(self) -> None:
        async def _go():
            store = MemoryHealthStore()
            for hour in range(6):
                await store.put_bucket(_bucket(hour))
            await store.put_bucket(_bucket(2, metric="availability"))
            return (
                await store.query_buckets(
                    "svc",
                    "response_time",
                    start=_T0 + timedelta(hours=1, minutes=30),
                    end=_T0 + timedelta(hours=4),
                ),
                await store.query_buckets("svc"),
                await store.query_buckets("other"),
            )

        ranged, everything, other = asyncio.run(_go())
        assert [b.avg for b in ranged] == [1.0, 2.0, 3.0]
        assert len(everything) == 7
        assert everything[0].metric == "availability"
        assert other == []

    def test_open_and_resolved_incidents(self) -> None:
        async def _go():
            store = MemoryHealthStore()
            resolved = CascadeIncident(
                incident_id="cascade-idp-1",
                root_cause="idp",
                started_at=_T0,
                resolution_status=ResolutionStatus.RESOLVED,
            )
            ongoing = CascadeIncident(
                incident_id="cascade-idp-2", root_cause="idp", started_at=_T0 + timedelta(hours=1)
            )
            await store.put_incident(resolved)
            await store.put_incident(ongoing)
            return (
                await store.get_open_incident("idp"),
                await store.list_incidents(),
                await store.list_incidents(include_resolved=True),
            )

        open_incident, open_only, all_incidents = asyncio.run(_go())
        assert open_incident.incident_id == "cascade-idp-2"
        assert [i.incident_id for i in open_only] == ["cascade-idp-2"]
        assert [i.incident_id for i in all_incidents] == ["cascade-idp-1", "cascade-idp-2"]

    def test_delete_target(self) -> None:
        async def _go():
            store = MemoryHealthStore()
            await store.put_status(TargetStatus(target_id="svc"))
            await store.append_result(_result(1))
            await store.put_bucket(_bucket(0))
            await store.delete_target("svc")
            return (
                await store.get_status("svc"),
                await store.get_history("svc"),
                await store.query_buckets("svc"),
            )

        assert asyncio.run(_go()) == (None, [], [])


class TestFileStore:
    def test_snapshot_survives_restart(self, tmp_path) -> None:
        path = str(tmp_path / "state" / "toolwatch.json")

        async def _write():
            store = FileHealthStore(path)
            await store.load()
            await store.put_status(TargetStatus(target_id="svc", consecutive_failures=2))
            await store.append_result(_result(7))
            await store.put_bucket(_bucket(3))
            await store.close()

        async def _read():
            store = FileHealthStore(path)
            await store.load()
            return (
                await store.get_status("svc"),
                await store.get_history("svc"),
                await store.query_buckets("svc"),
            )

        asyncio.run(_write())
        status, history, buckets = asyncio.run(_read())
        assert status.consecutive_failures == 2
        assert history[0].response_time_ms == 7.0
        assert buckets[0].period_start == _T0 + timedelta(hours=3)
        with open(path, encoding="utf-8") as fh:
            assert json.load(fh)["version"] == 1

    def test_corrupt_snapshot_starts_empty(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")

        async def _go():
            store = FileHealthStore(str(path))
            await store.load()
            return await store.list_statuses()

        assert asyncio.run(_go()) == []

    def test_unwritable_path_raises_persistence_error(self, tmp_path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        store = FileHealthStore(str(blocker / "state.json"))

        async def _go():
            await store.put_status(TargetStatus(target_id="svc"))
            await store.flush()

        with pytest.raises(PersistenceError):
            asyncio.run(_go())
        assert store.dirty is True

    def test_mutations_are_written_on_flush_only(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        writes: List[int] = []

        class _CountingStore(FileHealthStore):
            def _write_snapshot(self, payload):
                writes.append(len(payload["statuses"]))
                super()._write_snapshot(payload)

        async def _go():
            store = _CountingStore(str(path))
            await store.put_status(TargetStatus(target_id="svc"))
            await store.append_result(_result(1))
            await store.put_bucket(_bucket(0))
            written_early = path.exists()
            await store.flush()
            await store.flush()
            return written_early, store.dirty

        written_early, dirty = asyncio.run(_go())
        assert written_early is False
        assert dirty is False
        assert writes == [1]
        assert path.exists()
