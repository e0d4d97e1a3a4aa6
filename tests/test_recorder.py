"""Tests for the result recorder: status rows, history and metrics."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List

from toolwatch.errors import PersistenceError
from toolwatch.monitor.metrics import MetricsAggregator
from toolwatch.monitor.models import BreakerSnapshot, HealthResult, HealthStatus, TargetStatus
from toolwatch.monitor.recorder import ResultRecorder, apply_result, result_metrics
from toolwatch.monitor.store import FileHealthStore, MemoryHealthStore

from helpers import build_target

_AT = datetime(2024, 5, 1, 9, 15, tzinfo=timezone.utc)


def _result(status: HealthStatus, **kwargs) -> HealthResult:
    return HealthResult(target_id="svc", timestamp=_AT, status=status, **kwargs)


class TestApplyResult:
    def test_healthy_resets_failures(self) -> None:
        row = TargetStatus(target_id="svc", consecutive_failures=4)
        apply_result(row, _result(HealthStatus.HEALTHY, response_time_ms=12.0))
        assert row.status == HealthStatus.HEALTHY
        assert row.consecutive_successes == 1
        assert row.consecutive_failures == 0
        assert row.last_healthy == _AT
        assert row.response_time_ms == 12.0

    def test_degraded_and_unhealthy_count_as_failures(self) -> None:
        row = TargetStatus(target_id="svc", consecutive_successes=5)
        apply_result(row, _result(HealthStatus.DEGRADED))
        apply_result(row, _result(HealthStatus.UNHEALTHY, error="HTTP 503"))
        assert row.consecutive_failures == 2
        assert row.consecutive_successes == 0
        assert row.error == "HTTP 503"
        assert row.last_healthy is None

    def test_skipped_leaves_counters_alone(self) -> None:
        row = TargetStatus(
            target_id="svc", consecutive_failures=3, consecutive_successes=0, error="HTTP 503"
        )
        snapshot = BreakerSnapshot(state="open", consecutive_failures=3)
        apply_result(
            row, _result(HealthStatus.SKIPPED, detail={"skipped_reason": "circuit_open"}), snapshot
        )
        assert row.status == HealthStatus.SKIPPED
        assert row.consecutive_failures == 3
        assert row.consecutive_successes == 0
        assert row.error == "HTTP 503"
        assert row.breaker.state == "open"
        assert row.last_check == _AT


class TestResultMetrics:
    def test_completed_probe(self) -> None:
        samples = result_metrics(
            _result(
                HealthStatus.DEGRADED,
                response_time_ms=80.0,
                metrics={"queue_depth": 12.0},
            )
        )
        assert samples == {"response_time": 80.0, "availability": 0.0, "queue_depth": 12.0}

    def test_healthy_is_fully_available(self) -> None:
        assert result_metrics(_result(HealthStatus.HEALTHY))["availability"] == 100.0

    def test_skipped_probe_has_no_samples(self) -> None:
        assert result_metrics(_result(HealthStatus.SKIPPED)) == {}


class _BrokenHistoryStore(MemoryHealthStore):
    async def append_result(self, result: HealthResult) -> None:
        raise PersistenceError("disk full", target_id=result.target_id)


class TestResultRecorder:
    def test_record_writes_row_history_and_buckets(self) -> None:
        async def _go():
            store = MemoryHealthStore()
            recorder = ResultRecorder(store, MetricsAggregator(store))
            target = build_target()
            await recorder.ensure_row(target)
            await recorder.record(target, _result(HealthStatus.HEALTHY, response_time_ms=40.0))
            await recorder.record(target, _result(HealthStatus.HEALTHY, response_time_ms=60.0))
            return (
                await store.get_status("svc"),
                await store.get_history("svc"),
                await store.query_buckets("svc", "response_time"),
                await store.query_buckets("svc", "availability"),
            )

        row, history, latency, availability = asyncio.run(_go())
        assert row.consecutive_successes == 2
        assert len(history) == 2
        assert latency[0].avg == 50.0
        assert latency[0].sample_count == 2
        assert availability[0].avg == 100.0

    def test_skipped_result_records_no_metrics(self) -> None:
        async def _go():
            store = MemoryHealthStore()
            recorder = ResultRecorder(store, MetricsAggregator(store))
            await recorder.record(build_target(), _result(HealthStatus.SKIPPED))
            return await store.get_history("svc"), await store.query_buckets("svc")

        history, buckets = asyncio.run(_go())
        assert len(history) == 1
        assert buckets == []

    def test_ensure_row_keeps_restored_counters(self) -> None:
        async def _go():
            store = MemoryHealthStore()
            await store.put_status(TargetStatus(target_id="svc", consecutive_failures=2))
            recorder = ResultRecorder(store, MetricsAggregator(store))
            await recorder.ensure_row(build_target(critical=True))
            return await store.get_status("svc")

        row = asyncio.run(_go())
        assert row.consecutive_failures == 2
        assert row.critical is True

    def test_persistence_failure_is_reported_not_raised(self) -> None:
        failures: List[str] = []

        async def _go():
            store = _BrokenHistoryStore()
            recorder = ResultRecorder(
                store,
                MetricsAggregator(store),
                on_persistence_error=lambda tid, exc: failures.append(tid),
            )
            await recorder.record(build_target(), _result(HealthStatus.HEALTHY))
            return recorder, await store.get_status("svc")

        recorder, row = asyncio.run(_go())
        assert recorder.persistence_failures == 1
        assert failures == ["svc"]
        assert row.status == HealthStatus.HEALTHY

    def test_file_store_is_written_once_per_result(self, tmp_path) -> None:
        snapshots: List[dict] = []

        class _CountingStore(FileHealthStore):
            def _write_snapshot(self, payload):
                snapshots.append(payload)
                super()._write_snapshot(payload)

        async def _go():
            store = _CountingStore(str(tmp_path / "state.json"))
            recorder = ResultRecorder(store, MetricsAggregator(store))
            target = build_target()
            await recorder.ensure_row(target)
            await recorder.record(target, _result(HealthStatus.HEALTHY, response_time_ms=40.0))
            await recorder.record(target, _result(HealthStatus.UNHEALTHY, error="HTTP 503"))

        asyncio.run(_go())
        assert len(snapshots) == 3
        last = snapshots[-1]
        assert len(last["history"]["svc"]) == 2
        assert {b["metric"] for b in last["buckets"]} == {"response_time", "availability"}
        assert last["statuses"][0]["consecutive_failures"] == 1
