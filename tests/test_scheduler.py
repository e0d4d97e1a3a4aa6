"""Tests for the per-target scheduler."""

from __future__ import annotations

import asyncio
from typing import List

import pytest

from toolwatch.errors import ConfigurationError
from toolwatch.monitor.models import HealthResult, HealthStatus
from toolwatch.monitor.scheduler import HealthScheduler

from helpers import build_target, wait_for


class _GatedProbe:
    """Probe that blocks until :attr:`gate` is set."""

    def __init__(self, gated: bool = True) -> None:
        self.gate = asyncio.Event()
        if not gated:
            self.gate.set()
        self.calls: List[str] = []
        self.cancelled = 0

    async def __call__(self, target):
        self.calls.append(target.id)
        try:
            await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return HealthResult(target_id=target.id, status=HealthStatus.HEALTHY)


class _Collector:
    def __init__(self) -> None:
        self.results: List[HealthResult] = []

    async def __call__(self, target, result) -> None:
        self.results.append(result)


class TestRegistration:
    def test_duplicate_registration_raises(self) -> None:
        scheduler = HealthScheduler(_GatedProbe(), _Collector())
        scheduler.register(build_target())
        with pytest.raises(ConfigurationError):
            scheduler.register(build_target())

    def test_unregister_unknown_returns_false(self) -> None:
        scheduler = HealthScheduler(_GatedProbe(), _Collector())
        assert scheduler.unregister("missing") is False
        assert scheduler.tick("missing") is None


class TestTicking:
    def test_first_tick_fires_on_start(self) -> None:
        probe = _GatedProbe(gated=False)
        collector = _Collector()

        async def _go():
            scheduler = HealthScheduler(probe, collector)
            scheduler.register(build_target("a"))
            scheduler.register(build_target("b"))
            scheduler.start()

            async def _both_done():
                return len(collector.results) == 2

            await wait_for(_both_done)
            await scheduler.stop()

        asyncio.run(_go())
        assert sorted(probe.calls) == ["a", "b"]

    def test_register_while_running_probes_immediately(self) -> None:
        probe = _GatedProbe(gated=False)
        collector = _Collector()

        async def _go():
            scheduler = HealthScheduler(probe, collector)
            scheduler.start()
            scheduler.register(build_target("late"))

            async def _done():
                return len(collector.results) == 1

            await wait_for(_done)
            await scheduler.stop()

        asyncio.run(_go())
        assert probe.calls == ["late"]

    def test_busy_target_drops_tick(self) -> None:
        probe = _GatedProbe()
        collector = _Collector()

        async def _go():
            scheduler = HealthScheduler(probe, collector)
            scheduler.register(build_target())
            scheduler.start()

            async def _entered():
                return len(probe.calls) == 1

            await wait_for(_entered)
            dropped = scheduler.tick("svc")
            probe.gate.set()

            async def _done():
                return len(collector.results) == 1

            await wait_for(_done)
            follow_up = scheduler.tick("svc")
            await follow_up
            stats = scheduler.stats()["svc"]
            await scheduler.stop()
            return dropped, stats, scheduler.dropped_ticks("svc")

        dropped, stats, dropped_count = asyncio.run(_go())
        assert dropped is None
        assert dropped_count == 1
        assert stats["completed"] == 2
        assert stats["ticks"] == 3
        assert len(collector.results) == 2

    def test_unregister_discards_inflight_result(self) -> None:
        probe = _GatedProbe()
        collector = _Collector()

        async def _go():
            scheduler = HealthScheduler(probe, collector)
            scheduler.register(build_target())
            scheduler.start()

            async def _entered():
                return len(probe.calls) == 1

            await wait_for(_entered)
            scheduler.unregister("svc")
            probe.gate.set()

            async def _discarded():
                return scheduler.discarded_results == 1

            await wait_for(_discarded)
            await scheduler.stop()

        asyncio.run(_go())
        assert collector.results == []

    def test_result_handler_failure_is_contained(self) -> None:
        probe = _GatedProbe(gated=False)
        handled: List[str] = []

        async def _explode(target, result):
            handled.append(target.id)
            raise RuntimeError("store is on fire")

        async def _go():
            scheduler = HealthScheduler(probe, _explode)
            scheduler.register(build_target())
            scheduler.start()

            async def _first():
                return scheduler.stats()["svc"]["completed"] == 1

            await wait_for(_first)
            await scheduler.tick("svc")
            completed = scheduler.stats()["svc"]["completed"]
            await scheduler.stop()
            return completed

        assert asyncio.run(_go()) == 2
        assert handled == ["svc", "svc"]

    def test_stop_cancels_inflight_probe(self) -> None:
        probe = _GatedProbe()

        async def _go():
            scheduler = HealthScheduler(probe, _Collector())
            scheduler.register(build_target())
            scheduler.start()

            async def _entered():
                return len(probe.calls) == 1

            await wait_for(_entered)
            await scheduler.stop()
            return scheduler.running

        assert asyncio.run(_go()) is False
        assert probe.cancelled == 1

    def test_interval_drives_repeat_probes(self) -> None:
        probe = _GatedProbe(gated=False)
        collector = _Collector()

        async def _go():
            scheduler = HealthScheduler(probe, collector)
            scheduler.register(build_target(interval=0.01))
            scheduler.start()

            async def _several():
                return len(collector.results) >= 3

            await wait_for(_several)
            await scheduler.stop()

        asyncio.run(_go())
        assert len(probe.calls) >= 3
