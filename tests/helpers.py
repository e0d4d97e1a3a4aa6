"""Test helpers shared across modules: target factory and fake clocks."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

from toolwatch.monitor.models import ImpactClass, ProbeSpec, Target, TargetKind


def build_target(
    target_id: str = "svc",
    *,
    kind: TargetKind = TargetKind.SERVICE,
    base_url: str = "http://svc.test",
    endpoint: str = "{base_url}/health",
    readiness_endpoint: Optional[str] = None,
    critical: bool = False,
    impact_class: ImpactClass = ImpactClass.STANDARD,
    checker: Optional[str] = None,
    interval: float = 3600.0,
    timeout: float = 2.0,
    expected_status: Iterable[int] = (200,),
    degraded_latency_ms: Optional[float] = None,
    options: Optional[Dict[str, Any]] = None,
    failure_threshold: int = 3,
    success_threshold: int = 2,
    cooldown: float = 60.0,
) -> Target:
    return Target(
        id=target_id,
        kind=kind,
        probe=ProbeSpec(
            endpoint=endpoint,
            base_url=base_url,
            readiness_endpoint=readiness_endpoint,
            timeout=timeout,
            interval=interval,
            expected_status=frozenset(expected_status),
            degraded_latency_ms=degraded_latency_ms,
            options=dict(options or {}),
        ),
        display_name=target_id,
        critical=critical,
        impact_class=impact_class,
        checker=checker,
        failure_threshold=failure_threshold,
        success_threshold=success_threshold,
        cooldown=cooldown,
    )


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWallClock:
    """UTC wall clock advanced by hand."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


async def wait_for(predicate, timeout: float = 2.0, step: float = 0.005) -> None:
    """Poll an async *predicate* until it returns truthy."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not await predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(step)
