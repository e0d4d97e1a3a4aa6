"""Tests for the per-target circuit breaker."""

from __future__ import annotations

from typing import List, Optional, Tuple

from toolwatch.monitor.circuit_breaker import CircuitBreaker, CircuitState
from toolwatch.monitor.models import HealthStatus

from helpers import FakeClock

_ALLOWED_EDGES = {
    (CircuitState.CLOSED, CircuitState.OPEN),
    (CircuitState.OPEN, CircuitState.HALF_OPEN),
    (CircuitState.HALF_OPEN, CircuitState.CLOSED),
    (CircuitState.HALF_OPEN, CircuitState.OPEN),
}


def _breaker(
    clock: FakeClock, transitions: Optional[List[Tuple[CircuitState, CircuitState]]] = None
) -> CircuitBreaker:
    def _record(name: str, old: CircuitState, new: CircuitState) -> None:
        if transitions is not None:
            transitions.append((old, new))

    return CircuitBreaker(
        "svc",
        failure_threshold=3,
        success_threshold=2,
        cooldown_seconds=60.0,
        clock=clock,
        on_transition=_record,
    )


class TestClosedState:
    def test_starts_closed(self) -> None:
        cb = _breaker(FakeClock())
        assert cb.state == CircuitState.CLOSED
        assert cb.allows_request

    def test_opens_at_failure_threshold(self) -> None:
        cb = _breaker(FakeClock())
        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED
        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        assert not cb.allows_request

    def test_success_resets_failure_streak(self) -> None:
        cb = _breaker(FakeClock())
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        assert cb.consecutive_failures == 0
        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitState.CLOSED

    def test_successes_never_half_open_a_closed_circuit(self) -> None:
        cb = _breaker(FakeClock())
        for _ in range(10):
            cb.record_success()
        assert cb.state == CircuitState.CLOSED


class TestOpenState:
    def test_half_opens_after_cooldown(self) -> None:
        clock = FakeClock()
        cb = _breaker(clock)
        for _ in range(3):
            cb.record_failure()
        clock.advance(59.9)
        assert cb.state == CircuitState.OPEN
        clock.advance(0.1)
        assert cb.state == CircuitState.HALF_OPEN
        assert cb.consecutive_successes == 0

    def test_records_ignored_while_open(self) -> None:
        cb = _breaker(FakeClock())
        for _ in range(3):
            cb.record_failure()
        cb.record_failure()
        cb.record_success()
        assert cb.state == CircuitState.OPEN
        assert cb.consecutive_successes == 0


class TestHalfOpenState:
    def _half_open(self, clock: FakeClock) -> CircuitBreaker:
        cb = _breaker(clock)
        for _ in range(3):
            cb.record_failure()
        clock.advance(60)
        assert cb.state == CircuitState.HALF_OPEN
        return cb

    def test_closes_after_success_threshold(self) -> None:
        cb = self._half_open(FakeClock())
        cb.record_success()
        assert cb.state == CircuitState.HALF_OPEN
        cb.record_success()
        assert cb.state == CircuitState.CLOSED

    def test_any_failure_reopens(self) -> None:
        clock = FakeClock()
        cb = self._half_open(clock)
        cb.record_success()
        cb.record_failure()
        assert cb.state == CircuitState.OPEN
        # Cooldown restarts from the new failure.
        clock.advance(30)
        assert cb.state == CircuitState.OPEN


class TestRecordVerdicts:
    def test_degraded_counts_as_success(self) -> None:
        cb = _breaker(FakeClock())
        cb.record(HealthStatus.UNHEALTHY)
        cb.record(HealthStatus.DEGRADED)
        assert cb.consecutive_failures == 0
        assert cb.consecutive_successes == 1

    def test_skipped_changes_nothing(self) -> None:
        cb = _breaker(FakeClock())
        cb.record(HealthStatus.UNHEALTHY)
        cb.record(HealthStatus.SKIPPED)
        assert cb.consecutive_failures == 1
        assert cb.consecutive_successes == 0

    def test_only_legal_edges_are_taken(self) -> None:
        clock = FakeClock()
        transitions: List[Tuple[CircuitState, CircuitState]] = []
        cb = _breaker(clock, transitions)
        sequence = [
            HealthStatus.HEALTHY,
            HealthStatus.UNHEALTHY,
            HealthStatus.UNHEALTHY,
            HealthStatus.UNHEALTHY,
            HealthStatus.HEALTHY,
            HealthStatus.UNHEALTHY,
            HealthStatus.DEGRADED,
            HealthStatus.HEALTHY,
            HealthStatus.HEALTHY,
            HealthStatus.UNHEALTHY,
            HealthStatus.UNHEALTHY,
            HealthStatus.UNHEALTHY,
        ]
        for status in sequence:
            if cb.allows_request:
                cb.record(status)
            clock.advance(61)
        assert transitions
        assert set(transitions) <= _ALLOWED_EDGES

    def test_transition_callback_errors_are_contained(self) -> None:
        def _boom(name: str, old: CircuitState, new: CircuitState) -> None:
            raise RuntimeError("callback failed")

        cb = CircuitBreaker("svc", failure_threshold=1, on_transition=_boom, clock=FakeClock())
        cb.record_failure()
        assert cb.state == CircuitState.OPEN


class TestSnapshot:
    def test_snapshot_fields(self) -> None:
        cb = _breaker(FakeClock())
        cb.record_failure()
        snap = cb.snapshot()
        assert snap.state == "closed"
        assert snap.consecutive_failures == 1
        assert snap.failure_threshold == 3
        assert snap.success_threshold == 2
        assert snap.cooldown_seconds == 60.0
        assert snap.last_failure_at is not None

    def test_reset(self) -> None:
        cb = _breaker(FakeClock())
        for _ in range(3):
            cb.record_failure()
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb.to_dict()["consecutive_failures"] == 0
