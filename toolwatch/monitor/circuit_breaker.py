"""Circuit breaker state machine for monitored targets.

States::

    CLOSED ──(N failures)──► OPEN ──(cooldown)──► HALF_OPEN
       ▲                      ▲                       │
       │                      └──────(any failure)────┤
       └─────────────(M consecutive successes)────────┘

There is no direct CLOSED ↔ HALF_OPEN edge.  While OPEN, ticks still fire
but produce ``skipped`` results that leave the counters untouched.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from toolwatch.constants import (
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_SUCCESS_THRESHOLD,
)
from toolwatch.monitor.models import BreakerSnapshot, HealthStatus

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """States for the circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


TransitionCallback = Callable[[str, CircuitState, CircuitState], None]


class CircuitBreaker:
    """Per-target circuit breaker.

    Parameters
    ----------
    name:
        Target id (for logging and transition callbacks).
    failure_threshold:
        Consecutive failures before opening the circuit.
    success_threshold:
        Consecutive HALF_OPEN successes before closing it again.
    cooldown_seconds:
        Seconds to wait in OPEN before transitioning to HALF_OPEN.
    clock:
        Monotonic time source, injectable for tests.
    on_transition:
        Called as ``on_transition(name, old_state, new_state)`` on every
        state change.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        success_threshold: int = DEFAULT_SUCCESS_THRESHOLD,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_transition: Optional[TransitionCallback] = None,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._on_transition = on_transition

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._last_failure_time: float = 0.0
        self._last_failure_at: Optional[datetime] = None

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        """Current circuit state, with lazy OPEN → HALF_OPEN transition."""
        if self._state == CircuitState.OPEN:
            elapsed = self._clock() - self._last_failure_time
            if elapsed >= self.cooldown_seconds:
                self._consecutive_successes = 0
                self._transition(CircuitState.HALF_OPEN)
                logger.info(
                    "[%s] Circuit breaker: OPEN → HALF_OPEN (cooldown %.1fs elapsed)",
                    self.name,
                    elapsed,
                )
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def consecutive_successes(self) -> int:
        return self._consecutive_successes

    @property
    def allows_request(self) -> bool:
        """CLOSED and HALF_OPEN allow probes; OPEN does not."""
        return self.state != CircuitState.OPEN

    # ── Transition methods ───────────────────────────────────────────────

    def record(self, status: HealthStatus) -> None:
        """Feed a probe verdict into the breaker.

        ``unhealthy`` is a failure, ``healthy`` and ``degraded`` are
        successes (the target answered), and ``skipped`` is ignored.
        """
        if status == HealthStatus.UNHEALTHY:
            self.record_failure()
        elif status in (HealthStatus.HEALTHY, HealthStatus.DEGRADED):
            self.record_success()

    def record_success(self) -> None:
        current = self.state
        self._consecutive_failures = 0
        if current == CircuitState.OPEN:
            return
        self._consecutive_successes += 1
        if (
            current == CircuitState.HALF_OPEN
            and self._consecutive_successes >= self.success_threshold
        ):
            self._transition(CircuitState.CLOSED)
            logger.info(
                "[%s] Circuit breaker: HALF_OPEN → CLOSED (%d consecutive successes)",
                self.name,
                self._consecutive_successes,
            )

    def record_failure(self) -> None:
        current = self.state
        if current == CircuitState.OPEN:
            return
        self._consecutive_failures += 1
        self._consecutive_successes = 0
        self._last_failure_time = self._clock()
        self._last_failure_at = datetime.now(timezone.utc)

        if current == CircuitState.HALF_OPEN or (
            self._consecutive_failures >= self.failure_threshold
        ):
            self._transition(CircuitState.OPEN)
            logger.warning(
                "[%s] Circuit breaker: %s → OPEN (%d consecutive failures)",
                self.name,
                current.value,
                self._consecutive_failures,
            )

    def reset(self) -> None:
        """Force-reset to CLOSED."""
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        logger.info("[%s] Circuit breaker force-reset to CLOSED", self.name)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        if self._on_transition is not None:
            try:
                self._on_transition(self.name, old_state, new_state)
            except Exception:
                logger.exception("[%s] Circuit transition callback failed", self.name)

    # ── Serialisation ────────────────────────────────────────────────────

    def snapshot(self) -> BreakerSnapshot:
        """Snapshot stored alongside the status row."""
        return BreakerSnapshot(
            state=self._state.value,
            consecutive_failures=self._consecutive_failures,
            consecutive_successes=self._consecutive_successes,
            last_failure_at=self._last_failure_at,
            failure_threshold=self.failure_threshold,
            success_threshold=self.success_threshold,
            cooldown_seconds=self.cooldown_seconds,
        )

    def to_dict(self) -> dict:
        return self.snapshot().model_dump(mode="json")
