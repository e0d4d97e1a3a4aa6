"""Checker contract and the error-to-verdict boundary.

Every checker implements :meth:`HealthChecker.probe`, which may raise.
:meth:`HealthChecker.check` wraps it in the target's timeout and turns
anything it raises into an ``unhealthy`` :class:`ProbeOutcome`, so the
scheduler never sees an exception from a probe.  Secondary checks that
may only downgrade a verdict run afterwards in
:meth:`HealthChecker.follow_up`, outside that deadline.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import httpx

from toolwatch.errors import ProbeConnectionError, ProbeError, ProbeTimeout
from toolwatch.monitor.models import HealthStatus, ProbeOutcome, Target

logger = logging.getLogger(__name__)

_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


def worst(a: HealthStatus, b: HealthStatus) -> HealthStatus:
    """The less healthy of two verdicts."""
    return a if _SEVERITY.get(a, 0) >= _SEVERITY.get(b, 0) else b


class HealthChecker(ABC):
    """Base class for probe executors.

    Parameters
    ----------
    client:
        Shared ``httpx.AsyncClient``.  Owned by the monitor service; a
        test can pass one built on ``httpx.MockTransport``.
    """

    #: Registry key this checker is usually installed under.
    name: str = "base"

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"Checker '{self.name}' has no HTTP client")
        return self._client

    async def check(self, target: Target) -> ProbeOutcome:
        """Probe *target* within its timeout.  Never raises."""
        timeout = target.probe.timeout
        started = time.perf_counter()
        completed = False
        try:
            outcome = await asyncio.wait_for(self.probe(target), timeout=timeout)
            completed = True
        except asyncio.CancelledError:
            raise
        except (asyncio.TimeoutError, httpx.TimeoutException):
            err: ProbeError = ProbeTimeout(f"probe timed out after {timeout:.1f}s", target.id)
            outcome = self._failure(err)
        except httpx.TransportError as exc:
            outcome = self._failure(ProbeConnectionError(str(exc) or type(exc).__name__, target.id))
        except ProbeError as exc:
            outcome = self._failure(exc)
        except Exception as exc:
            logger.warning(
                "[%s] Unexpected error in %s checker: %s", target.id, self.name, exc, exc_info=True
            )
            outcome = ProbeOutcome(
                status=HealthStatus.UNHEALTHY,
                detail={"error_kind": "unexpected", "exception": type(exc).__name__},
                error=str(exc) or type(exc).__name__,
            )

        if completed:
            remaining = max(timeout - (time.perf_counter() - started), 0.0)
            outcome = await self.follow_up(target, outcome, remaining)

        if not outcome.response_time_ms:
            outcome.response_time_ms = (time.perf_counter() - started) * 1000.0
        outcome.detail.setdefault("checker", self.name)
        return outcome

    @staticmethod
    def _failure(exc: ProbeError) -> ProbeOutcome:
        return ProbeOutcome(
            status=HealthStatus.UNHEALTHY,
            detail={"error_kind": exc.kind},
            error=str(exc),
        )

    @abstractmethod
    async def probe(self, target: Target) -> ProbeOutcome:
        """Run the actual check.  May raise; :meth:`check` converts errors."""

    async def follow_up(
        self, target: Target, outcome: ProbeOutcome, remaining: float
    ) -> ProbeOutcome:
        """Refine a completed probe's verdict.  Must not raise.

        *remaining* is what is left of the target's timeout; an
        implementation bounds its own requests with it.
        """
        return outcome

    # ── HTTP helper ──────────────────────────────────────────────────

    async def fetch(self, target: Target, url: str) -> Tuple[httpx.Response, float]:
        """Issue the target's probe request against *url*.

        Returns the response and its latency in milliseconds.
        """
        started = time.perf_counter()
        response = await self.client.request(
            target.probe.method,
            url,
            headers=target.probe.headers or None,
            timeout=target.probe.timeout,
        )
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        logger.debug(
            "[%s] %s %s → %d (%.1fms)",
            target.id,
            target.probe.method,
            url,
            response.status_code,
            elapsed_ms,
        )
        return response, elapsed_ms
