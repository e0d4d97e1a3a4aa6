"""Generic bounded-time HTTP health checker.

One request to the target's health endpoint decides the verdict:

- HTTP >= 400 or a status outside ``expected_status`` → unhealthy
- JSON ``{"status": ...}``: ``ok``/``ready``/``healthy`` → healthy,
  ``degraded`` → degraded, anything else → unhealthy
- no ``status`` field, or a non-JSON body → healthy

Critical targets with a readiness endpoint get a second request after a
healthy primary result.  It runs on whatever is left of the probe timeout;
a failed or timed-out readiness check downgrades to degraded only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Tuple

import httpx

from toolwatch.monitor.checkers.base import HealthChecker, worst
from toolwatch.monitor.models import HealthStatus, ProbeOutcome, Target

logger = logging.getLogger(__name__)

HEALTHY_BODY_STATUSES = frozenset({"ok", "ready", "healthy"})
DEGRADED_BODY_STATUSES = frozenset({"degraded"})


def json_body(response: httpx.Response) -> Optional[Any]:
    """Decoded JSON body, or None when the body is not JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def status_from_body(body: Any) -> Optional[HealthStatus]:
    """Map a ``{"status": ...}`` body to a verdict (None if there is none)."""
    if not isinstance(body, dict) or "status" not in body:
        return None
    value = str(body["status"]).strip().lower()
    if value in HEALTHY_BODY_STATUSES:
        return HealthStatus.HEALTHY
    if value in DEGRADED_BODY_STATUSES:
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


class HttpChecker(HealthChecker):
    """Probe a target's health endpoint over HTTP.

    Subclasses refine healthy-or-degraded responses by overriding
    :meth:`inspect`.
    """

    name = "http"

    async def probe(self, target: Target) -> ProbeOutcome:
        response, elapsed_ms = await self.fetch(target, target.health_url)
        outcome = self.classify(target, response, elapsed_ms)
        if outcome.status != HealthStatus.UNHEALTHY:
            outcome = await self.inspect(target, response, outcome)
        return outcome

    def classify(self, target: Target, response: httpx.Response, elapsed_ms: float) -> ProbeOutcome:
        code = response.status_code
        detail = {"http_status": code, "url": str(response.request.url)}
        if code >= 400 or code not in target.probe.expected_status:
            return ProbeOutcome(
                status=HealthStatus.UNHEALTHY,
                response_time_ms=elapsed_ms,
                detail=detail,
                error=f"HTTP {code}",
            )

        body = json_body(response)
        body_status = status_from_body(body)
        if isinstance(body, dict):
            for key in ("status", "version", "uptime"):
                if key in body:
                    detail[f"body_{key}"] = body[key]

        status = body_status or HealthStatus.HEALTHY
        error = None
        if status == HealthStatus.UNHEALTHY:
            error = f"reported status '{body['status']}'"
        return ProbeOutcome(status=status, response_time_ms=elapsed_ms, detail=detail, error=error)

    async def inspect(
        self, target: Target, response: httpx.Response, outcome: ProbeOutcome
    ) -> ProbeOutcome:
        """Hook for healthy/degraded primary responses."""
        return outcome

    async def follow_up(
        self, target: Target, outcome: ProbeOutcome, remaining: float
    ) -> ProbeOutcome:
        if (
            outcome.status == HealthStatus.HEALTHY
            and target.critical
            and target.readiness_url is not None
        ):
            ready, reason = await self._check_readiness(target, remaining)
            outcome.detail["readiness"] = "ready" if ready else "not_ready"
            if not ready:
                outcome.status = HealthStatus.DEGRADED
                outcome.detail["readiness_error"] = reason
                logger.info("[%s] Readiness check failed: %s", target.id, reason)
        return self.apply_latency(target, outcome)

    async def _check_readiness(
        self, target: Target, remaining: float
    ) -> Tuple[bool, Optional[str]]:
        if remaining <= 0:
            return False, "no time left for readiness check"
        try:
            response, _ = await asyncio.wait_for(
                self.fetch(target, target.readiness_url), timeout=remaining
            )
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            return False, f"timed out after {remaining:.1f}s"
        except Exception as exc:
            return False, f"{type(exc).__name__}: {exc}"
        if response.status_code >= 400:
            return False, f"HTTP {response.status_code}"
        body_status = status_from_body(json_body(response))
        if body_status is not None and body_status != HealthStatus.HEALTHY:
            return False, f"reported {body_status.value}"
        return True, None

    @staticmethod
    def apply_latency(target: Target, outcome: ProbeOutcome) -> ProbeOutcome:
        threshold = target.probe.degraded_latency_ms
        if (
            threshold is not None
            and outcome.status == HealthStatus.HEALTHY
            and outcome.response_time_ms > threshold
        ):
            outcome.status = worst(outcome.status, HealthStatus.DEGRADED)
            outcome.detail["slow"] = True
        return outcome
