"""Rate-limit budget checker for tool integrations (GitHub, GitLab, ...)."""

from __future__ import annotations

import httpx

from toolwatch.errors import ProbeProtocolError
from toolwatch.monitor.checkers._paths import lookup
from toolwatch.monitor.checkers.base import worst
from toolwatch.monitor.checkers.http import HttpChecker, json_body
from toolwatch.monitor.models import HealthStatus, ProbeOutcome, Target

DEFAULT_REMAINING_PATH = "rate.remaining"
DEFAULT_LIMIT_PATH = "rate.limit"
DEFAULT_MIN_REMAINING = 100

REMAINING_HEADER = "X-RateLimit-Remaining"
LIMIT_HEADER = "X-RateLimit-Limit"


def _as_number(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class RateLimitChecker(HttpChecker):
    """Healthy while the remaining API budget is above ``min_remaining``.

    Options: ``remaining_path``, ``limit_path`` (dotted JSON paths) and
    ``min_remaining``.  Falls back to the ``X-RateLimit-*`` headers.
    """

    name = "rate-limit"

    async def inspect(
        self, target: Target, response: httpx.Response, outcome: ProbeOutcome
    ) -> ProbeOutcome:
        opts = target.probe.options
        body = json_body(response)

        remaining = _as_number(lookup(body, opts.get("remaining_path", DEFAULT_REMAINING_PATH)))
        if remaining is None:
            remaining = _as_number(response.headers.get(REMAINING_HEADER))
        if remaining is None:
            raise ProbeProtocolError("rate limit budget not found in body or headers", target.id)

        limit = _as_number(lookup(body, opts.get("limit_path", DEFAULT_LIMIT_PATH)))
        if limit is None:
            limit = _as_number(response.headers.get(LIMIT_HEADER))

        min_remaining = float(opts.get("min_remaining", DEFAULT_MIN_REMAINING))
        outcome.metrics["rate_limit_remaining"] = remaining
        if limit is not None:
            outcome.metrics["rate_limit_limit"] = limit
        outcome.detail["min_remaining"] = min_remaining

        if remaining <= min_remaining:
            outcome.status = worst(outcome.status, HealthStatus.DEGRADED)
            outcome.detail["rate_limited"] = True
        return outcome
