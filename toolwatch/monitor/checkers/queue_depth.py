"""Build/delivery queue length checker."""

from __future__ import annotations

import httpx

from toolwatch.errors import ProbeProtocolError
from toolwatch.monitor.checkers._paths import lookup
from toolwatch.monitor.checkers.base import worst
from toolwatch.monitor.checkers.http import HttpChecker, json_body
from toolwatch.monitor.models import HealthStatus, ProbeOutcome, Target

DEFAULT_ITEMS_PATH = "items"
DEFAULT_MAX_DEPTH = 50


class QueueDepthChecker(HttpChecker):
    """Healthy while the queue holds at most ``max_depth`` items.

    ``items_path`` points at either a list (its length is the depth) or a
    number.  A bare JSON list body is used as-is.
    """

    name = "queue-depth"

    async def inspect(
        self, target: Target, response: httpx.Response, outcome: ProbeOutcome
    ) -> ProbeOutcome:
        opts = target.probe.options
        body = json_body(response)
        path = opts.get("items_path", DEFAULT_ITEMS_PATH)

        node = body if isinstance(body, list) else lookup(body, path)
        if isinstance(node, list):
            depth = len(node)
        elif isinstance(node, (int, float)) and not isinstance(node, bool):
            depth = node
        else:
            raise ProbeProtocolError(f"queue length not found at '{path}'", target.id)

        max_depth = float(opts.get("max_depth", DEFAULT_MAX_DEPTH))
        outcome.metrics["queue_depth"] = float(depth)
        outcome.detail["max_depth"] = max_depth
        if depth > max_depth:
            outcome.status = worst(outcome.status, HealthStatus.DEGRADED)
            outcome.detail["backlogged"] = True
        return outcome
