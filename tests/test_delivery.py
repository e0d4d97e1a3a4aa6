"""Tests for webhook delivery statistics sources."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from toolwatch.errors import ProbeConnectionError, ProbeProtocolError, ProbeTimeout
from toolwatch.monitor.delivery import (
    DeliveryStats,
    HttpDeliveryStatsSource,
    StaticDeliveryStatsSource,
    delivery_success_rate,
)


def _fetch(handler, tool: str = "github", hours: int = 24) -> DeliveryStats:
    async def _go() -> DeliveryStats:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = HttpDeliveryStatsSource(client, "http://ingress.test/")
            return await source.fetch(tool, hours)

    return asyncio.run(_go())


class TestSuccessRate:
    def test_zero_total_is_full_success(self) -> None:
        assert delivery_success_rate(0, 0) == 100.0

    def test_rounded_to_two_decimals(self) -> None:
        assert delivery_success_rate(2, 3) == 66.67

    def test_exact_ratio(self) -> None:
        assert DeliveryStats(total=10, successful=9).success_rate == 90.0


class TestStaticSource:
    def test_unknown_tool_reports_no_deliveries(self) -> None:
        stats = asyncio.run(StaticDeliveryStatsSource().fetch("jira", 24))
        assert stats == DeliveryStats()

    def test_set_overrides_counts(self) -> None:
        source = StaticDeliveryStatsSource()
        source.set("jira", DeliveryStats(total=5, successful=5))
        assert asyncio.run(source.fetch("jira", 1)).success_rate == 100.0


class TestHttpSource:
    def test_query_and_parse(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"total": 20, "successful": 19, "last_received": "2024-05-01T10:00:00Z"}
            )

        stats = _fetch(handler, tool="gitlab", hours=6)
        assert stats == DeliveryStats(
            total=20, successful=19, last_received="2024-05-01T10:00:00Z"
        )
        assert seen[0].url.path == "/api/webhooks/stats"
        assert seen[0].url.params["tool"] == "gitlab"
        assert seen[0].url.params["hours"] == "6"

    def test_http_error_status(self) -> None:
        with pytest.raises(ProbeProtocolError, match="HTTP 500"):
            _fetch(lambda req: httpx.Response(500))

    def test_malformed_body(self) -> None:
        with pytest.raises(ProbeProtocolError, match="malformed"):
            _fetch(lambda req: httpx.Response(200, json={"total": "many"}))

    def test_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("no route", request=request)

        with pytest.raises(ProbeConnectionError):
            _fetch(handler)

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ProbeTimeout):
            _fetch(handler)
