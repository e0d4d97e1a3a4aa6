"""Tests for the management API served by the Starlette app."""

from __future__ import annotations

import time

import httpx
import pytest
from starlette.testclient import TestClient

from toolwatch.audit import AuditLogger
from toolwatch.config import parse_config
from toolwatch.runtime.service import MonitorService
from toolwatch.server import create_app

PREFIX = "/manage/v1"

CONFIG = {
    "monitor": {"default_interval": 3600},
    "audit": {"enabled": False},
    "targets": {
        "catalog": {"base_url": "http://catalog.test", "critical": True, "impact_class": "catalog"},
        "search": {"base_url": "http://search.test"},
    },
    "dependencies": [{"source": "catalog", "dependent": "search"}],
}


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "catalog.test":
        return httpx.Response(503, json={"status": "down"})
    return httpx.Response(200, json={"status": "ok", "version": "2.4.1"})


def _wait_for_probes(service: MonitorService, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        stats = service.scheduler.stats()
        if stats and all(s["completed"] >= 1 for s in stats.values()):
            return
        time.sleep(0.02)
    raise AssertionError("targets were never probed")


@pytest.fixture()
def client():
    service = MonitorService(
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_handler)),
        audit_logger=AuditLogger(enabled=False),
    )
    app = create_app(service, config=parse_config(CONFIG))
    with TestClient(app) as test_client:
        _wait_for_probes(service)
        yield test_client


class TestServiceEndpoints:
    def test_health(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["state"] == "running"
        assert body["targets"] == {"total": 2, "healthy": 1}

    def test_status(self, client: TestClient) -> None:
        body = client.get(f"{PREFIX}/status").json()
        assert body["service"]["name"] == "Toolwatch"
        assert body["config"]["target_count"] == 2
        assert body["config"]["dependency_count"] == 1
        assert body["config"]["aggregation_period"] == "hour"
        assert body["monitor"]["open_incidents"] == 1

    def test_dashboard(self, client: TestClient) -> None:
        body = client.get(f"{PREFIX}/dashboard").json()
        assert body["overall_health_score"] == 50
        assert body["total_targets"] == 2
        assert body["counts"]["unhealthy"] == 1
        assert body["critical_unhealthy"] == 1


class TestTargetEndpoints:
    def test_list_targets(self, client: TestClient) -> None:
        targets = client.get(f"{PREFIX}/targets").json()["targets"]
        by_id = {t["target_id"]: t for t in targets}
        assert by_id["catalog"]["status"] == "unhealthy"
        assert by_id["catalog"]["error"] == "HTTP 503"
        assert by_id["search"]["status"] == "healthy"
        assert by_id["search"]["breaker"]["state"] == "closed"

    def test_single_target(self, client: TestClient) -> None:
        body = client.get(f"{PREFIX}/targets/search").json()
        assert body["detail"]["body_version"] == "2.4.1"

    def test_unknown_target(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/targets/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"
        assert client.get(f"{PREFIX}/targets/nope/history").status_code == 404
        assert client.get(f"{PREFIX}/targets/nope/metrics").status_code == 404

    def test_history(self, client: TestClient) -> None:
        body = client.get(f"{PREFIX}/targets/search/history", params={"limit": 5}).json()
        assert body["target_id"] == "search"
        assert len(body["results"]) == 1
        assert body["results"][0]["status"] == "healthy"

    def test_history_bad_limit(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/targets/search/history", params={"limit": "lots"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "bad_request"

    def test_metrics(self, client: TestClient) -> None:
        body = client.get(
            f"{PREFIX}/targets/search/metrics", params={"metric": "availability", "hours": 1}
        ).json()
        assert body["metric"] == "availability"
        assert [b["avg"] for b in body["buckets"]] == [100.0]

    @pytest.mark.parametrize(
        "params",
        [
            {"hours": "-2"},
            {"hours": "soon"},
            {"start": "yesterday"},
            {"start": "2024-05-02T00:00:00Z", "end": "2024-05-01T00:00:00Z"},
        ],
    )
    def test_metrics_bad_params(self, client: TestClient, params) -> None:
        resp = client.get(f"{PREFIX}/targets/search/metrics", params=params)
        assert resp.status_code == 400


class TestIncidentAndEventEndpoints:
    def test_incidents(self, client: TestClient) -> None:
        incidents = client.get(f"{PREFIX}/incidents").json()["incidents"]
        assert len(incidents) == 1
        assert incidents[0]["root_cause"] == "catalog"
        assert incidents[0]["affected_targets"] == ["search"]
        assert incidents[0]["user_impact"] == "partial_outage"
        assert incidents[0]["incident_id"].startswith("cascade-catalog-")

    def test_incidents_bad_flag(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/incidents", params={"include_resolved": "maybe"})
        assert resp.status_code == 400

    def test_events(self, client: TestClient) -> None:
        events = client.get(f"{PREFIX}/events", params={"target_id": "catalog"}).json()["events"]
        stages = [e["stage"] for e in events]
        assert "target_registered" in stages
        assert "incident_opened" in stages
        assert all(e["id"].startswith("evt-") for e in events)

    def test_events_bad_severity(self, client: TestClient) -> None:
        resp = client.get(f"{PREFIX}/events", params={"severity": "apocalyptic"})
        assert resp.status_code == 400


class TestReloadEndpoint:
    def test_reload_without_config_file(self, client: TestClient) -> None:
        resp = client.post(f"{PREFIX}/reload")
        assert resp.status_code == 422
        body = resp.json()
        assert body["reloaded"] is False
        assert body["errors"] == ["No config path available."]

    def test_get_not_allowed(self, client: TestClient) -> None:
        assert client.get(f"{PREFIX}/reload").status_code == 405


class TestManagementDisabled:
    def test_api_not_mounted(self) -> None:
        config = parse_config({**CONFIG, "server": {"management": {"enabled": False}}})
        service = MonitorService(
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(_handler)),
            audit_logger=AuditLogger(enabled=False),
        )
        with TestClient(create_app(service, config=config)) as test_client:
            assert test_client.get(f"{PREFIX}/health").status_code == 404
