"""Tests for the command line and the management API client."""

from __future__ import annotations

import asyncio
import json
import textwrap

import httpx
import pytest

from toolwatch import cli
from toolwatch.api_client import ApiClient, ApiClientError

VALID_YAML = textwrap.dedent(
    """\
    targets:
      identity-provider:
        base_url: http://idp.internal
        critical: true
        impact_class: identity
      github:
        kind: tool-integration
        base_url: https://api.github.com
        checker: rate-limit
    dependencies:
      - source: identity-provider
        dependent: github
    """
)

OVERVIEW = {
    "dashboard": {"overall_health_score": 50, "total_targets": 2},
    "targets": [
        {"target_id": "identity-provider", "status": "healthy"},
        {"target_id": "github", "status": "degraded"},
    ],
    "incidents": [],
}


class TestValidateCommand:
    def test_valid_config(self, tmp_path, capsys, monkeypatch) -> None:
        monkeypatch.setenv("COLUMNS", "200")
        path = tmp_path / "toolwatch.yaml"
        path.write_text(VALID_YAML, encoding="utf-8")
        cli.main(["validate", str(path)])
        out = capsys.readouterr().out
        assert "identity-provider" in out
        assert "rate-limit" in out
        assert "2 target(s), 1 dependency edge(s) (1 critical)" in out

    def test_invalid_config(self, tmp_path, capsys) -> None:
        path = tmp_path / "toolwatch.yaml"
        path.write_text("targets:\n  api:\n    base_url: gopher://api\n", encoding="utf-8")
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["validate", str(path)])
        assert excinfo.value.code == 2
        assert "Invalid configuration" in capsys.readouterr().out


class TestStatusCommand:
    def test_renders_overview(self, monkeypatch, capsys) -> None:
        monkeypatch.setenv("COLUMNS", "200")
        seen = {}

        async def _fake_fetch(url: str) -> dict:
            seen["url"] = url
            return OVERVIEW

        monkeypatch.setattr(cli, "_fetch_status", _fake_fetch)
        cli.main(["status", "--url", "http://tw.test:9100"])
        out = capsys.readouterr().out
        assert seen["url"] == "http://tw.test:9100"
        assert "Overall health: 50%" in out
        assert "degraded" in out

    def test_unreachable_server(self, monkeypatch) -> None:
        async def _refused(url: str) -> dict:
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(cli, "_fetch_status", _refused)
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["status"])
        assert excinfo.value.code == 1


class TestArgParsing:
    def test_no_command_prints_help(self, capsys) -> None:
        with pytest.raises(SystemExit) as excinfo:
            cli.main([])
        assert excinfo.value.code == 1
        assert "usage: toolwatch" in capsys.readouterr().out

    def test_config_path_resolution(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("TOOLWATCH_CONFIG", raising=False)
        (tmp_path / "config.yml").write_text("{}", encoding="utf-8")
        assert cli._resolve_config_path(None) == str(tmp_path / "config.yml")

        monkeypatch.setenv("TOOLWATCH_CONFIG", str(tmp_path / "from-env.yaml"))
        assert cli._resolve_config_path(None) == str(tmp_path / "from-env.yaml")
        assert cli._resolve_config_path(str(tmp_path / "flag.yaml")) == str(
            tmp_path / "flag.yaml"
        )


def _api_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/manage/v1/dashboard":
        return httpx.Response(200, json={"overall_health_score": 100, "total_targets": 1})
    if path == "/manage/v1/targets":
        return httpx.Response(200, json={"targets": [{"target_id": "github", "status": "healthy"}]})
    if path == "/manage/v1/incidents":
        assert "include_resolved" not in request.url.params
        return httpx.Response(200, json={"incidents": []})
    if path == "/manage/v1/reload":
        body = {"reloaded": False, "errors": ["No config path available."]}
        return httpx.Response(422, content=json.dumps(body))
    return httpx.Response(404, json={"error": "not_found", "message": "Target 'x' not found."})


def _api(base_url: str = "http://tw.test") -> ApiClient:
    return ApiClient(base_url, transport=httpx.MockTransport(_api_handler))


class TestApiClient:
    def test_fetch_overview(self) -> None:
        async def _go():
            async with _api("http://tw.test/") as api:
                return await api.fetch_overview()

        overview = asyncio.run(_go())
        assert overview["dashboard"]["overall_health_score"] == 100
        assert overview["targets"][0]["target_id"] == "github"
        assert overview["incidents"] == []

    def test_error_status_raises(self) -> None:
        async def _go():
            async with _api() as api:
                await api.get_history("x")

        with pytest.raises(ApiClientError) as excinfo:
            asyncio.run(_go())
        assert excinfo.value.status_code == 404
        assert excinfo.value.detail == "Target 'x' not found."

    def test_failed_reload_is_returned(self) -> None:
        async def _go():
            async with _api() as api:
                return await api.post_reload()

        result = asyncio.run(_go())
        assert result.reloaded is False
        assert result.errors == ["No config path available."]

    def test_requires_connect(self) -> None:
        with pytest.raises(RuntimeError):
            asyncio.run(ApiClient("http://tw.test").get_health())
