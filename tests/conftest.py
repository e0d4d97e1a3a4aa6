"""Shared fixtures."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from helpers import FakeClock, FakeWallClock, build_target
from toolwatch.monitor.models import Target


@pytest.fixture()
def make_target() -> Callable[..., Target]:
    return build_target


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture()
def mock_client() -> Callable[[Callable[[httpx.Request], Any]], httpx.AsyncClient]:
    """Build an ``httpx.AsyncClient`` whose requests go to *handler*."""

    def _factory(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _factory
