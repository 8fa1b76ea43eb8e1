"""Shared test fixtures for the load tester tests."""

import asyncio
import logging
from collections.abc import Callable

import httpx
import pytest
import structlog

from loadtester.config import LoadTestConfig
from loadtester.engine.models import CollectorMessage, RequestResult
from loadtester.scenarios.models import RequestSpec, Scenario

BASE_URL = "http://stub.test"


def drain(queue: "asyncio.Queue[CollectorMessage]") -> list[CollectorMessage]:
    """Everything currently sitting in a queue, in order."""
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def results_only(messages: list[CollectorMessage]) -> list[RequestResult]:
    return [m for m in messages if isinstance(m, RequestResult)]


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it answered."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self._respond = handler or (lambda request: httpx.Response(200, json={"ok": True}))
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        return self._respond(request)


@pytest.fixture
def login_scenario() -> Scenario:
    return Scenario(
        requests=[
            RequestSpec(
                name="login",
                endpoint="/api/login",
                method="POST",
                body='{"u":"a"}',
                think_time_ms=500,
            ),
            RequestSpec(name="getItems", endpoint="/api/items", method="GET", think_time_ms=0),
        ]
    )


@pytest.fixture
def make_config() -> Callable[..., LoadTestConfig]:
    def _make(**overrides) -> LoadTestConfig:
        values = {
            "base_url": BASE_URL,
            "api_key": "secret-key",
            "concurrent_users": 1,
            "duration_seconds": 10.0,
            "ramp_up_seconds": 0,
        }
        values.update(overrides)
        return LoadTestConfig(**values)

    return _make


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo any ``setup_logging`` a test performed under captured streams."""
    root = logging.getLogger()
    level = root.level
    yield
    structlog.reset_defaults()
    for handler in root.handlers[:]:
        if type(handler) is logging.StreamHandler:
            root.removeHandler(handler)
    root.setLevel(level)
