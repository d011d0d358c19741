from __future__ import annotations

import json

import pytest
import requests

from explorer_mcp.adapters.explorer.client import ExplorerAdapter
from explorer_mcp.adapters.http_client import HttpClientConfig
from explorer_mcp.config import Config, ExplorerConfig, PollConfig
from explorer_mcp.service_layer.query_service import QueryService


class StubResponse:
    def __init__(self, data=None, *, status: int = 200, text: str | None = None):
        self.status_code = status
        if text is None:
            text = json.dumps(data) if data is not None else ""
        self.text = text


class StubHttpClient:
    """Replays canned responses; an Exception in the list is raised instead."""

    def __init__(self, responses, *, clock=None, latency: float = 0.0):
        self.config = HttpClientConfig()
        self.responses = list(responses)
        self.calls = []
        self.clock = clock
        self.latency = latency

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.clock is not None and self.latency:
            timeout = kwargs.get("timeout")
            if timeout is not None and timeout < self.latency:
                self.clock.sleep(timeout)
                raise requests.Timeout(f"read timed out after {timeout}s")
            self.clock.sleep(self.latency)
        if not self.responses:
            raise AssertionError(f"No stubbed responses remaining for {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def urls(self) -> list[str]:
        return [url for _, url, _ in self.calls]


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is called."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stub_client():
    return StubHttpClient


@pytest.fixture
def stub_response():
    return StubResponse


@pytest.fixture
def make_config():
    def _make(api_key: str | None = "test-key", deadline: float = 50.0, interval: float = 2.0) -> Config:
        return Config(
            explorer=ExplorerConfig(api_key=api_key),
            poll=PollConfig(deadline_seconds=deadline, interval_seconds=interval),
        )

    return _make


@pytest.fixture
def make_service(make_config, fake_clock):
    """Build a QueryService wired to a StubHttpClient and the fake clock."""

    def _make(responses, *, api_key: str | None = "test-key", deadline: float = 50.0, interval: float = 2.0, agent=None, latency: float = 0.0):
        config = make_config(api_key=api_key, deadline=deadline, interval=interval)
        client = StubHttpClient(responses, clock=fake_clock, latency=latency)
        adapter = ExplorerAdapter(config, http_client=client, clock=fake_clock, sleep=fake_clock.sleep)
        service = QueryService(adapter, poll=config.poll, agent=agent, clock=fake_clock)
        return service, client

    return _make
