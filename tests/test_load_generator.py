"""
Tests for the load generator, with a fake requests session.
"""
import random
import threading

import pytest
import requests

from load_generator import (
    TRACE_SOURCE,
    LoadGenerator,
    LoadGeneratorConfig,
    LoadStatistics,
)
from mock_api import ENDPOINTS


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload

    def json(self):
        if self.payload is None:
            raise ValueError("no JSON body")
        return self.payload


class FakeSession:
    def __init__(self, responder=None, on_call=None):
        self.responder = responder or (lambda url: FakeResponse(200, {"service": "nodejs-server"}))
        self.on_call = on_call
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def get(self, url, headers=None, timeout=None):
        with self._lock:
            self.calls.append((url, headers, timeout))
            if self.on_call:
                self.on_call(len(self.calls))
        return self.responder(url)

    def close(self):
        self.closed = True


def make_generator(session, **overrides):
    config = LoadGeneratorConfig(server_url="http://demo:3000", startup_delay=0, **overrides)
    return LoadGenerator(config, session=session, rng=random.Random(5))


def test_config_defaults():
    config = LoadGeneratorConfig.from_env({})
    assert config.server_url == "http://localhost:3000"
    assert config.request_interval_ms == 2000
    assert config.concurrent_requests == 3


def test_config_from_env():
    config = LoadGeneratorConfig.from_env({
        "SERVER_URL": "http://nodejs-server:3000/",
        "REQUEST_INTERVAL": "500",
        "CONCURRENT_REQUESTS": "5",
        "STARTUP_DELAY": "0",
    })
    assert config.server_url == "http://nodejs-server:3000"
    assert config.request_interval_ms == 500
    assert config.concurrent_requests == 5
    assert config.startup_delay == 0


def test_config_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        LoadGeneratorConfig(concurrent_requests=0)


def test_successful_request():
    session = FakeSession()
    generator = make_generator(session)

    result = generator.make_request("/api/users")
    assert result.ok
    assert result.status_code == 200
    assert result.service == "nodejs-server"
    assert generator.stats.snapshot() == (1, 1, 0)

    url, headers, timeout = session.calls[0]
    assert url == "http://demo:3000/api/users"
    assert headers["X-Trace-Source"] == TRACE_SOURCE
    assert timeout == 10.0


def test_server_error_counts_as_error():
    session = FakeSession(lambda url: FakeResponse(500, {"error": "Internal server error"}))
    generator = make_generator(session)

    result = generator.make_request("/api/orders")
    assert not result.ok
    assert result.status_code == 500
    assert generator.stats.snapshot() == (1, 0, 1)


def test_connection_error_counts_as_error():
    def refuse(url):
        raise requests.ConnectionError("connection refused")

    generator = make_generator(FakeSession(refuse))
    result = generator.make_request("/")
    assert not result.ok
    assert result.status_code is None
    assert "connection refused" in result.error
    assert generator.stats.snapshot() == (1, 0, 1)


def test_non_json_success_body():
    generator = make_generator(FakeSession(lambda url: FakeResponse(200)))
    result = generator.make_request("/")
    assert result.ok
    assert result.service is None


@pytest.mark.parametrize("payload", [[1, 2], 42, "nodejs-server"])
def test_success_body_that_is_not_an_object(payload):
    generator = make_generator(FakeSession(lambda url: FakeResponse(200, payload)))
    result = generator.make_request("/api/users")
    assert result.ok
    assert result.service is None
    assert generator.stats.snapshot() == (1, 1, 0)


def test_batch_with_list_body_completes_and_closes():
    session = FakeSession(lambda url: FakeResponse(200, [1, 2]))
    generator = make_generator(session, concurrent_requests=3)

    results = generator.generate_load()
    assert [r.ok for r in results] == [True, True, True]
    generator.close()
    assert session.closed


@pytest.mark.parametrize("elapsed,expected", [
    (0.0, 0.2),
    (0.15, 0.05),
    (0.2, 0.0),
    (3.0, 0.0),
])
def test_remaining_interval_keeps_a_fixed_rate(elapsed, expected):
    generator = make_generator(FakeSession(), request_interval_ms=200)
    assert generator.remaining_interval(elapsed) == pytest.approx(expected)


def test_generate_load_fires_a_batch():
    session = FakeSession()
    generator = make_generator(session, concurrent_requests=4)

    results = generator.generate_load()
    assert len(results) == 4
    assert all(r.endpoint in ENDPOINTS for r in results)
    assert generator.stats.total == 4
    generator.close()


def test_statistics_success_rate():
    stats = LoadStatistics()
    assert stats.success_rate == 0.0
    for ok in (True, True, True, False):
        stats.record(ok)
    assert stats.success_rate == 75.0
    assert stats.snapshot() == (4, 3, 1)


def test_run_returns_immediately_when_stopped():
    session = FakeSession()
    generator = make_generator(session)
    stop = threading.Event()
    stop.set()

    generator.run(stop)
    assert session.calls == []
    assert session.closed


def test_run_until_stopped():
    stop = threading.Event()

    def stop_after_six(count):
        if count >= 6:
            stop.set()

    session = FakeSession(on_call=stop_after_six)
    generator = make_generator(session, request_interval_ms=1, stats_interval=0.001)

    generator.run(stop)
    assert generator.stats.total >= 6
    assert generator.stats.errors == 0
    assert session.closed
