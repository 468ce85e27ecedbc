# load_generator.py
"""
Traffic generator for the injector demo.

Fires batches of GET requests at random demo endpoints so the collector always
has fresh traces, including the occasional /api/orders failure. Outbound calls
go through requests, so with tracing started every call is a client span that
carries trace context to the server.

Environment variables:
    SERVER_URL: base URL of the demo server (default: http://localhost:3000)
    REQUEST_INTERVAL: milliseconds between batches (default: 2000)
    CONCURRENT_REQUESTS: requests per batch (default: 3)
    REQUEST_TIMEOUT: per-request timeout in seconds (default: 10)
    STARTUP_DELAY: seconds to wait before the first batch (default: 5)
    STATS_INTERVAL: seconds between statistics reports (default: 10)
"""
import logging
import os
import random
import signal
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass

import requests

from mock_api import ENDPOINTS
from server import configure_logging
from tracing import TracingConfig, TracingPipeline, TracingStartupError

logger = logging.getLogger(__name__)

USER_AGENT = "PythonLoadGenerator/1.0"
TRACE_SOURCE = "python-load-generator"


@dataclass
class LoadGeneratorConfig:
    server_url: str = "http://localhost:3000"
    request_interval_ms: int = 2000
    concurrent_requests: int = 3
    request_timeout: float = 10.0
    startup_delay: float = 5.0
    stats_interval: float = 10.0

    def __post_init__(self):
        if self.concurrent_requests < 1:
            raise ValueError("concurrent_requests must be at least 1")
        if self.request_interval_ms <= 0:
            raise ValueError("request_interval_ms must be positive")

    @classmethod
    def from_env(cls, environ=None) -> "LoadGeneratorConfig":
        environ = os.environ if environ is None else environ
        return cls(
            server_url=environ.get("SERVER_URL", "http://localhost:3000").rstrip("/"),
            request_interval_ms=int(environ.get("REQUEST_INTERVAL", 2000)),
            concurrent_requests=int(environ.get("CONCURRENT_REQUESTS", 3)),
            request_timeout=float(environ.get("REQUEST_TIMEOUT", 10)),
            startup_delay=float(environ.get("STARTUP_DELAY", 5)),
            stats_interval=float(environ.get("STATS_INTERVAL", 10)),
        )


@dataclass
class RequestResult:
    endpoint: str
    status_code: int | None
    duration_ms: float
    ok: bool
    service: str | None = None
    error: str | None = None


class LoadStatistics:
    """Request counters shared by the worker threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self.total = 0
        self.success = 0
        self.errors = 0

    def record(self, ok: bool):
        with self._lock:
            self.total += 1
            if ok:
                self.success += 1
            else:
                self.errors += 1

    def snapshot(self):
        with self._lock:
            return self.total, self.success, self.errors

    @property
    def success_rate(self) -> float:
        total, success, _ = self.snapshot()
        return success * 100.0 / total if total else 0.0


class LoadGenerator:
    def __init__(self, config: LoadGeneratorConfig, session=None, rng=None):
        self.config = config
        self.session = session or requests.Session()
        self.rng = rng or random.Random()
        self.stats = LoadStatistics()
        self._executor = ThreadPoolExecutor(
            max_workers=config.concurrent_requests, thread_name_prefix="load"
        )

    def make_request(self, endpoint: str) -> RequestResult:
        url = self.config.server_url + endpoint
        headers = {"User-Agent": USER_AGENT, "X-Trace-Source": TRACE_SOURCE}
        start = time.monotonic()
        try:
            resp = self.session.get(url, headers=headers, timeout=self.config.request_timeout)
        except requests.RequestException as exc:
            duration = (time.monotonic() - start) * 1000
            self.stats.record(False)
            logger.warning("ERROR %s (%.0fms) - %s", endpoint, duration, exc)
            return RequestResult(endpoint, None, duration, ok=False, error=str(exc))

        duration = (time.monotonic() - start) * 1000
        ok = 200 <= resp.status_code < 300
        self.stats.record(ok)
        if not ok:
            logger.warning("%d %s (%.0fms)", resp.status_code, endpoint, duration)
            return RequestResult(endpoint, resp.status_code, duration, ok=False)

        try:
            body = resp.json()
        except ValueError:
            body = None
        service = body.get("service") if isinstance(body, dict) else None
        logger.info(
            "%d %s (%.0fms)%s", resp.status_code, endpoint, duration,
            f" -> {service}" if service else "",
        )
        return RequestResult(endpoint, resp.status_code, duration, ok=True, service=service)

    def generate_load(self):
        """Fire one batch of concurrent requests and wait for it to finish."""
        endpoints = [self.rng.choice(ENDPOINTS) for _ in range(self.config.concurrent_requests)]
        futures = [self._executor.submit(self.make_request, ep) for ep in endpoints]
        wait(futures)
        return [f.result() for f in futures]

    def remaining_interval(self, elapsed: float) -> float:
        """Seconds to wait so batches start at a fixed rate; a slow batch eats into the wait."""
        return max(0.0, self.config.request_interval_ms / 1000.0 - elapsed)

    def report_statistics(self, final=False):
        total, success, errors = self.stats.snapshot()
        if total == 0 and not final:
            return
        logger.info(
            "%s: %d requests, %d success, %d errors (%.1f%% success rate)",
            "Final statistics" if final else "Statistics",
            total, success, errors, self.stats.success_rate,
        )

    def run(self, stop_event: threading.Event):
        logger.info("Load generator starting, target server: %s", self.config.server_url)
        logger.info(
            "Request interval: %dms, concurrent requests: %d",
            self.config.request_interval_ms, self.config.concurrent_requests,
        )
        # give the server a moment to come up
        if stop_event.wait(self.config.startup_delay):
            self.close()
            return

        next_report = time.monotonic() + self.config.stats_interval
        while not stop_event.is_set():
            batch_started = time.monotonic()
            self.generate_load()
            if time.monotonic() >= next_report:
                self.report_statistics()
                next_report += self.config.stats_interval
            stop_event.wait(self.remaining_interval(time.monotonic() - batch_started))
        self.close()

    def close(self):
        self.report_statistics(final=True)
        self._executor.shutdown(wait=True)
        self.session.close()


def main(environ=None) -> int:
    environ = os.environ if environ is None else environ
    configure_logging(environ)

    pipeline = TracingPipeline(
        TracingConfig.from_env(environ, default_service_name=TRACE_SOURCE)
    )
    try:
        pipeline.start()
    except TracingStartupError as exc:
        logger.error("%s", exc)
        return 1

    stop_event = threading.Event()

    def stop(signum, frame):
        logger.info("Load generator shutting down...")
        stop_event.set()

    signal.signal(signal.SIGTERM, stop)
    signal.signal(signal.SIGINT, stop)

    try:
        LoadGenerator(LoadGeneratorConfig.from_env(environ)).run(stop_event)
    finally:
        pipeline.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
