# mock_api.py
"""
Mock API served by the injector demo.

Four GET endpoints with simulated latency and one injected failure rule on
/api/orders. The app knows nothing about tracing: instrumentation is attached
from the outside by tracing.TracingPipeline.

Randomness and sleeping are injected so tests can pin the delay and the
fault decision:

    app = create_app(rng=random.Random(7), sleep=fake_sleep)
"""

import asyncio
import logging
import os
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from flask import Flask, jsonify, request

__all__ = ["ApiConfig", "SERVICE", "USERS", "ORDERS", "create_app", "iso_timestamp"]

logger = logging.getLogger(__name__)

SERVICE = "nodejs-server"

USERS = (
    {"id": 1, "name": "Alice", "email": "alice@example.com"},
    {"id": 2, "name": "Bob", "email": "bob@example.com"},
    {"id": 3, "name": "Charlie", "email": "charlie@example.com"},
)

ORDERS = (
    {"id": 101, "userId": 1, "product": "Laptop", "amount": 999.99},
    {"id": 102, "userId": 2, "product": "Mouse", "amount": 29.99},
    {"id": 103, "userId": 3, "product": "Keyboard", "amount": 79.99},
)

ENDPOINTS = ("/", "/api/users", "/api/orders", "/health")


@dataclass
class ApiConfig:
    """Latency ranges (milliseconds, [low, high)) and the orders failure rate."""
    home_delay_ms: tuple = (50, 150)
    users_delay_ms: tuple = (100, 300)
    orders_delay_ms: tuple = (75, 225)
    failure_rate: float = 0.1

    def __post_init__(self):
        if not 0.0 <= self.failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {self.failure_rate}")
        for name in ("home_delay_ms", "users_delay_ms", "orders_delay_ms"):
            low, high = getattr(self, name)
            if low < 0 or high < low:
                raise ValueError(f"{name} must be a non-negative (low, high) range")

    @classmethod
    def from_env(cls, environ=None) -> "ApiConfig":
        environ = os.environ if environ is None else environ
        rate = environ.get("ORDERS_FAILURE_RATE")
        if rate is None:
            return cls()
        return cls(failure_rate=float(rate))


def iso_timestamp() -> str:
    # 2026-10-19T12:00:00.123Z
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _envelope(**payload):
    payload["timestamp"] = iso_timestamp()
    payload["service"] = SERVICE
    return payload


def create_app(config: ApiConfig | None = None, rng=None, sleep=None) -> Flask:
    """
    Build the Flask application.

    Parameters
    ----------
    config : ApiConfig
        Delay ranges and failure rate; defaults match the demo contract.
    rng : object with ``random()`` and ``uniform(a, b)``
        Source for delays and fault decisions.
    sleep : async callable taking seconds
        Used for the artificial delays.
    """
    config = config or ApiConfig()
    rng = rng or random.Random()
    sleep = sleep or asyncio.sleep

    app = Flask(__name__)
    app.started_at = time.monotonic()

    async def simulate_latency(delay_range):
        low, high = delay_range
        await sleep(rng.uniform(low, high) / 1000.0)

    @app.before_request
    def parse_body():
        # bodies are accepted but unused
        request.get_json(silent=True)

    @app.route("/", methods=["GET"])
    async def home():
        logger.info("GET / - Home endpoint hit")
        await simulate_latency(config.home_delay_ms)
        return jsonify(_envelope(message="Hello from OpenTelemetry Injector Demo!"))

    @app.route("/api/users", methods=["GET"])
    async def users():
        logger.info("GET /api/users - Users endpoint hit")
        await simulate_latency(config.users_delay_ms)
        return jsonify(_envelope(users=list(USERS)))

    @app.route("/api/orders", methods=["GET"])
    async def orders():
        logger.info("GET /api/orders - Orders endpoint hit")
        await simulate_latency(config.orders_delay_ms)

        if rng.random() < config.failure_rate:
            logger.error("Simulated error in /api/orders")
            return jsonify(_envelope(error="Internal server error")), 500

        return jsonify(_envelope(orders=list(ORDERS)))

    @app.route("/health", methods=["GET"])
    def health():
        logger.info("GET /health - Health check endpoint hit")
        return jsonify({
            "status": "healthy",
            "timestamp": iso_timestamp(),
            "uptime": time.monotonic() - app.started_at,
            "service": SERVICE,
        })

    @app.errorhandler(404)
    def not_found(_):
        return jsonify(_envelope(error="Not found")), 404

    return app
