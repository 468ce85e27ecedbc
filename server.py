# server.py
"""
Process entry point for the injector demo server.

Environment variables:
    PORT: port to bind to (default: 3000)
    HOST: address to bind to (default: 0.0.0.0)
    OTEL_SERVICE_NAME: service name reported on spans
    OTEL_EXPORTER_OTLP_ENDPOINT: collector URL (default: http://otel-collector:4317)
    OTEL_TRACES_EXPORTER: "otlp" (default) or "console"
    ORDERS_FAILURE_RATE: fault injection rate for /api/orders (default: 0.1)
    LOG_LEVEL: logging level (default: INFO)
"""
import logging
import os
import signal
import sys
from dataclasses import dataclass

from mock_api import ENDPOINTS, ApiConfig, create_app
from tracing import TracingConfig, TracingPipeline, TracingStartupError

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000

    @classmethod
    def from_env(cls, environ=None) -> "ServerConfig":
        environ = os.environ if environ is None else environ
        return cls(
            host=environ.get("HOST", "0.0.0.0"),
            port=int(environ.get("PORT", 3000)),
        )


def configure_logging(environ=None):
    environ = os.environ if environ is None else environ
    logging.basicConfig(
        level=environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class ServiceLifecycle:
    """Owns the app and its tracing pipeline for the lifetime of the process."""

    def __init__(self, app, pipeline: TracingPipeline, config: ServerConfig):
        self.app = app
        self.pipeline = pipeline
        self.config = config

    def start_tracing(self):
        self.pipeline.start(self.app)

    def install_signal_handlers(self):
        signal.signal(signal.SIGTERM, self.handle_termination)
        signal.signal(signal.SIGINT, self.handle_termination)

    def handle_termination(self, signum, frame):
        logger.info("Received %s, shutting down...", signal.Signals(signum).name)
        try:
            self.pipeline.shutdown()
        except Exception:
            logger.exception("Error shutting down tracing pipeline")
        finally:
            sys.exit(0)

    def serve(self):
        logger.info("Server running on http://%s:%d", self.config.host, self.config.port)
        logger.info("Available endpoints:")
        for endpoint in ENDPOINTS:
            logger.info("  GET %s", endpoint)
        self.app.run(host=self.config.host, port=self.config.port, debug=False, threaded=True)


def main(environ=None) -> int:
    """Main entry point for the demo server; returns the process exit code."""
    environ = os.environ if environ is None else environ
    configure_logging(environ)

    server_config = ServerConfig.from_env(environ)
    app = create_app(ApiConfig.from_env(environ))
    pipeline = TracingPipeline(TracingConfig.from_env(environ))
    lifecycle = ServiceLifecycle(app, pipeline, server_config)

    # tracing is required: no pipeline, no server
    try:
        lifecycle.start_tracing()
    except TracingStartupError as exc:
        logger.error("%s", exc)
        return 1

    lifecycle.install_signal_handlers()
    lifecycle.serve()
    return 0


if __name__ == "__main__":
    sys.exit(main())
