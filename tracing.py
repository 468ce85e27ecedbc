# tracing.py
"""
Tracing bootstrap for the demo processes.

A TracingPipeline owns its TracerProvider, span processor and exporter, and
is handed to whoever runs the process. Nothing here is registered globally:
Flask and requests are instrumented against the pipeline's own provider, and
shutdown() undoes the instrumentation and flushes buffered spans.
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor

from otlp_json_console_exporter import OTLPJsonConsoleExporter

__all__ = ["TracingConfig", "TracingPipeline", "TracingStartupError"]

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://otel-collector:4317"
DEFAULT_SERVICE_NAME = "nodejs-server"
EXPORTERS = ("otlp", "console")


class TracingStartupError(RuntimeError):
    """The tracing pipeline could not be built or attached."""


@dataclass
class TracingConfig:
    service_name: str = DEFAULT_SERVICE_NAME
    endpoint: str = DEFAULT_ENDPOINT
    exporter: str = "otlp"

    @classmethod
    def from_env(cls, environ=None, default_service_name=DEFAULT_SERVICE_NAME) -> "TracingConfig":
        environ = os.environ if environ is None else environ
        return cls(
            service_name=environ.get("OTEL_SERVICE_NAME") or default_service_name,
            endpoint=environ.get("OTEL_EXPORTER_OTLP_ENDPOINT") or DEFAULT_ENDPOINT,
            exporter=(environ.get("OTEL_TRACES_EXPORTER") or "otlp").lower(),
        )


def _otlp_exporter(endpoint: str):
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    insecure = urlparse(endpoint).scheme != "https"
    return OTLPSpanExporter(endpoint=endpoint, insecure=insecure)


class TracingPipeline:
    """
    Explicitly owned tracing pipeline.

    Parameters
    ----------
    config : TracingConfig
        Service identity and exporter selection.
    exporter : SpanExporter, optional
        Overrides the exporter picked from ``config``.
    processor_cls : type
        Span processor wrapping the exporter (BatchSpanProcessor by default).
    """

    def __init__(self, config: TracingConfig, *, exporter=None, processor_cls=BatchSpanProcessor):
        self.config = config
        self.exporter = exporter
        self.processor_cls = processor_cls
        self.provider: TracerProvider | None = None
        self._app = None
        self._requests_instrumented = False
        self._closed = False

    @property
    def started(self) -> bool:
        return self.provider is not None

    def _build_exporter(self):
        if self.exporter is not None:
            return self.exporter
        if self.config.exporter == "console":
            return OTLPJsonConsoleExporter()
        if self.config.exporter == "otlp":
            return _otlp_exporter(self.config.endpoint)
        raise ValueError(
            f"unsupported OTEL_TRACES_EXPORTER {self.config.exporter!r}; expected one of {EXPORTERS}"
        )

    def start(self, app=None) -> TracerProvider:
        """
        Build the provider and instrument inbound Flask and outbound requests calls.

        Raises TracingStartupError on any failure; a half-built pipeline is
        torn down before raising. A pipeline starts at most once.
        """
        if self.started:
            raise TracingStartupError("tracing pipeline already started")
        if self._closed:
            # the exporter was shut down with the previous provider
            raise TracingStartupError("tracing pipeline was shut down; build a new one")

        logger.info("Starting tracing for service %s", self.config.service_name)
        logger.info("Exporter: %s (endpoint %s)", self.config.exporter, self.config.endpoint)
        try:
            self.exporter = self._build_exporter()
            resource = Resource.create({SERVICE_NAME: self.config.service_name})
            self.provider = TracerProvider(resource=resource)
            self.provider.add_span_processor(self.processor_cls(self.exporter))

            if app is not None:
                FlaskInstrumentor().instrument_app(app, tracer_provider=self.provider)
                self._app = app
            RequestsInstrumentor().instrument(tracer_provider=self.provider)
            self._requests_instrumented = True
        except Exception as exc:
            logger.error("Error starting tracing pipeline: %s", exc)
            self._teardown()
            raise TracingStartupError(f"tracing pipeline failed to start: {exc}") from exc

        logger.info("Tracing is now active for %s", self.config.service_name)
        return self.provider

    def shutdown(self):
        """Remove instrumentation, flush buffered spans and stop the provider."""
        if not self.started:
            return
        logger.info("Shutting down tracing pipeline...")
        self._teardown()
        logger.info("Tracing shutdown complete")

    def _teardown(self):
        self._closed = True
        if self._requests_instrumented:
            RequestsInstrumentor().uninstrument()
            self._requests_instrumented = False
        if self._app is not None:
            FlaskInstrumentor().uninstrument_app(self._app)
            self._app = None
        provider, self.provider = self.provider, None
        if provider is not None:
            provider.shutdown()
