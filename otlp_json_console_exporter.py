# otlp_json_console_exporter.py
"""
Span exporter that prints finished traces as OTLP/JSON, one line per trace.

Handy when no collector is around: set OTEL_TRACES_EXPORTER=console and the
demo server writes every request trace to stdout.
"""
import collections
import json
import sys
import threading
from typing import Any, Dict, Iterable, List, Sequence

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

__all__ = ["OTLPJsonConsoleExporter"]

# order matters: bool is an int subclass
_SCALAR_KEYS = ((bool, "boolValue"), (int, "intValue"), (float, "doubleValue"))


def any_value(value: Any) -> Dict[str, Any]:
    """Encode an attribute value as an OTLP AnyValue."""
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [any_value(item) for item in value]}}
    for kind, key in _SCALAR_KEYS:
        if isinstance(value, kind):
            # OTLP/JSON carries 64-bit ints as strings
            return {key: str(value) if kind is int else value}
    return {"stringValue": str(value)}


def key_values(attributes) -> List[Dict[str, Any]]:
    return [{"key": key, "value": any_value(value)} for key, value in (attributes or {}).items()]


def _hex_id(value: int, width: int) -> str:
    return format(value, f"0{width}x")


def encode_span(span: ReadableSpan) -> Dict[str, Any]:
    ctx, parent = span.context, span.parent
    has_parent = parent is not None and parent.is_valid
    return {
        "traceId": _hex_id(ctx.trace_id, 32),
        "spanId": _hex_id(ctx.span_id, 16),
        "parentSpanId": _hex_id(parent.span_id, 16) if has_parent else "",
        "name": span.name,
        "kind": span.kind.value,
        "startTimeUnixNano": str(span.start_time),
        "endTimeUnixNano": str(span.end_time),
        "status": {
            "code": span.status.status_code.value,
            "message": span.status.description or "",
        },
        "attributes": key_values(span.attributes),
        "events": [
            {"name": ev.name, "timeUnixNano": str(ev.timestamp), "attributes": key_values(ev.attributes)}
            for ev in span.events
        ],
    }


def encode_trace(spans: Iterable[ReadableSpan]) -> Dict[str, Any]:
    """Group one trace's spans by resource, then by instrumentation scope."""
    grouped = collections.OrderedDict()
    for span in spans:
        resource = tuple(sorted(span.resource.attributes.items()))
        scope = span.instrumentation_scope
        scope_key = (scope.name, scope.version or "") if scope else ("", "")
        grouped.setdefault(resource, collections.OrderedDict()).setdefault(scope_key, []).append(span)

    resource_spans = []
    for resource, scopes in grouped.items():
        resource_spans.append({
            "resource": {"attributes": key_values(dict(resource))},
            "scopeSpans": [
                {"scope": {"name": name, "version": version}, "spans": [encode_span(s) for s in members]}
                for (name, version), members in scopes.items()
            ],
        })
    return {"resourceSpans": resource_spans}


def ends_local_trace(span: ReadableSpan) -> bool:
    """True for the outermost span this process saw for its trace."""
    parent = span.parent
    return parent is None or not parent.is_valid or parent.is_remote


class OTLPJsonConsoleExporter(SpanExporter):
    """
    Emits one OTLP/JSON line per process-root trace.

    Spans wait in a per-trace buffer until the local root ends (no parent, or
    a remote parent as with an incoming traced request). Works with
    SimpleSpanProcessor or BatchSpanProcessor.
    """

    def __init__(self, stream=None):
        self._stream = stream
        self._lock = threading.Lock()
        self._pending = collections.defaultdict(list)  # trace_id -> spans

    @property
    def stream(self):
        return self._stream or sys.stdout

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        with self._lock:
            finished = []
            for span in spans:
                trace_id = span.context.trace_id
                self._pending[trace_id].append(span)
                if ends_local_trace(span):
                    finished.append(trace_id)
            self._write(finished)
        return SpanExportResult.SUCCESS

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        with self._lock:
            self._write(list(self._pending))
        return True

    def shutdown(self) -> None:
        self.force_flush()

    def _write(self, trace_ids):
        for trace_id in trace_ids:
            spans = self._pending.pop(trace_id, None)
            if not spans:
                continue
            line = json.dumps(encode_trace(spans), separators=(",", ":"))
            self.stream.write(line + "\n")
        self.stream.flush()
