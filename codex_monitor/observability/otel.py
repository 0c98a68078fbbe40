"""Optional OpenTelemetry metrics/traces for Codex Monitor, with a Prometheus fallback.

Everything here is a no-op until ``initialize`` succeeds with telemetry enabled.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from codex_monitor import config

logger = logging.getLogger("codex_monitor.observability")

# name -> (kind, description, label)
_INSTRUMENTS: dict[str, tuple[str, str, str]] = {
    "codex_monitor_summary_loads_total": ("counter", "Session summary loads", "result"),
    "codex_monitor_summary_latency_ms": ("histogram", "Session summary load latency", "result"),
    "codex_monitor_parser_failures_total": ("counter", "Session log parser failures", "parser"),
    "codex_monitor_watch_events_total": ("counter", "Watcher notifications delivered", "event"),
}

_initialized = False
_tracer: Any | None = None
_providers: list[Any] = []
_instrumentor: Any | None = None
_otel_instruments: dict[str, Any] = {}
_prom_instruments: dict[str, Any] = {}


def _signal_endpoint(signal: str) -> str | None:
    base = (config.OTEL_ENDPOINT or "").strip().rstrip("/")
    if not base:
        return None
    if base.endswith("/v1"):
        base = base[:-3]
    return f"{base}/v1/{signal}"


def _label(value: str) -> str:
    return (value or "").strip() or "unknown"


def _start_otel(app: FastAPI | None) -> None:
    global _tracer, _instrumentor
    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    resource = Resource.create({"service.name": config.OTEL_SERVICE_NAME or "codex-monitor"})
    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=_signal_endpoint("traces"))))
    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=_signal_endpoint("metrics")))],
    )
    trace.set_tracer_provider(tracer_provider)
    metrics.set_meter_provider(meter_provider)
    _providers.extend([meter_provider, tracer_provider])

    meter = metrics.get_meter("codex_monitor")
    for name, (kind, description, _label_name) in _INSTRUMENTS.items():
        factory = meter.create_histogram if kind == "histogram" else meter.create_counter
        _otel_instruments[name] = factory(name, description=description)

    _tracer = trace.get_tracer("codex_monitor")
    _instrumentor = FastAPIInstrumentor()
    if app is not None:
        _instrumentor.instrument_app(app)
    logger.info("OpenTelemetry initialized (endpoint=%s)", config.OTEL_ENDPOINT)


def _start_prometheus() -> None:
    if _prom_instruments:
        return
    try:
        from prometheus_client import Counter, Histogram, start_http_server
    except ImportError as exc:
        logger.warning("Prometheus fallback unavailable: %s", exc)
        return

    try:
        start_http_server(config.PROM_PORT)
    except OSError as exc:
        logger.warning("Prometheus fallback not started: %s", exc)
        return
    for name, (kind, description, label_name) in _INSTRUMENTS.items():
        factory = Histogram if kind == "histogram" else Counter
        _prom_instruments[name] = factory(name, description, [label_name])
    logger.info("Prometheus metrics listening on port %s", config.PROM_PORT)


def initialize(app: FastAPI | None = None) -> None:
    global _initialized
    if _initialized:
        return
    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (CODEX_MONITOR_OTEL_ENABLED=false)")
        return
    _start_otel(app)
    if config.PROM_PORT > 0:
        _start_prometheus()


def shutdown(app: FastAPI | None = None) -> None:
    global _initialized, _tracer, _instrumentor
    if app is not None and _instrumentor is not None:
        _instrumentor.uninstrument_app(app)
    for provider in _providers:
        try:
            provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Telemetry provider shutdown failed: %s", exc)
    _providers.clear()
    _otel_instruments.clear()
    _tracer = None
    _instrumentor = None
    _initialized = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


def _record(name: str, value: float, label: str) -> None:
    kind, _description, label_name = _INSTRUMENTS[name]
    attributes = {label_name: _label(label)}
    instrument = _otel_instruments.get(name)
    if instrument is not None:
        if kind == "histogram":
            instrument.record(value, attributes)
        else:
            instrument.add(value, attributes)
    prom = _prom_instruments.get(name)
    if prom is not None:
        if kind == "histogram":
            prom.labels(**attributes).observe(value)
        else:
            prom.labels(**attributes).inc(value)


def record_summary_load(result: str, duration_ms: float) -> None:
    _record("codex_monitor_summary_loads_total", 1, result)
    _record("codex_monitor_summary_latency_ms", max(0.0, float(duration_ms)), result)


def record_parser_failure(parser: str) -> None:
    _record("codex_monitor_parser_failures_total", 1, parser)


def record_watch_event(event: str) -> None:
    _record("codex_monitor_watch_events_total", 1, event)
