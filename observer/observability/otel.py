"""OpenTelemetry self-instrumentation for the importer."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from observer import config

logger = logging.getLogger("observer.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None

_file_import_counter: Any | None = None
_file_import_latency_hist: Any | None = None
_parser_failure_counter: Any | None = None
_records_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def initialize() -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider
    global _file_import_counter, _file_import_latency_hist, _parser_failure_counter, _records_counter

    if _initialized:
        return
    _initialized = True

    if not config.OTEL_ENABLED:
        logger.debug("OpenTelemetry disabled (AI_OBSERVER_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "ai-observer-importer"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "ai-observer",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_exporter = OTLPSpanExporter(endpoint=traces_endpoint or None)
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("observer.import")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("observer.import")

    _file_import_counter = meter.create_counter(
        "ai_observer_import_files_total",
        unit="1",
        description="Session files processed, by source and outcome",
    )
    _file_import_latency_hist = meter.create_histogram(
        "ai_observer_import_file_latency_ms",
        unit="ms",
        description="Time spent classifying and parsing one session file",
    )
    _parser_failure_counter = meter.create_counter(
        "ai_observer_parser_failures_total",
        unit="1",
        description="Count of session files that failed to parse",
    )
    _records_counter = meter.create_counter(
        "ai_observer_imported_records_total",
        unit="1",
        description="Telemetry records written by imports, by kind",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _enabled = True

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown() -> None:
    global _enabled
    if not _initialized:
        return
    for provider in (_meter_provider, _trace_provider):
        if provider is None:
            continue
        try:
            provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.debug("OpenTelemetry provider shutdown failed: %s", exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_file_import(source: str, status: str, duration_ms: float) -> None:
    labels = {
        "source": source or "unknown",
        "status": status or "unknown",
    }
    if _enabled and _file_import_counter is not None:
        _file_import_counter.add(1, labels)
    if _enabled and _file_import_latency_hist is not None:
        _file_import_latency_hist.record(max(0.0, float(duration_ms)), labels)


def record_parser_failure(source: str) -> None:
    if _enabled and _parser_failure_counter is not None:
        _parser_failure_counter.add(1, {"source": source or "unknown"})


def record_imported_records(source: str, logs: int, metrics: int, spans: int) -> None:
    if not _enabled or _records_counter is None:
        return
    for kind, count in (("logs", logs), ("metrics", metrics), ("spans", spans)):
        if count > 0:
            _records_counter.add(int(count), {"source": source or "unknown", "kind": kind})
