from __future__ import annotations

import os
from typing import Any, Optional

from opentelemetry import metrics, trace

# The SDK and OTLP exporters ship in the optional "otel" extra; without them
# init_tracer / init_metrics do nothing and the global no-op providers stay.
try:
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader

    _SDK_AVAILABLE = True
except ImportError:  # pragma: no cover - exercised only without the extra
    _SDK_AVAILABLE = False

INSTRUMENTATION_NAME = "reqop_core.otel_runtime"

_tracer_provider: Optional[Any] = None
_meter_provider: Optional[Any] = None


def _resource(service_name: str) -> "Resource":
    return Resource.create(
        {
            "service.name": service_name,
            "service.version": os.getenv("REQOP_SERVICE_VERSION", "dev"),
        }
    )


def _span_exporter(exporter: str):
    if exporter.lower() == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    else:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    return OTLPSpanExporter()


def _metric_exporter(exporter: str):
    if exporter.lower() == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    else:
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
    return OTLPMetricExporter()


def init_tracer(service_name: str = "reqop-core", exporter: str = "http") -> None:
    """
    Install a global TracerProvider exporting spans over OTLP.

    :param service_name: logical service name (appears in Jaeger, Tempo, etc.)
    :param exporter: "http" (default) or "grpc"
    """
    global _tracer_provider

    if not _SDK_AVAILABLE or _tracer_provider is not None:
        return

    provider = TracerProvider(resource=_resource(service_name))
    provider.add_span_processor(BatchSpanProcessor(_span_exporter(exporter)))
    trace.set_tracer_provider(provider)
    _tracer_provider = provider


def init_metrics(service_name: str = "reqop-core", exporter: str = "http") -> None:
    """Install a global MeterProvider exporting the reqop_* instruments over OTLP."""
    global _meter_provider

    if not _SDK_AVAILABLE or _meter_provider is not None:
        return

    reader = PeriodicExportingMetricReader(_metric_exporter(exporter))
    provider = MeterProvider(resource=_resource(service_name), metric_readers=[reader])
    metrics.set_meter_provider(provider)
    _meter_provider = provider


def get_tracer(instrumentation_name: str = INSTRUMENTATION_NAME):
    if _tracer_provider is None:
        return trace.get_tracer(instrumentation_name)
    return _tracer_provider.get_tracer(instrumentation_name)


def get_meter(instrumentation_name: str = INSTRUMENTATION_NAME):
    """Returns None until init_metrics() has installed a provider."""
    if _meter_provider is None:
        return None
    return _meter_provider.get_meter(instrumentation_name)
