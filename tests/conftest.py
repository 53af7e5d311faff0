from __future__ import annotations

import httpx
import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from reqop_core import Client
from reqop_core.strategy import LockedRandom

# The global provider can only be set once per process.
_exporter = InMemorySpanExporter()
_provider = TracerProvider()
_provider.add_span_processor(SimpleSpanProcessor(_exporter))
trace.set_tracer_provider(_provider)


@pytest.fixture
def spans():
    _exporter.clear()
    yield _exporter
    _exporter.clear()


@pytest.fixture(autouse=True)
def _no_env_tracing(monkeypatch):
    monkeypatch.delenv("REQOP_OTEL_ENABLED", raising=False)
    monkeypatch.delenv("REQOP_OTEL_METRICS_ENABLED", raising=False)


@pytest.fixture
def make_client():
    """Build a Client whose transport is the given MockTransport handler."""

    def factory(handler, *opts):
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return Client(*opts, http_client=http, generator=LockedRandom(seed=7))

    return factory
