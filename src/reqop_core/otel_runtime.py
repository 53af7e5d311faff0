from __future__ import annotations

import os
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, MutableMapping, Optional

import httpx
import structlog
from opentelemetry import metrics as _otel_metrics
from opentelemetry import propagate, trace
from opentelemetry.trace import SpanKind, Status, StatusCode

from .errors import TracingSetupError
from .types import RequestDescriptor

logger = structlog.get_logger(__name__)

SPAN_NAME = "HTTP Egress"

_TRUTHY = {"1", "true", "yes", "on"}


# --- Helpers for env flags ----------------------------------------------------


def _otel_enabled(explicit: Optional[bool]) -> bool:
    if explicit is not None:
        return explicit
    return os.getenv("REQOP_OTEL_ENABLED", "").lower() in _TRUTHY


def _metrics_enabled() -> bool:
    return os.getenv("REQOP_OTEL_METRICS_ENABLED", "").lower() in _TRUTHY


# --- Metrics plumbing (lazy / optional) --------------------------------------

_requests_counter = None
_attempts_counter = None
_duration_histogram = None


def _ensure_metrics() -> bool:
    """
    Lazily create metric instruments when REQOP_OTEL_METRICS_ENABLED is set.
    Returns whether metrics should be recorded. Safe to call multiple times.
    """
    global _requests_counter, _attempts_counter, _duration_histogram

    if not _metrics_enabled():
        return False
    if _requests_counter is not None:
        return True

    meter = _otel_metrics.get_meter(__name__)
    _requests_counter = meter.create_counter(
        "reqop_requests_total",
        description="Total number of reqop-core requests.",
    )
    _attempts_counter = meter.create_counter(
        "reqop_attempts_total",
        description="Total number of reqop-core attempts (including retries).",
    )
    _duration_histogram = meter.create_histogram(
        "reqop_request_duration_seconds",
        description="Latency of reqop-core requests, retries included.",
        unit="s",
    )
    return True


# --- Tracing scope -------------------------------------------------------------


class TracingScope:
    """
    The span covering one call and everything recorded on it.

    Only built when tracing is enabled; a disabled call never touches the
    OpenTelemetry API.
    """

    def __init__(self, span: trace.Span, method: str, metrics_active: bool):
        self.span = span
        self.context = trace.set_span_in_context(span)
        self._metric_attrs = {"http.method": method}
        self._metrics_active = metrics_active
        self._start = time.perf_counter()

    @classmethod
    def start_if_enabled(
        cls,
        request: RequestDescriptor,
        tracing: Optional[Any],
        operation_name: str = "",
    ) -> Optional["TracingScope"]:
        if tracing is None or not _otel_enabled(tracing.enabled):
            return None

        name = f"{SPAN_NAME} - {operation_name}" if operation_name else SPAN_NAME
        attrs: Dict[str, Any] = {
            k: v for k, v in dict(tracing.span_attributes).items() if v is not None
        }
        attrs["http.method"] = request.method
        attrs["http.url"] = str(request.url)

        try:
            span = trace.get_tracer(__name__).start_span(
                name, kind=SpanKind.CLIENT, attributes=attrs
            )
        except Exception as exc:
            raise TracingSetupError(f"error starting tracing span: {exc}") from exc
        return cls(span, request.method, _ensure_metrics())

    def inject(self, headers: MutableMapping[str, str]) -> None:
        try:
            propagate.inject(headers, context=self.context)
        except Exception as exc:
            self.span.end()
            raise TracingSetupError(f"error injecting tracing carrier: {exc}") from exc

    @contextmanager
    def activate(self) -> Iterator[trace.Span]:
        with trace.use_span(self.span, end_on_exit=False, record_exception=False):
            yield self.span

    def record_attempt(self, attempt: int) -> None:
        self.span.add_event("attempt", {"attempt": attempt})
        if self._metrics_active and _attempts_counter is not None:
            _attempts_counter.add(1, attributes=self._metric_attrs)

    def finish(
        self,
        attempts: int,
        response: Optional[httpx.Response] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Tag the outcome and end the span. Never raises."""
        try:
            self._finish(attempts, response, error)
        except Exception:
            logger.warning("tracing.finish_failed", exc_info=True)

    def _finish(
        self,
        attempts: int,
        response: Optional[httpx.Response],
        error: Optional[BaseException],
    ) -> None:
        span = self.span
        try:
            span.set_attribute("http.attempt_count", attempts)
            if error is not None:
                span.record_exception(error)
                span.set_attribute("error", True)
                span.set_status(Status(StatusCode.ERROR, str(error) or type(error).__name__))
                outcome = "error"
            else:
                if response is not None:
                    span.set_attribute("http.status_code", response.status_code)
                outcome = "success"

            if self._metrics_active and _requests_counter is not None:
                metric_attrs = {**self._metric_attrs, "reqop.outcome": outcome}
                _requests_counter.add(1, attributes=metric_attrs)
                if _duration_histogram is not None:
                    _duration_histogram.record(
                        time.perf_counter() - self._start, attributes=metric_attrs
                    )
        finally:
            span.end()
