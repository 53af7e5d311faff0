from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from .core import RetryPolicy
from .strategy import Limit, LockedRandom
from .types import Strategy


@dataclass(frozen=True)
class TracingOptions:
    # None -> read env REQOP_OTEL_ENABLED
    enabled: Optional[bool] = None
    inject_carrier: bool = False
    span_attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class Options:
    operation_name: str = ""
    tracing: Optional[TracingOptions] = None
    retry_policy: Optional[RetryPolicy] = None


# An option returns a new Options; options are applied in order and the last one wins.
Option = Callable[[Options, LockedRandom], Options]


def apply_options(base: Options, opts, generator: LockedRandom) -> Options:
    for opt in opts:
        base = opt(base, generator)
    return base


def with_retry_policy(request_timeout_s: float, max_attempts: int, *strategies: Strategy) -> Option:
    """Replace the retry policy; ``Limit(max_attempts)`` always runs first."""
    limit = Limit(max_attempts)

    def apply(o: Options, g: LockedRandom) -> Options:
        return replace(
            o,
            retry_policy=RetryPolicy(
                request_timeout_s=request_timeout_s,
                strategies=(limit, *strategies),
            ),
        )

    return apply


def with_standard_retry_policy(request_timeout_s: float, max_attempts: int) -> Option:
    """Replace the retry policy with a limit plus exponential backoff and jitter."""

    def apply(o: Options, g: LockedRandom) -> Options:
        return replace(o, retry_policy=RetryPolicy.standard(request_timeout_s, max_attempts, g))

    return apply


def with_tracing(
    enabled: Optional[bool] = True, operation_name: str = "", **span_attributes: Any
) -> Option:
    """Configure the call span. A previously requested carrier injection is kept."""

    def apply(o: Options, g: LockedRandom) -> Options:
        tracing = replace(
            o.tracing or TracingOptions(),
            enabled=enabled,
            span_attributes=MappingProxyType(dict(span_attributes)),
        )
        return replace(o, operation_name=operation_name, tracing=tracing)

    return apply


def with_span_carrier_injected() -> Option:
    """Write the trace-context headers into outgoing requests."""

    def apply(o: Options, g: LockedRandom) -> Options:
        return replace(o, tracing=replace(o.tracing or TracingOptions(), inject_carrier=True))

    return apply
