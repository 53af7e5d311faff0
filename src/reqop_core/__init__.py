from .client import Client
from .core import execute, RetryPolicy
from .errors import (
    AttemptTimeoutError,
    BodyPreparationError,
    NoAttemptError,
    ReqopError,
    TracingSetupError,
)
from .options import (
    Options,
    TracingOptions,
    with_retry_policy,
    with_span_carrier_injected,
    with_standard_retry_policy,
    with_tracing,
)
from .types import RequestDescriptor

__all__ = [
    "Client",
    "execute",
    "RetryPolicy",
    "RequestDescriptor",
    "Options",
    "TracingOptions",
    "with_retry_policy",
    "with_standard_retry_policy",
    "with_tracing",
    "with_span_carrier_injected",
    "ReqopError",
    "BodyPreparationError",
    "TracingSetupError",
    "AttemptTimeoutError",
    "NoAttemptError",
]

__version__ = "0.1.0"
