from __future__ import annotations
import asyncio


class ReqopError(Exception):
    """Base class for errors raised by reqop-core itself."""


class BodyPreparationError(ReqopError):
    """The request body could not be read into a replayable source."""


class TracingSetupError(ReqopError):
    """The tracing span could not be started or its carrier injected."""


class AttemptTimeoutError(ReqopError, asyncio.TimeoutError):
    """A single attempt did not produce a usable response in time."""

    def __init__(self, timeout_s: float):
        super().__init__(f"attempt timed out after {timeout_s:g}s")
        self.timeout_s = timeout_s


class NoAttemptError(ReqopError):
    """The retry strategies declined to make even a first attempt."""
