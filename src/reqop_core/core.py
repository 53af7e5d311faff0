from __future__ import annotations

import asyncio
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Tuple

import httpx
import structlog

from .attempt import AttemptContext, DeadlineBoundStream
from .body import ReplayableBody, capture_body
from .errors import NoAttemptError
from .otel_runtime import TracingScope
from .strategy import Limit, LockedRandom, standard_backoff
from .types import RequestDescriptor, SendFn, Strategy

if TYPE_CHECKING:
    from .options import TracingOptions

logger = structlog.get_logger(__name__)

DEFAULT_REQUEST_TIMEOUT_S = 5.0
DEFAULT_MAX_ATTEMPTS = 10

STD_BACKOFF_FACTOR_S = 0.001
STD_BACKOFF_JITTER_DEVIATION = 0.25


@dataclass
class RetryPolicy:
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    strategies: Tuple[Strategy, ...] = ()

    def __post_init__(self) -> None:
        self.strategies = tuple(self.strategies)
        if not any(isinstance(s, Limit) for s in self.strategies):
            self.strategies = (Limit(DEFAULT_MAX_ATTEMPTS), *self.strategies)

    @classmethod
    def standard(
        cls,
        request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        generator: Optional[LockedRandom] = None,
    ) -> "RetryPolicy":
        return cls(
            request_timeout_s=request_timeout_s,
            strategies=(
                Limit(max_attempts),
                standard_backoff(
                    STD_BACKOFF_FACTOR_S,
                    generator or LockedRandom(),
                    STD_BACKOFF_JITTER_DEVIATION,
                ),
            ),
        )


@dataclass
class _CallState:
    attempts: int = 0
    response: Optional[httpx.Response] = None
    error: Optional[BaseException] = field(default=None, repr=False)


async def _permitted(strategies: Tuple[Strategy, ...], attempt: int, error) -> bool:
    for strategy in strategies:
        verdict = strategy(attempt, error)
        if asyncio.iscoroutine(verdict):
            verdict = await verdict
        if not verdict:
            return False
    return True


def _build_request(request: RequestDescriptor, body: Optional[ReplayableBody]) -> httpx.Request:
    if body is None:
        return httpx.Request(request.method, request.url, headers=request.headers)
    headers = httpx.Headers(request.headers)
    # without a known length httpx sends the body chunked
    if body.length is not None:
        headers["Content-Length"] = str(body.length)
    return httpx.Request(request.method, request.url, headers=headers, content=body.chunks())


async def _attempt_loop(
    request: RequestDescriptor,
    send: SendFn,
    policy: RetryPolicy,
    body: Optional[ReplayableBody],
    tracing: Optional[TracingScope],
    state: _CallState,
) -> httpx.Response:
    attempt = 0
    while True:
        if not await _permitted(policy.strategies, attempt, state.error):
            if state.error is None:
                raise NoAttemptError("retry strategies declined the first attempt")
            logger.debug("request.exhausted", attempts=state.attempts, error=repr(state.error))
            raise state.error

        if tracing is not None:
            tracing.record_attempt(attempt + 1)

        attempt_ctx = AttemptContext.begin(policy.request_timeout_s)
        try:
            if body is not None:
                body.rewind()
            outgoing = _build_request(request, body)
            state.attempts += 1
            response = await attempt_ctx.run(send(outgoing))
        except asyncio.CancelledError:
            attempt_ctx.cancel()
            raise
        except Exception as exc:
            attempt_ctx.cancel()
            state.error = exc
            attempt += 1
            logger.debug("attempt.failed", attempt=attempt, error=repr(exc))
            continue

        response.stream = DeadlineBoundStream(response.stream, attempt_ctx)
        state.response = response
        state.error = None
        logger.debug("request.succeeded", attempts=state.attempts, status_code=response.status_code)
        return response


async def execute(
    request: RequestDescriptor,
    *,
    send: SendFn,
    policy: Optional[RetryPolicy] = None,
    tracing: Optional["TracingOptions"] = None,
    operation_name: str = "",
    overall_timeout_s: Optional[float] = None,
) -> httpx.Response:
    """
    Send ``request`` through ``send`` until it succeeds or the policy gives up.

    Every attempt gets ``policy.request_timeout_s`` to produce a response; the
    returned response holds that attempt's timer, without enforcing it,
    until its body is closed, which the caller must do. On failure the last
    attempt error is raised and nothing stays open. Cancelling the caller or
    exceeding ``overall_timeout_s`` stops the call at once and takes
    precedence over any attempt error.
    """
    policy = policy or RetryPolicy.standard()

    body = await capture_body(request.body) if request.body is not None else None
    try:
        scope = TracingScope.start_if_enabled(request, tracing, operation_name)
        if scope is not None and tracing.inject_carrier:
            scope.inject(request.headers)

        state = _CallState()
        try:
            with scope.activate() if scope is not None else nullcontext():
                loop = _attempt_loop(request, send, policy, body, scope, state)
                if overall_timeout_s is None:
                    response = await loop
                else:
                    response = await asyncio.wait_for(loop, timeout=overall_timeout_s)
        except BaseException as exc:
            if state.response is not None:
                await state.response.aclose()
            if scope is not None:
                scope.finish(state.attempts, error=exc)
            raise
        if scope is not None:
            scope.finish(state.attempts, response=response)
        return response
    finally:
        if body is not None:
            body.close()
