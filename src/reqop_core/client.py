from __future__ import annotations

from typing import Any, Dict, Optional, Union

import httpx

from .core import DEFAULT_MAX_ATTEMPTS, DEFAULT_REQUEST_TIMEOUT_S, execute
from .options import Option, Options, apply_options, with_standard_retry_policy
from .strategy import LockedRandom
from .types import RequestDescriptor

URL = Union[str, httpx.URL]


class Client:
    """
    HTTP client that retries, bounds and traces every request.

    Options given here become the defaults of every call; options given to a
    call replace them for that call only. Without a retry policy option the
    client retries up to 10 times with a 5 s per-attempt timeout and
    exponential backoff with jitter.

    Example:
        >>> async with Client(with_tracing(True, "billing")) as client:
        ...     response = await client.get("https://billing.internal/health")
        ...     body = await response.aread()
    """

    def __init__(
        self,
        *opts: Option,
        http_client: Optional[httpx.AsyncClient] = None,
        generator: Optional[LockedRandom] = None,
    ):
        self._generator = generator or LockedRandom()

        options = apply_options(Options(), opts, self._generator)
        if options.retry_policy is None:
            options = with_standard_retry_policy(
                DEFAULT_REQUEST_TIMEOUT_S, DEFAULT_MAX_ATTEMPTS
            )(options, self._generator)
        self._options = options

        self._owns_http_client = http_client is None
        # per-attempt deadlines replace httpx's own timeouts
        self._http_client = http_client or httpx.AsyncClient(timeout=None)

    @property
    def options(self) -> Options:
        return self._options

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def _send(self, request: httpx.Request) -> httpx.Response:
        return await self._http_client.send(request, stream=True)

    async def do(
        self,
        request: RequestDescriptor,
        *opts: Option,
        overall_timeout_s: Optional[float] = None,
    ) -> httpx.Response:
        """
        Send ``request`` with retries.

        Each attempt must produce a response within the policy's request
        timeout; between attempts the policy's strategies run. The call stops
        early when the calling task is cancelled or ``overall_timeout_s``
        elapses.

        Either a response is returned or an exception is raised, never both.
        The caller owns the returned response and must close it (``aread`` or
        ``aclose``); closing it releases the attempt's timeout.
        """
        options = apply_options(self._options, opts, self._generator)
        return await execute(
            request,
            send=self._send,
            policy=options.retry_policy,
            tracing=options.tracing,
            operation_name=options.operation_name,
            overall_timeout_s=overall_timeout_s,
        )

    async def get(
        self,
        url: URL,
        *opts: Option,
        headers: Optional[Dict[str, str]] = None,
        overall_timeout_s: Optional[float] = None,
    ) -> httpx.Response:
        return await self.do(
            RequestDescriptor("GET", url, dict(headers or {})),
            *opts,
            overall_timeout_s=overall_timeout_s,
        )

    async def head(
        self,
        url: URL,
        *opts: Option,
        headers: Optional[Dict[str, str]] = None,
        overall_timeout_s: Optional[float] = None,
    ) -> httpx.Response:
        return await self.do(
            RequestDescriptor("HEAD", url, dict(headers or {})),
            *opts,
            overall_timeout_s=overall_timeout_s,
        )

    async def post(
        self,
        url: URL,
        body: Any,
        *opts: Option,
        headers: Optional[Dict[str, str]] = None,
        overall_timeout_s: Optional[float] = None,
    ) -> httpx.Response:
        return await self.do(
            RequestDescriptor("POST", url, dict(headers or {}), body),
            *opts,
            overall_timeout_s=overall_timeout_s,
        )
