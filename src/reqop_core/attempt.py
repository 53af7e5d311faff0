from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Awaitable, Optional, TypeVar

import httpx

from .errors import AttemptTimeoutError

T = TypeVar("T")


class AttemptContext:
    """
    Deadline for a single attempt.

    The deadline covers obtaining a usable response, not reading its body. The
    timer behind it is released by :meth:`cancel`, which the executor calls as
    soon as an attempt fails, or hands to the response body when it succeeds.
    """

    def __init__(self, timeout_s: Optional[float]):
        self.timeout_s = timeout_s or 0.0
        self._expired: Optional[asyncio.Future] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._released = False
        if self.timeout_s > 0:
            loop = asyncio.get_running_loop()
            self._expired = loop.create_future()
            self._handle = loop.call_later(self.timeout_s, self._expire)

    @classmethod
    def begin(cls, timeout_s: Optional[float]) -> "AttemptContext":
        return cls(timeout_s)

    def _expire(self) -> None:
        self._handle = None
        if self._expired is not None and not self._expired.done():
            self._expired.set_result(None)

    @property
    def expired(self) -> bool:
        return self._expired is not None and self._expired.done()

    @property
    def released(self) -> bool:
        return self._released

    def cancel(self) -> None:
        if self._released:
            return
        self._released = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def run(self, aw: Awaitable[T]) -> T:
        """Await ``aw``, giving up with AttemptTimeoutError once the deadline passes."""
        if self._expired is None:
            return await aw
        if self.expired:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise AttemptTimeoutError(self.timeout_s)

        task = asyncio.ensure_future(aw)
        try:
            await asyncio.wait({task, self._expired}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await _discard(task)
            raise

        if task.done():
            return task.result()

        await _discard(task)
        raise AttemptTimeoutError(self.timeout_s)


async def _discard(task: "asyncio.Future") -> None:
    # a result that arrived too late is still an open response: close it
    if not task.done():
        task.cancel()
    for result in await asyncio.gather(task, return_exceptions=True):
        aclose = getattr(result, "aclose", None)
        if not isinstance(result, BaseException) and callable(aclose):
            await aclose()


class DeadlineBoundStream(httpx.AsyncByteStream):
    """
    Response body that owns its attempt's timer until it is closed.

    Reads are no longer bounded by the deadline. Closing the body releases the
    timer exactly once, however many times close is called.
    """

    def __init__(self, stream: Any, attempt: AttemptContext):
        self._stream = stream
        self.attempt = attempt

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self._stream:
            yield chunk

    async def aclose(self) -> None:
        try:
            await self._stream.aclose()
        finally:
            self.attempt.cancel()
