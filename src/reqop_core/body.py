from __future__ import annotations

import asyncio
import io
from typing import Any, AsyncIterator, Optional

from .errors import BodyPreparationError

CHUNK_SIZE = 64 * 1024


def _is_seekable(body: Any) -> bool:
    # text streams are re-encoded in memory; their offsets are not byte offsets
    if isinstance(body, io.TextIOBase):
        return False
    if not all(callable(getattr(body, name, None)) for name in ("read", "seek", "close")):
        return False
    seekable = getattr(body, "seekable", None)
    return seekable() if callable(seekable) else True


class ReplayableBody:
    """
    A request body that every attempt can read again from offset zero.

    The source is rewound, never copied, between attempts. It is closed once,
    by the executor, when the call returns.
    """

    def __init__(self, source: Any):
        self._source = source
        self._closed = False
        self.length = self._measure()

    def _measure(self) -> Optional[int]:
        try:
            end = self._source.seek(0, io.SEEK_END)
            self._source.seek(0, io.SEEK_SET)
        except (OSError, ValueError):
            return None
        return end if isinstance(end, int) else None

    @property
    def source(self) -> Any:
        return self._source

    def rewind(self) -> None:
        self._source.seek(0, io.SEEK_SET)

    async def chunks(self) -> AsyncIterator[bytes]:
        """Read the source for one attempt. The source itself stays open."""
        while True:
            chunk = self._source.read(CHUNK_SIZE)
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._source.close()


async def _drain(body: Any) -> bytes:
    if hasattr(body, "read"):
        data = body.read()
        if asyncio.iscoroutine(data):
            data = await data
        return data.encode("utf-8") if isinstance(data, str) else bytes(data)
    if hasattr(body, "__aiter__"):
        return b"".join([bytes(chunk) async for chunk in body])
    return b"".join(bytes(chunk) for chunk in body)


async def _close_original(body: Any) -> None:
    aclose = getattr(body, "aclose", None)
    if callable(aclose):
        await aclose()
        return
    close = getattr(body, "close", None)
    if callable(close):
        close()


async def capture_body(body: Any) -> ReplayableBody:
    """
    Turn ``body`` into a :class:`ReplayableBody`.

    Seekable sources (read + seek + close) are used as-is. Byte strings are
    wrapped in memory. Anything else readable or iterable is drained into
    memory and the original is closed.
    """
    if isinstance(body, str):
        return ReplayableBody(io.BytesIO(body.encode("utf-8")))
    if isinstance(body, (bytes, bytearray, memoryview)):
        return ReplayableBody(io.BytesIO(bytes(body)))
    if _is_seekable(body):
        return ReplayableBody(body)

    try:
        try:
            data = await _drain(body)
        finally:
            await _close_original(body)
    except Exception as exc:
        raise BodyPreparationError(f"error preparing request body: {exc}") from exc
    return ReplayableBody(io.BytesIO(data))
