from __future__ import annotations
import io
import itertools

import httpx
import pytest

from reqop_core import BodyPreparationError, RequestDescriptor, with_retry_policy
from reqop_core.body import capture_body


class CountingBody(io.BytesIO):
    """Seekable body that remembers how often it was closed."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.close_count = 0

    def close(self):
        self.close_count += 1
        super().close()


class Chunks:
    def __init__(self, parts):
        self.parts = parts
        self.closed = False

    def __iter__(self):
        return iter(self.parts)

    def close(self):
        self.closed = True


class AsyncChunks:
    def __init__(self, parts):
        self.parts = parts
        self.closed = False

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for p in self.parts:
            yield p

    async def aclose(self):
        self.closed = True


class BrokenReader:
    closed = False

    def read(self):
        raise OSError("disk gone")

    def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_seekable_source_is_used_without_copy():
    buf = io.BytesIO(b"payload")
    body = await capture_body(buf)
    assert body.source is buf
    assert body.length == 7


@pytest.mark.asyncio
async def test_bytes_replay_identically_after_rewind():
    body = await capture_body(b"abc" * 1000)
    first = b"".join([c async for c in body.chunks()])
    body.rewind()
    second = b"".join([c async for c in body.chunks()])
    assert first == second == b"abc" * 1000


@pytest.mark.asyncio
async def test_text_is_encoded_as_utf8():
    body = await capture_body("héllo")
    assert body.source.getvalue() == "héllo".encode("utf-8")

    stream = io.StringIO("héllo")
    body = await capture_body(stream)
    assert body.source.getvalue() == "héllo".encode("utf-8")
    assert stream.closed


@pytest.mark.asyncio
async def test_iterables_are_drained_and_closed():
    chunks = Chunks([b"a", b"b", b"c"])
    body = await capture_body(chunks)
    assert body.source.getvalue() == b"abc"
    assert chunks.closed

    achunks = AsyncChunks([b"x", b"y"])
    body = await capture_body(achunks)
    assert body.source.getvalue() == b"xy"
    assert achunks.closed


@pytest.mark.asyncio
async def test_unreadable_body_fails_preparation():
    reader = BrokenReader()
    with pytest.raises(BodyPreparationError):
        await capture_body(reader)
    assert reader.closed


@pytest.mark.asyncio
async def test_close_is_idempotent():
    src = CountingBody(b"x")
    body = await capture_body(src)
    body.close()
    body.close()
    assert src.close_count == 1


@pytest.mark.asyncio
async def test_every_attempt_sees_the_full_body(make_client):
    calls = itertools.count()
    seen = []

    def handler(request: httpx.Request):
        seen.append((request.content, request.headers.get("content-length")))
        if next(calls) < 2:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(201)

    client = make_client(handler, with_retry_policy(1.0, 5))
    resp = await client.post("http://svc/items", b'{"k": "v"}')
    await resp.aclose()

    assert resp.status_code == 201
    assert seen == [(b'{"k": "v"}', "10")] * 3


@pytest.mark.asyncio
async def test_caller_seekable_body_closed_once_after_retries(make_client):
    calls = itertools.count()
    seen = []
    src = CountingBody(b"seekable-body")

    def handler(request: httpx.Request):
        seen.append(request.content)
        if next(calls) < 2:
            raise httpx.ReadError("reset", request=request)
        return httpx.Response(200)

    client = make_client(handler, with_retry_policy(1.0, 3))
    resp = await client.do(RequestDescriptor("PUT", "http://svc/blob", body=src))
    await resp.aclose()

    assert seen == [b"seekable-body"] * 3
    assert src.close_count == 1


@pytest.mark.asyncio
async def test_body_prep_error_makes_no_attempt(make_client):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200)

    client = make_client(handler)
    with pytest.raises(BodyPreparationError):
        await client.post("http://svc/items", BrokenReader())
    assert calls == []
