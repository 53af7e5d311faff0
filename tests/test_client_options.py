from __future__ import annotations
import asyncio
import itertools

import httpx
import pytest

from reqop_core import (
    Client,
    Options,
    with_retry_policy,
    with_span_carrier_injected,
    with_standard_retry_policy,
    with_tracing,
)
from reqop_core.core import DEFAULT_MAX_ATTEMPTS, DEFAULT_REQUEST_TIMEOUT_S
from reqop_core.options import apply_options
from reqop_core.strategy import BackoffWithJitter, Limit, LockedRandom


def _failing(counter):
    def handler(request):
        next(counter)
        raise httpx.ConnectError("refused", request=request)

    return handler


def test_default_client_gets_standard_policy():
    client = Client(http_client=httpx.AsyncClient())
    policy = client.options.retry_policy
    assert policy.request_timeout_s == DEFAULT_REQUEST_TIMEOUT_S
    limit, backoff = policy.strategies
    assert limit.max_attempts == DEFAULT_MAX_ATTEMPTS
    assert isinstance(backoff, BackoffWithJitter)


def test_last_option_wins_and_replaces_whole_policy():
    g = LockedRandom(seed=1)
    opts = apply_options(
        Options(),
        [with_standard_retry_policy(1.0, 4), with_retry_policy(2.0, 2)],
        g,
    )
    assert opts.retry_policy.request_timeout_s == 2.0
    assert [type(s) for s in opts.retry_policy.strategies] == [Limit]


def test_tracing_options_keep_each_other():
    g = LockedRandom(seed=1)
    opts = apply_options(Options(), [with_span_carrier_injected(), with_tracing(True, "op")], g)
    assert opts.tracing.enabled is True
    assert opts.tracing.inject_carrier is True
    assert opts.operation_name == "op"

    opts = apply_options(opts, [with_tracing(False)], g)
    assert opts.tracing.enabled is False
    assert opts.tracing.inject_carrier is True
    assert opts.operation_name == ""


@pytest.mark.asyncio
async def test_call_options_override_client_defaults_for_that_call_only(make_client):
    counter = itertools.count()
    client = make_client(_failing(counter), with_retry_policy(1.0, 1))
    with pytest.raises(httpx.ConnectError):
        await client.get("http://svc/x", with_retry_policy(1.0, 3))
    with pytest.raises(httpx.ConnectError):
        await client.get("http://svc/x")
    assert next(counter) == 4
    assert client.options.retry_policy.strategies[0].max_attempts == 1


@pytest.mark.asyncio
async def test_call_tracing_options_do_not_leak_into_client(make_client):
    client = make_client(lambda r: httpx.Response(200), with_tracing(True))
    resp = await client.get("http://svc/x", with_span_carrier_injected())
    await resp.aclose()
    assert client.options.tracing.inject_carrier is False


@pytest.mark.asyncio
async def test_verbs_build_the_right_requests(make_client):
    seen = []

    def handler(request):
        seen.append((request.method, str(request.url), request.content, request.headers.get("x-id")))
        return httpx.Response(200)

    client = make_client(handler)
    for resp in [
        await client.get("http://svc/a", headers={"x-id": "1"}),
        await client.head("http://svc/b"),
        await client.post("http://svc/c", b"payload", headers={"x-id": "3"}),
    ]:
        await resp.aclose()

    assert seen == [
        ("GET", "http://svc/a", b"", "1"),
        ("HEAD", "http://svc/b", b"", None),
        ("POST", "http://svc/c", b"payload", "3"),
    ]


@pytest.mark.asyncio
async def test_response_or_error_never_both(make_client):
    calls = itertools.count()

    def handler(request):
        if next(calls) % 2:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200)

    client = make_client(handler, with_retry_policy(1.0, 1))
    for _ in range(6):
        try:
            resp = await client.get("http://svc/x")
        except httpx.ConnectError:
            continue
        assert isinstance(resp, httpx.Response)
        await resp.aclose()


@pytest.mark.asyncio
async def test_concurrent_calls_are_independent(make_client):
    async def handler(request):
        await asyncio.sleep(0.01)
        if request.url.path == "/bad":
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, text=request.url.path)

    client = make_client(handler, with_standard_retry_policy(1.0, 2))
    results = await asyncio.gather(
        *(client.get(f"http://svc/ok{i}") for i in range(5)),
        client.get("http://svc/bad"),
        return_exceptions=True,
    )
    for i, resp in enumerate(results[:5]):
        assert resp.text == f"/ok{i}"
        await resp.aclose()
    assert isinstance(results[5], httpx.ConnectError)


@pytest.mark.asyncio
async def test_client_closes_only_its_own_http_client():
    owned = Client()
    async with owned:
        pass
    assert owned._http_client.is_closed

    external = httpx.AsyncClient()
    async with Client(http_client=external):
        pass
    assert not external.is_closed
    await external.aclose()

