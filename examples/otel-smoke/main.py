import asyncio
import os
import random

import httpx

from reqop_core import Client, with_retry_policy, with_span_carrier_injected, with_tracing
from reqop_core.otel_setup import init_metrics, init_tracer
from reqop_core.strategy import BackoffWithJitter, binary_exponential

# Enable tracing / metrics via env (can still be disabled by user)
os.environ.setdefault("REQOP_OTEL_ENABLED", "1")
os.environ.setdefault("REQOP_OTEL_METRICS_ENABLED", "1")

# Defaults for local collector
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "http://127.0.0.1:4318")


def flaky_server(fail_prob: float):
    """In-process handler: fails randomly so the spans show retries."""

    async def handler(request: httpx.Request) -> httpx.Response:
        if random.random() < fail_prob:
            raise httpx.ConnectError("transient boom in reqop-core smoke demo", request=request)
        await asyncio.sleep(random.uniform(0.02, 0.15))
        return httpx.Response(200, json={"traceparent": request.headers.get("traceparent")})

    return handler


async def main() -> None:
    # REQOP_OTEL_EXPORTER=http (default) or grpc
    exporter = os.getenv("REQOP_OTEL_EXPORTER", "http").lower()
    if exporter not in ("http", "grpc"):
        print(f"[reqop-core] Unknown REQOP_OTEL_EXPORTER={exporter!r}, falling back to 'http'")
        exporter = "http"

    init_tracer(service_name="reqop-core-otel-smoke", exporter=exporter)
    init_metrics(service_name="reqop-core-otel-smoke", exporter=exporter)

    n_ops = int(os.getenv("REQOP_SMOKE_OPS", "50"))
    fail_prob = float(os.getenv("REQOP_SMOKE_FAIL_PROB", "0.5"))
    print(f"[reqop-core] running smoke: n_ops={n_ops}, fail_prob={fail_prob}, exporter={exporter}")

    http = httpx.AsyncClient(transport=httpx.MockTransport(flaky_server(fail_prob)))
    async with Client(
        with_retry_policy(1.0, 3, BackoffWithJitter(binary_exponential(0.05, max_delay_s=0.1))),
        with_tracing(None, "smoke", demo="otel-smoke"),
        with_span_carrier_injected(),
        http_client=http,
    ) as client:
        for i in range(n_ops):
            try:
                resp = await client.get(f"http://smoke.local/op/{i}")
                payload = (await resp.aread()).decode()
                print(f"[reqop-core] op #{i} -> {resp.status_code} {payload}")
            except httpx.HTTPError as exc:
                # all attempts failed; the span still carries the error
                print(f"[reqop-core] op #{i} failed after retries: {exc!r}")
    await http.aclose()

    print("[reqop-core] smoke run complete")


if __name__ == "__main__":
    asyncio.run(main())
