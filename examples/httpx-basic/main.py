from __future__ import annotations
import asyncio
import io
import os

from reqop_core import Client, RequestDescriptor, with_retry_policy, with_standard_retry_policy
from reqop_core.classify import httpx_classifier
from reqop_core.strategy import RetryIf


async def main():
    base = os.getenv("REQOP_DEMO_URL", "https://httpbin.org")

    # 3 attempts, 2s each, exponential backoff with jitter in between
    async with Client(with_standard_retry_policy(2.0, 3)) as client:
        resp = await client.get(f"{base}/get")
        print("GET", resp.status_code, len(await resp.aread()), "bytes")

        # seekable bodies are rewound between attempts, never copied
        body = io.BytesIO(b'{"hello": "world"}')
        resp = await client.do(
            RequestDescriptor("PUT", f"{base}/put", {"content-type": "application/json"}, body),
            # give up at once on errors a retry cannot fix
            with_retry_policy(2.0, 5, RetryIf(httpx_classifier)),
            overall_timeout_s=10.0,
        )
        print("PUT", resp.status_code)
        await resp.aclose()


if __name__ == "__main__":
    asyncio.run(main())
