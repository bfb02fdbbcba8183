#!/usr/bin/env python3
"""
Demo script for the chat cache API.

Sends the same question a few times to a running server to show a cache
miss, a cache hit, and concurrent requests coalescing onto one upstream
call. Start the server first:

    DEEPSEEK_API_KEY=... python -m chat_cache.api.app
"""

import asyncio
import sys
import time

import httpx

BASE_URL = "http://localhost:8000"
QUESTION = "What is the capital of Bangladesh?"


def print_section(title: str) -> None:
    """Print a section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


async def ask(client: httpx.AsyncClient, question: str, stream: bool = False) -> tuple[str, str, float]:
    """Send one question and return (cache status, answer, elapsed ms)."""
    payload = {"messages": [{"role": "user", "content": question}], "stream": stream}
    start_time = time.time()

    if stream:
        async with client.stream("POST", "/api/chat", json=payload) as response:
            response.raise_for_status()
            answer = "".join([chunk async for chunk in response.aiter_text()])
            status = response.headers.get("x-cache", "?")
    else:
        response = await client.post("/api/chat", json=payload)
        response.raise_for_status()
        data = response.json()
        answer = data["answer"]
        status = data["source"]

    return status, answer, (time.time() - start_time) * 1000


async def demo_miss_then_hit(client: httpx.AsyncClient) -> None:
    """Ask the same question twice."""
    print_section("Cache miss, then hit")

    for attempt in range(2):
        status, answer, elapsed = await ask(client, QUESTION)
        print(f"  [{attempt + 1}] {status:<10} {elapsed:8.1f}ms  {answer[:60]!r}")


async def demo_coalescing(client: httpx.AsyncClient) -> None:
    """Fire five identical questions at once."""
    print_section("Concurrent identical requests")

    question = "Summarize the history of the Sundarbans in two sentences."
    results = await asyncio.gather(*(ask(client, question, stream=True) for _ in range(5)))
    for index, (status, answer, elapsed) in enumerate(results, start=1):
        print(f"  [{index}] {status:<10} {elapsed:8.1f}ms  {answer[:60]!r}")


async def demo_stats(client: httpx.AsyncClient) -> None:
    print_section("Statistics")
    response = await client.get("/stats")
    response.raise_for_status()
    requests = response.json()["requests"]
    for name in ("total_requests", "cache_hits", "coalesced_joins", "upstream_calls", "hit_rate"):
        print(f"  {name:<18} {requests[name]}")


async def main() -> int:
    async with httpx.AsyncClient(base_url=BASE_URL, timeout=90.0) as client:
        try:
            await client.get("/health")
        except httpx.HTTPError as e:
            print(f"Server not reachable at {BASE_URL}: {e}")
            return 1

        await demo_miss_then_hit(client)
        await demo_coalescing(client)
        await demo_stats(client)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
