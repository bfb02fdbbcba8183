"""Tests for in-flight request coalescing."""

import asyncio

import pytest

from chat_cache.errors import UpstreamError
from chat_cache.services import ChunkRelay, InFlightCoalescer


@pytest.fixture
def coalescer() -> InFlightCoalescer:
    return InFlightCoalescer()


async def test_second_caller_joins_first(coalescer) -> None:
    gate = asyncio.Event()
    calls = 0

    async def compute(relay: ChunkRelay) -> str:
        nonlocal calls
        calls += 1
        await gate.wait()
        return "answer"

    first, first_joined = coalescer.begin_or_join("k", compute)
    second, second_joined = coalescer.begin_or_join("k", compute)

    assert first is second
    assert (first_joined, second_joined) == (False, True)
    assert "k" in coalescer

    gate.set()
    assert await first.task == "answer"
    assert calls == 1


async def test_entry_released_after_success(coalescer) -> None:
    async def compute(relay: ChunkRelay) -> str:
        return "done"

    entry, _ = coalescer.begin_or_join("k", compute)
    await entry.task
    await asyncio.sleep(0)

    assert "k" not in coalescer
    assert len(coalescer) == 0


async def test_failure_reaches_joiners_and_frees_slot(coalescer) -> None:
    gate = asyncio.Event()

    async def failing(relay: ChunkRelay) -> str:
        await gate.wait()
        raise UpstreamError("boom")

    entry, _ = coalescer.begin_or_join("k", failing)
    joined, was_joined = coalescer.begin_or_join("k", failing)
    assert was_joined

    gate.set()
    results = await asyncio.gather(
        asyncio.shield(entry.task), asyncio.shield(joined.task), return_exceptions=True
    )
    assert all(isinstance(r, UpstreamError) for r in results)

    await asyncio.sleep(0)
    assert "k" not in coalescer

    async def succeeding(relay: ChunkRelay) -> str:
        return "retried"

    retry, retry_joined = coalescer.begin_or_join("k", succeeding)
    assert retry_joined is False
    assert await retry.task == "retried"
    assert coalescer.get_stats()["failed"] == 1


async def test_settled_task_is_never_joined(coalescer) -> None:
    async def compute(relay: ChunkRelay) -> str:
        return "first"

    entry, _ = coalescer.begin_or_join("k", compute)
    await entry.task
    # Done callback may not have run yet; a new call must start fresh work

    async def again(relay: ChunkRelay) -> str:
        return "second"

    fresh, joined = coalescer.begin_or_join("k", again)
    assert joined is False
    assert await fresh.task == "second"


async def test_relay_is_closed_when_task_settles(coalescer) -> None:
    async def compute(relay: ChunkRelay) -> str:
        relay.publish("a")
        relay.publish("b")
        return "ab"

    entry, _ = coalescer.begin_or_join("k", compute)
    chunks = [chunk async for chunk in entry.relay.subscribe()]

    assert chunks == ["a", "b"]
    assert entry.relay.closed


async def test_wait_idle_and_cancel_all(coalescer) -> None:
    gate = asyncio.Event()

    async def slow(relay: ChunkRelay) -> str:
        await gate.wait()
        return "slow"

    coalescer.begin_or_join("a", slow)
    coalescer.begin_or_join("b", slow)
    await coalescer.cancel_all()

    assert len(coalescer) == 0
    await coalescer.wait_idle()


class TestChunkRelay:
    async def test_late_subscriber_sees_every_chunk(self) -> None:
        relay = ChunkRelay()
        relay.publish("one ")

        received: list[str] = []

        async def consume() -> None:
            async for chunk in relay.subscribe():
                received.append(chunk)

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0)
        relay.publish("two")
        relay.close()
        await consumer

        assert received == ["one ", "two"]
        assert relay.text == "one two"

    async def test_subscribe_deadline(self) -> None:
        relay = ChunkRelay()
        deadline = asyncio.get_running_loop().time() + 0.01

        with pytest.raises(TimeoutError):
            async for _ in relay.subscribe(deadline):
                pass

    async def test_publish_after_close_fails(self) -> None:
        relay = ChunkRelay()
        relay.close()

        with pytest.raises(RuntimeError):
            relay.publish("late")
