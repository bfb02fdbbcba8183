"""In-flight request coalescing.

Concurrent requests for the same cache key share one upstream computation.
The computation runs in its own task so that no single caller owns it:
callers that time out or disconnect stop waiting, while the task keeps
running for everyone else and still finishes its bookkeeping.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class ChunkRelay:
    """Fan out streamed text chunks to any number of subscribers.

    Every subscriber sees every chunk from the beginning, no matter when it
    subscribed, then stops once the relay is closed.
    """

    def __init__(self) -> None:
        self._chunks: list[str] = []
        self._closed = False
        self._event = asyncio.Event()

    def publish(self, chunk: str) -> None:
        if self._closed:
            raise RuntimeError("Cannot publish to a closed relay")
        self._chunks.append(chunk)
        self._wake()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._wake()

    def _wake(self) -> None:
        event, self._event = self._event, asyncio.Event()
        event.set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def text(self) -> str:
        """Everything published so far."""
        return "".join(self._chunks)

    def __len__(self) -> int:
        return len(self._chunks)

    async def subscribe(self, deadline: float | None = None) -> AsyncIterator[str]:
        """Yield chunks as they arrive until the relay closes.

        Args:
            deadline: Event loop time after which waiting raises TimeoutError

        Raises:
            TimeoutError: If the deadline passes while waiting for a chunk
        """
        loop = asyncio.get_running_loop()
        index = 0
        while True:
            while index < len(self._chunks):
                yield self._chunks[index]
                index += 1
            if self._closed:
                return

            event = self._event
            if deadline is None:
                await event.wait()
            else:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise TimeoutError
                await asyncio.wait_for(event.wait(), remaining)


ComputeFn = Callable[[ChunkRelay], Awaitable[str]]


@dataclass
class InFlightEntry:
    """A computation currently running upstream for one cache key."""

    key: str
    task: asyncio.Task[str]
    relay: ChunkRelay
    started_at: float = field(default_factory=time.monotonic)
    joiners: int = 0


class InFlightCoalescer:
    """Deduplicate concurrent computations by cache key.

    The coalescer does not cache results; it only guarantees that at most
    one computation per key runs at any time. Entries are removed as soon
    as their task settles, successfully or not, so a failed key can be
    retried immediately.

    Example:
        ```python
        coalescer = InFlightCoalescer()
        entry, joined = coalescer.begin_or_join(key, compute)
        answer = await asyncio.shield(entry.task)
        ```
    """

    def __init__(self) -> None:
        self._entries: dict[str, InFlightEntry] = {}
        self._started = 0
        self._joined = 0
        self._failed = 0

    def begin_or_join(self, key: str, compute_fn: ComputeFn) -> tuple[InFlightEntry, bool]:
        """Join the running computation for ``key`` or start a new one.

        Must be called from the event loop. There is no suspension point
        between the lookup and the registration, so the first caller for a
        key is always the only initiator.

        Args:
            key: Cache key of the computation
            compute_fn: Called with the entry's relay when a new computation
                starts; may publish chunks to it and returns the final text

        Returns:
            (entry, joined) where joined is True if an existing computation
            was reused and compute_fn was not called
        """
        entry = self._entries.get(key)
        if entry is not None and not entry.task.done():
            entry.joiners += 1
            self._joined += 1
            logger.debug("Joined in-flight request: key=%s joiners=%d", key[:12], entry.joiners)
            return entry, True

        relay = ChunkRelay()
        task = asyncio.get_running_loop().create_task(
            self._run(relay, compute_fn), name=f"inflight-{key[:12]}"
        )
        entry = InFlightEntry(key=key, task=task, relay=relay)
        self._entries[key] = entry
        self._started += 1
        task.add_done_callback(lambda t: self._release(entry))
        return entry, False

    async def _run(self, relay: ChunkRelay, compute_fn: ComputeFn) -> str:
        try:
            return await compute_fn(relay)
        finally:
            relay.close()

    def _release(self, entry: InFlightEntry) -> None:
        # A newer entry may already occupy the slot
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
        entry.relay.close()

        task = entry.task
        if task.cancelled():
            logger.debug("In-flight request cancelled: key=%s", entry.key[:12])
        elif task.exception() is not None:
            self._failed += 1
            logger.debug("In-flight request failed: key=%s error=%s", entry.key[:12], task.exception())

    def get(self, key: str) -> InFlightEntry | None:
        entry = self._entries.get(key)
        if entry is None or entry.task.done():
            return None
        return entry

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._entries)

    async def wait_idle(self) -> None:
        """Wait until no computation is running, including ones started meanwhile."""
        while self._entries:
            tasks = [entry.task for entry in self._entries.values()]
            await asyncio.gather(*tasks, return_exceptions=True)
            # Let done callbacks run
            await asyncio.sleep(0)

    async def cancel_all(self) -> None:
        """Cancel every running computation and wait for them to settle."""
        tasks = [entry.task for entry in self._entries.values()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await asyncio.sleep(0)

    def get_stats(self) -> dict:
        return {
            "in_flight": len(self._entries),
            "started": self._started,
            "joined": self._joined,
            "failed": self._failed,
        }
