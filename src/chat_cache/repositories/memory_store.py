"""In-memory implementation of ResponseStore.

Entries live in a dict kept in ``created_at`` order: overwrites are
re-inserted at the end, so the first key is always the oldest entry.
The store is process-local and is lost on restart.
"""

import logging
import time
from collections.abc import Callable

from chat_cache.config import settings
from chat_cache.entities import CacheEntryEntity

logger = logging.getLogger(__name__)


class InMemoryResponseStore:
    """Bounded TTL map from conversation fingerprints to answers.

    This class satisfies the ResponseStore protocol through structural
    typing - no explicit inheritance needed.

    Example:
        ```python
        store = InMemoryResponseStore.create(ttl=3600, capacity=100)
        store.put(key, "Dhaka is the capital of Bangladesh.")
        entry = store.get(key)
        ```
    """

    def __init__(
        self,
        ttl: float | None = None,
        capacity: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            ttl: Maximum entry age in seconds. Defaults to settings.
            capacity: Maximum number of entries. Defaults to settings.
            clock: Source of the current time, injectable for tests.
        """
        self._ttl = settings.cache_ttl if ttl is None else ttl
        self._capacity = settings.cache_capacity if capacity is None else capacity
        if self._capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._clock = clock
        self._entries: dict[str, CacheEntryEntity] = {}

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @classmethod
    def create(
        cls,
        ttl: float | None = None,
        capacity: int | None = None,
    ) -> "InMemoryResponseStore":
        """Factory method to create an InMemoryResponseStore with defaults.

        Args:
            ttl: Entry TTL in seconds. If None, uses settings.
            capacity: Maximum entries. If None, uses settings.

        Returns:
            Configured InMemoryResponseStore
        """
        return cls(ttl=ttl, capacity=capacity)

    def _is_expired(self, entry: CacheEntryEntity, now: float) -> bool:
        return now - entry.created_at > self._ttl

    def get(self, key: str) -> CacheEntryEntity | None:
        """Look up a live entry.

        Stale entries are removed on the way out.

        Args:
            key: The conversation fingerprint

        Returns:
            The entry, or None if missing or expired
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            self._expirations += 1
            self._misses += 1
            logger.debug("Cache entry expired: key=%s", key[:12])
            return None

        self._hits += 1
        return entry

    def put(self, key: str, answer: str) -> CacheEntryEntity:
        """Insert or overwrite an entry.

        When the store is full and ``key`` is new, exactly one entry (the
        oldest by ``created_at``) is evicted before inserting.

        Args:
            key: The conversation fingerprint
            answer: The complete answer text

        Returns:
            The stored entry
        """
        entry = CacheEntryEntity(key=key, answer=answer, created_at=self._clock())

        if key in self._entries:
            # Re-insert so dict order stays sorted by created_at
            del self._entries[key]
        elif len(self._entries) >= self._capacity:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            self._evictions += 1
            logger.info("Evicted cache entry: key=%s", oldest_key[:12])

        self._entries[key] = entry
        return entry

    def delete(self, key: str) -> bool:
        """Delete an entry by key.

        Returns:
            True if an entry was removed, False otherwise
        """
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Remove every entry.

        Returns:
            Number of entries removed
        """
        count = len(self._entries)
        self._entries.clear()
        return count

    def purge_expired(self) -> int:
        """Remove all entries older than the TTL.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        self._expirations += len(expired)
        return len(expired)

    def __contains__(self, key: object) -> bool:
        """Check for a live entry without touching hit/miss counters."""
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not self._is_expired(entry, self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict:
        """Get store statistics.

        Returns:
            Dictionary with stats
        """
        return {
            "total_entries": len(self._entries),
            "capacity": self._capacity,
            "ttl": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "expirations": self._expirations,
        }

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def capacity(self) -> int:
        return self._capacity
