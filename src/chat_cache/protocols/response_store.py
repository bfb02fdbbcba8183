"""Response store protocol.

Defines the interface for a bounded, time-expiring map from cache keys
to complete answers.
"""

from typing import Protocol, runtime_checkable

from chat_cache.entities import CacheEntryEntity


@runtime_checkable
class ResponseStore(Protocol):
    """Protocol for answer storage backends.

    Any type that implements these methods satisfies the protocol,
    no explicit inheritance needed.
    """

    def get(self, key: str) -> CacheEntryEntity | None:
        """Look up a live entry.

        Args:
            key: The conversation fingerprint

        Returns:
            The entry, or None if missing or older than the TTL
        """
        ...

    def put(self, key: str, answer: str) -> CacheEntryEntity:
        """Insert or overwrite an entry, evicting the oldest one at capacity.

        Args:
            key: The conversation fingerprint
            answer: The complete answer text

        Returns:
            The stored entry
        """
        ...

    def delete(self, key: str) -> bool:
        """Delete an entry by key.

        Returns:
            True if an entry was removed, False otherwise
        """
        ...

    def clear(self) -> int:
        """Remove every entry.

        Returns:
            Number of entries removed
        """
        ...

    def __contains__(self, key: object) -> bool: ...

    def __len__(self) -> int: ...

    def get_stats(self) -> dict:
        """Get store statistics.

        Returns:
            Dictionary with stats (implementation-specific)
        """
        ...
