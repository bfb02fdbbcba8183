"""Service layer for business logic.

This layer contains the cache, coalescing and throttling logic.
Services depend on protocols (interfaces), not concrete implementations,
making them testable and flexible.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)

Usage:
    ```python
    from chat_cache.repositories import DeepSeekClient
    from chat_cache.services import ChatService

    # Using factory method (recommended)
    service = ChatService.create(upstream=DeepSeekClient.create())

    # Or manual creation
    service = ChatService(store=store, upstream=upstream, rate_limiter=limiter,
                          coalescer=coalescer, params=params)
    ```
"""

from .chat_service import ChatService, ChatStream
from .coalescer import ChunkRelay, InFlightCoalescer, InFlightEntry
from .prefetcher import FollowUpPrefetcher
from .rate_limiter import RateLimiter

__all__ = [
    "ChatService",
    "ChatStream",
    "ChunkRelay",
    "FollowUpPrefetcher",
    "InFlightCoalescer",
    "InFlightEntry",
    "RateLimiter",
]
