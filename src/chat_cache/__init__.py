"""Chat Cache - request-coalescing response cache for an LLM chat API.

This package provides a layered architecture for caching chat answers:

Layers:
    - protocols: Interface contracts (ResponseStore, UpstreamGenerator)
    - repositories: Data access implementations (in-memory store, DeepSeek)
    - services: Business logic (rate limiting, coalescing, prefetch, orchestration)
    - handlers: HTTP endpoint handlers
    - dto: Data transfer objects (API contracts)
    - entities: Domain models (internal)

Usage:
    ```python
    from chat_cache.repositories import DeepSeekClient
    from chat_cache.services import ChatService

    service = ChatService.create(upstream=DeepSeekClient.create())
    result = await service.respond(messages, client_id="1.2.3.4")
    ```

For HTTP API:
    ```python
    from chat_cache.api.app import app
    ```
"""

from chat_cache.config import settings
from chat_cache.dto import ChatRequest, ChatResponse
from chat_cache.entities import CacheEntryEntity, Message
from chat_cache.errors import (
    ChatCacheError,
    ConfigurationError,
    PrefetchError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamError,
    ValidationError,
)
from chat_cache.fingerprint import fingerprint
from chat_cache.handlers import ChatHandler
from chat_cache.protocols import ResponseStore, UpstreamGenerator
from chat_cache.repositories import DeepSeekClient, InMemoryResponseStore
from chat_cache.services import ChatService, FollowUpPrefetcher, InFlightCoalescer, RateLimiter

__all__ = [
    # Configuration
    "settings",
    # Protocols (interfaces)
    "ResponseStore",
    "UpstreamGenerator",
    # Services (business logic)
    "ChatService",
    "FollowUpPrefetcher",
    "InFlightCoalescer",
    "RateLimiter",
    "fingerprint",
    # Handlers (HTTP)
    "ChatHandler",
    # Repositories (data access)
    "DeepSeekClient",
    "InMemoryResponseStore",
    # Entities (domain models)
    "CacheEntryEntity",
    "Message",
    # DTOs (API contracts)
    "ChatRequest",
    "ChatResponse",
    # Errors
    "ChatCacheError",
    "ConfigurationError",
    "PrefetchError",
    "RateLimitError",
    "RequestTimeoutError",
    "UpstreamError",
    "ValidationError",
]
