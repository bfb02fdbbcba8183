"""Protocol interfaces for swappable implementations.

Protocols enable:
- Swapping the in-memory store or the DeepSeek client for other backends
- Unit testing with fake implementations
- Clear separation of concerns

Usage:
    ```python
    from chat_cache.protocols import ResponseStore, UpstreamGenerator

    store: ResponseStore = InMemoryResponseStore()
    upstream: UpstreamGenerator = DeepSeekClient.create()
    ```
"""

from .response_store import ResponseStore
from .upstream import UpstreamGenerator

__all__ = [
    "ResponseStore",
    "UpstreamGenerator",
]
