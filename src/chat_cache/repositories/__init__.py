"""Repository layer for data access.

This layer hides external dependencies (the answer store, the model
provider) behind protocol-based interfaces. Any class implementing the
required methods satisfies the protocol.
"""

from chat_cache.protocols import ResponseStore, UpstreamGenerator

from .deepseek_client import DeepSeekClient
from .memory_store import InMemoryResponseStore

__all__ = [
    "ResponseStore",
    "UpstreamGenerator",
    "DeepSeekClient",
    "InMemoryResponseStore",
]
