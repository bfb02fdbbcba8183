"""Upstream generator protocol.

Defines the interface for the hosted model the cache sits in front of.
Both methods must talk to the same model so that answers produced by
``generate`` (prefetch) and ``generate_stream`` (live requests) are
interchangeable in the cache.
"""

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from chat_cache.entities import Conversation
from chat_cache.models import GenerationParams


@runtime_checkable
class UpstreamGenerator(Protocol):
    """Protocol for LLM generation backends."""

    def ensure_configured(self) -> None:
        """Raise ConfigurationError if the backend cannot be called at all."""
        ...

    async def generate(self, conversation: Conversation, params: GenerationParams) -> str:
        """Generate a complete answer.

        Args:
            conversation: The messages to answer
            params: Model, system prompt, temperature and token limit

        Returns:
            The full answer text

        Raises:
            UpstreamError: If the provider call fails
        """
        ...

    def generate_stream(
        self, conversation: Conversation, params: GenerationParams
    ) -> AsyncIterator[str]:
        """Generate an answer as a stream of text chunks.

        Raises:
            UpstreamError: If the provider call fails, possibly mid-stream
        """
        ...

    async def is_available(self) -> bool:
        """Check if the provider is reachable with the configured credential."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
