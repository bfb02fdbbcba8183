"""Error taxonomy for the chat cache.

Validation and rate-limit errors are raised before any shared state is
touched. Upstream errors are the only ones raised after an in-flight slot
has been taken, and the coalescer releases that slot before they reach
callers. Prefetch errors never leave the prefetcher.
"""


class ChatCacheError(Exception):
    """Base class for all chat cache errors."""


class ConfigurationError(ChatCacheError):
    """A required setting (the upstream API key) is missing."""


class ValidationError(ChatCacheError):
    """The conversation payload is empty or malformed."""


class RateLimitError(ChatCacheError):
    """The client exceeded its request quota for the current window."""

    def __init__(self, client_id: str, retry_after: float) -> None:
        super().__init__(f"Too many requests from {client_id}, retry in {retry_after:.0f}s")
        self.client_id = client_id
        self.retry_after = retry_after


class UpstreamError(ChatCacheError):
    """The generation call to the model provider failed."""

    def __init__(self, message: str = "Generation failed", status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RequestTimeoutError(UpstreamError):
    """The per-request wall-clock budget ran out before an answer arrived."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Generation did not finish within {timeout:g}s")
        self.timeout = timeout


class PrefetchError(ChatCacheError):
    """A speculative follow-up generation failed. Logged, never surfaced."""
