from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class AnswerSource(str, Enum):
    """Where an answer delivered to a caller came from."""

    CACHE = "cache"
    UPSTREAM = "upstream"
    COALESCED = "coalesced"


@dataclass(frozen=True)
class ChatResult:
    """Result of a non-streaming chat request."""

    key: str
    answer: str
    source: AnswerSource

    @property
    def cached(self) -> bool:
        return self.source is AnswerSource.CACHE


class GenerationParams(BaseModel):
    """Parameters sent with every upstream generation call."""

    model: str
    system_prompt: str
    temperature: float = 0.7
    max_tokens: int = 2048

    model_config = {"frozen": True}


@dataclass
class ServiceMetrics:
    """Track counters for the request orchestrator."""

    total_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    coalesced_joins: int = 0
    upstream_calls: int = 0
    upstream_failures: int = 0
    rate_limited: int = 0
    timeouts: int = 0
    total_lookup_time_ms: float = 0.0
    total_upstream_time_ms: float = 0.0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        lookups = self.cache_hits + self.cache_misses
        if lookups == 0:
            return 0.0
        return self.cache_hits / lookups

    @property
    def avg_lookup_time_ms(self) -> float:
        """Calculate average lookup time."""
        lookups = self.cache_hits + self.cache_misses
        if lookups == 0:
            return 0.0
        return self.total_lookup_time_ms / lookups

    @property
    def avg_upstream_time_ms(self) -> float:
        if self.upstream_calls == 0:
            return 0.0
        return self.total_upstream_time_ms / self.upstream_calls

    def record_hit(self, lookup_time_ms: float) -> None:
        """Record a cache hit."""
        self.cache_hits += 1
        self.total_lookup_time_ms += lookup_time_ms

    def record_miss(self, lookup_time_ms: float) -> None:
        """Record a cache miss."""
        self.cache_misses += 1
        self.total_lookup_time_ms += lookup_time_ms

    def record_upstream_call(self, duration_ms: float, failed: bool = False) -> None:
        """Record a finished upstream generation."""
        self.upstream_calls += 1
        self.total_upstream_time_ms += duration_ms
        if failed:
            self.upstream_failures += 1

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary."""
        return {
            "total_requests": self.total_requests,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "hit_rate": self.hit_rate,
            "avg_lookup_time_ms": self.avg_lookup_time_ms,
            "coalesced_joins": self.coalesced_joins,
            "upstream_calls": self.upstream_calls,
            "upstream_failures": self.upstream_failures,
            "avg_upstream_time_ms": self.avg_upstream_time_ms,
            "rate_limited": self.rate_limited,
            "timeouts": self.timeouts,
        }
