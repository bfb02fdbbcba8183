"""Response DTOs for API endpoints."""

from pydantic import BaseModel, Field


class ChatResponse(BaseModel):
    """Response DTO for a non-streaming chat request."""

    answer: str = Field(..., description="The complete generated answer")
    cached: bool = Field(..., description="Whether the answer was served from the cache")
    source: str = Field(..., description="Where the answer came from: cache, upstream or coalesced")
    key: str = Field(..., description="Fingerprint of the conversation")


class ErrorResponse(BaseModel):
    """Body of every error response."""

    error: str = Field(..., description="Human-readable error message")


class ClearCacheResponse(BaseModel):
    """Response DTO for cache clear operation."""

    success: bool = Field(..., description="Whether the operation succeeded")
    deleted_count: int = Field(..., description="Number of cached answers removed", ge=0)
    message: str = Field(..., description="Human-readable status message")


class HealthCheckResponse(BaseModel):
    """Response DTO for health check."""

    status: str = Field(..., description="Health status: 'healthy' or 'unhealthy'")
    upstream_healthy: bool = Field(..., description="Whether the model provider is reachable")
    cached_entries: int = Field(..., description="Number of answers currently cached", ge=0)
    in_flight: int = Field(..., description="Upstream calls currently running", ge=0)
