"""HTTP handlers for chat operations.

Handlers convert between DTOs (API contracts) and service calls.
They handle HTTP concerns like status codes, headers and streaming.
"""

import logging
import math
from collections.abc import AsyncIterator

from fastapi import HTTPException, Request, status
from fastapi.responses import StreamingResponse

from chat_cache.dto import ChatRequest, ChatResponse, ClearCacheResponse, HealthCheckResponse
from chat_cache.errors import (
    ChatCacheError,
    ConfigurationError,
    RateLimitError,
    RequestTimeoutError,
    UpstreamError,
    ValidationError,
)
from chat_cache.models import AnswerSource
from chat_cache.services import ChatService

logger = logging.getLogger(__name__)

CACHE_STATUS_HEADER = "X-Cache"
# Last chunk of a stream that failed after its first chunk was sent
STREAM_ERROR_MARKER = "\n\n[error {status}] {detail}"
CACHE_STATUS = {
    AnswerSource.CACHE: "HIT",
    AnswerSource.UPSTREAM: "MISS",
    AnswerSource.COALESCED: "COALESCED",
}


def client_id_from_request(request: Request) -> str:
    """Derive the rate-limit identity of a request.

    Uses the first X-Forwarded-For address, then X-Real-IP, then the
    socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client is not None:
        return request.client.host
    return "unknown"


def to_http_exception(error: ChatCacheError) -> HTTPException:
    """Map a domain error to an HTTP error."""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, RateLimitError):
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again later",
            headers={"Retry-After": str(max(1, math.ceil(error.retry_after)))},
        )
    if isinstance(error, ConfigurationError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error)
        )
    if isinstance(error, RequestTimeoutError):
        return HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=str(error))
    if isinstance(error, UpstreamError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="An error occurred while processing your request",
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An error occurred while processing your request",
    )


class ChatHandler:
    """HTTP handlers for chat operations.

    This handler delegates business logic to ChatService
    and handles HTTP-specific concerns like:
    - Converting DTOs to entities and results to DTOs
    - Mapping domain errors to status codes
    - Streaming responses

    Example:
        ```python
        handler = ChatHandler(chat_service=service)

        @app.post("/api/chat")
        async def chat(request: Request, body: ChatRequest):
            return await handler.chat(body, client_id_from_request(request))
        ```
    """

    def __init__(self, chat_service: ChatService) -> None:
        """Initialize the chat handler.

        Args:
            chat_service: The chat service for business logic (required).
        """
        self._service = chat_service

    async def chat(
        self, request: ChatRequest, client_id: str
    ) -> ChatResponse | StreamingResponse:
        """Handle POST /api/chat requests.

        Args:
            request: The chat request DTO
            client_id: Rate-limit identity of the caller

        Returns:
            ChatResponse, or a StreamingResponse when request.stream is set

        Raises:
            HTTPException: Mapped from the domain error taxonomy
        """
        messages = request.to_entities()

        if request.stream:
            try:
                stream = self._service.open_stream(messages, client_id)
                chunks = aiter(stream)
                # Failures before the first chunk still get a real status code
                first_chunk = await anext(chunks, None)
            except ChatCacheError as e:
                raise to_http_exception(e) from e

            return StreamingResponse(
                self._stream_body(stream.key, first_chunk, chunks),
                media_type="text/plain; charset=utf-8",
                headers={CACHE_STATUS_HEADER: CACHE_STATUS[stream.source]},
            )

        try:
            result = await self._service.respond(messages, client_id)
        except ChatCacheError as e:
            raise to_http_exception(e) from e

        return ChatResponse(
            answer=result.answer,
            cached=result.cached,
            source=result.source.value,
            key=result.key,
        )

    async def _stream_body(
        self, key: str, first_chunk: str | None, chunks: AsyncIterator[str]
    ) -> AsyncIterator[str]:
        if first_chunk is None:
            return
        yield first_chunk

        # Status and headers are already sent; a failure ends the body with an error marker
        try:
            async for chunk in chunks:
                yield chunk
        except ChatCacheError as e:
            logger.warning("Stream aborted: key=%s error=%s", key[:12], e)
            error = to_http_exception(e)
            yield STREAM_ERROR_MARKER.format(status=error.status_code, detail=error.detail)

    async def get_stats(self) -> dict:
        """Handle GET /stats requests."""
        return self._service.get_stats()

    async def clear_cache(self) -> ClearCacheResponse:
        """Handle DELETE /cache requests."""
        count = self._service.clear_cache()
        return ClearCacheResponse(
            success=True,
            deleted_count=count,
            message="Cache cleared successfully",
        )

    async def health_check(self) -> HealthCheckResponse:
        """Handle GET /health requests."""
        is_healthy = await self._service.is_healthy()
        stats = self._service.get_stats()

        return HealthCheckResponse(
            status="healthy" if is_healthy else "unhealthy",
            upstream_healthy=is_healthy,
            cached_entries=stats["store"].get("total_entries", 0),
            in_flight=stats["in_flight"].get("in_flight", 0),
        )
