from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chat_cache.api.dependencies import ClientIdDep, HandlerDep, lifespan
from chat_cache.config import settings
from chat_cache.dto import (
    ChatRequest,
    ChatResponse,
    ClearCacheResponse,
    ErrorResponse,
    HealthCheckResponse,
)
from chat_cache.services import ChatService

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


def create_app(chat_service: ChatService | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        chat_service: Pre-built service (tests inject one with a fake
            upstream). If None, the lifespan builds one from settings.
    """
    app = FastAPI(
        title="Chat Cache API",
        description="Request-coalescing response cache in front of an LLM chat API",
        version="0.1.0",
        lifespan=lifespan,
    )
    if chat_service is not None:
        app.state.chat_service = chat_service

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Cache", "Retry-After"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "invalid payload")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": f"Invalid request: {location} {message}".strip()},
        )

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": "Chat Cache API",
            "version": "0.1.0",
            "description": "Request-coalescing response cache in front of an LLM chat API",
            "endpoints": {
                "chat": "/api/chat",
                "stats": "/stats",
                "cache": "/cache",
                "health": "/health",
                "docs": "/docs",
            },
        }

    @app.post("/api/chat", response_model=None, responses=ERROR_RESPONSES)
    async def chat(
        body: ChatRequest, handler: HandlerDep, client_id: ClientIdDep
    ) -> ChatResponse | StreamingResponse:
        """
        Answer a conversation, from cache when possible.

        Set ``stream`` to receive plain-text chunks; the ``X-Cache`` header
        tells whether the answer was a cache HIT, a MISS or COALESCED onto a
        concurrent identical request.

        Errors raised before the first chunk of a stream get their normal
        status code (502 for upstream failures, 504 for timeouts). If the
        upstream fails after chunks were sent, the body ends with the marker
        ``\\n\\n[error <status>] <message>``, e.g.
        ``[error 502] An error occurred while processing your request``.
        """
        return await handler.chat(body, client_id)

    @app.get("/stats", response_model=dict[str, Any])
    async def get_stats(handler: HandlerDep) -> dict[str, Any]:
        """Get cache, rate limiter, in-flight and prefetch statistics."""
        return await handler.get_stats()

    @app.delete("/cache", response_model=ClearCacheResponse)
    async def clear_cache(handler: HandlerDep) -> ClearCacheResponse:
        """Clear all cached answers."""
        return await handler.clear_cache()

    @app.get("/health", response_model=HealthCheckResponse)
    async def health(handler: HandlerDep) -> HealthCheckResponse:
        """Health check endpoint."""
        return await handler.health_check()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chat_cache.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
