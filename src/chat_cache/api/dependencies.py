"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Services stored in app.state during lifespan
    - Dependency functions retrieve from request.app.state
    - Clean separation, no global mutable state
"""

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from chat_cache.config import settings
from chat_cache.handlers import ChatHandler, client_id_from_request
from chat_cache.logging_config import configure_logging
from chat_cache.repositories import DeepSeekClient
from chat_cache.services import ChatService

logger = logging.getLogger(__name__)


def get_handler(request: Request) -> ChatHandler:
    """Dependency injection for ChatHandler from app.state.

    Raises:
        RuntimeError: If handler is not initialized
    """
    handler = getattr(request.app.state, "chat_handler", None)
    if handler is None:
        raise RuntimeError("ChatHandler not initialized. Check lifespan setup.")
    return handler


def get_client_id(request: Request) -> str:
    """Dependency returning the rate-limit identity of the caller."""
    return client_id_from_request(request)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Initializes all layers and stores in app.state:
    1. Upstream client (DeepSeek) - unless a service was injected
    2. Service (business logic) - app.state.chat_service
    3. Handler (HTTP endpoints) - app.state.chat_handler

    Housekeeping jobs run for the lifetime of the app; on shutdown
    in-flight work is drained and the HTTP client closed.
    """
    configure_logging(settings.log_level)

    upstream: DeepSeekClient | None = None
    service: ChatService | None = getattr(app.state, "chat_service", None)
    if service is None:
        upstream = DeepSeekClient.create()
        service = ChatService.create(upstream=upstream)
        if not settings.has_api_key:
            logger.warning("DEEPSEEK_API_KEY is not set; chat requests will fail")

    app.state.chat_service = service
    app.state.chat_handler = ChatHandler(chat_service=service)
    service.start()
    logger.info(
        "Chat service initialized: ttl=%ss capacity=%d rate_limit=%d/%ss",
        settings.cache_ttl,
        settings.cache_capacity,
        settings.rate_limit_count,
        settings.rate_limit_window,
    )

    yield

    await service.stop()
    if upstream is not None:
        await upstream.close()
    del app.state.chat_handler
    del app.state.chat_service
    logger.info("Chat service shut down")


# Type aliases for cleaner dependency injection
HandlerDep = Annotated[ChatHandler, Depends(get_handler)]
ClientIdDep = Annotated[str, Depends(get_client_id)]
