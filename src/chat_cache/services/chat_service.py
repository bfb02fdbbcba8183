"""Chat request orchestration.

Ties the components together for every incoming conversation:

    validate -> RATE_CHECK -> CACHE_LOOKUP -> CACHE_HIT
                                           -> IN_FLIGHT_JOIN
                                           -> UPSTREAM_CALL -> STORE_WRITE, PREFETCH_TRIGGER

The upstream call, the store write and the prefetch trigger all run inside
one shared in-flight task. Callers only wait on it (shielded, with a
deadline), so a caller that times out never cancels work other callers
depend on, and the answer is still cached when it arrives.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Iterable, Mapping

from chat_cache.config import settings
from chat_cache.entities import Conversation, Message, last_user_message, to_conversation
from chat_cache.errors import RateLimitError, RequestTimeoutError, UpstreamError
from chat_cache.fingerprint import fingerprint
from chat_cache.models import AnswerSource, ChatResult, GenerationParams, ServiceMetrics
from chat_cache.protocols import ResponseStore, UpstreamGenerator
from chat_cache.repositories import InMemoryResponseStore
from chat_cache.services.coalescer import ChunkRelay, InFlightCoalescer, InFlightEntry
from chat_cache.services.prefetcher import FollowUpPrefetcher
from chat_cache.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

RawMessages = Iterable[Message | Mapping[str, object]]


class ChatStream:
    """An admitted streaming request.

    Admission (validation, rate limiting, cache lookup) has already
    happened when this object exists, so errors from those steps surface
    before the first byte is sent. Iterating yields the answer's chunks.
    """

    def __init__(self, key: str, source: AnswerSource, chunks: AsyncIterator[str]) -> None:
        self.key = key
        self.source = source
        self._chunks = chunks

    def __aiter__(self) -> AsyncIterator[str]:
        return self._chunks


class ChatService:
    """Core request orchestration service.

    Depends on PROTOCOLS for its collaborators:
    - ResponseStore: in-memory by default
    - UpstreamGenerator: DeepSeek by default

    Example:
        ```python
        service = ChatService.create(upstream=DeepSeekClient.create())

        result = await service.respond(
            [{"role": "user", "content": "What is the capital of Bangladesh?"}],
            client_id="1.2.3.4",
        )
        print(result.answer, result.source)

        async for chunk in service.stream(messages, client_id="1.2.3.4"):
            print(chunk, end="")
        ```
    """

    def __init__(
        self,
        store: ResponseStore,
        upstream: UpstreamGenerator,
        rate_limiter: RateLimiter,
        coalescer: InFlightCoalescer,
        params: GenerationParams,
        prefetcher: FollowUpPrefetcher | None = None,
        request_timeout: float | None = None,
    ) -> None:
        """Initialize the chat service.

        Args:
            store: Answer store (required).
            upstream: Model provider (required).
            rate_limiter: Per-client request gate (required).
            coalescer: In-flight deduplication (required, shared with the prefetcher).
            params: Generation parameters for every upstream call.
            prefetcher: Optional follow-up prefetcher.
            request_timeout: Per-request wall-clock budget in seconds. Defaults to settings.
        """
        self._store = store
        self._upstream = upstream
        self._rate_limiter = rate_limiter
        self._coalescer = coalescer
        self._params = params
        self._prefetcher = prefetcher
        self._timeout = settings.request_timeout if request_timeout is None else request_timeout
        if self._timeout <= 0:
            raise ValueError("request_timeout must be positive")
        self._metrics = ServiceMetrics()

    @classmethod
    def create(
        cls,
        upstream: UpstreamGenerator,
        store: ResponseStore | None = None,
        rate_limiter: RateLimiter | None = None,
        params: GenerationParams | None = None,
        request_timeout: float | None = None,
        prefetch: bool | None = None,
    ) -> "ChatService":
        """Factory method to create ChatService with sensible defaults.

        Args:
            upstream: Model provider (required).
            store: Answer store. If None, an InMemoryResponseStore from settings.
            rate_limiter: Rate limiter. If None, one from settings.
            params: Generation parameters. If None, built from settings.
            request_timeout: Per-request budget. If None, uses settings.
            prefetch: Enable follow-up prefetching. If None, uses settings.

        Returns:
            Configured ChatService instance
        """
        if store is None:
            store = InMemoryResponseStore.create()
        params = params or GenerationParams(
            model=settings.deepseek_model,
            system_prompt=settings.system_prompt,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
        coalescer = InFlightCoalescer()
        prefetcher = FollowUpPrefetcher(
            store=store,
            coalescer=coalescer,
            upstream=upstream,
            params=params,
            enabled=prefetch,
        )
        return cls(
            store=store,
            upstream=upstream,
            rate_limiter=RateLimiter() if rate_limiter is None else rate_limiter,
            coalescer=coalescer,
            params=params,
            prefetcher=prefetcher,
            request_timeout=request_timeout,
        )

    def _admit(self, messages: RawMessages, client_id: str) -> tuple[Conversation, str]:
        """Validate, check configuration and rate limit, then fingerprint.

        Raises:
            ValidationError: Malformed or empty conversation
            ConfigurationError: Upstream credential missing
            RateLimitError: Client over quota
        """
        conversation = to_conversation(messages)
        self._upstream.ensure_configured()

        self._metrics.total_requests += 1
        if not self._rate_limiter.check_and_consume(client_id):
            self._metrics.rate_limited += 1
            raise RateLimitError(client_id, self._rate_limiter.retry_after(client_id))

        return conversation, fingerprint(conversation)

    def _lookup(self, key: str) -> str | None:
        start_time = time.perf_counter()
        entry = self._store.get(key)
        lookup_time_ms = (time.perf_counter() - start_time) * 1000

        if entry is None:
            self._metrics.record_miss(lookup_time_ms)
            return None

        self._metrics.record_hit(lookup_time_ms)
        logger.debug("Cache hit: key=%s", key[:12])
        return entry.answer

    def _begin_or_join(self, conversation: Conversation, key: str) -> tuple[InFlightEntry, bool]:
        async def compute(relay: ChunkRelay) -> str:
            return await self._generate(conversation, key, relay)

        entry, joined = self._coalescer.begin_or_join(key, compute)
        if joined:
            self._metrics.coalesced_joins += 1
        return entry, joined

    async def _generate(self, conversation: Conversation, key: str, relay: ChunkRelay) -> str:
        """Run inside the shared in-flight task: stream upstream, store, prefetch."""
        logger.info("Calling upstream: key=%s messages=%d", key[:12], len(conversation))
        start_time = time.perf_counter()

        try:
            async for chunk in self._upstream.generate_stream(conversation, self._params):
                relay.publish(chunk)
            answer = relay.text
            if not answer:
                raise UpstreamError("Upstream returned an empty answer")
        except UpstreamError as e:
            self._metrics.record_upstream_call(
                (time.perf_counter() - start_time) * 1000, failed=True
            )
            logger.warning("Upstream call failed: key=%s error=%s", key[:12], e)
            raise
        except Exception as e:
            self._metrics.record_upstream_call(
                (time.perf_counter() - start_time) * 1000, failed=True
            )
            logger.exception("Upstream call crashed: key=%s", key[:12])
            raise UpstreamError("Generation failed") from e

        self._metrics.record_upstream_call((time.perf_counter() - start_time) * 1000)
        self._store.put(key, answer)

        question = last_user_message(conversation)
        if self._prefetcher is not None and question:
            self._prefetcher.schedule(key, question)

        return answer

    async def _settled(self, entry: InFlightEntry, timeout: float | None = None) -> str:
        """Wait for the shared task without being able to cancel it.

        Raises:
            UpstreamError: The computation failed or was cancelled by shutdown
            TimeoutError: ``timeout`` passed first
        """
        try:
            return await asyncio.wait_for(asyncio.shield(entry.task), timeout)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            # Only the shared task was cancelled, not this caller
            if entry.task.cancelled() and (current is None or not current.cancelling()):
                raise UpstreamError("Generation cancelled") from None
            raise

    async def respond(self, messages: RawMessages, client_id: str) -> ChatResult:
        """Answer a conversation as a single payload.

        Args:
            messages: Ordered role-tagged messages
            client_id: Identity used for rate limiting

        Returns:
            ChatResult with the answer and where it came from

        Raises:
            ValidationError: Malformed or empty conversation
            ConfigurationError: Upstream credential missing
            RateLimitError: Client over quota
            RequestTimeoutError: No answer within the request budget
            UpstreamError: Generation failed
        """
        conversation, key = self._admit(messages, client_id)

        cached = self._lookup(key)
        if cached is not None:
            return ChatResult(key=key, answer=cached, source=AnswerSource.CACHE)

        entry, joined = self._begin_or_join(conversation, key)
        try:
            answer = await self._settled(entry, self._timeout)
        except TimeoutError as e:
            self._metrics.timeouts += 1
            logger.warning("Request timed out after %ss: key=%s", self._timeout, key[:12])
            raise RequestTimeoutError(self._timeout) from e

        source = AnswerSource.COALESCED if joined else AnswerSource.UPSTREAM
        return ChatResult(key=key, answer=answer, source=source)

    def open_stream(self, messages: RawMessages, client_id: str) -> ChatStream:
        """Admit a streaming request and return its chunk stream.

        Must be called from the event loop. Cache hits are delivered as a
        single chunk; live and joined generations stream incrementally.

        Raises:
            ValidationError, ConfigurationError, RateLimitError: before any chunk
        """
        conversation, key = self._admit(messages, client_id)

        cached = self._lookup(key)
        if cached is not None:
            return ChatStream(key, AnswerSource.CACHE, self._single_chunk(cached))

        entry, joined = self._begin_or_join(conversation, key)
        deadline = asyncio.get_running_loop().time() + self._timeout
        source = AnswerSource.COALESCED if joined else AnswerSource.UPSTREAM
        return ChatStream(key, source, self._relay_chunks(entry, deadline))

    async def stream(self, messages: RawMessages, client_id: str) -> AsyncIterator[str]:
        """Answer a conversation as a stream of text chunks."""
        async for chunk in self.open_stream(messages, client_id):
            yield chunk

    async def _single_chunk(self, answer: str) -> AsyncIterator[str]:
        yield answer

    async def _relay_chunks(self, entry: InFlightEntry, deadline: float) -> AsyncIterator[str]:
        yielded = False
        try:
            async for chunk in entry.relay.subscribe(deadline):
                yielded = True
                yield chunk
        except TimeoutError as e:
            self._metrics.timeouts += 1
            logger.warning("Stream timed out after %ss: key=%s", self._timeout, entry.key[:12])
            raise RequestTimeoutError(self._timeout) from e

        # Relay is closed, so the task is settling; re-raises upstream failures
        answer = await self._settled(entry)
        if not yielded:
            # Joined a non-streaming computation (a prefetch)
            yield answer

    def start(self) -> None:
        """Start housekeeping jobs. Requires a running event loop."""
        self._rate_limiter.start()
        if self._prefetcher is not None:
            self._prefetcher.start()

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Stop housekeeping and finish or cancel in-flight work.

        Args:
            drain_timeout: Seconds to let running computations finish
                before they are cancelled.
        """
        await self._rate_limiter.stop()
        if self._prefetcher is not None:
            await self._prefetcher.stop()

        try:
            await asyncio.wait_for(self._coalescer.wait_idle(), drain_timeout)
        except TimeoutError:
            logger.warning("Cancelling %d in-flight requests on shutdown", len(self._coalescer))
            await self._coalescer.cancel_all()

    def clear_cache(self) -> int:
        """Remove every cached answer.

        Returns:
            Number of entries removed
        """
        count = self._store.clear()
        logger.info("Cleared %d cached answers", count)
        return count

    def get_stats(self) -> dict:
        """Get orchestrator and component statistics."""
        return {
            "requests": self._metrics.to_dict(),
            "store": self._store.get_stats(),
            "rate_limiter": self._rate_limiter.get_stats(),
            "in_flight": self._coalescer.get_stats(),
            "prefetch": self._prefetcher.get_stats() if self._prefetcher else None,
            "request_timeout": self._timeout,
        }

    async def is_healthy(self) -> bool:
        """Check if the upstream provider is reachable."""
        return await self._upstream.is_available()

    @property
    def metrics(self) -> ServiceMetrics:
        return self._metrics

    @property
    def store(self) -> ResponseStore:
        """Get the underlying store (for testing)."""
        return self._store

    @property
    def coalescer(self) -> InFlightCoalescer:
        """Get the underlying coalescer (for testing)."""
        return self._coalescer

    @property
    def prefetcher(self) -> FollowUpPrefetcher | None:
        return self._prefetcher

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter
