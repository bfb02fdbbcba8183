"""
Shared fixtures: a controllable fake upstream and a fake clock.
"""

import asyncio
import re
import time

import pytest

from chat_cache.entities import Conversation
from chat_cache.errors import ConfigurationError
from chat_cache.models import GenerationParams
from chat_cache.repositories import InMemoryResponseStore
from chat_cache.services import ChatService, FollowUpPrefetcher, InFlightCoalescer, RateLimiter

QUESTION = "What is the capital of Bangladesh?"
ANSWER = "Dhaka is the capital of Bangladesh."
MESSAGES = [{"role": "user", "content": QUESTION}]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """In-process stand-in for the model provider.

    Counts calls, can hold every call on ``gate`` until it is set, and can
    be told to fail streaming or non-streaming calls, optionally after some
    chunks have already been streamed.
    """

    def __init__(self, answer: str = ANSWER, configured: bool = True) -> None:
        self.answer = answer
        self.answers: dict[str, str] = {}
        self.configured = configured
        self.gate: asyncio.Event | None = None
        self.fail_with: Exception | None = None
        self.fail_generate_with: Exception | None = None
        self.fail_after_chunks = 0
        self.delay = 0.0
        self.stream_calls = 0
        self.generate_calls = 0
        self.conversations: list[Conversation] = []
        self.closed = False

    @property
    def calls(self) -> int:
        return self.stream_calls + self.generate_calls

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("DeepSeek API key is not configured")

    def _answer_for(self, conversation: Conversation) -> str:
        return self.answers.get(conversation[-1].content, self.answer)

    async def _wait(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.gate is not None:
            await self.gate.wait()

    async def generate(self, conversation: Conversation, params: GenerationParams) -> str:
        self.generate_calls += 1
        self.conversations.append(conversation)
        await self._wait()
        if self.fail_generate_with is not None:
            raise self.fail_generate_with
        if self.fail_with is not None:
            raise self.fail_with
        return self._answer_for(conversation)

    async def generate_stream(self, conversation: Conversation, params: GenerationParams):
        self.stream_calls += 1
        self.conversations.append(conversation)
        await self._wait()
        chunks = re.findall(r"\S+\s*", self._answer_for(conversation))
        if self.fail_with is not None:
            for chunk in chunks[: self.fail_after_chunks]:
                yield chunk
            raise self.fail_with
        for chunk in chunks:
            yield chunk

    async def is_available(self) -> bool:
        return self.configured

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def params() -> GenerationParams:
    return GenerationParams(model="deepseek-chat", system_prompt="You are a test assistant.")


@pytest.fixture
def make_service(upstream, params):
    """Build a ChatService around the fake upstream with test-sized limits."""

    def _make(
        rate_limit: int = 10,
        rate_window: float = 60.0,
        rate_clock=None,
        store_clock=None,
        ttl: float = 3600.0,
        capacity: int = 100,
        request_timeout: float = 5.0,
        prefetch: bool = False,
        max_prefetch: int = 2,
    ) -> ChatService:
        store = InMemoryResponseStore(ttl=ttl, capacity=capacity, clock=store_clock or time.monotonic)
        limiter = RateLimiter(
            limit=rate_limit,
            window_seconds=rate_window,
            clock=rate_clock or time.monotonic,
        )
        coalescer = InFlightCoalescer()
        prefetcher = FollowUpPrefetcher(
            store=store,
            coalescer=coalescer,
            upstream=upstream,
            params=params,
            max_prefetch=max_prefetch,
            enabled=prefetch,
        )
        return ChatService(
            store=store,
            upstream=upstream,
            rate_limiter=limiter,
            coalescer=coalescer,
            params=params,
            prefetcher=prefetcher,
            request_timeout=request_timeout,
        )

    return _make
