"""Tests for the per-client rate limiter."""

import asyncio

import pytest

from chat_cache.services import RateLimiter


@pytest.fixture
def limiter(clock) -> RateLimiter:
    return RateLimiter(limit=10, window_seconds=60.0, sweep_interval=0.01, clock=clock)


def test_allows_up_to_limit_then_rejects(limiter) -> None:
    results = [limiter.check_and_consume("1.2.3.4") for _ in range(11)]

    assert results[:10] == [True] * 10
    assert results[10] is False


def test_rejection_does_not_count(limiter, clock) -> None:
    for _ in range(10):
        limiter.check_and_consume("1.2.3.4")
    for _ in range(5):
        assert limiter.check_and_consume("1.2.3.4") is False

    assert limiter.remaining("1.2.3.4") == 0
    assert limiter.get_stats()["rejected"] == 5


def test_window_resets_after_expiry(limiter, clock) -> None:
    for _ in range(10):
        limiter.check_and_consume("1.2.3.4")
    assert limiter.check_and_consume("1.2.3.4") is False

    clock.advance(61)
    assert limiter.check_and_consume("1.2.3.4") is True
    assert limiter.remaining("1.2.3.4") == 9


def test_clients_are_independent(limiter) -> None:
    for _ in range(10):
        limiter.check_and_consume("1.2.3.4")

    assert limiter.check_and_consume("1.2.3.4") is False
    assert limiter.check_and_consume("5.6.7.8") is True


def test_retry_after(limiter, clock) -> None:
    assert limiter.retry_after("1.2.3.4") == 0.0

    limiter.check_and_consume("1.2.3.4")
    clock.advance(20)

    assert limiter.retry_after("1.2.3.4") == pytest.approx(40.0)


def test_sweep_removes_only_stale_windows(limiter, clock) -> None:
    limiter.check_and_consume("old")
    clock.advance(45)
    limiter.check_and_consume("new")
    clock.advance(20)

    assert limiter.sweep() == 1
    assert limiter.get_stats()["tracked_clients"] == 1


async def test_periodic_sweep_runs_until_stopped(limiter, clock) -> None:
    limiter.check_and_consume("old")
    clock.advance(61)

    limiter.start()
    await asyncio.sleep(0.05)
    await limiter.stop()

    assert limiter.get_stats()["tracked_clients"] == 0


def test_explicit_zero_limit_is_rejected() -> None:
    with pytest.raises(ValueError):
        RateLimiter(limit=0)
    with pytest.raises(ValueError):
        RateLimiter(limit=5, window_seconds=0)
