"""Tests for the in-memory response store."""

import pytest

from chat_cache.protocols import ResponseStore
from chat_cache.repositories import InMemoryResponseStore


@pytest.fixture
def store(clock) -> InMemoryResponseStore:
    return InMemoryResponseStore(ttl=60.0, capacity=3, clock=clock)


def test_satisfies_protocol(store) -> None:
    assert isinstance(store, ResponseStore)


def test_get_missing_returns_none(store) -> None:
    assert store.get("missing") is None


def test_repeated_gets_within_ttl(store, clock) -> None:
    store.put("k", "A")
    store.put("x", "X")
    for _ in range(3):
        clock.advance(5)
        assert store.get("k").answer == "A"

    store.put("y", "Y")
    assert store.get("k").answer == "A"


def test_entry_expires_after_ttl(store, clock) -> None:
    store.put("k", "A")
    clock.advance(60)
    assert store.get("k") is not None

    clock.advance(1)
    assert store.get("k") is None
    assert len(store) == 0
    assert store.get_stats()["expirations"] == 1


def test_capacity_evicts_exactly_one_oldest(store, clock) -> None:
    for index in range(3):
        store.put(f"k{index}", f"answer {index}")
        clock.advance(1)

    store.put("k3", "answer 3")

    assert len(store) == 3
    assert store.get("k0") is None
    assert [store.get(f"k{i}").answer for i in (1, 2, 3)] == ["answer 1", "answer 2", "answer 3"]
    assert store.get_stats()["evictions"] == 1


def test_overwrite_refreshes_age_and_does_not_evict(store, clock) -> None:
    store.put("k0", "old")
    clock.advance(1)
    store.put("k1", "one")
    clock.advance(1)
    store.put("k2", "two")
    clock.advance(1)

    store.put("k0", "new")
    assert len(store) == 3
    assert store.get_stats()["evictions"] == 0

    # k1 is now the oldest
    store.put("k3", "three")
    assert store.get("k1") is None
    assert store.get("k0").answer == "new"


def test_contains_ignores_expired(store, clock) -> None:
    store.put("k", "A")
    assert "k" in store
    clock.advance(61)
    assert "k" not in store


def test_purge_expired(store, clock) -> None:
    store.put("a", "A")
    clock.advance(30)
    store.put("b", "B")
    clock.advance(31)

    assert store.purge_expired() == 1
    assert "b" in store


def test_delete_and_clear(store) -> None:
    store.put("a", "A")
    store.put("b", "B")

    assert store.delete("a") is True
    assert store.delete("a") is False
    assert store.clear() == 1
    assert len(store) == 0


def test_rejects_zero_capacity() -> None:
    with pytest.raises(ValueError):
        InMemoryResponseStore(ttl=1.0, capacity=0)
