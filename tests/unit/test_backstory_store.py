"""Tests for catgen.core.backstory_store - TTL storage of backstories."""

from __future__ import annotations

import threading

import pytest

from catgen.core.backstory_store import BackstoryStore, TTLStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestTTLStore:
    """Test the generic expiring mapping."""

    def test_set_and_get(self, clock):
        store = TTLStore(60, clock=clock)
        store.set("a", 1)
        assert store.get("a") == 1
        assert "a" in store

    def test_missing_key(self, clock):
        assert TTLStore(60, clock=clock).get("nope") is None

    def test_entry_alive_at_exact_ttl(self, clock):
        """An entry exactly ttl seconds old is still present."""
        store = TTLStore(60, clock=clock)
        store.set("a", 1)
        clock.advance(60)
        assert store.get("a") == 1

    def test_expired_entry_removed_on_read(self, clock):
        """Reading an expired key evicts it."""
        store = TTLStore(60, clock=clock)
        store.set("a", 1)
        clock.advance(61)

        assert len(store) == 1  # not swept yet
        assert store.get("a") is None
        assert len(store) == 0

    def test_write_sweeps_all_expired_entries(self, clock):
        store = TTLStore(60, clock=clock)
        store.set("old1", 1)
        store.set("old2", 2)
        clock.advance(61)

        store.set("new", 3)

        assert len(store) == 1
        assert store.get("new") == 3

    def test_overwrite_resets_age(self, clock):
        """Last write wins and restarts the clock for that key."""
        store = TTLStore(60, clock=clock)
        store.set("a", 1)
        clock.advance(50)
        store.set("a", 2)
        clock.advance(50)
        assert store.get("a") == 2

    def test_delete(self, clock):
        store = TTLStore(60, clock=clock)
        store.set("a", 1)
        store.delete("a")
        store.delete("missing")
        assert "a" not in store


class TestBackstoryStore:
    """Test the backstory-specific wrapper."""

    def test_default_ttl_is_thirty_minutes(self):
        store = BackstoryStore()
        assert store._store.ttl_seconds == 1800

    def test_save_and_get(self, clock):
        store = BackstoryStore(clock=clock)
        store.save("Whiskerpaws", "A long story.")
        assert store.get("Whiskerpaws") == "A long story."

    def test_get_missing_returns_empty_string(self, clock):
        assert BackstoryStore(clock=clock).get("Nobody") == ""

    def test_empty_name_or_text_ignored(self, clock):
        store = BackstoryStore(clock=clock)
        store.save("", "text")
        store.save("Whiskerpaws", "")
        assert len(store) == 0
        assert store.get("") == ""

    def test_last_write_wins(self, clock):
        store = BackstoryStore(clock=clock)
        store.save("Whiskerpaws", "first")
        store.save("Whiskerpaws", "second")
        assert store.get("Whiskerpaws") == "second"
        assert len(store) == 1

    def test_expires_after_thirty_minutes(self, clock):
        store = BackstoryStore(clock=clock)
        store.save("Whiskerpaws", "A long story.")
        clock.advance(30 * 60 + 1)
        assert store.get("Whiskerpaws") == ""

    def test_concurrent_writes(self):
        """Interleaved writers leave one entry per name."""
        store = BackstoryStore()

        def writer(index: int) -> None:
            for i in range(200):
                store.save(f"cat-{i % 10}", f"story {index}-{i}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 10
        assert all(store.get(f"cat-{i}").startswith("story") for i in range(10))
