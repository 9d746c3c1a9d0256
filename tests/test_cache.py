"""
Tests for InMemoryCacheManager and ReadThroughCache.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from bql import InMemoryCacheManager, ReadThroughCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(clock):
    return InMemoryCacheManager("test", default_ttl=60, clock=clock)


class TestInMemoryCacheManager:
    """Basic key/value behavior and expiration."""

    def test_get_existing_value(self, manager):
        """Test that a stored value is returned with found=True."""
        manager.set("food", "apple")
        assert manager.get("food") == ("apple", True)

    def test_get_missing_value(self, manager):
        """Test that a missing key returns (None, False)."""
        assert manager.get("food") == (None, False)

    def test_stores_structured_values(self, manager):
        """Test that containers are stored and returned intact."""
        value = {"name": "x", "items": [1, 2]}
        manager.set("key", value)

        got, found = manager.get("key")
        assert found
        assert got == value

    def test_entries_expire(self, manager, clock):
        """Test that an entry disappears once its ttl has elapsed."""
        manager.set("food", "apple", ttl=10)
        clock.advance(9)
        assert manager.get("food") == ("apple", True)

        clock.advance(1)
        assert manager.get("food") == (None, False)
        assert len(manager) == 0

    def test_default_ttl(self, manager, clock):
        """Test that set() without a ttl uses the manager's default."""
        manager.set("food", "apple")
        clock.advance(61)
        assert manager.get("food") == (None, False)

    def test_non_positive_ttl_never_expires(self, manager, clock):
        """Test that a ttl of zero keeps the entry forever."""
        manager.set("food", "apple", ttl=0)
        clock.advance(10**6)
        assert manager.get("food") == ("apple", True)

    def test_get_with_refresh_extends_expiry(self, manager, clock):
        """Test that a refreshing read restarts the entry's ttl."""
        manager.set("food", "apple", ttl=10)
        clock.advance(8)
        assert manager.get_with_refresh("food", ttl=10) == ("apple", True)

        clock.advance(8)
        assert manager.get("food") == ("apple", True)

    def test_get_with_refresh_missing(self, manager):
        """Test that a refreshing read of a missing key reports a miss."""
        assert manager.get_with_refresh("food", ttl=10) == (None, False)

    def test_get_many(self, manager):
        """Test that get_many returns only the present keys."""
        manager.set("food", "apple")
        manager.set("drink", "juice")

        assert manager.get_many(["food", "drink", "dessert"]) == (
            {"food": "apple", "drink": "juice"},
            True,
        )
        assert manager.get_many(["dessert"]) == ({}, False)
        assert manager.get_many([]) == ({}, False)

    def test_delete(self, manager):
        """Test that delete removes the given keys and ignores unknown ones."""
        manager.set("food", "apple")
        manager.set("drink", "juice")

        manager.delete("food", "missing")

        assert manager.get("food") == (None, False)
        assert manager.get("drink") == ("juice", True)

    def test_delete_without_keys(self, manager):
        """Test that delete() with no keys removes nothing."""
        manager.set("food", "apple")
        manager.delete()
        assert len(manager) == 1

    def test_flush(self, manager):
        """Test that flush empties the manager."""
        manager.set("food", "apple")
        manager.set("drink", "juice")

        manager.flush()

        assert len(manager) == 0


class TestReadThroughCache:
    """Loader invocation, disabled mode and invalidation."""

    def test_miss_loads_and_stores(self, manager):
        """Test that a miss calls the loader once and stores its result."""
        calls = []

        def loader(arg):
            calls.append(arg)
            return [arg, arg]

        cache = ReadThroughCache(manager, loader)

        assert cache.get("key", "x") == ["x", "x"]
        assert cache.get("key", "y") == ["x", "x"]
        assert calls == ["x"]
        assert manager.get("key") == (["x", "x"], True)

    def test_hit_skips_loader(self, manager):
        """Test that a cached value is returned without calling the loader."""
        manager.set("key", "cached")
        cache = ReadThroughCache(manager, lambda _: pytest.fail("loader called"))

        assert cache.get_with_refresh("key", None, ttl=10) == "cached"

    def test_disabled_always_loads(self, manager):
        """Test that a disabled cache ignores stored values."""
        calls = []

        def loader(arg):
            calls.append(arg)
            return arg

        cache = ReadThroughCache(manager, loader, disabled=True)
        manager.set("key", "cached")

        assert cache.get("key", "fresh") == "fresh"
        assert cache.get_with_refresh("key", "again") == "again"
        assert calls == ["fresh", "again"]

    def test_loader_error_propagates_and_is_not_cached(self, manager):
        """Test that loader failures reach the caller and are retried next time."""
        attempts = []

        def loader(_):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("database down")
            return "ok"

        cache = ReadThroughCache(manager, loader)

        with pytest.raises(RuntimeError, match="database down"):
            cache.get("key", None)

        assert manager.get("key") == (None, False)
        assert cache.get("key", None) == "ok"

    def test_invalidate_key(self, manager):
        """Test that invalidating one key leaves the others cached."""
        counter = iter(range(100))
        cache = ReadThroughCache(manager, lambda _: next(counter))

        assert cache.get("a", None) == 0
        assert cache.get("b", None) == 1

        cache.invalidate("a")

        assert cache.get("a", None) == 2
        assert cache.get("b", None) == 1

    def test_invalidate_all(self, manager):
        """Test that invalidate() without a key flushes everything."""
        counter = iter(range(100))
        cache = ReadThroughCache(manager, lambda _: next(counter))
        cache.get("a", None)
        cache.get("b", None)

        cache.invalidate()

        assert len(manager) == 0


class TestReadThroughCacheConcurrency:
    """Single-flight loading."""

    def test_concurrent_misses_share_one_load(self, manager):
        """Test that callers arriving during a load wait for it instead of loading again."""
        started = threading.Event()
        release = threading.Event()
        calls = []

        def loader(arg):
            calls.append(arg)
            started.set()
            release.wait(timeout=5)
            return f"value-{arg}"

        cache = ReadThroughCache(manager, loader)

        with ThreadPoolExecutor(max_workers=4) as pool:
            first = pool.submit(cache.get, "key", "leader")
            assert started.wait(timeout=5)
            followers = [pool.submit(cache.get, "key", "follower") for _ in range(3)]

            # Followers must be parked on the in-flight call, not loading
            assert not any(f.done() for f in followers)
            release.set()

            results = [first.result(timeout=5)] + [f.result(timeout=5) for f in followers]

        assert results == ["value-leader"] * 4
        assert calls == ["leader"]

    def test_concurrent_waiters_share_exception(self, manager):
        """Test that a failing load raises in every waiting caller."""
        started = threading.Event()
        release = threading.Event()

        def loader(_):
            started.set()
            release.wait(timeout=5)
            raise ValueError("boom")

        cache = ReadThroughCache(manager, loader)

        with ThreadPoolExecutor(max_workers=2) as pool:
            first = pool.submit(cache.get, "key", None)
            assert started.wait(timeout=5)
            second = pool.submit(cache.get, "key", None)
            release.set()

            for future in (first, second):
                with pytest.raises(ValueError, match="boom"):
                    future.result(timeout=5)

    def test_invalidate_during_load_discards_result(self, manager):
        """Test that a load overtaken by invalidation is returned but not stored."""
        started = threading.Event()
        release = threading.Event()

        def loader(arg):
            started.set()
            release.wait(timeout=5)
            return arg

        cache = ReadThroughCache(manager, loader)

        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(cache.get, "key", "stale")
            assert started.wait(timeout=5)
            cache.invalidate()
            release.set()

            assert future.result(timeout=5) == "stale"

        assert manager.get("key") == (None, False)
