"""
Caching for BQL query results and the dependency graph.

InMemoryCacheManager is a thread-safe key/value store with per-entry
expiration. ReadThroughCache sits in front of a manager and a loader: a miss
runs the loader, stores its result and returns it. Concurrent misses for the
same key share a single loader call.

Example:
    manager = InMemoryCacheManager("bql-results")
    cache = ReadThroughCache(manager, loader=run_query)

    issues = cache.get_with_refresh("type = bug", loader_input="type = bug", ttl=60)
"""

import logging
import threading
import time
from typing import Callable, Dict, Generic, Hashable, Iterable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

# Seconds an entry lives unless the caller passes a ttl
DEFAULT_EXPIRATION = 300.0

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")
I = TypeVar("I")  # noqa: E741


class InMemoryCacheManager(Generic[K, V]):
    """
    Thread-safe in-memory cache with per-entry time-to-live.

    Expired entries are dropped lazily when they are read. A ttl of None
    means the manager's default_ttl; a ttl <= 0 means the entry never expires.
    """

    def __init__(
        self,
        name: str = "default",
        default_ttl: float = DEFAULT_EXPIRATION,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            name: Label used in log messages
            default_ttl: Seconds an entry lives when set() gets no ttl
            clock: Monotonic time source, replaceable in tests
        """
        self.name = name
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[K, Tuple[V, Optional[float]]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _expires_at(self, ttl: Optional[float]) -> Optional[float]:
        if ttl is None:
            ttl = self.default_ttl
        if ttl <= 0:
            return None
        return self._clock() + ttl

    def _lookup(self, key: K) -> Tuple[Optional[V], bool]:
        # Caller holds the lock
        entry = self._entries.get(key)
        if entry is None:
            return None, False

        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return None, False

        return value, True

    def get(self, key: K) -> Tuple[Optional[V], bool]:
        """
        Look up a key.

        Returns:
            Tuple of (value, found); value is None when not found
        """
        with self._lock:
            return self._lookup(key)

    def get_many(self, keys: Iterable[K]) -> Tuple[Dict[K, V], bool]:
        """
        Look up several keys at once.

        Returns:
            Tuple of (hits, found) where hits maps each present key to its
            value and found is True when at least one key was present
        """
        hits: Dict[K, V] = {}
        with self._lock:
            for key in keys:
                value, found = self._lookup(key)
                if found:
                    hits[key] = value  # type: ignore[assignment]
        return hits, bool(hits)

    def get_with_refresh(self, key: K, ttl: Optional[float] = None) -> Tuple[Optional[V], bool]:
        """Look up a key and, on a hit, restart its time-to-live."""
        with self._lock:
            value, found = self._lookup(key)
            if found:
                self._entries[key] = (value, self._expires_at(ttl))  # type: ignore[assignment]
            return value, found

    def set(self, key: K, value: V, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = (value, self._expires_at(ttl))

    def delete(self, *keys: K) -> None:
        """Remove the given keys; missing keys are ignored."""
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def flush(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()
        logger.debug("Flushed cache %s", self.name)


class _Call(Generic[V]):
    """One in-flight loader call that other callers can wait on."""

    def __init__(self, generation: int):
        self.generation = generation
        self.done = threading.Event()
        self.value: Optional[V] = None
        self.error: Optional[BaseException] = None


class ReadThroughCache(Generic[K, I, V]):
    """
    Read-through cache over an InMemoryCacheManager.

    On a miss the loader is called with loader_input and its result is stored
    under the key. Only one loader call per key runs at a time; concurrent
    callers for that key wait for it and receive the same value or exception.
    Loader exceptions are never cached.

    invalidate() bumps a generation counter, so a load that was already
    running when the invalidation happened still returns its value to its
    callers but does not store it.
    """

    def __init__(
        self,
        manager: InMemoryCacheManager[K, V],
        loader: Callable[[I], V],
        disabled: bool = False,
    ):
        """
        Args:
            manager: Backing store
            loader: Called as loader(loader_input) on a miss
            disabled: When True every call goes straight to the loader
        """
        self.manager = manager
        self.loader = loader
        self.disabled = disabled

        self._lock = threading.Lock()
        self._calls: Dict[K, _Call[V]] = {}
        self._generation = 0

    def get(self, key: K, loader_input: I, ttl: Optional[float] = None) -> V:
        """Return the cached value for key, loading and storing it on a miss."""
        return self._read(key, loader_input, ttl, refresh=False)

    def get_with_refresh(self, key: K, loader_input: I, ttl: Optional[float] = None) -> V:
        """Like get(), but a hit restarts the entry's time-to-live."""
        return self._read(key, loader_input, ttl, refresh=True)

    def invalidate(self, key: Optional[K] = None) -> None:
        """
        Drop one key, or every key when called without one.

        Loads already in flight finish but are not stored.
        """
        with self._lock:
            self._generation += 1
            if key is None:
                self.manager.flush()
            else:
                self.manager.delete(key)

    def _read(self, key: K, loader_input: I, ttl: Optional[float], refresh: bool) -> V:
        if self.disabled:
            return self.loader(loader_input)

        with self._lock:
            if refresh:
                value, found = self.manager.get_with_refresh(key, ttl)
            else:
                value, found = self.manager.get(key)
            if found:
                logger.debug("Cache hit in %s for %r", self.manager.name, key)
                return value  # type: ignore[return-value]

            call = self._calls.get(key)
            leader = call is None
            if call is None:
                call = _Call(self._generation)
                self._calls[key] = call

        if not leader:
            logger.debug("Waiting on in-flight load in %s for %r", self.manager.name, key)
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.value  # type: ignore[return-value]

        logger.debug("Cache miss in %s for %r", self.manager.name, key)
        try:
            call.value = self.loader(loader_input)
        except BaseException as e:
            call.error = e
            raise
        else:
            with self._lock:
                if call.generation == self._generation:
                    self.manager.set(key, call.value, ttl)
                else:
                    logger.debug(
                        "Discarding load for %r in %s: invalidated while loading",
                        key,
                        self.manager.name,
                    )
            return call.value  # type: ignore[return-value]
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()


__all__ = ["InMemoryCacheManager", "ReadThroughCache", "DEFAULT_EXPIRATION"]
