"""Key/value stores for series fragments with per-entry expiration."""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, NamedTuple

from tscache.exceptions import ConfigError
from tscache.types import SeriesFragment


class CacheStore(ABC):
    """Abstract base class for fragment caches.

    Implementations own their synchronization: concurrent ``get``/``set`` from
    several resolutions must never observe a torn entry.
    """

    @abstractmethod
    def get(self, key: str) -> SeriesFragment | None:
        """Return the live entry for ``key``, or None if absent or expired.

        :param key: Cache key.
        :returns: Stored fragment or None.
        """
        ...

    @abstractmethod
    def set(self, key: str, value: SeriesFragment, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``, replacing any entry and resetting expiry.

        :param key: Cache key.
        :param value: Fragment to store.
        :param ttl: Lifetime in seconds; None uses the store default, zero or
            less never expires.
        """
        ...


class _Entry(NamedTuple):
    value: SeriesFragment
    expires_at: float | None


class MemoryCacheStore(CacheStore):
    """In-process cache with lazy expiry, periodic sweeps and optional LRU bound.

    Expired entries are dropped when next touched, so an entry past its TTL is
    always reported absent. Entries nobody asks for again are reclaimed by a
    sweep that runs on the first ``get``/``set`` after each ``check_period``
    (or on demand via ``purge_expired``).

    :param default_ttl: Lifetime in seconds used when ``set`` gets no ttl.
    :param max_entries: Capacity bound; least-recently-used entries are
        evicted beyond it. None means unbounded.
    :param check_period: Seconds between expiry sweeps; zero or less disables
        them.
    :param clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        default_ttl: float = 600.0,
        max_entries: int | None = None,
        check_period: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ConfigError(f"max_entries must be at least 1, got {max_entries}")
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self.check_period = check_period
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()
        self._last_sweep = clock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expired = 0

    def _live(self, key: str, now: float) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= now:
            del self._entries[key]
            self._expired += 1
            return None
        return entry

    def _purge(self, now: float) -> int:
        # Caller holds the lock.
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.expires_at is not None and entry.expires_at <= now
        ]
        for key in expired:
            del self._entries[key]
        self._expired += len(expired)
        self._last_sweep = now
        return len(expired)

    def _sweep_if_due(self, now: float) -> None:
        if self.check_period > 0 and now - self._last_sweep >= self.check_period:
            self._purge(now)

    def get(self, key: str) -> SeriesFragment | None:
        with self._lock:
            now = self._clock()
            self._sweep_if_due(now)
            entry = self._live(key, now)
            if entry is None:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: SeriesFragment, ttl: float | None = None) -> None:
        if ttl is None:
            ttl = self.default_ttl
        with self._lock:
            now = self._clock()
            self._sweep_if_due(now)
            expires_at = now + ttl if ttl > 0 else None
            self._entries[key] = _Entry(tuple(value), expires_at)
            self._entries.move_to_end(key)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    self._entries.popitem(last=False)
                    self._evictions += 1

    def delete(self, key: str) -> bool:
        """Remove ``key``; returns whether a live entry was removed."""
        with self._lock:
            entry = self._live(key, self._clock())
            if entry is None:
                return False
            del self._entries[key]
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were dropped."""
        with self._lock:
            return self._purge(self._clock())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        with self._lock:
            return self._live(key, self._clock()) is not None

    def __len__(self) -> int:
        """Number of stored entries, counting expired ones not yet purged."""
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "keys": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expired": self._expired,
                "max_entries": self.max_entries,
            }


__all__ = ["CacheStore", "MemoryCacheStore"]
