"""
In-memory TTL cache.

Entries expire lazily: an entry older than its TTL is never returned and is
removed by the read that finds it. There is no background sweeper.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from marketplace_db.infrastructure.concurrency import ReadWriteLock

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=5)


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload and the monotonic time it was stored."""

    key: str
    payload: Any
    created_at: float
    ttl: timedelta

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl.total_seconds()


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    items: int

    def to_dict(self) -> dict[str, int]:
        return {"hits": self.hits, "misses": self.misses, "items": self.items}


class MemoryCache:
    """
    Thread-safe in-memory cache keyed by string.

    Suitable for single-process deployments. Data is lost when the
    process restarts.
    """

    def __init__(
        self,
        default_ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store: dict[str, CacheEntry] = {}
        self._lock = ReadWriteLock()
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self.default_ttl = default_ttl
        self._clock = clock

    def _record(self, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1

    def get(self, key: str) -> Any | None:
        """
        Return the payload stored under ``key``.

        Returns:
            The payload, or None when the key is missing or expired
        """
        now = self._clock()
        with self._lock.read_locked():
            entry = self._store.get(key)

        if entry is None:
            self._record(hit=False)
            return None

        if entry.is_expired(now):
            with self._lock.write_locked():
                # Another writer may have replaced the entry meanwhile
                if self._store.get(key) is entry:
                    del self._store[key]
            logger.debug(f"Cache entry expired: {key}")
            self._record(hit=False)
            return None

        self._record(hit=True)
        return entry.payload

    def peek(self, key: str) -> Any | None:
        """Like ``get`` but leaves hit/miss statistics and expired entries alone."""
        now = self._clock()
        with self._lock.read_locked():
            entry = self._store.get(key)
        if entry is None or entry.is_expired(now):
            return None
        return entry.payload

    def set(self, key: str, payload: Any, ttl: timedelta | None = None) -> None:
        entry = CacheEntry(key, payload, self._clock(), ttl or self.default_ttl)
        with self._lock.write_locked():
            self._store[key] = entry

    def delete(self, key: str) -> bool:
        with self._lock.write_locked():
            return self._store.pop(key, None) is not None

    def clear(self) -> int:
        """Remove every entry and return how many were removed."""
        with self._lock.write_locked():
            removed = len(self._store)
            self._store.clear()
        return removed

    def __contains__(self, key: str) -> bool:
        now = self._clock()
        with self._lock.read_locked():
            entry = self._store.get(key)
        return entry is not None and not entry.is_expired(now)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._store)

    def stats(self) -> CacheStats:
        with self._stats_lock:
            hits, misses = self._hits, self._misses
        return CacheStats(hits=hits, misses=misses, items=len(self))
