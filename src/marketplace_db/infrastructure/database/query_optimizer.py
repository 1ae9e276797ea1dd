"""
Query optimizer.

Shapes COUNT and SELECT queries into conservative forms, caches their results
for a short time and keeps execution statistics. This is result caching and
timing, not cost-based planning.
"""

import hashlib
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from marketplace_db.infrastructure.cache import MemoryCache
from marketplace_db.infrastructure.concurrency import ReadWriteLock
from marketplace_db.infrastructure.config import CacheConfig
from marketplace_db.infrastructure.database.adapter import DatabaseAdapter, Row
from marketplace_db.infrastructure.database.query_builder import QueryBuilder
from marketplace_db.infrastructure.monitoring.performance import (
    DatabaseQueryProfiler,
    SlowQueryRecord,
)
from marketplace_db.infrastructure.monitoring.performance.database_profiler import as_timedelta

logger = logging.getLogger(__name__)

DEFAULT_RESULT_TTL = timedelta(minutes=5)


@dataclass(frozen=True)
class QueryStats:
    """Snapshot of optimizer counters."""

    total_queries: int = 0
    slow_queries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    average_exec_time: timedelta = timedelta(0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_queries": self.total_queries,
            "slow_queries": self.slow_queries,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "average_exec_time_ms": self.average_exec_time.total_seconds() * 1000,
        }


def generate_cache_key(operation: str, table: str, params: Any) -> str:
    """Stable key for an operation on a table with the given parameters."""
    if isinstance(params, Mapping):
        params = sorted(params.items())
    data = f"{operation}:{table}:{params}"
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def generate_query_cache_key(query: str, params: Sequence[Any]) -> str:
    data = f"{query}:{list(params)}"
    return hashlib.md5(data.encode("utf-8")).hexdigest()


class QueryOptimizer:
    """
    Count/select shaping with short-lived result caching.

    Statistics and slow-query records are shared by every caller of the
    optimizer; both are guarded by reader/writer locks.
    """

    def __init__(
        self,
        adapter: DatabaseAdapter,
        profiler: DatabaseQueryProfiler | None = None,
        slow_threshold: timedelta | float = timedelta(milliseconds=100),
        count_ttl: timedelta = timedelta(minutes=1),
        cache: MemoryCache | None = None,
    ) -> None:
        self.adapter = adapter
        # A supplied profiler keeps its own threshold
        self.profiler = profiler or DatabaseQueryProfiler(slow_threshold)
        self.count_ttl = count_ttl
        self.cache = cache or MemoryCache(default_ttl=DEFAULT_RESULT_TTL)

        self._stats_lock = ReadWriteLock()
        self._total_queries = 0
        self._slow_queries = 0
        self._cache_hits = 0
        self._cache_misses = 0
        self._average_exec_time = timedelta(0)

    @classmethod
    def from_config(
        cls,
        adapter: DatabaseAdapter,
        config: CacheConfig | None = None,
        cache: MemoryCache | None = None,
    ) -> "QueryOptimizer":
        """
        Build an optimizer from cache settings.

        Args:
            adapter: Database adapter to run queries on
            config: Cache settings; read from the environment when omitted
            cache: Result cache to share; a new one using ``config.default_ttl``
                otherwise
        """
        config = config or CacheConfig.from_env()
        return cls(
            adapter,
            slow_threshold=config.slow_query_threshold,
            count_ttl=config.count_ttl,
            cache=cache or MemoryCache(default_ttl=config.default_ttl),
        )

    def _record_cache(self, hit: bool) -> None:
        with self._stats_lock.write_locked():
            if hit:
                self._cache_hits += 1
            else:
                self._cache_misses += 1

    async def optimize_count_query(
        self, table: str, conditions: Mapping[str, Any] | None = None
    ) -> int:
        """
        Count rows of ``table`` matching ``conditions``.

        The count is served from cache for ``count_ttl`` after it was read.

        Raises:
            InvalidTableError: If the table name is invalid
            QueryError: If the count query fails
        """
        key = generate_cache_key("count", table, dict(conditions or {}))

        cached = self.cache.get(key)
        if cached is not None:
            self._record_cache(hit=True)
            return cached
        self._record_cache(hit=False)

        query = QueryBuilder(table, self.adapter.placeholder).count("1").filter(conditions).build()

        start = time.perf_counter()
        try:
            value = await self.adapter.fetch_value(query.sql, query.parameters)
        finally:
            self.track_query(query.sql, time.perf_counter() - start)

        count = int(value or 0)
        self.cache.set(key, count, self.count_ttl)
        return count

    async def optimize_select_query(
        self,
        table: str,
        fields: Sequence[str] | None = None,
        conditions: Mapping[str, Any] | None = None,
        order_by: str = "",
        limit: int = 0,
        offset: int = 0,
    ) -> list[Row]:
        """
        Run a SELECT with explicit columns, equality filters and paging.

        Args:
            order_by: ``"field"`` or ``"field DIRECTION"``; empty for no ordering
        """
        builder = QueryBuilder(table, self.adapter.placeholder).filter(conditions)
        if fields:
            builder.select(*fields)
        if order_by:
            parts = order_by.split()
            builder.order_by(parts[0], parts[1] if len(parts) > 1 else "ASC")
        builder.limit(limit).offset(offset)
        query = builder.build()

        start = time.perf_counter()
        try:
            return await self.adapter.fetch_all(query.sql, query.parameters)
        finally:
            self.track_query(query.sql, time.perf_counter() - start)

    async def execute_with_cache(
        self, query: str, params: Sequence[Any] = (), ttl: timedelta | None = None
    ) -> list[Row]:
        """
        Run a read query, serving repeated calls from cache within ``ttl``.

        Callers get their own copy of the cached rows.
        """
        key = generate_query_cache_key(query, params)

        cached = self.cache.get(key)
        if cached is not None:
            self._record_cache(hit=True)
            return [dict(row) for row in cached]
        self._record_cache(hit=False)

        start = time.perf_counter()
        try:
            rows = await self.adapter.fetch_all(query, params)
        finally:
            self.track_query(query, time.perf_counter() - start)

        self.cache.set(key, [dict(row) for row in rows], ttl)
        return rows

    def track_query(self, query: str, duration: timedelta | float) -> None:
        """Fold one execution into the running statistics."""
        duration = as_timedelta(duration)
        slow = self.profiler.is_slow(duration)

        with self._stats_lock.write_locked():
            self._total_queries += 1
            self._average_exec_time += (duration - self._average_exec_time) / self._total_queries
            if slow:
                self._slow_queries += 1

        if slow:
            self.profiler.record_query(query, duration)
            logger.warning(
                f"SLOW QUERY ({duration.total_seconds() * 1000:.1f}ms): "
                f"{self.profiler.normalize_query(query)}"
            )

    def get_stats(self) -> QueryStats:
        with self._stats_lock.read_locked():
            return QueryStats(
                total_queries=self._total_queries,
                slow_queries=self._slow_queries,
                cache_hits=self._cache_hits,
                cache_misses=self._cache_misses,
                average_exec_time=self._average_exec_time,
            )

    def get_slow_queries(self, limit: int = 10) -> list[SlowQueryRecord]:
        return self.profiler.get_slow_queries(limit)

    def clear_cache(self) -> None:
        removed = self.cache.clear()
        logger.info(f"Query cache cleared ({removed} entries)")
