"""
Cache Repository decorator

Wraps any IRepository with a read-through cache for point lookups. Entries
are keyed ``<table>:<id>`` and hold the row as typed JSON, so a hit returns
the same value types (datetime, Decimal, bytes) as the read that filled it.
Mutations keep the cache in step with what was written; list, count and
search operations always go to the wrapped repository.

Cache problems are logged and never turn a successful call into a failure.
"""

# Standard library imports
import logging
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta
from typing import Any, TypeVar

# Local imports
from marketplace_db.application.interfaces.exceptions import MappingError
from marketplace_db.application.interfaces.repositories import Conditions, IRepository
from marketplace_db.infrastructure.cache import MemoryCache
from marketplace_db.infrastructure.cache.memory_cache import DEFAULT_TTL
from marketplace_db.infrastructure.database.mapper import (
    is_record,
    mapping_to_record,
    record_to_mapping,
)
from marketplace_db.infrastructure.serialization import (
    from_typed_json_string,
    to_typed_json_string,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ID_FIELD = "id"


def cache_key(table: str, record_id: Any) -> str:
    return f"{table}:{record_id}"


class CacheRepository(IRepository):
    """
    Repository decorator adding a TTL cache in front of ``find_by_id``.

    A repository handed to a ``transaction`` callback does not populate the
    cache: it reads through to the transaction and only evicts on writes,
    so uncommitted rows are never cached.
    """

    def __init__(
        self,
        inner: IRepository,
        cache: MemoryCache | None = None,
        ttl: timedelta = DEFAULT_TTL,
        *,
        populate: bool = True,
    ) -> None:
        """
        Initialize the decorator.

        Args:
            inner: Next repository in the chain
            cache: Cache shared by every decorator over the same database
            ttl: Lifetime of entries written by this decorator
            populate: Whether reads and writes may add entries
        """
        self.inner = inner
        self.cache = cache or MemoryCache(default_ttl=ttl)
        self.ttl = ttl
        self._populate = populate

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    def _store(self, table: str, record_id: Any, value: Any) -> None:
        if not self._populate:
            self._evict(table, record_id)
            return
        try:
            mapping = value if isinstance(value, dict) else record_to_mapping(value)
            self.cache.set(cache_key(table, record_id), to_typed_json_string(mapping), self.ttl)
        except (TypeError, ValueError, MappingError) as e:
            logger.warning(f"Failed to cache {table}/{record_id}: {e}")
            self._evict(table, record_id)

    def _evict(self, table: str, record_id: Any) -> None:
        self.cache.delete(cache_key(table, record_id))

    def _load(self, table: str, record_id: Any, record_type: type | None) -> Any | None:
        key = cache_key(table, record_id)
        payload = self.cache.get(key)
        if payload is None:
            return None
        try:
            return mapping_to_record(from_typed_json_string(payload), record_type)
        except (ValueError, ArithmeticError, MappingError) as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            self.cache.delete(key)
            return None

    # ------------------------------------------------------------------
    # Cached operations
    # ------------------------------------------------------------------

    async def find_by_id(self, table: str, record_id: Any, record_type: type | None = None) -> Any:
        if self._populate:
            cached = self._load(table, record_id, record_type)
            if cached is not None:
                logger.debug(f"Cache hit: {cache_key(table, record_id)}")
                return cached

        result = await self.inner.find_by_id(table, record_id, record_type)
        if self._populate:
            self._store(table, record_id, result)
        return result

    async def get(self, table: str, record_id: Any, record_type: type | None = None) -> Any:
        return await self.find_by_id(table, record_id, record_type)

    async def create(self, table: str, fields: Sequence[str], values: Sequence[Any]) -> int:
        record_id = await self.inner.create(table, fields, values)
        data = dict(zip(fields, values))
        data[ID_FIELD] = record_id
        self._store(table, record_id, data)
        return record_id

    async def create_record(self, table: str, record: Any) -> int:
        record_id = await self.inner.create_record(table, record)
        try:
            data = record_to_mapping(record, for_insert=True)
        except MappingError as e:
            logger.warning(f"Failed to cache new {table} row {record_id}: {e}")
            return record_id
        data[ID_FIELD] = record_id
        self._store(table, record_id, data)
        return record_id

    async def update(self, table: str, record_id: Any, data: Any) -> None:
        await self.inner.update(table, record_id, data)

        if is_record(data):
            mapping = record_to_mapping(data)
            mapping[ID_FIELD] = record_id
            self._store(table, record_id, mapping)
            return

        # Partial update: merge into the cached row, if there is one
        key = cache_key(table, record_id)
        payload = self.cache.peek(key)
        if payload is None or not self._populate:
            self._evict(table, record_id)
            return
        try:
            merged = from_typed_json_string(payload)
            merged.update(record_to_mapping(data))
        except (ValueError, ArithmeticError, AttributeError, MappingError) as e:
            logger.warning(f"Failed to merge update into cache entry {key}: {e}")
            self._evict(table, record_id)
            return
        self._store(table, record_id, merged)

    async def delete(self, table: str, record_id: Any) -> None:
        await self.inner.delete(table, record_id)
        self._evict(table, record_id)

    async def soft_delete(self, table: str, record_id: Any) -> None:
        await self.inner.soft_delete(table, record_id)
        self._evict(table, record_id)

    async def bulk_create(self, table: str, records: Sequence[Any]) -> list[int]:
        return await self.inner.bulk_create(table, records)

    async def bulk_update(self, table: str, ids: Sequence[Any], data: Any) -> None:
        try:
            await self.inner.bulk_update(table, ids, data)
        finally:
            for record_id in ids:
                self._evict(table, record_id)

    async def bulk_delete(self, table: str, ids: Sequence[Any]) -> None:
        try:
            await self.inner.bulk_delete(table, ids)
        finally:
            for record_id in ids:
                self._evict(table, record_id)

    # ------------------------------------------------------------------
    # Pass-through operations
    # ------------------------------------------------------------------

    async def find_all(
        self,
        table: str,
        record_type: type | None = None,
        conditions: Conditions = None,
        order_by: str = "",
        limit: int = 0,
        offset: int = 0,
    ) -> list[Any]:
        return await self.inner.find_all(table, record_type, conditions, order_by, limit, offset)

    async def find_one(
        self, table: str, record_type: type | None = None, conditions: Conditions = None
    ) -> Any:
        return await self.inner.find_one(table, record_type, conditions)

    async def count(self, table: str, conditions: Conditions = None) -> int:
        return await self.inner.count(table, conditions)

    async def search(
        self,
        table: str,
        fields: Sequence[str],
        term: str,
        limit: int = 0,
        offset: int = 0,
        record_type: type | None = None,
    ) -> list[Any]:
        return await self.inner.search(table, fields, term, limit, offset, record_type)

    async def find_by_date_range(
        self,
        table: str,
        date_field: str,
        start: datetime,
        end: datetime,
        limit: int = 0,
        offset: int = 0,
        record_type: type | None = None,
    ) -> list[Any]:
        return await self.inner.find_by_date_range(
            table, date_field, start, end, limit, offset, record_type
        )

    async def exists(self, table: str, conditions: Conditions = None) -> bool:
        return await self.inner.exists(table, conditions)

    async def transaction(self, fn: Callable[[IRepository], Awaitable[T]]) -> T:
        async def run(tx: IRepository) -> T:
            return await fn(CacheRepository(tx, self.cache, self.ttl, populate=False))

        return await self.inner.transaction(run)

    async def set_connection_pool(
        self, max_open: int, max_idle: int, max_lifetime: timedelta | float
    ) -> None:
        await self.inner.set_connection_pool(max_open, max_idle, max_lifetime)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def set(self, table: str, record_id: Any, value: Any) -> Any:
        """
        Serialize ``value`` and store it under ``table:record_id``.

        Returns:
            ``record_id``

        Raises:
            MappingError: If ``value`` is neither a mapping nor a record
            TypeError: If a value cannot be serialized
        """
        mapping = dict(value) if isinstance(value, dict) else record_to_mapping(value)
        self.cache.set(cache_key(table, record_id), to_typed_json_string(mapping), self.ttl)
        return record_id

    def delete_cache(self, key: str) -> bool:
        """Remove one entry by its full key."""
        return self.cache.delete(key)

    def clear_cache(self) -> int:
        removed = self.cache.clear()
        logger.info(f"Cache cleared ({removed} entries)")
        return removed

    def flush(self) -> int:
        return self.clear_cache()

    def get_stats(self) -> dict[str, int]:
        return self.cache.stats().to_dict()

    def __str__(self) -> str:
        return f"CacheRepository({self.inner})"


__all__ = ["CacheRepository", "cache_key"]
