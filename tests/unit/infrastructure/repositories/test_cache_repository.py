"""
Unit tests for the caching repository decorator.
"""

# Standard library imports
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

# Third-party imports
import pytest

# Local imports
from marketplace_db.application.interfaces.exceptions import NoRowsError
from marketplace_db.application.interfaces.repositories import IRepository
from marketplace_db.infrastructure.cache import MemoryCache
from marketplace_db.infrastructure.repositories.base_repository import BaseRepository
from marketplace_db.infrastructure.repositories.cache_repository import CacheRepository, cache_key


@dataclass
class Product:
    id: int
    name: str
    price: Decimal


@pytest.fixture
def inner():
    repository = AsyncMock(spec=IRepository)
    repository.find_by_id.return_value = {"id": 1, "name": "Lamp", "price": "19.90"}
    repository.create.return_value = 10
    repository.create_record.return_value = 11
    return repository


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def repository(inner, cache):
    return CacheRepository(inner, cache, ttl=timedelta(minutes=1))


@pytest.mark.unit
class TestReadThrough:
    """Test cached point lookups."""

    @pytest.mark.asyncio
    async def test_second_lookup_served_from_cache(self, repository, inner):
        first = await repository.find_by_id("products", 1)
        second = await repository.find_by_id("products", 1)

        assert first == second == {"id": 1, "name": "Lamp", "price": "19.90"}
        inner.find_by_id.assert_awaited_once_with("products", 1, None)

    @pytest.mark.asyncio
    async def test_cache_hit_builds_record_type(self, repository):
        await repository.find_by_id("products", 1)

        product = await repository.get("products", 1, Product)

        assert product == Product(id=1, name="Lamp", price=Decimal("19.90"))

    @pytest.mark.asyncio
    async def test_entries_are_serialized(self, repository, cache):
        await repository.find_by_id("products", 1)

        payload = cache.get(cache_key("products", 1))

        assert isinstance(payload, str)
        assert '"name":"Lamp"' in payload

    @pytest.mark.asyncio
    async def test_hit_returns_same_value_types_as_miss(self, repository, inner):
        inner.find_by_id.return_value = {
            "id": 1,
            "created_at": datetime(2024, 1, 2, 3, 4, 5),
            "price": Decimal("19.90"),
            "thumbnail": b"\xff\xd8\xff",
        }

        miss = await repository.find_by_id("products", 1)
        hit = await repository.find_by_id("products", 1)

        assert hit == miss
        assert isinstance(hit["created_at"], datetime)
        assert isinstance(hit["price"], Decimal)
        inner.find_by_id.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_corrupt_typed_value_is_discarded(self, repository, inner, cache):
        cache.set(cache_key("products", 1), '{"id":1,"price":{"__type__":"decimal","value":"x"}}')

        row = await repository.find_by_id("products", 1)

        assert row["price"] == "19.90"
        inner.find_by_id.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_miss_errors_propagate(self, repository, inner, cache):
        inner.find_by_id.side_effect = NoRowsError("products", {"id": 2})

        with pytest.raises(NoRowsError):
            await repository.find_by_id("products", 2)

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_unserializable_value_is_not_cached(self, repository, inner, cache):
        inner.find_by_id.return_value = {"id": 1, "handle": object()}

        result = await repository.find_by_id("products", 1)

        assert result["id"] == 1
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_discarded(self, repository, inner, cache):
        cache.set(cache_key("products", 1), "{not json")

        await repository.find_by_id("products", 1)

        inner.find_by_id.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_expired_entry_reaches_inner(self, inner):
        now = [0.0]
        cache = MemoryCache(clock=lambda: now[0])
        repository = CacheRepository(inner, cache, ttl=timedelta(seconds=10))

        await repository.find_by_id("products", 1)
        now[0] = 11.0
        await repository.find_by_id("products", 1)

        assert inner.find_by_id.await_count == 2


@pytest.mark.unit
class TestWrites:
    """Test that writes keep the cache in step."""

    @pytest.mark.asyncio
    async def test_create_populates(self, repository, inner):
        record_id = await repository.create("products", ["name", "price"], ["Desk", Decimal("99")])

        row = await repository.find_by_id("products", record_id)

        assert row == {"id": 10, "name": "Desk", "price": Decimal("99")}
        inner.find_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_record_populates(self, repository, inner):
        record_id = await repository.create_record(
            "products", Product(id=0, name="Desk", price=Decimal("99"))
        )

        product = await repository.find_by_id("products", record_id, Product)

        assert product == Product(id=11, name="Desk", price=Decimal("99"))
        inner.find_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_evicts(self, repository, inner):
        await repository.find_by_id("products", 1)

        await repository.delete("products", 1)
        await repository.find_by_id("products", 1)

        inner.delete.assert_awaited_once_with("products", 1)
        assert inner.find_by_id.await_count == 2

    @pytest.mark.asyncio
    async def test_soft_delete_evicts(self, repository, inner):
        await repository.find_by_id("products", 1)

        await repository.soft_delete("products", 1)
        await repository.find_by_id("products", 1)

        assert inner.find_by_id.await_count == 2

    @pytest.mark.asyncio
    async def test_partial_update_merges(self, repository, inner):
        await repository.find_by_id("products", 1)

        await repository.update("products", 1, {"name": "Desk Lamp"})
        row = await repository.find_by_id("products", 1)

        assert row == {"id": 1, "name": "Desk Lamp", "price": "19.90"}
        inner.find_by_id.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_partial_update_without_entry_evicts(self, repository, inner, cache):
        await repository.update("products", 1, {"name": "Desk Lamp"})

        assert cache_key("products", 1) not in cache

    @pytest.mark.asyncio
    async def test_full_record_update_replaces(self, repository, inner):
        await repository.find_by_id("products", 1)

        await repository.update("products", 1, Product(id=1, name="Chair", price=Decimal("5")))
        product = await repository.find_by_id("products", 1, Product)

        assert product.name == "Chair"
        inner.find_by_id.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_update_keeps_entry(self, repository, inner):
        await repository.find_by_id("products", 1)
        inner.update.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await repository.update("products", 1, {"name": "Desk Lamp"})

        row = await repository.find_by_id("products", 1)
        assert row["name"] == "Lamp"

    @pytest.mark.asyncio
    async def test_bulk_delete_evicts_even_on_failure(self, repository, inner, cache):
        await repository.find_by_id("products", 1)
        inner.bulk_delete.side_effect = RuntimeError("partial")

        with pytest.raises(RuntimeError):
            await repository.bulk_delete("products", [1, 2])

        assert cache_key("products", 1) not in cache

    @pytest.mark.asyncio
    async def test_pass_through(self, repository, inner):
        inner.count.return_value = 3

        assert await repository.count("products", {"stock": 0}) == 3
        await repository.find_all("products", order_by="name")

        inner.count.assert_awaited_once_with("products", {"stock": 0})
        inner.find_all.assert_awaited_once_with("products", None, None, "name", 0, 0)


@pytest.mark.unit
class TestTransactions:
    """Test cache behaviour inside transactions."""

    @pytest.mark.asyncio
    async def test_transaction_reads_do_not_populate(self, repository, inner, cache):
        tx_inner = AsyncMock(spec=IRepository)
        tx_inner.find_by_id.return_value = {"id": 5, "name": "Uncommitted"}

        async def run_transaction(fn):
            return await fn(tx_inner)

        inner.transaction.side_effect = run_transaction

        async def work(tx):
            return await tx.find_by_id("products", 5)

        result = await repository.transaction(work)

        assert result == {"id": 5, "name": "Uncommitted"}
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_transaction_writes_evict(self, repository, inner, cache):
        await repository.find_by_id("products", 1)
        tx_inner = AsyncMock(spec=IRepository)

        async def run_transaction(fn):
            return await fn(tx_inner)

        inner.transaction.side_effect = run_transaction

        async def work(tx):
            await tx.update("products", 1, {"name": "Changed"})

        await repository.transaction(work)

        assert cache_key("products", 1) not in cache


@pytest.mark.unit
class TestCacheManagement:
    """Test explicit cache operations."""

    def test_set_serializes(self, repository, cache):
        returned = repository.set("products", 5, {"id": 5, "price": Decimal("1.50")})

        assert returned == 5
        assert cache.get("products:5") == (
            '{"id":5,"price":{"__type__":"decimal","value":"1.50"}}'
        )

    def test_delete_cache_and_clear(self, repository):
        repository.set("products", 1, {"id": 1})
        repository.set("products", 2, {"id": 2})

        assert repository.delete_cache("products:1") is True
        assert repository.clear_cache() == 1
        assert repository.flush() == 0

    @pytest.mark.asyncio
    async def test_stats(self, repository):
        await repository.find_by_id("products", 1)
        await repository.find_by_id("products", 1)

        stats = repository.get_stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["items"] == 1


@pytest.mark.integration
class TestOverDatabase:
    """Test the decorator over a real repository."""

    @pytest.mark.asyncio
    async def test_delete_then_find(self, sqlite_adapter):
        repository = CacheRepository(BaseRepository(sqlite_adapter))
        category_id = await repository.create("categories", ["name", "slug"], ["Books", "books"])
        assert (await repository.find_by_id("categories", category_id))["name"] == "Books"

        await repository.delete("categories", category_id)

        with pytest.raises(NoRowsError):
            await repository.find_by_id("categories", category_id)
