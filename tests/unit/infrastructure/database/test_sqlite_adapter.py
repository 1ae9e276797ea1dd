"""
Tests for the SQLite adapter against a throwaway database file.
"""

# Standard library imports
import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

# Third-party imports
import pytest

# Local imports
from marketplace_db.application.interfaces.exceptions import (
    ConnectionError,
    ExecError,
    PrepareError,
    TransactionError,
)
from marketplace_db.infrastructure.database.sqlite_adapter import SQLiteAdapter


async def _insert_category(adapter, name: str, slug: str) -> int:
    result = await adapter.execute(
        "INSERT INTO categories (name, slug) VALUES (?, ?)", [name, slug]
    )
    return result.lastrowid


@pytest.mark.integration
class TestConnect:
    """Test opening and closing the database file."""

    @pytest.mark.asyncio
    async def test_creates_parent_directory(self, db_path):
        adapter = await SQLiteAdapter.connect(db_path)
        try:
            assert Path(db_path).parent.is_dir()
            assert await adapter.health_check() is True
        finally:
            await adapter.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, db_path):
        adapter = await SQLiteAdapter.connect(db_path)

        await adapter.close()
        await adapter.close()

        assert adapter.is_closed is True
        info = await adapter.get_connection_info()
        assert info["status"] == "closed"

    @pytest.mark.asyncio
    async def test_closed_adapter_rejects_statements(self, db_path):
        adapter = await SQLiteAdapter.connect(db_path)
        await adapter.close()

        with pytest.raises(ConnectionError):
            await adapter.fetch_all("SELECT 1")

    @pytest.mark.asyncio
    async def test_health_check_false_when_closed(self, db_path):
        adapter = await SQLiteAdapter.connect(db_path)
        await adapter.close()

        assert await adapter.health_check() is False


@pytest.mark.integration
class TestStatements:
    """Test execute and fetch operations."""

    @pytest.mark.asyncio
    async def test_insert_and_fetch(self, sqlite_adapter):
        category_id = await _insert_category(sqlite_adapter, "Books", "books")

        row = await sqlite_adapter.fetch_one("SELECT * FROM categories WHERE id = ?", [category_id])

        assert row["name"] == "Books"
        assert row["slug"] == "books"
        assert row["is_active"] == 1

    @pytest.mark.asyncio
    async def test_fetch_one_without_rows(self, sqlite_adapter):
        assert await sqlite_adapter.fetch_one("SELECT * FROM categories WHERE id = ?", [999]) is None

    @pytest.mark.asyncio
    async def test_execute_reports_rowcount(self, sqlite_adapter):
        await _insert_category(sqlite_adapter, "Books", "books")
        await _insert_category(sqlite_adapter, "Games", "games")

        result = await sqlite_adapter.execute("UPDATE categories SET is_active = ?", [False])

        assert result.rowcount == 2

    @pytest.mark.asyncio
    async def test_values_are_converted(self, sqlite_adapter):
        created = datetime(2024, 3, 1, 10, 30)
        await sqlite_adapter.execute(
            "INSERT INTO products (name, price, created_at) VALUES (?, ?, ?)",
            ["Lamp", Decimal("19.90"), created],
        )

        row = await sqlite_adapter.fetch_one("SELECT price, created_at FROM products")

        assert row == {"price": "19.90", "created_at": "2024-03-01 10:30:00"}

    @pytest.mark.asyncio
    async def test_fetch_value(self, sqlite_adapter):
        await _insert_category(sqlite_adapter, "Books", "books")

        assert await sqlite_adapter.fetch_value("SELECT COUNT(*) FROM categories") == 1

    @pytest.mark.asyncio
    async def test_unknown_table_is_prepare_error(self, sqlite_adapter):
        with pytest.raises(PrepareError):
            await sqlite_adapter.fetch_all("SELECT * FROM missing_table")

    @pytest.mark.asyncio
    async def test_constraint_violation_is_exec_error(self, sqlite_adapter):
        await _insert_category(sqlite_adapter, "Books", "books")

        with pytest.raises(ExecError):
            await _insert_category(sqlite_adapter, "Books again", "books")

    @pytest.mark.asyncio
    async def test_concurrent_statements_are_serialized(self, sqlite_adapter):
        await asyncio.gather(
            *(_insert_category(sqlite_adapter, f"Cat {i}", f"cat-{i}") for i in range(10))
        )

        assert await sqlite_adapter.fetch_value("SELECT COUNT(*) FROM categories") == 10


@pytest.mark.integration
class TestTransactions:
    """Test commit and rollback."""

    @pytest.mark.asyncio
    async def test_commit(self, sqlite_adapter):
        async with sqlite_adapter.transaction() as tx:
            assert tx.has_active_transaction is True
            await _insert_category(tx, "Books", "books")

        assert await sqlite_adapter.fetch_value("SELECT COUNT(*) FROM categories") == 1
        assert tx.has_active_transaction is False

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, sqlite_adapter):
        with pytest.raises(RuntimeError):
            async with sqlite_adapter.transaction() as tx:
                await _insert_category(tx, "Books", "books")
                raise RuntimeError("abort")

        assert await sqlite_adapter.fetch_value("SELECT COUNT(*) FROM categories") == 0

    @pytest.mark.asyncio
    async def test_rollback_on_base_exception(self, sqlite_adapter):
        class Abort(BaseException):
            pass

        with pytest.raises(Abort):
            async with sqlite_adapter.transaction() as tx:
                await _insert_category(tx, "Books", "books")
                raise Abort()

        assert await sqlite_adapter.fetch_value("SELECT COUNT(*) FROM categories") == 0
        assert sqlite_adapter.has_active_transaction is False

    @pytest.mark.asyncio
    async def test_nested_transaction_rejected(self, sqlite_adapter):
        async with sqlite_adapter.transaction() as tx:
            with pytest.raises(TransactionError):
                async with tx.transaction():
                    pass

    @pytest.mark.asyncio
    async def test_finished_transaction_adapter_rejected(self, sqlite_adapter):
        async with sqlite_adapter.transaction() as tx:
            pass

        with pytest.raises(TransactionError):
            await tx.execute("SELECT 1")


@pytest.mark.unit
class TestPoolSettings:
    """Test pool configuration on the single-connection engine."""

    @pytest.mark.asyncio
    async def test_pool_limits_pinned_to_one(self, sqlite_adapter):
        await sqlite_adapter.configure_pool(10, 5, timedelta(minutes=5))

        info = await sqlite_adapter.get_connection_info()

        assert info["engine"] == "sqlite3"
        assert info["max_open"] == 1
        assert info["max_idle"] == 1
        assert info["max_lifetime"] == 300.0
