"""
Tests for the migration runner against a SQLite database file.
"""

# Standard library imports
from contextlib import asynccontextmanager
from datetime import datetime
from unittest.mock import AsyncMock

# Third-party imports
import pytest
import pytest_asyncio

# Local imports
from marketplace_db.application.interfaces.exceptions import ExecError, MigrationError
from marketplace_db.infrastructure.database.adapter import DatabaseAdapter
from marketplace_db.infrastructure.database.migrations import (
    MYSQL_LEDGER_DDL,
    Migration,
    MigrationManager,
    split_statements,
)
from marketplace_db.infrastructure.database.sqlite_adapter import SQLiteAdapter

CREATE_SELLERS = """
-- sellers own product listings
CREATE TABLE sellers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);
CREATE INDEX idx_sellers_name ON sellers (name);
"""

ADD_SELLER_RATING = "ALTER TABLE sellers ADD COLUMN rating REAL DEFAULT 0"


@pytest_asyncio.fixture
async def adapter(db_path):
    adapter = await SQLiteAdapter.connect(db_path)
    yield adapter
    await adapter.close()


@pytest.fixture
def manager(adapter):
    return MigrationManager(adapter)


async def _table_exists(adapter, table: str) -> bool:
    row = await adapter.fetch_one(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", [table]
    )
    return row is not None


@pytest.mark.unit
class TestSplitStatements:
    """Test script splitting."""

    def test_splits_on_semicolons(self):
        assert split_statements("CREATE TABLE a (id INT); CREATE TABLE b (id INT);") == [
            "CREATE TABLE a (id INT)",
            "CREATE TABLE b (id INT)",
        ]

    def test_semicolon_inside_quotes(self):
        statements = split_statements("INSERT INTO notes (body) VALUES ('a; b'); SELECT 1")

        assert statements == ["INSERT INTO notes (body) VALUES ('a; b')", "SELECT 1"]

    def test_semicolon_inside_comment(self):
        statements = split_statements("-- first; second\nSELECT 1;")

        assert len(statements) == 1
        assert statements[0].endswith("SELECT 1")

    def test_comment_only_statements_dropped(self):
        assert split_statements("-- nothing here\n;\n  ;") == []

    def test_block_comments(self):
        statements = split_statements(
            "/* seed data; run once */\nINSERT INTO tags (name) VALUES ('a');\n/* trailing; */"
        )

        assert statements == [
            "/* seed data; run once */\nINSERT INTO tags (name) VALUES ('a')"
        ]

    def test_block_comment_only_statement_dropped(self):
        assert split_statements("SELECT 1; /* nothing; */ ;") == ["SELECT 1"]

    def test_trigger_body_kept_whole(self):
        script = (
            "CREATE TRIGGER stock_guard AFTER UPDATE ON products\n"
            "BEGIN\n"
            "    UPDATE products SET stock = CASE WHEN NEW.stock < 0 THEN 0 ELSE NEW.stock END"
            " WHERE id = NEW.id;\n"
            "    INSERT INTO audit_notes (body) VALUES ('stock; changed');\n"
            "END;\n"
            "CREATE INDEX idx_products_sku ON products (sku);"
        )

        statements = split_statements(script)

        assert len(statements) == 2
        assert statements[0].startswith("CREATE TRIGGER stock_guard")
        assert statements[0].endswith("END")
        assert statements[1] == "CREATE INDEX idx_products_sku ON products (sku)"

    def test_mysql_trigger_with_end_if(self):
        script = (
            "CREATE TRIGGER price_floor BEFORE INSERT ON products FOR EACH ROW\n"
            "BEGIN\n"
            "    IF NEW.price < 0 THEN\n"
            "        SET NEW.price = 0;\n"
            "    END IF;\n"
            "END;\n"
            "SELECT 1;"
        )

        statements = split_statements(script)

        assert len(statements) == 2
        assert "END IF;" in statements[0]
        assert statements[1] == "SELECT 1"


@pytest.mark.integration
class TestMigrationManager:
    """Test applying migrations."""

    @pytest.mark.asyncio
    async def test_initialize_creates_ledger(self, manager, adapter):
        await manager.initialize()

        assert await _table_exists(adapter, "migrations")

    @pytest.mark.asyncio
    async def test_migrate_to_latest(self, manager, adapter):
        manager.add_migration("001_create_sellers", CREATE_SELLERS)
        manager.add_migration("002_add_seller_rating", ADD_SELLER_RATING)

        applied = await manager.migrate_to_latest()

        assert applied == 2
        assert await _table_exists(adapter, "sellers")
        await adapter.execute("INSERT INTO sellers (name, rating) VALUES (?, ?)", ["Acme", 4.5])
        assert all(m.is_applied for m in manager.migrations)

    @pytest.mark.asyncio
    async def test_rerun_is_noop(self, manager, adapter):
        manager.add_migration("001_create_sellers", CREATE_SELLERS)

        assert await manager.migrate_to_latest() == 1
        assert await manager.migrate_to_latest() == 0

        count = await adapter.fetch_value("SELECT COUNT(*) FROM migrations")
        assert count == 1

    @pytest.mark.asyncio
    async def test_new_manager_sees_ledger(self, adapter):
        first = MigrationManager(adapter)
        first.add_migration("001_create_sellers", CREATE_SELLERS)
        await first.migrate_to_latest()

        second = MigrationManager(adapter)
        second.add_migration("001_create_sellers", CREATE_SELLERS)
        second.add_migration("002_add_seller_rating", ADD_SELLER_RATING)

        pending = await second.get_pending_migrations()

        assert [m.name for m in pending] == ["002_add_seller_rating"]

    @pytest.mark.asyncio
    async def test_applied_migrations_in_order(self, manager):
        manager.add_migration("001_create_sellers", CREATE_SELLERS)
        manager.add_migration("002_add_seller_rating", ADD_SELLER_RATING)
        await manager.migrate_to_latest()

        applied = await manager.get_applied_migrations()

        assert [m.name for m in applied] == ["001_create_sellers", "002_add_seller_rating"]
        assert isinstance(applied[0].applied_at, datetime)
        assert applied[0].sql == CREATE_SELLERS

    @pytest.mark.asyncio
    async def test_failed_migration_rolls_back(self, manager, adapter):
        manager.add_migration(
            "001_broken",
            "CREATE TABLE audit_notes (id INTEGER); INSERT INTO missing_table VALUES (1);",
        )

        with pytest.raises(MigrationError):
            await manager.migrate_to_latest()

        assert not await _table_exists(adapter, "audit_notes")
        assert await manager.is_applied("001_broken") is False

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, manager, adapter):
        manager.add_migration("001_broken", "INSERT INTO missing_table VALUES (1)")
        manager.add_migration("002_create_sellers", CREATE_SELLERS)

        with pytest.raises(MigrationError):
            await manager.migrate_to_latest()

        assert not await _table_exists(adapter, "sellers")

    @pytest.mark.asyncio
    async def test_load_from_directory(self, manager, tmp_path):
        migrations_dir = tmp_path / "migrations"
        migrations_dir.mkdir()
        (migrations_dir / "002_add_seller_rating.sql").write_text(ADD_SELLER_RATING)
        (migrations_dir / "001_create_sellers.sql").write_text(CREATE_SELLERS)
        (migrations_dir / "README.md").write_text("not a migration")

        loaded = manager.load_migrations_from_directory(migrations_dir)

        assert loaded == 2
        assert [m.name for m in manager.migrations] == [
            "001_create_sellers",
            "002_add_seller_rating",
        ]
        assert await manager.migrate_to_latest() == 2


    @pytest.mark.asyncio
    async def test_trigger_migration(self, manager, adapter):
        manager.add_migration("001_create_sellers", CREATE_SELLERS)
        manager.add_migration(
            "002_seller_log",
            """
            /* every new seller gets a log row; one per insert */
            CREATE TABLE seller_log (seller_id INTEGER, note TEXT);
            CREATE TRIGGER seller_created AFTER INSERT ON sellers
            BEGIN
                INSERT INTO seller_log (seller_id, note) VALUES (NEW.id, 'created;');
            END;
            """,
        )

        assert await manager.migrate_to_latest() == 2

        await adapter.execute("INSERT INTO sellers (name) VALUES (?)", ["Acme"])
        row = await adapter.fetch_one("SELECT seller_id, note FROM seller_log")
        assert row["seller_id"] == 1
        assert row["note"] == "created;"
    def test_missing_directory(self, manager, tmp_path):
        assert manager.load_migrations_from_directory(tmp_path / "nope") == 0


@pytest.mark.unit
class TestLedgerDialect:
    """Test engine-specific ledger creation."""

    @pytest.mark.asyncio
    async def test_mysql_ledger_ddl(self, mock_adapter):
        mock_adapter.engine = "mysql"
        mock_adapter.placeholder = "%s"

        await MigrationManager(mock_adapter).initialize()

        mock_adapter.execute.assert_awaited_once_with(MYSQL_LEDGER_DDL)

    @pytest.mark.asyncio
    async def test_ledger_failure(self):
        adapter = AsyncMock(spec=DatabaseAdapter)
        adapter.engine = "sqlite3"
        adapter.execute.side_effect = ExecError("disk full")

        with pytest.raises(MigrationError):
            await MigrationManager(adapter).initialize()

    def test_migration_defaults(self):
        migration = Migration("001", "SELECT 1")

        assert migration.is_applied is False


@pytest.mark.unit
class TestLedgerLookup:
    """Test that the ledger lookup shares the migration's transaction."""

    @staticmethod
    def _attach_transaction(adapter, applied_count):
        tx = AsyncMock(spec=DatabaseAdapter)
        tx.fetch_value.return_value = applied_count

        @asynccontextmanager
        async def transaction():
            yield tx

        adapter.transaction = transaction
        return tx

    @pytest.mark.asyncio
    async def test_applied_elsewhere_is_skipped(self, mock_adapter):
        tx = self._attach_transaction(mock_adapter, applied_count=1)
        migration = Migration("001_create_sellers", CREATE_SELLERS)

        assert await MigrationManager(mock_adapter).apply_migration(migration) is False

        tx.fetch_value.assert_awaited_once()
        tx.execute.assert_not_awaited()
        mock_adapter.fetch_value.assert_not_awaited()
        assert migration.is_applied is False

    @pytest.mark.asyncio
    async def test_lookup_runs_before_statements(self, mock_adapter):
        tx = self._attach_transaction(mock_adapter, applied_count=0)

        applied = await MigrationManager(mock_adapter).apply_migration(
            Migration("002_add_seller_rating", ADD_SELLER_RATING)
        )

        assert applied is True
        calls = [c[0] for c in tx.method_calls]
        assert calls == ["fetch_value", "execute", "execute"]
        assert tx.method_calls[1].args[0] == ADD_SELLER_RATING
        assert "INSERT INTO migrations" in tx.method_calls[2].args[0]

    @pytest.mark.asyncio
    async def test_mysql_lookup_locks(self, mock_adapter):
        mock_adapter.engine = "mysql"
        mock_adapter.placeholder = "%s"
        tx = self._attach_transaction(mock_adapter, applied_count=0)

        await MigrationManager(mock_adapter).apply_migration(
            Migration("002_add_seller_rating", ADD_SELLER_RATING)
        )

        sql, params = tx.fetch_value.await_args.args
        assert sql.endswith("FOR UPDATE")
        assert params == ["002_add_seller_rating"]
