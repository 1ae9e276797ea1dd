"""Global pytest configuration and fixtures."""

# Standard library imports
from pathlib import Path
from unittest.mock import AsyncMock

# Third-party imports
import pytest
import pytest_asyncio

# Local imports
from marketplace_db.infrastructure.database.adapter import DatabaseAdapter, ExecResult
from marketplace_db.infrastructure.database.sqlite_adapter import SQLiteAdapter

MARKETPLACE_SCHEMA = [
    """
    CREATE TABLE categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        slug TEXT UNIQUE,
        description TEXT,
        is_active BOOLEAN DEFAULT 1,
        created_at TIMESTAMP,
        deleted_at TIMESTAMP,
        is_deleted BOOLEAN DEFAULT 0
    )
    """,
    """
    CREATE TABLE products (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        sku TEXT,
        price TEXT,
        stock INTEGER DEFAULT 0,
        category_id INTEGER REFERENCES categories(id),
        created_at TIMESTAMP
    )
    """,
]


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Path of a throwaway SQLite database file."""
    return str(tmp_path / "data" / "marketplace.db")


@pytest_asyncio.fixture
async def sqlite_adapter(db_path):
    """SQLite adapter on a fresh file holding the marketplace tables."""
    adapter = await SQLiteAdapter.connect(db_path)
    for statement in MARKETPLACE_SCHEMA:
        await adapter.execute(statement)
    yield adapter
    await adapter.close()


@pytest.fixture
def mock_adapter() -> AsyncMock:
    """Provides mock database adapter."""
    adapter = AsyncMock(spec=DatabaseAdapter)
    adapter.engine = "sqlite3"
    adapter.placeholder = "?"
    adapter.execute.return_value = ExecResult(rowcount=1, lastrowid=1)
    adapter.fetch_one.return_value = None
    adapter.fetch_all.return_value = []
    adapter.fetch_value.return_value = 0
    return adapter
