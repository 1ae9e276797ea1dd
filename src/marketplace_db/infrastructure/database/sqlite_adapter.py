"""
SQLite Database Adapter

Provides async database operations on an embedded SQLite file using aiosqlite.
SQLite allows a single writer, so the adapter owns exactly one connection and
serializes every statement through an asyncio lock. A transaction holds the
lock from BEGIN until COMMIT or ROLLBACK.
"""

# Standard library imports
import asyncio
import logging
import sqlite3
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import Any

# Third-party imports
import aiosqlite

# Local imports
from marketplace_db.application.interfaces.exceptions import (
    ConnectionError,
    ExecError,
    QueryError,
    ScanError,
    TransactionError,
)
from marketplace_db.infrastructure.database.adapter import (
    DatabaseAdapter,
    ExecResult,
    Row,
    as_seconds,
    classify_driver_error,
)
from marketplace_db.infrastructure.database.sql_values import to_sqlite_params

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite database adapter using aiosqlite.

    The connection runs in autocommit mode (``isolation_level=None``);
    transactions are opened explicitly with BEGIN.
    """

    engine = "sqlite3"
    placeholder = "?"

    def __init__(
        self,
        connection: aiosqlite.Connection,
        path: str = MEMORY_DATABASE,
        lock: asyncio.Lock | None = None,
        *,
        in_transaction: bool = False,
    ) -> None:
        """
        Initialize adapter with an open connection.

        Args:
            connection: aiosqlite connection in autocommit mode
            path: Database file path, for diagnostics
            lock: Lock shared by every adapter bound to ``connection``
            in_transaction: Whether this adapter is bound to an open transaction
        """
        self._connection = connection
        self._path = path
        self._lock = lock or asyncio.Lock()
        self._in_transaction = in_transaction
        self._finished = False
        self._closed = False
        self._pool_settings = {"max_open": 1, "max_idle": 1, "max_lifetime": 0.0}

    @classmethod
    async def connect(cls, path: str, timeout: float = 5.0) -> "SQLiteAdapter":
        """
        Open a SQLite database file.

        Creates the parent directory, enables foreign keys and, for file
        databases, switches the journal to WAL.

        Raises:
            ConnectionError: If the file cannot be opened
        """
        try:
            if path != MEMORY_DATABASE:
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            connection = await aiosqlite.connect(path, timeout=timeout, isolation_level=None)
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to open SQLite database {path}: {e}")
            raise ConnectionError(f"Failed to open SQLite database {path}", e) from e

        try:
            await connection.execute("PRAGMA foreign_keys = ON")
            if path != MEMORY_DATABASE:
                await connection.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as e:
            await connection.close()
            raise ConnectionError(f"Failed to configure SQLite database {path}", e) from e

        logger.info(f"SQLite database opened at {path}")
        return cls(connection, path)

    @property
    def path(self) -> str:
        return self._path

    @property
    def has_active_transaction(self) -> bool:
        return self._in_transaction and not self._finished

    @property
    def is_closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def _guard(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Serialize access to the connection; transaction-bound adapters already hold the lock."""
        if self._closed:
            raise ConnectionError("SQLite connection is closed")
        if self._in_transaction:
            if self._finished:
                raise TransactionError("Transaction is no longer active")
            yield self._connection
            return

        async with self._lock:
            yield self._connection

    async def execute(self, query: str, params: Sequence[Any] = ()) -> ExecResult:
        bound = to_sqlite_params(params)
        async with self._guard() as conn:
            try:
                cursor = await conn.execute(query, bound)
            except sqlite3.Error as e:
                raise classify_driver_error(
                    e, ExecError, query, (sqlite3.ProgrammingError,)
                ) from e
            try:
                result = ExecResult(cursor.rowcount, cursor.lastrowid)
            finally:
                await cursor.close()

        logger.debug(f"Query executed: {query[:100]}... | Rows: {result.rowcount}")
        return result

    async def fetch_all(self, query: str, params: Sequence[Any] = ()) -> list[Row]:
        bound = to_sqlite_params(params)
        async with self._guard() as conn:
            try:
                cursor = await conn.execute(query, bound)
            except sqlite3.Error as e:
                raise classify_driver_error(
                    e, QueryError, query, (sqlite3.ProgrammingError,)
                ) from e
            try:
                rows = await cursor.fetchall()
                columns = [d[0] for d in cursor.description or ()]
            except sqlite3.Error as e:
                logger.error(f"Failed to read rows: {e} | Query: {query[:100]}...")
                raise ScanError(f"failed to read rows: {query[:100]}", e) from e
            finally:
                await cursor.close()

        logger.debug(f"Fetched {len(rows)} rows: {query[:100]}...")
        return [dict(zip(columns, row)) for row in rows]

    async def fetch_one(self, query: str, params: Sequence[Any] = ()) -> Row | None:
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator["SQLiteAdapter", None]:
        if self._in_transaction:
            raise TransactionError("Transaction is already active")
        if self._closed:
            raise ConnectionError("SQLite connection is closed")

        async with self._lock:
            try:
                await self._connection.execute("BEGIN")
            except sqlite3.Error as e:
                logger.error(f"Failed to start transaction: {e}")
                raise TransactionError(f"Failed to start transaction: {e}", e) from e
            logger.debug("Transaction started")

            tx = SQLiteAdapter(self._connection, self._path, self._lock, in_transaction=True)
            try:
                yield tx
            except BaseException:
                await self._rollback()
                raise
            else:
                try:
                    await self._connection.execute("COMMIT")
                except sqlite3.Error as e:
                    logger.error(f"Failed to commit transaction: {e}")
                    await self._rollback()
                    raise TransactionError(f"Failed to commit transaction: {e}", e) from e
                logger.debug("Transaction committed")
            finally:
                tx._finished = True

    async def _rollback(self) -> None:
        try:
            await self._connection.execute("ROLLBACK")
            logger.debug("Transaction rolled back")
        except sqlite3.Error as e:
            logger.error(f"Failed to rollback transaction: {e}")

    async def configure_pool(
        self, max_open: int, max_idle: int, max_lifetime: timedelta | float
    ) -> None:
        if max_open != 1 or max_idle != 1:
            logger.info(
                f"SQLite allows a single writer; ignoring pool limits "
                f"max_open={max_open} max_idle={max_idle}"
            )
        self._pool_settings = {
            "max_open": 1,
            "max_idle": 1,
            "max_lifetime": as_seconds(max_lifetime),
        }

    async def get_connection_info(self) -> dict[str, Any]:
        return {
            "engine": self.engine,
            "path": self._path,
            **self._pool_settings,
            "status": "closed" if self._closed else "active",
        }

    async def close(self) -> None:
        if self._closed or self._in_transaction:
            return
        self._closed = True
        await self._connection.close()
        logger.info(f"SQLite database closed at {self._path}")

    def __str__(self) -> str:
        tx_info = "with active transaction" if self.has_active_transaction else "no transaction"
        return f"SQLiteAdapter(path={self._path!r}, {tx_info})"
