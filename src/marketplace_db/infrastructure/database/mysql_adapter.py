"""
MySQL Database Adapter

Provides async database operations on a MySQL server using an aiomysql pool.
Connections run in autocommit mode; a transaction pins one pooled connection
until it commits or rolls back.
"""

# Standard library imports
import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

# Third-party imports
import aiomysql

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
from marketplace_db.infrastructure.database.sql_values import (
    naive_utc,
    scalar_kind,
    unwrap_enum,
)

logger = logging.getLogger(__name__)

PoolFactory = Callable[[int, int, float], Awaitable[aiomysql.Pool]]


class MySQLAdapter(DatabaseAdapter):
    """
    MySQL database adapter using aiomysql.

    Provides high-level database operations with error handling,
    connection management, and transaction support.
    """

    engine = "mysql"
    placeholder = "%s"

    def __init__(
        self,
        pool: aiomysql.Pool,
        pool_factory: PoolFactory | None = None,
        *,
        connection: aiomysql.Connection | None = None,
    ) -> None:
        """
        Initialize adapter with connection pool.

        Args:
            pool: aiomysql connection pool
            pool_factory: Coroutine building a replacement pool from
                (max_open, max_idle, max_lifetime_seconds); needed by ``configure_pool``
            connection: Connection pinned by an open transaction
        """
        self._pool = pool
        self._pool_factory = pool_factory
        self._connection = connection
        self._finished = False
        self._closed = False

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        *,
        max_open: int = 25,
        max_idle: int = 10,
        max_lifetime: timedelta | float = 300,
        connect_timeout: float = 10,
    ) -> "MySQLAdapter":
        """
        Create a pool and verify that the server answers.

        Raises:
            ConnectionError: If the pool cannot be created or the server does not respond
        """

        async def create_pool(open_limit: int, idle_limit: int, lifetime: float) -> aiomysql.Pool:
            return await aiomysql.create_pool(
                host=host,
                port=port,
                user=user,
                password=password,
                db=database,
                minsize=max(0, min(idle_limit, open_limit)),
                maxsize=max(1, open_limit),
                pool_recycle=int(lifetime) if lifetime > 0 else -1,
                connect_timeout=connect_timeout,
                autocommit=True,
                charset="utf8mb4",
                cursorclass=aiomysql.DictCursor,
            )

        try:
            pool = await create_pool(max_open, max_idle, as_seconds(max_lifetime))
        except (aiomysql.Error, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to create MySQL pool for {host}:{port}/{database}: {e}")
            raise ConnectionError(f"Failed to connect to MySQL at {host}:{port}", e) from e

        adapter = cls(pool, create_pool)
        if not await adapter.health_check():
            await adapter.close()
            raise ConnectionError(f"MySQL at {host}:{port} did not answer health check")

        logger.info(f"MySQL pool connected to {host}:{port}/{database}")
        return adapter

    @property
    def pool(self) -> aiomysql.Pool:
        """Get the connection pool."""
        return self._pool

    @property
    def has_active_transaction(self) -> bool:
        return self._connection is not None and not self._finished

    @property
    def is_closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def acquire_connection(self) -> AsyncGenerator[aiomysql.Connection, None]:
        """
        Acquire a database connection from the pool.

        Yields:
            Database connection

        Raises:
            ConnectionError: If connection cannot be acquired
        """
        if self._connection is not None:
            if self._finished:
                raise TransactionError("Transaction is no longer active")
            # Use existing connection if in transaction
            yield self._connection
            return

        if self._closed:
            raise ConnectionError("MySQL pool is closed")

        try:
            async with self._pool.acquire() as connection:
                yield connection
        except (aiomysql.OperationalError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to acquire connection: {e}")
            raise ConnectionError(f"Failed to acquire database connection: {e}", e) from e

    @staticmethod
    def _bind(params: Sequence[Any]) -> tuple[Any, ...]:
        for param in params:
            scalar_kind(param)
        return tuple(naive_utc(unwrap_enum(p)) for p in params)

    async def execute(self, query: str, params: Sequence[Any] = ()) -> ExecResult:
        bound = self._bind(params)
        async with self.acquire_connection() as conn, conn.cursor() as cur:
            try:
                await cur.execute(query, bound)
            except aiomysql.Error as e:
                raise classify_driver_error(
                    e, ExecError, query, (aiomysql.ProgrammingError,)
                ) from e
            result = ExecResult(cur.rowcount, cur.lastrowid)

        logger.debug(f"Query executed: {query[:100]}... | Rows: {result.rowcount}")
        return result

    async def fetch_all(self, query: str, params: Sequence[Any] = ()) -> list[Row]:
        bound = self._bind(params)
        async with self.acquire_connection() as conn, conn.cursor() as cur:
            try:
                await cur.execute(query, bound)
            except aiomysql.Error as e:
                raise classify_driver_error(
                    e, QueryError, query, (aiomysql.ProgrammingError,)
                ) from e
            try:
                rows = await cur.fetchall()
            except aiomysql.Error as e:
                logger.error(f"Failed to read rows: {e} | Query: {query[:100]}...")
                raise ScanError(f"failed to read rows: {query[:100]}", e) from e

        logger.debug(f"Fetched {len(rows)} rows: {query[:100]}...")
        return [dict(row) for row in rows]

    async def fetch_one(self, query: str, params: Sequence[Any] = ()) -> Row | None:
        rows = await self.fetch_all(query, params)
        return rows[0] if rows else None

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator["MySQLAdapter", None]:
        if self._connection is not None:
            raise TransactionError("Transaction is already active")

        async with self.acquire_connection() as conn:
            try:
                await conn.begin()
            except aiomysql.Error as e:
                logger.error(f"Failed to start transaction: {e}")
                raise TransactionError(f"Failed to start transaction: {e}", e) from e
            logger.debug("Transaction started")

            tx = MySQLAdapter(self._pool, self._pool_factory, connection=conn)
            try:
                yield tx
            except BaseException:
                await self._rollback(conn)
                raise
            else:
                try:
                    await conn.commit()
                except aiomysql.Error as e:
                    logger.error(f"Failed to commit transaction: {e}")
                    await self._rollback(conn)
                    raise TransactionError(f"Failed to commit transaction: {e}", e) from e
                logger.debug("Transaction committed")
            finally:
                tx._finished = True

    @staticmethod
    async def _rollback(conn: aiomysql.Connection) -> None:
        try:
            await conn.rollback()
            logger.debug("Transaction rolled back")
        except aiomysql.Error as e:
            logger.error(f"Failed to rollback transaction: {e}")

    async def configure_pool(
        self, max_open: int, max_idle: int, max_lifetime: timedelta | float
    ) -> None:
        """
        Replace the pool with one built from the new limits.

        aiomysql pools cannot be resized in place, so a new pool is created and
        the old one is drained.
        """
        if self._connection is not None:
            raise TransactionError("Cannot reconfigure the pool inside a transaction")
        if self._pool_factory is None:
            logger.warning("No pool factory configured; pool limits left unchanged")
            return

        new_pool = await self._pool_factory(max_open, max_idle, as_seconds(max_lifetime))
        old_pool, self._pool = self._pool, new_pool
        old_pool.close()
        await old_pool.wait_closed()
        logger.info(
            f"MySQL pool reconfigured: max_open={max_open} max_idle={max_idle} "
            f"max_lifetime={as_seconds(max_lifetime)}s"
        )

    async def get_connection_info(self) -> dict[str, Any]:
        return {
            "engine": self.engine,
            "max_size": self._pool.maxsize,
            "min_size": self._pool.minsize,
            "size": self._pool.size,
            "free_size": self._pool.freesize,
            "status": "closed" if self._closed else "active",
        }

    async def close(self) -> None:
        if self._closed or self._connection is not None:
            return
        self._closed = True
        self._pool.close()
        await self._pool.wait_closed()
        logger.info("MySQL pool closed")

    def __str__(self) -> str:
        """String representation of the adapter."""
        pool_info = f"Pool(max_size={self._pool.maxsize})"
        tx_info = "with active transaction" if self.has_active_transaction else "no transaction"
        return f"MySQLAdapter({pool_info}, {tx_info})"
