"""
Database Adapter interface

Defines the async operations the repositories need from a database engine.
Concrete adapters wrap one driver each (``aiosqlite`` for the embedded engine,
``aiomysql`` for the client/server engine) and translate driver exceptions into
the repository exception hierarchy.
"""

# Standard library imports
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

# Local imports
from marketplace_db.application.interfaces.exceptions import DatabaseError, PrepareError

logger = logging.getLogger(__name__)

Row = dict[str, Any]

# Driver messages that mean the statement was rejected before it ran
PREPARE_ERROR_MARKERS = (
    "syntax error",
    "incomplete input",
    "no such table",
    "no such column",
    "has no column named",
    "doesn't exist",
    "unknown column",
    "incorrect number of bindings",
    "not all arguments converted",
)


@dataclass(frozen=True)
class ExecResult:
    """Outcome of a statement that does not return rows."""

    rowcount: int
    lastrowid: int | None = None


def as_seconds(value: timedelta | float | int) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def classify_driver_error(
    error: Exception, default: type[DatabaseError], query: str, prepare_types: tuple = ()
) -> DatabaseError:
    """
    Translate a driver exception into the repository error hierarchy.

    Args:
        error: Exception raised by the driver
        default: Error class to use when the statement itself was accepted
        query: Statement being run, included in the message
        prepare_types: Driver exception types that always mean a rejected statement

    Returns:
        A DatabaseError instance chained to ``error``
    """
    message = str(error).lower()
    if isinstance(error, prepare_types) or any(m in message for m in PREPARE_ERROR_MARKERS):
        wrapped: DatabaseError = PrepareError(f"failed to prepare statement: {query[:100]}", error)
    else:
        wrapped = default(f"statement failed: {query[:100]}", error)
    logger.error(f"{wrapped.code}: {error} | Query: {query[:100]}...")
    return wrapped


class DatabaseAdapter(ABC):
    """
    Async database adapter contract.

    Rows are returned as dicts keyed by column name. ``transaction()`` yields an
    adapter bound to the transaction's connection; every statement run through
    that adapter is part of the transaction.
    """

    engine: str = ""
    placeholder: str = "?"

    @property
    @abstractmethod
    def has_active_transaction(self) -> bool:
        """Whether this adapter is bound to an open transaction."""

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Whether the underlying connection or pool has been closed."""

    @abstractmethod
    async def execute(self, query: str, params: Sequence[Any] = ()) -> ExecResult:
        """
        Execute a statement that does not return rows.

        Raises:
            PrepareError: If the statement is rejected by the driver
            ExecError: If the statement fails
        """

    @abstractmethod
    async def fetch_one(self, query: str, params: Sequence[Any] = ()) -> Row | None:
        """
        Fetch the first row of a query.

        Raises:
            PrepareError: If the statement is rejected by the driver
            QueryError: If the query fails
            ScanError: If rows cannot be read from the cursor
        """

    @abstractmethod
    async def fetch_all(self, query: str, params: Sequence[Any] = ()) -> list[Row]:
        """Fetch every row of a query; raises like ``fetch_one``."""

    async def fetch_value(self, query: str, params: Sequence[Any] = ()) -> Any:
        """Fetch the first column of the first row, or None when there is no row."""
        row = await self.fetch_one(query, params)
        if not row:
            return None
        return next(iter(row.values()))

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager["DatabaseAdapter"]:
        """
        Open a transaction.

        Usage:
            async with adapter.transaction() as tx:
                await tx.execute(...)

        The transaction commits when the block exits normally and rolls back
        when it raises, including on cancellation.

        Raises:
            TransactionError: If the transaction cannot be started or committed
        """

    @abstractmethod
    async def configure_pool(
        self, max_open: int, max_idle: int, max_lifetime: timedelta | float
    ) -> None:
        """Apply connection pool limits."""

    @abstractmethod
    async def get_connection_info(self) -> dict[str, Any]:
        """Describe the connection or pool for diagnostics."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection or pool. Safe to call more than once."""

    async def health_check(self) -> bool:
        """
        Perform a health check on the database connection.

        Returns:
            True if database is healthy, False otherwise
        """
        try:
            return await self.fetch_value("SELECT 1") == 1
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False
