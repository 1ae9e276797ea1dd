"""
Repository Interface Definitions

Defines the contract that generic table repositories and their decorators
implement. Business services depend on this protocol only, so a plain
repository and a cached or audited one are interchangeable.
"""

# Standard library imports
from abc import abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any, Protocol, TypeVar

T = TypeVar("T")

# Either a mapping of column -> value (filter semantics) or a sequence of
# query builder conditions
Conditions = Mapping[str, Any] | Sequence[Any] | None


class IRepository(Protocol):
    """
    Generic table repository interface.

    ``record_type`` arguments name a dataclass to build from each row; when it
    is omitted rows are returned as dicts.
    """

    @abstractmethod
    async def create(self, table: str, fields: Sequence[str], values: Sequence[Any]) -> int:
        """
        Insert one row.

        Args:
            table: Target table
            fields: Column names
            values: Values, parallel to ``fields``

        Returns:
            The generated id of the new row

        Raises:
            InvalidTableError: If the table name is invalid
            RepositoryError: If the insert fails
        """
        ...

    @abstractmethod
    async def create_record(self, table: str, record: Any) -> int:
        """
        Insert a dataclass record or mapping, leaving out its ``id`` field.

        Returns:
            The generated id of the new row
        """
        ...

    @abstractmethod
    async def update(self, table: str, record_id: Any, data: Any) -> None:
        """
        Update the row with ``record_id`` from a mapping or dataclass record.

        Raises:
            RepositoryError: If the update fails
        """
        ...

    @abstractmethod
    async def delete(self, table: str, record_id: Any) -> None:
        """Delete the row with ``record_id``."""
        ...

    @abstractmethod
    async def find_by_id(self, table: str, record_id: Any, record_type: type | None = None) -> Any:
        """
        Retrieve a row by its id.

        Raises:
            NoRowsError: If no row has that id
        """
        ...

    @abstractmethod
    async def find_all(
        self,
        table: str,
        record_type: type | None = None,
        conditions: Conditions = None,
        order_by: str = "",
        limit: int = 0,
        offset: int = 0,
    ) -> list[Any]:
        """
        Retrieve rows matching ``conditions``.

        Args:
            order_by: ``"<field> [ASC|DESC]"``, defaults to ``id DESC``
            limit: Maximum rows, 0 for no limit
            offset: Rows to skip, only applied with a limit
        """
        ...

    @abstractmethod
    async def find_one(
        self, table: str, record_type: type | None = None, conditions: Conditions = None
    ) -> Any:
        """
        Retrieve the first row matching ``conditions``.

        Raises:
            NoRowsError: If nothing matches
        """
        ...

    @abstractmethod
    async def count(self, table: str, conditions: Conditions = None) -> int:
        """Count rows matching ``conditions``."""
        ...

    @abstractmethod
    async def search(
        self,
        table: str,
        fields: Sequence[str],
        term: str,
        limit: int = 0,
        offset: int = 0,
        record_type: type | None = None,
    ) -> list[Any]:
        """Retrieve rows where any of ``fields`` contains ``term``."""
        ...

    @abstractmethod
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
        """Retrieve rows whose ``date_field`` lies between ``start`` and ``end`` inclusive."""
        ...

    @abstractmethod
    async def transaction(self, fn: Callable[["IRepository"], Awaitable[T]]) -> T:
        """
        Run ``fn`` inside a transaction.

        ``fn`` receives a repository bound to the transaction. The transaction
        commits when ``fn`` returns and rolls back when it raises; the original
        exception is re-raised.

        Returns:
            Whatever ``fn`` returns
        """
        ...

    @abstractmethod
    async def bulk_create(self, table: str, records: Sequence[Any]) -> list[int]:
        """
        Insert records one at a time.

        Not atomic: rows inserted before a failure stay inserted.

        Raises:
            BulkOperationError: Carrying the ids created before the failure
        """
        ...

    @abstractmethod
    async def bulk_update(self, table: str, ids: Sequence[Any], data: Any) -> None:
        """Apply the same update to each id in turn; not atomic."""
        ...

    @abstractmethod
    async def bulk_delete(self, table: str, ids: Sequence[Any]) -> None:
        """Delete each id in turn; not atomic."""
        ...

    @abstractmethod
    async def exists(self, table: str, conditions: Conditions = None) -> bool:
        """Whether at least one row matches ``conditions``."""
        ...

    @abstractmethod
    async def soft_delete(self, table: str, record_id: Any) -> None:
        """Mark a row deleted by setting ``deleted_at`` and ``is_deleted``."""
        ...

    @abstractmethod
    async def set_connection_pool(
        self, max_open: int, max_idle: int, max_lifetime: timedelta | float
    ) -> None:
        """Apply connection pool limits to the underlying adapter."""
        ...
