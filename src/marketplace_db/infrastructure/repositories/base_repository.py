"""
Generic Table Repository Implementation

Concrete implementation of IRepository on top of a DatabaseAdapter. Every
statement is produced by the query builder, so table names are validated and
values are bound as parameters. Rows are converted with the record mapper.
"""

# Standard library imports
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

# Local imports
from marketplace_db.application.interfaces.exceptions import (
    BulkOperationError,
    InvalidTableError,
    NoRowsError,
    RepositoryError,
    ValidationError,
)
from marketplace_db.application.interfaces.repositories import Conditions, IRepository
from marketplace_db.infrastructure.database.adapter import DatabaseAdapter
from marketplace_db.infrastructure.database.mapper import (
    mapping_to_record,
    record_to_fields,
    record_to_mapping,
    rows_to_records,
)
from marketplace_db.infrastructure.database.query_builder import (
    Condition,
    ConditionGroup,
    QueryBuilder,
    validate_table_name,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ID_COLUMN = "id"
DEFAULT_ORDER = (ID_COLUMN, "DESC")


def parse_order_by(order_by: str) -> tuple[str, str]:
    """
    Split ``"<field> [ASC|DESC]"`` into field and direction.

    An empty string orders by ``id DESC``; any direction other than ASC is DESC.
    """
    parts = order_by.split() if order_by else []
    if not parts:
        return DEFAULT_ORDER
    direction = "ASC" if len(parts) > 1 and parts[1].upper() == "ASC" else "DESC"
    return parts[0], direction


def apply_conditions(builder: QueryBuilder, conditions: Conditions) -> QueryBuilder:
    """
    Add ``conditions`` to ``builder``.

    Mappings use the builder's filter rules; sequences may hold Condition
    objects, ConditionGroup objects or ``(field, operator, value)`` tuples.
    """
    if not conditions:
        return builder
    if isinstance(conditions, Mapping):
        return builder.filter(conditions)

    for condition in conditions:
        if isinstance(condition, Condition | ConditionGroup):
            builder.add_condition(condition)
        elif isinstance(condition, tuple) and len(condition) in (2, 3):
            builder.where(*condition)
        else:
            raise ValidationError(f"unsupported condition: {condition!r}")
    return builder


class BaseRepository(IRepository):
    """
    Generic repository for any table with an integer ``id`` primary key.

    Provides CRUD, search, counting, bulk and transactional operations
    over a database adapter.
    """

    def __init__(self, adapter: DatabaseAdapter) -> None:
        """
        Initialize repository with database adapter.

        Args:
            adapter: Adapter for the active database engine
        """
        self.adapter = adapter

    def _builder(self, table: str) -> QueryBuilder:
        if not table or not validate_table_name(table):
            raise InvalidTableError(table)
        return QueryBuilder(table, placeholder=self.adapter.placeholder)

    async def create(self, table: str, fields: Sequence[str], values: Sequence[Any]) -> int:
        if len(fields) != len(values):
            raise ValidationError(
                f"field/value count mismatch: {len(fields)} fields, {len(values)} values"
            )

        query = self._builder(table).build_insert(dict(zip(fields, values)))
        result = await self.adapter.execute(query.sql, query.parameters)

        record_id = int(result.lastrowid or 0)
        logger.debug(f"Inserted row {record_id} into {table}")
        return record_id

    async def create_record(self, table: str, record: Any) -> int:
        fields, values = record_to_fields(record, for_insert=True)
        return await self.create(table, fields, values)

    @staticmethod
    def _update_values(data: Any) -> dict[str, Any]:
        values = {
            column: value
            for column, value in record_to_mapping(data).items()
            if column.lower() != ID_COLUMN
        }
        if not values:
            raise ValidationError("update requires at least one column besides id")
        return values

    async def update(self, table: str, record_id: Any, data: Any) -> None:
        query = (
            self._builder(table)
            .update(self._update_values(data))
            .where(ID_COLUMN, "=", record_id)
            .build()
        )
        result = await self.adapter.execute(query.sql, query.parameters)
        logger.debug(f"Updated {table} id={record_id} ({result.rowcount} row(s))")

    async def delete(self, table: str, record_id: Any) -> None:
        query = self._builder(table).delete().where(ID_COLUMN, "=", record_id).build()
        result = await self.adapter.execute(query.sql, query.parameters)
        logger.debug(f"Deleted {table} id={record_id} ({result.rowcount} row(s))")

    async def find_by_id(self, table: str, record_id: Any, record_type: type | None = None) -> Any:
        query = self._builder(table).find_by_id(record_id)
        row = await self.adapter.fetch_one(query.sql, query.parameters)
        if row is None:
            raise NoRowsError(table, {ID_COLUMN: record_id})
        return mapping_to_record(row, record_type)

    async def find_all(
        self,
        table: str,
        record_type: type | None = None,
        conditions: Conditions = None,
        order_by: str = "",
        limit: int = 0,
        offset: int = 0,
    ) -> list[Any]:
        field, direction = parse_order_by(order_by)
        builder = apply_conditions(self._builder(table), conditions)
        query = builder.order_by(field, direction).limit(limit).offset(offset).build()
        rows = await self.adapter.fetch_all(query.sql, query.parameters)
        return rows_to_records(rows, record_type)

    async def find_one(
        self, table: str, record_type: type | None = None, conditions: Conditions = None
    ) -> Any:
        query = apply_conditions(self._builder(table), conditions).limit(1).build()
        row = await self.adapter.fetch_one(query.sql, query.parameters)
        if row is None:
            raise NoRowsError(table, conditions)
        return mapping_to_record(row, record_type)

    async def count(self, table: str, conditions: Conditions = None) -> int:
        query = apply_conditions(self._builder(table), conditions).build_count()
        value = await self.adapter.fetch_value(query.sql, query.parameters)
        return int(value or 0)

    async def search(
        self,
        table: str,
        fields: Sequence[str],
        term: str,
        limit: int = 0,
        offset: int = 0,
        record_type: type | None = None,
    ) -> list[Any]:
        if not fields:
            raise ValidationError("search requires at least one field")

        query = self._builder(table).limit(limit).offset(offset).search(fields, term)
        rows = await self.adapter.fetch_all(query.sql, query.parameters)
        return rows_to_records(rows, record_type)

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
        query = self._builder(table).limit(limit).offset(offset).date_range(date_field, start, end)
        rows = await self.adapter.fetch_all(query.sql, query.parameters)
        return rows_to_records(rows, record_type)

    async def transaction(self, fn: Callable[[IRepository], Awaitable[T]]) -> T:
        async with self.adapter.transaction() as tx_adapter:
            try:
                return await fn(BaseRepository(tx_adapter))
            except BaseException as e:
                logger.warning(f"Rolling back transaction: {type(e).__name__}: {e}")
                raise

    async def soft_delete(self, table: str, record_id: Any) -> None:
        deleted_at = datetime.now(UTC).replace(tzinfo=None)
        await self.update(table, record_id, {"deleted_at": deleted_at, "is_deleted": True})

    async def bulk_create(self, table: str, records: Sequence[Any]) -> list[int]:
        created: list[int] = []
        for record in records:
            try:
                created.append(await self.create_record(table, record))
            except RepositoryError as e:
                logger.error(f"bulk_create on {table} stopped after {len(created)} row(s): {e}")
                raise BulkOperationError("bulk_create", created, e) from e
        return created

    async def bulk_update(self, table: str, ids: Sequence[Any], data: Any) -> None:
        completed: list[Any] = []
        for record_id in ids:
            try:
                await self.update(table, record_id, data)
            except RepositoryError as e:
                logger.error(f"bulk_update on {table} stopped at id={record_id}: {e}")
                raise BulkOperationError("bulk_update", completed, e) from e
            completed.append(record_id)

    async def bulk_delete(self, table: str, ids: Sequence[Any]) -> None:
        completed: list[Any] = []
        for record_id in ids:
            try:
                await self.delete(table, record_id)
            except RepositoryError as e:
                logger.error(f"bulk_delete on {table} stopped at id={record_id}: {e}")
                raise BulkOperationError("bulk_delete", completed, e) from e
            completed.append(record_id)

    async def exists(self, table: str, conditions: Conditions = None) -> bool:
        return await self.count(table, conditions) > 0

    async def set_connection_pool(
        self, max_open: int, max_idle: int, max_lifetime: timedelta | float
    ) -> None:
        await self.adapter.configure_pool(max_open, max_idle, max_lifetime)

    def __str__(self) -> str:
        return f"BaseRepository({self.adapter})"
