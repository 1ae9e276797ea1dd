"""
Audit Repository decorator

Wraps any IRepository. Every call is timed and written to the query log;
failures are logged with their arguments and re-raised unchanged. Successful
mutations produce an AuditLogEntry that is handed to the AuditLogger.
Audit sink failures are logged and never reach the caller.
"""

# Standard library imports
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta
from typing import Any, TypeVar

# Local imports
from marketplace_db.application.interfaces.exceptions import (
    BulkOperationError,
    RepositoryError,
)
from marketplace_db.application.interfaces.repositories import Conditions, IRepository
from marketplace_db.infrastructure.audit import (
    AuditAction,
    AuditContext,
    AuditException,
    AuditLogEntry,
    AuditLogger,
    QueryLogger,
)
from marketplace_db.infrastructure.database.mapper import record_to_mapping

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _values_of(data: Any, for_insert: bool = False) -> dict[str, Any] | None:
    try:
        return record_to_mapping(data, for_insert=for_insert)
    except RepositoryError:
        return None


class AuditRepository(IRepository):
    """
    Repository decorator adding query logging and audit entries.

    Inside ``transaction`` entries are buffered and only written once the
    transaction commits, so rolled-back mutations leave no audit trail.
    """

    def __init__(
        self,
        inner: IRepository,
        audit_logger: AuditLogger | None = None,
        query_logger: QueryLogger | None = None,
        context: AuditContext | None = None,
        capture_old_values: bool = True,
    ) -> None:
        """
        Initialize the decorator.

        Args:
            inner: Next repository in the chain
            audit_logger: Receives one entry per successful mutation
            query_logger: Receives one line per call
            context: User, IP and user agent attached to every entry
            capture_old_values: Read the row before update and delete to record old values
        """
        self.inner = inner
        self.audit_logger = audit_logger or AuditLogger()
        self.query_logger = query_logger or QueryLogger()
        self.context = context or AuditContext()
        self.capture_old_values = capture_old_values
        self._pending: list[AuditLogEntry] | None = None

    def with_context(self, context: AuditContext) -> "AuditRepository":
        """Return a copy of this decorator that records ``context`` on its entries."""
        return AuditRepository(
            self.inner, self.audit_logger, self.query_logger, context, self.capture_old_values
        )

    async def _timed(
        self, operation: str, table: str, call: Callable[[], Awaitable[T]], **args: Any
    ) -> T:
        start = time.perf_counter()
        try:
            result = await call()
        except Exception as e:
            elapsed = timedelta(seconds=time.perf_counter() - start)
            self.query_logger.log_error(operation, table, args, e, elapsed)
            raise
        elapsed = timedelta(seconds=time.perf_counter() - start)
        self.query_logger.log_query(operation, table, args, elapsed)
        return result

    async def _snapshot(self, table: str, record_id: Any) -> dict[str, Any] | None:
        if not self.capture_old_values:
            return None
        try:
            row = await self.inner.find_by_id(table, record_id)
        except RepositoryError as e:
            logger.debug(f"No previous values for {table}/{record_id}: {e}")
            return None
        return row if isinstance(row, dict) else _values_of(row)

    def _emit(
        self,
        table: str,
        record_id: Any,
        action: AuditAction,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        entry = AuditLogEntry.create(table, record_id, action, old_values, new_values, self.context)
        self._dispatch(entry)

    def _dispatch(self, entry: AuditLogEntry) -> None:
        if self._pending is not None:
            self._pending.append(entry)
            return
        try:
            self.audit_logger.log_audit(entry)
        except AuditException as e:
            logger.error(
                f"AUDIT_{entry.action.value} failed for {entry.table_name}/{entry.record_id}: {e}"
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, table: str, fields: Sequence[str], values: Sequence[Any]) -> int:
        record_id = await self._timed(
            "create",
            table,
            lambda: self.inner.create(table, fields, values),
            fields=list(fields),
            values=list(values),
        )
        self._emit(table, record_id, AuditAction.CREATE, new_values=dict(zip(fields, values)))
        return record_id

    async def create_record(self, table: str, record: Any) -> int:
        new_values = _values_of(record, for_insert=True)
        record_id = await self._timed(
            "create_record",
            table,
            lambda: self.inner.create_record(table, record),
            record=new_values,
        )
        self._emit(table, record_id, AuditAction.CREATE, new_values=new_values)
        return record_id

    async def update(self, table: str, record_id: Any, data: Any) -> None:
        old_values = await self._snapshot(table, record_id)
        new_values = _values_of(data)
        await self._timed(
            "update",
            table,
            lambda: self.inner.update(table, record_id, data),
            id=record_id,
            data=new_values,
        )
        self._emit(table, record_id, AuditAction.UPDATE, old_values, new_values)

    async def delete(self, table: str, record_id: Any) -> None:
        old_values = await self._snapshot(table, record_id)
        await self._timed("delete", table, lambda: self.inner.delete(table, record_id), id=record_id)
        self._emit(table, record_id, AuditAction.DELETE, old_values=old_values)

    async def soft_delete(self, table: str, record_id: Any) -> None:
        old_values = await self._snapshot(table, record_id)
        await self._timed(
            "soft_delete", table, lambda: self.inner.soft_delete(table, record_id), id=record_id
        )
        self._emit(table, record_id, AuditAction.UPDATE, old_values, {"is_deleted": True})

    async def bulk_create(self, table: str, records: Sequence[Any]) -> list[int]:
        try:
            ids = await self._timed(
                "bulk_create",
                table,
                lambda: self.inner.bulk_create(table, records),
                count=len(records),
            )
        except BulkOperationError as e:
            self._emit_created(table, e.completed, records)
            raise

        self._emit_created(table, ids, records)
        return ids

    def _emit_created(self, table: str, ids: Sequence[Any], records: Sequence[Any]) -> None:
        for record_id, record in zip(ids, records):
            new_values = _values_of(record, for_insert=True)
            self._emit(table, record_id, AuditAction.CREATE, new_values=new_values)

    async def bulk_update(self, table: str, ids: Sequence[Any], data: Any) -> None:
        new_values = _values_of(data)
        try:
            await self._timed(
                "bulk_update",
                table,
                lambda: self.inner.bulk_update(table, ids, data),
                ids=list(ids),
                data=new_values,
            )
        except BulkOperationError as e:
            for record_id in e.completed:
                self._emit(table, record_id, AuditAction.UPDATE, new_values=new_values)
            raise

        for record_id in ids:
            self._emit(table, record_id, AuditAction.UPDATE, new_values=new_values)

    async def bulk_delete(self, table: str, ids: Sequence[Any]) -> None:
        try:
            await self._timed(
                "bulk_delete", table, lambda: self.inner.bulk_delete(table, ids), ids=list(ids)
            )
        except BulkOperationError as e:
            for record_id in e.completed:
                self._emit(table, record_id, AuditAction.DELETE)
            raise

        for record_id in ids:
            self._emit(table, record_id, AuditAction.DELETE)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, table: str, record_id: Any, record_type: type | None = None) -> Any:
        return await self._timed(
            "find_by_id",
            table,
            lambda: self.inner.find_by_id(table, record_id, record_type),
            id=record_id,
        )

    async def find_all(
        self,
        table: str,
        record_type: type | None = None,
        conditions: Conditions = None,
        order_by: str = "",
        limit: int = 0,
        offset: int = 0,
    ) -> list[Any]:
        return await self._timed(
            "find_all",
            table,
            lambda: self.inner.find_all(table, record_type, conditions, order_by, limit, offset),
            conditions=conditions,
            order_by=order_by,
            limit=limit,
            offset=offset,
        )

    async def find_one(
        self, table: str, record_type: type | None = None, conditions: Conditions = None
    ) -> Any:
        return await self._timed(
            "find_one",
            table,
            lambda: self.inner.find_one(table, record_type, conditions),
            conditions=conditions,
        )

    async def count(self, table: str, conditions: Conditions = None) -> int:
        return await self._timed(
            "count", table, lambda: self.inner.count(table, conditions), conditions=conditions
        )

    async def search(
        self,
        table: str,
        fields: Sequence[str],
        term: str,
        limit: int = 0,
        offset: int = 0,
        record_type: type | None = None,
    ) -> list[Any]:
        return await self._timed(
            "search",
            table,
            lambda: self.inner.search(table, fields, term, limit, offset, record_type),
            fields=list(fields),
            term=term,
            limit=limit,
            offset=offset,
        )

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
        return await self._timed(
            "find_by_date_range",
            table,
            lambda: self.inner.find_by_date_range(
                table, date_field, start, end, limit, offset, record_type
            ),
            field=date_field,
            start=start,
            end=end,
        )

    async def exists(self, table: str, conditions: Conditions = None) -> bool:
        return await self._timed(
            "exists", table, lambda: self.inner.exists(table, conditions), conditions=conditions
        )

    # ------------------------------------------------------------------
    # Transactions and pool
    # ------------------------------------------------------------------

    async def transaction(self, fn: Callable[[IRepository], Awaitable[T]]) -> T:
        bound: list[AuditRepository] = []

        async def run(tx: IRepository) -> T:
            audited = AuditRepository(
                tx, self.audit_logger, self.query_logger, self.context, self.capture_old_values
            )
            audited._pending = []
            bound.append(audited)
            return await fn(audited)

        result = await self._timed("transaction", "", lambda: self.inner.transaction(run))

        # Committed: release the entries buffered while the transaction ran
        for audited in bound:
            for entry in audited._pending or ():
                self._dispatch(entry)
        return result

    async def set_connection_pool(
        self, max_open: int, max_idle: int, max_lifetime: timedelta | float
    ) -> None:
        await self._timed(
            "set_connection_pool",
            "",
            lambda: self.inner.set_connection_pool(max_open, max_idle, max_lifetime),
            max_open=max_open,
            max_idle=max_idle,
            max_lifetime=max_lifetime,
        )

    def __str__(self) -> str:
        return f"AuditRepository({self.inner})"
