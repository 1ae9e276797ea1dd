"""
Pagination helpers.

Offset pagination turns page/size/sort input into a validated
``ORDER BY ... LIMIT ... OFFSET ...`` suffix and derives page metadata from a
total count. Cursor pagination compares against the last seen key instead of
skipping rows, and fetches one extra row to tell whether more remain.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from marketplace_db.infrastructure.database.adapter import DatabaseAdapter, Row
from marketplace_db.infrastructure.database.mapper import rows_to_records
from marketplace_db.infrastructure.database.query_builder import QueryResult, validate_identifier
from marketplace_db.infrastructure.security.input_sanitizer import InputSanitizer, SanitizationError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
DEFAULT_ORDER_FIELD = "id"


def _normalize_direction(direction: str | None, default: str) -> str:
    direction = (direction or "").upper()
    return direction if direction in ("ASC", "DESC") else default


def _clamp_size(size: int) -> int:
    if size < 1:
        return DEFAULT_PAGE_SIZE
    return min(size, MAX_PAGE_SIZE)


@dataclass(frozen=True)
class PaginationParams:
    """Page request: 1-based page number, page size and ordering."""

    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    order_by: str = DEFAULT_ORDER_FIELD
    order: str = "DESC"

    def validate(self) -> "PaginationParams":
        """
        Return normalized parameters.

        Page below 1 becomes 1, page size below 1 becomes 20 and above 100
        becomes 100, an unknown direction becomes DESC and an empty order
        field becomes ``id``.
        """
        return replace(
            self,
            page=max(self.page, 1),
            page_size=_clamp_size(self.page_size),
            order_by=self.order_by or DEFAULT_ORDER_FIELD,
            order=_normalize_direction(self.order, "DESC"),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        return self.page_size


@dataclass(frozen=True)
class PaginationResult:
    """Page metadata derived from the parameters and a total count."""

    page: int
    page_size: int
    total_pages: int
    total_records: int
    has_next: bool
    has_prev: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
            "total_records": self.total_records,
            "has_next": self.has_next,
            "has_prev": self.has_prev,
        }


@dataclass(frozen=True)
class PaginatedResponse:
    data: list[Any]
    pagination: PaginationResult

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "pagination": self.pagination.to_dict()}


def _resolve_order_field(order_by: str, allowed_order_fields: Sequence[str] | None) -> str:
    if allowed_order_fields:
        if order_by in allowed_order_fields:
            return order_by
        logger.debug(f"Order field {order_by!r} not allowed, using {allowed_order_fields[0]!r}")
        return allowed_order_fields[0]

    try:
        return InputSanitizer.sanitize_sql_identifier(order_by)
    except SanitizationError:
        logger.warning(f"Invalid order field {order_by!r}, using {DEFAULT_ORDER_FIELD!r}")
        return DEFAULT_ORDER_FIELD


def build_pagination_query(
    base_query: str,
    params: PaginationParams,
    allowed_order_fields: Sequence[str] | None = None,
) -> str:
    """
    Append ordering and paging to ``base_query``.

    An order field outside ``allowed_order_fields`` is replaced by the first
    allowed field. Without an allow-list, an order field that is not a plain
    identifier is replaced by ``id``.
    """
    params = params.validate()
    order_field = _resolve_order_field(params.order_by, allowed_order_fields)

    return (
        f"{base_query} ORDER BY {order_field} {params.order} "
        f"LIMIT {params.limit} OFFSET {params.offset}"
    )


def calculate_pagination_result(params: PaginationParams, total_records: int) -> PaginationResult:
    params = params.validate()
    total_pages = math.ceil(total_records / params.page_size) if total_records > 0 else 0

    return PaginationResult(
        page=params.page,
        page_size=params.page_size,
        total_pages=total_pages,
        total_records=total_records,
        has_next=params.page < total_pages,
        has_prev=params.page > 1,
    )


@dataclass
class PaginatedQuery:
    """
    A base query and its matching count query, run page by page.

    Both queries share ``args``; the base query must not end in ORDER BY or
    LIMIT since those are appended per page.
    """

    adapter: DatabaseAdapter
    base_query: str
    count_query: str
    args: Sequence[Any] = ()
    allowed_order_by: Sequence[str] = field(default_factory=list)

    async def count_total(self) -> int:
        return int(await self.adapter.fetch_value(self.count_query, self.args) or 0)

    async def execute(
        self, params: PaginationParams, record_type: type | None = None
    ) -> PaginatedResponse:
        """
        Fetch one page and its metadata.

        Args:
            params: Page request, normalized before use
            record_type: Registered record type for the rows; dicts when omitted

        Raises:
            QueryError: If either query fails
            MappingError: If a row cannot be mapped to ``record_type``
        """
        params = params.validate()
        total = await self.count_total()

        query = build_pagination_query(self.base_query, params, self.allowed_order_by)
        rows = await self.adapter.fetch_all(query, self.args)

        return PaginatedResponse(
            data=rows_to_records(rows, record_type),
            pagination=calculate_pagination_result(params, total),
        )


# ----------------------------------------------------------------------
# Cursor pagination
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class CursorPaginationParams:
    """Cursor request: last seen key (None for the first page), size and direction."""

    cursor: Any = None
    limit: int = DEFAULT_PAGE_SIZE
    order: str = "ASC"

    def validate(self) -> "CursorPaginationParams":
        return replace(
            self, limit=_clamp_size(self.limit), order=_normalize_direction(self.order, "ASC")
        )


@dataclass(frozen=True)
class CursorPaginationResult:
    data: list[Any]
    next_cursor: Any
    prev_cursor: Any
    has_more: bool
    count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "next_cursor": self.next_cursor,
            "prev_cursor": self.prev_cursor,
            "has_more": self.has_more,
            "count": self.count,
        }


def build_cursor_query(
    base_query: str,
    params: CursorPaginationParams,
    cursor_field: str,
    placeholder: str = "?",
) -> QueryResult:
    """
    Append a cursor comparison, ordering and ``LIMIT limit + 1``.

    The cursor value is bound, never interpolated. With a cursor, ``base_query``
    is wrapped as a derived table so its own WHERE clause (OR branches,
    subqueries) is evaluated before the cursor comparison; ``cursor_field``
    must be one of its result columns.

    Raises:
        InvalidIdentifierError: If ``cursor_field`` is not a plain identifier
    """
    params = params.validate()
    cursor_field = validate_identifier(cursor_field, "cursor field")

    sql = base_query
    parameters: list[Any] = []
    if params.cursor is not None:
        # Outside the derived table only the bare column name resolves
        cursor_field = cursor_field.rsplit(".", 1)[-1]
        operator = "<" if params.order == "DESC" else ">"
        sql = (
            f"SELECT * FROM ({base_query}) AS cursor_page "
            f"WHERE {cursor_field} {operator} {placeholder}"
        )
        parameters.append(params.cursor)

    sql = f"{sql} ORDER BY {cursor_field} {params.order} LIMIT {params.limit + 1}"
    return QueryResult(sql, parameters)


def build_cursor_result(
    rows: Sequence[Row], params: CursorPaginationParams, cursor_field: str
) -> CursorPaginationResult:
    """
    Trim the look-ahead row and derive cursor metadata.

    ``next_cursor`` is the cursor field of the last returned row when more
    rows remain; ``prev_cursor`` echoes the request cursor.
    """
    params = params.validate()
    has_more = len(rows) > params.limit
    page = list(rows[: params.limit])

    key = cursor_field.rsplit(".", 1)[-1]
    next_cursor = page[-1].get(key) if has_more and page else None

    return CursorPaginationResult(
        data=page,
        next_cursor=next_cursor,
        prev_cursor=params.cursor,
        has_more=has_more,
        count=len(page),
    )
