"""
Unit tests for offset and cursor pagination.
"""

# Standard library imports
from dataclasses import dataclass

# Third-party imports
import pytest

# Local imports
from marketplace_db.application.interfaces.exceptions import InvalidIdentifierError
from marketplace_db.infrastructure.database.pagination import (
    CursorPaginationParams,
    PaginatedQuery,
    PaginationParams,
    build_cursor_query,
    build_cursor_result,
    build_pagination_query,
    calculate_pagination_result,
)


@dataclass
class Listing:
    id: int
    title: str


@pytest.mark.unit
class TestPaginationParams:
    """Test page parameter normalization."""

    def test_defaults(self):
        params = PaginationParams().validate()

        assert params.page == 1
        assert params.page_size == 20
        assert params.order_by == "id"
        assert params.order == "DESC"

    def test_page_below_one(self):
        params = PaginationParams(page=0).validate()

        assert params.page == 1
        assert params.offset == 0

    @pytest.mark.parametrize("size,expected", [(0, 20), (-5, 20), (500, 100), (50, 50)])
    def test_page_size_clamped(self, size, expected):
        assert PaginationParams(page_size=size).validate().page_size == expected

    def test_unknown_direction(self):
        assert PaginationParams(order="sideways").validate().order == "DESC"

    def test_lowercase_direction(self):
        assert PaginationParams(order="asc").validate().order == "ASC"

    def test_validate_returns_new_instance(self):
        original = PaginationParams(page=-1)
        validated = original.validate()

        assert original.page == -1
        assert validated is not original

    def test_offset_and_limit(self):
        params = PaginationParams(page=3, page_size=20)

        assert params.offset == 40
        assert params.limit == 20


@pytest.mark.unit
class TestBuildPaginationQuery:
    """Test offset query suffixes."""

    def test_appends_order_and_paging(self):
        sql = build_pagination_query(
            "SELECT * FROM products", PaginationParams(page=3, page_size=20, order_by="price")
        )

        assert sql == "SELECT * FROM products ORDER BY price DESC LIMIT 20 OFFSET 40"

    def test_disallowed_field_uses_first_allowed(self):
        sql = build_pagination_query(
            "SELECT * FROM products",
            PaginationParams(order_by="secret_column", order="ASC"),
            allowed_order_fields=["created_at", "price"],
        )

        assert "ORDER BY created_at ASC" in sql

    def test_allowed_field_kept(self):
        sql = build_pagination_query(
            "SELECT * FROM products",
            PaginationParams(order_by="price"),
            allowed_order_fields=["created_at", "price"],
        )

        assert "ORDER BY price DESC" in sql

    def test_unsafe_field_falls_back_to_id(self):
        sql = build_pagination_query(
            "SELECT * FROM products", PaginationParams(order_by="price; DROP TABLE products")
        )

        assert "ORDER BY id DESC" in sql
        assert "DROP" not in sql


@pytest.mark.unit
class TestPaginationResult:
    """Test page metadata."""

    def test_middle_page(self):
        result = calculate_pagination_result(PaginationParams(page=2, page_size=10), 35)

        assert result.total_pages == 4
        assert result.has_next is True
        assert result.has_prev is True

    def test_last_page(self):
        result = calculate_pagination_result(PaginationParams(page=4, page_size=10), 35)

        assert result.has_next is False

    def test_empty(self):
        result = calculate_pagination_result(PaginationParams(), 0)

        assert result.total_pages == 0
        assert result.has_next is False
        assert result.has_prev is False

    def test_to_dict(self):
        result = calculate_pagination_result(PaginationParams(page=1, page_size=20), 20)

        assert result.to_dict() == {
            "page": 1,
            "page_size": 20,
            "total_pages": 1,
            "total_records": 20,
            "has_next": False,
            "has_prev": False,
        }


@pytest.mark.unit
class TestPaginatedQuery:
    """Test running a paginated query against an adapter."""

    @pytest.mark.asyncio
    async def test_execute_maps_rows(self, mock_adapter):
        mock_adapter.fetch_value.return_value = 3
        mock_adapter.fetch_all.return_value = [{"id": 1, "title": "Lamp"}, {"id": 2, "title": "Desk"}]
        query = PaginatedQuery(
            mock_adapter,
            "SELECT id, title FROM listings WHERE active = ?",
            "SELECT COUNT(*) FROM listings WHERE active = ?",
            args=(1,),
            allowed_order_by=["id", "title"],
        )

        response = await query.execute(PaginationParams(page=1, page_size=2), Listing)

        assert response.data == [Listing(1, "Lamp"), Listing(2, "Desk")]
        assert response.pagination.total_pages == 2
        assert response.pagination.has_next is True
        mock_adapter.fetch_all.assert_awaited_once_with(
            "SELECT id, title FROM listings WHERE active = ? ORDER BY id DESC LIMIT 2 OFFSET 0",
            (1,),
        )

    @pytest.mark.asyncio
    async def test_count_total_handles_null(self, mock_adapter):
        mock_adapter.fetch_value.return_value = None
        query = PaginatedQuery(mock_adapter, "SELECT * FROM t", "SELECT COUNT(*) FROM t")

        assert await query.count_total() == 0


@pytest.mark.unit
class TestCursorPagination:
    """Test cursor queries and results."""

    def test_first_page_has_no_comparison(self):
        result = build_cursor_query("SELECT * FROM orders", CursorPaginationParams(limit=10), "id")

        assert result.sql == "SELECT * FROM orders ORDER BY id ASC LIMIT 11"
        assert result.parameters == []

    def test_cursor_is_bound(self):
        result = build_cursor_query(
            "SELECT * FROM orders", CursorPaginationParams(cursor=50, limit=10), "id"
        )

        assert result.sql == (
            "SELECT * FROM (SELECT * FROM orders) AS cursor_page "
            "WHERE id > ? ORDER BY id ASC LIMIT 11"
        )
        assert result.parameters == [50]

    def test_descending_wraps_existing_where(self):
        result = build_cursor_query(
            "SELECT * FROM orders WHERE status = 'paid'",
            CursorPaginationParams(cursor=50, limit=5, order="desc"),
            "id",
            placeholder="%s",
        )

        assert result.sql == (
            "SELECT * FROM (SELECT * FROM orders WHERE status = 'paid') AS cursor_page "
            "WHERE id < %s ORDER BY id DESC LIMIT 6"
        )

    def test_qualified_cursor_field(self):
        result = build_cursor_query(
            "SELECT o.id, o.total FROM orders o JOIN users u ON u.id = o.user_id",
            CursorPaginationParams(cursor=9, limit=2),
            "o.id",
        )

        assert result.sql.endswith("AS cursor_page WHERE id > ? ORDER BY id ASC LIMIT 3")

    @pytest.mark.asyncio
    async def test_cursor_applies_to_every_or_branch(self, sqlite_adapter):
        for index, sku in enumerate(["x", "y", "x", "y"], start=1):
            await sqlite_adapter.execute(
                "INSERT INTO products (name, sku) VALUES (?, ?)", [f"item-{index}", sku]
            )

        query = build_cursor_query(
            "SELECT id, sku FROM products WHERE sku = 'x' OR sku = 'y'",
            CursorPaginationParams(cursor=2, limit=10),
            "id",
        )
        rows = await sqlite_adapter.fetch_all(query.sql, query.parameters)

        assert [row["id"] for row in rows] == [3, 4]

    def test_invalid_cursor_field(self):
        with pytest.raises(InvalidIdentifierError):
            build_cursor_query("SELECT * FROM orders", CursorPaginationParams(), "id; --")

    def test_result_with_more_rows(self):
        rows = [{"id": i} for i in range(1, 5)]

        result = build_cursor_result(rows, CursorPaginationParams(cursor=None, limit=3), "id")

        assert result.has_more is True
        assert result.count == 3
        assert result.next_cursor == 3
        assert result.prev_cursor is None

    def test_result_on_last_page(self):
        rows = [{"id": 7}, {"id": 8}]

        result = build_cursor_result(rows, CursorPaginationParams(cursor=6, limit=3), "id")

        assert result.has_more is False
        assert result.next_cursor is None
        assert result.prev_cursor == 6
