"""
SQL Query Builder - Parameterized statement construction for repository tables.

This module builds SELECT, INSERT, UPDATE, DELETE and COUNT statements for a
single table. Values are always bound parameters; identifiers (table, columns,
ordering fields) are checked against an allow-list before they are placed in
the SQL text.

A builder instance describes one statement. It is consumed by ``build()`` (or
one of the terminal helpers such as ``find_by_id``) and must not be reused:
building a second time raises ``QueryBuilderError``.

Usage Examples:
    # SELECT query
    query = (QueryBuilder("products")
        .select("id", "name", "price")
        .where("status", "=", "active")
        .where_in("category_id", [1, 2, 3])
        .order_by("price", "DESC")
        .limit(10)
        .build())

    # INSERT query
    query = QueryBuilder("categories").build_insert({"name": "Pottery", "slug": "pottery"})

    # Filter from a mapping
    query = (QueryBuilder("orders")
        .filter({"status": ["paid", "shipped"], "email": "%@example.com"})
        .build_count())
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from marketplace_db.application.interfaces.exceptions import (
    InvalidIdentifierError,
    InvalidTableError,
    ValidationError,
)
from marketplace_db.infrastructure.database.sql_values import list_items, scalar_kind
from marketplace_db.infrastructure.security.input_sanitizer import (
    InputSanitizer,
    SanitizationError,
)

logger = logging.getLogger(__name__)

SUPPORTED_PLACEHOLDERS = ("?", "%s")
DATE_FORMAT = "%Y-%m-%d"


class QueryType(Enum):
    """Enumeration of supported query types."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    COUNT = "COUNT"


class Operator(Enum):
    """Comparison operators accepted in WHERE conditions."""

    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    LIKE = "LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    BETWEEN = "BETWEEN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"

    @classmethod
    def parse(cls, operator: "Operator | str") -> "Operator":
        if isinstance(operator, Operator):
            return operator
        normalized = " ".join(str(operator).split()).upper()
        if normalized == "<>":
            return cls.NE
        for member in cls:
            if member.value == normalized:
                return member
        raise QueryBuilderError(f"Unsupported operator: {operator!r}")


class JoinType(Enum):
    INNER = "INNER JOIN"
    LEFT = "LEFT JOIN"
    RIGHT = "RIGHT JOIN"
    FULL = "FULL JOIN"

    @classmethod
    def parse(cls, join_type: "JoinType | str") -> "JoinType":
        if isinstance(join_type, JoinType):
            return join_type
        normalized = " ".join(str(join_type).split()).upper()
        if normalized.endswith(" JOIN"):
            normalized = normalized[: -len(" JOIN")]
        try:
            return cls[normalized]
        except KeyError:
            raise QueryBuilderError(f"Invalid join type: {join_type}") from None


class QueryBuilderError(ValidationError):
    """Raised when query building fails due to validation or structure errors."""

    pass


@dataclass(frozen=True)
class Condition:
    """
    A single WHERE condition.

    ``or_`` joins the condition to the preceding clause with OR instead of AND.
    ``date_only`` compares the calendar date of ``field`` rather than its full value.
    """

    field: str
    operator: Operator
    value: Any = None
    or_: bool = False
    date_only: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "operator", Operator.parse(self.operator))


@dataclass(frozen=True)
class ConditionGroup:
    """Conditions rendered together inside parentheses."""

    conditions: tuple[Condition, ...]
    or_: bool = False


class QueryResult:
    """
    Result of query building containing the SQL and parameters.

    This class encapsulates the final SQL query and its parameters,
    ensuring they can only be used together safely.
    """

    def __init__(self, sql: str, parameters: list[Any]):
        self.sql = sql
        self.parameters = parameters
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after creation."""
        if hasattr(self, "_frozen") and self._frozen and name != "_frozen":
            raise AttributeError("QueryResult is immutable after creation")
        super().__setattr__(name, value)

    def __iter__(self):
        yield self.sql
        yield self.parameters

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QueryResult):
            return NotImplemented
        return self.sql == other.sql and self.parameters == other.parameters

    def __hash__(self) -> int:
        return hash((self.sql, tuple(map(repr, self.parameters))))

    def __str__(self) -> str:
        return f"QueryResult(sql={self.sql!r}, parameters={self.parameters!r})"

    def __repr__(self) -> str:
        return self.__str__()


def validate_table_name(table: str) -> bool:
    """Check that a table name holds only ASCII letters, digits and underscores."""
    return InputSanitizer.is_valid_table_name(table)


def validate_identifier(identifier: str, context: str = "identifier") -> str:
    """
    Validate a column-like identifier.

    Raises:
        InvalidIdentifierError: If identifier is not a plain or qualified SQL name
    """
    try:
        return InputSanitizer.sanitize_sql_identifier(identifier)
    except SanitizationError as e:
        raise InvalidIdentifierError(identifier, context) from e


class QueryBuilder:
    """
    SQL query builder with automatic parameterization.

    Fluent methods mutate the plan and return ``self``. Conditions are combined
    left to right: the first has no connector, later ones are joined with AND,
    or with OR when added through ``or_where``.
    """

    def __init__(self, table: str, placeholder: str = "?"):
        """
        Initialize a builder for one statement on ``table``.

        Args:
            table: Target table name
            placeholder: Bind marker of the target driver (``?`` or ``%s``)
        """
        if placeholder not in SUPPORTED_PLACEHOLDERS:
            raise QueryBuilderError(f"Unsupported placeholder style: {placeholder!r}")

        self._table = table
        self._placeholder = placeholder
        self._query_type = QueryType.SELECT
        self._select_columns: list[str] = ["*"]
        self._count_expression = "*"
        self._join_clauses: list[str] = []
        self._join_parameters: list[Any] = []
        self._conditions: list[Condition | ConditionGroup] = []
        self._group_by_columns: list[str] = []
        self._having_clauses: list[str] = []
        self._having_parameters: list[Any] = []
        self._order_by_clauses: list[str] = []
        self._limit_count = 0
        self._offset_count = 0
        self._values: dict[str, Any] = {}
        self._built = False

    @property
    def table(self) -> str:
        return self._table

    @property
    def placeholder(self) -> str:
        return self._placeholder

    @property
    def query_type(self) -> QueryType:
        return self._query_type

    @property
    def conditions(self) -> tuple[Condition | ConditionGroup, ...]:
        return tuple(self._conditions)

    # ------------------------------------------------------------------
    # Statement kind
    # ------------------------------------------------------------------

    def select(self, *columns: str | Iterable[str]) -> "QueryBuilder":
        """
        Set the SELECT column list.

        Args:
            columns: Column names, or a single iterable of names. ``*`` selects all.

        Returns:
            Self for method chaining

        Raises:
            InvalidIdentifierError: If a column name is invalid
        """
        if len(columns) == 1 and not isinstance(columns[0], str):
            columns = tuple(columns[0])

        selected = []
        for column in columns:
            if column.strip() == "*":
                selected.append("*")
            else:
                selected.append(validate_identifier(column, "column"))

        self._query_type = QueryType.SELECT
        self._select_columns = selected or ["*"]
        return self

    def insert(self, values: Mapping[str, Any]) -> "QueryBuilder":
        """Turn the plan into an INSERT of ``values``."""
        self._query_type = QueryType.INSERT
        self._values = self._checked_values(values)
        return self

    def update(self, values: Mapping[str, Any]) -> "QueryBuilder":
        """Turn the plan into an UPDATE setting ``values``."""
        self._query_type = QueryType.UPDATE
        self._values = self._checked_values(values)
        return self

    def delete(self) -> "QueryBuilder":
        self._query_type = QueryType.DELETE
        return self

    def count(self, expression: str = "*") -> "QueryBuilder":
        """
        Turn the plan into a COUNT query.

        Args:
            expression: ``*``, ``1`` or a column name
        """
        if expression not in ("*", "1"):
            expression = validate_identifier(expression, "count column")
        self._query_type = QueryType.COUNT
        self._count_expression = expression
        return self

    def _checked_values(self, values: Mapping[str, Any]) -> dict[str, Any]:
        checked = {}
        for column, value in values.items():
            scalar_kind(value)
            checked[validate_identifier(column, "column")] = value
        return checked

    # ------------------------------------------------------------------
    # Joins
    # ------------------------------------------------------------------

    def join(
        self,
        join_type: JoinType | str,
        table: str,
        on_condition: str,
        parameters: list[Any] | None = None,
    ) -> "QueryBuilder":
        """
        Add JOIN clause with optional parameters.

        Args:
            join_type: INNER, LEFT, RIGHT or FULL
            table: Table to join
            on_condition: JOIN condition, using the builder's placeholder for values
            parameters: Optional parameters for the ON condition

        Returns:
            Self for method chaining
        """
        kind = JoinType.parse(join_type)
        if not table or not validate_table_name(table):
            raise InvalidTableError(table)

        if parameters is None:
            parameters = []

        placeholder_count = on_condition.count(self._placeholder)
        if placeholder_count != len(parameters):
            raise QueryBuilderError(
                f"JOIN parameter count mismatch: {placeholder_count} placeholders, {len(parameters)} parameters"
            )
        for parameter in parameters:
            scalar_kind(parameter)

        self._join_clauses.append(f"{kind.value} {table} ON {on_condition}")
        self._join_parameters.extend(parameters)
        return self

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def add_condition(self, condition: Condition | ConditionGroup) -> "QueryBuilder":
        """
        Append a prepared condition after checking its field and value.

        Raises:
            InvalidIdentifierError: If the field is not a valid identifier
            QueryBuilderError: If the value does not fit the operator
        """
        if isinstance(condition, ConditionGroup):
            if not condition.conditions:
                raise QueryBuilderError("Condition group cannot be empty")
            for inner in condition.conditions:
                self._check_condition(inner)
        else:
            self._check_condition(condition)
        self._conditions.append(condition)
        return self

    def _check_condition(self, condition: Condition) -> None:
        validate_identifier(condition.field, "condition field")
        operator = condition.operator
        if operator in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return
        if operator in (Operator.IN, Operator.NOT_IN):
            list_items(condition.value)
        elif operator is Operator.BETWEEN:
            if len(list_items(condition.value)) != 2:
                raise QueryBuilderError("BETWEEN requires exactly two values")
        else:
            scalar_kind(condition.value)

    def where(self, field: str, operator: Operator | str, value: Any = None) -> "QueryBuilder":
        """
        Add an AND-joined WHERE condition.

        Args:
            field: Column name
            operator: One of the Operator values, e.g. ``"="`` or ``"NOT IN"``
            value: Bound value; a list for IN/NOT IN, a pair for BETWEEN

        Returns:
            Self for method chaining
        """
        return self.add_condition(Condition(field, Operator.parse(operator), value))

    def or_where(self, field: str, operator: Operator | str, value: Any = None) -> "QueryBuilder":
        """Add a WHERE condition joined to the previous one with OR."""
        return self.add_condition(Condition(field, Operator.parse(operator), value, or_=True))

    def where_in(self, field: str, values: Iterable[Any]) -> "QueryBuilder":
        return self.where(field, Operator.IN, list(values))

    def where_not_in(self, field: str, values: Iterable[Any]) -> "QueryBuilder":
        return self.where(field, Operator.NOT_IN, list(values))

    def where_like(self, field: str, pattern: str) -> "QueryBuilder":
        """Match rows where ``field`` contains ``pattern``."""
        return self.where(field, Operator.LIKE, f"%{pattern}%")

    def where_starts_with(self, field: str, prefix: str) -> "QueryBuilder":
        return self.where(field, Operator.LIKE, f"{prefix}%")

    def where_ends_with(self, field: str, suffix: str) -> "QueryBuilder":
        return self.where(field, Operator.LIKE, f"%{suffix}")

    def where_between(self, field: str, start: Any, end: Any) -> "QueryBuilder":
        return self.where(field, Operator.BETWEEN, [start, end])

    def where_null(self, field: str) -> "QueryBuilder":
        return self.where(field, Operator.IS_NULL)

    def where_not_null(self, field: str) -> "QueryBuilder":
        return self.where(field, Operator.IS_NOT_NULL)

    def where_date(self, field: str, operator: Operator | str, day: date) -> "QueryBuilder":
        """Compare the calendar date of ``field`` with ``day``."""
        return self.add_condition(
            Condition(field, Operator.parse(operator), _format_date(day), date_only=True)
        )

    def where_date_between(self, field: str, start: date, end: date) -> "QueryBuilder":
        """Match rows whose calendar date of ``field`` lies in ``[start, end]``."""
        return self.add_condition(
            Condition(
                field,
                Operator.BETWEEN,
                [_format_date(start), _format_date(end)],
                date_only=True,
            )
        )

    def filter(self, filters: Mapping[str, Any] | None) -> "QueryBuilder":
        """
        Add equality-style conditions from a mapping.

        Lists and tuples become IN, strings with a leading or trailing ``%``
        become LIKE, ``None`` becomes IS NULL, anything else is compared with ``=``.
        """
        if not filters:
            return self

        for field, value in filters.items():
            if isinstance(value, list | tuple | set | frozenset):
                self.where_in(field, value)
            elif isinstance(value, str) and (value.startswith("%") or value.endswith("%")):
                self.where(field, Operator.LIKE, value)
            elif value is None:
                self.where_null(field)
            else:
                self.where(field, Operator.EQ, value)
        return self

    # ------------------------------------------------------------------
    # Grouping, ordering, paging
    # ------------------------------------------------------------------

    def order_by(self, field: str, direction: str = "ASC") -> "QueryBuilder":
        """
        Add ORDER BY clause.

        Args:
            field: Column name to order by
            direction: Sort direction (ASC or DESC)

        Returns:
            Self for method chaining
        """
        validated_field = validate_identifier(field, "order by column")

        if direction.upper() not in ("ASC", "DESC"):
            raise QueryBuilderError(f"Invalid sort direction: {direction}")

        self._order_by_clauses.append(f"{validated_field} {direction.upper()}")
        return self

    def group_by(self, *fields: str) -> "QueryBuilder":
        self._group_by_columns.extend(validate_identifier(f, "group by column") for f in fields)
        return self

    def having(self, clause: str, parameters: list[Any] | None = None) -> "QueryBuilder":
        """
        Add HAVING condition with parameters.

        Args:
            clause: HAVING condition using the builder's placeholder for values
            parameters: List of parameter values

        Returns:
            Self for method chaining
        """
        if parameters is None:
            parameters = []

        placeholder_count = clause.count(self._placeholder)
        if placeholder_count != len(parameters):
            raise QueryBuilderError(
                f"HAVING parameter count mismatch: {placeholder_count} placeholders, {len(parameters)} parameters"
            )
        for parameter in parameters:
            scalar_kind(parameter)

        self._having_clauses.append(clause)
        self._having_parameters.extend(parameters)
        return self

    def limit(self, count: int) -> "QueryBuilder":
        """Set LIMIT; zero means no limit."""
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise QueryBuilderError("LIMIT count must be a non-negative integer")

        self._limit_count = count
        return self

    def offset(self, count: int) -> "QueryBuilder":
        """Set OFFSET; only rendered together with a LIMIT."""
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            raise QueryBuilderError("OFFSET count must be a non-negative integer")

        self._offset_count = count
        return self

    # ------------------------------------------------------------------
    # Validation and rendering
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """
        Check that the plan can be rendered.

        Raises:
            QueryBuilderError: If the table is missing or INSERT/UPDATE has no values
            InvalidTableError: If the table name contains disallowed characters
        """
        if not self._table:
            raise QueryBuilderError("table name is required")
        if not validate_table_name(self._table):
            raise InvalidTableError(self._table)
        if self._query_type in (QueryType.INSERT, QueryType.UPDATE) and not self._values:
            raise QueryBuilderError(f"{self._query_type.value} query must have values")

    def build(self) -> QueryResult:
        """
        Build the final SQL query with parameters.

        Returns:
            QueryResult containing SQL and parameters

        Raises:
            QueryBuilderError: If the plan is invalid or was already built
        """
        if self._built:
            raise QueryBuilderError("Query plan has already been built")

        self.validate()
        self._built = True

        if self._query_type == QueryType.SELECT:
            return self._build_select()
        elif self._query_type == QueryType.COUNT:
            return self._build_count()
        elif self._query_type == QueryType.INSERT:
            return self._build_insert()
        elif self._query_type == QueryType.UPDATE:
            return self._build_update()
        elif self._query_type == QueryType.DELETE:
            return self._build_delete()
        else:
            raise QueryBuilderError(f"Unsupported query type: {self._query_type}")

    def _render_condition(self, condition: Condition) -> tuple[str, list[Any]]:
        column = f"DATE({condition.field})" if condition.date_only else condition.field
        operator = condition.operator
        ph = self._placeholder

        if operator in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return f"{column} {operator.value}", []

        if operator in (Operator.IN, Operator.NOT_IN):
            items = list_items(condition.value)
            if not items:
                # Empty IN matches nothing, empty NOT IN matches everything
                return ("1 = 0" if operator is Operator.IN else "1 = 1"), []
            markers = ", ".join([ph] * len(items))
            return f"{column} {operator.value} ({markers})", items

        if operator is Operator.BETWEEN:
            return f"{column} BETWEEN {ph} AND {ph}", list_items(condition.value)

        return f"{column} {operator.value} {ph}", [condition.value]

    def _render_where(self) -> tuple[str, list[Any]]:
        parts: list[str] = []
        parameters: list[Any] = []

        for i, condition in enumerate(self._conditions):
            if isinstance(condition, ConditionGroup):
                inner_parts = []
                for j, inner in enumerate(condition.conditions):
                    sql, params = self._render_condition(inner)
                    if j > 0:
                        inner_parts.append("OR" if inner.or_ else "AND")
                    inner_parts.append(sql)
                    parameters.extend(params)
                sql = "(" + " ".join(inner_parts) + ")"
            else:
                sql, params = self._render_condition(condition)
                parameters.extend(params)

            if i > 0:
                parts.append("OR" if condition.or_ else "AND")
            parts.append(sql)

        if not parts:
            return "", []
        return "WHERE " + " ".join(parts), parameters

    def _append_where(self, sql_parts: list[str], all_parameters: list[Any]) -> None:
        where_sql, where_parameters = self._render_where()
        if where_sql:
            sql_parts.append(where_sql)
            all_parameters.extend(where_parameters)

    def _append_paging(self, sql_parts: list[str]) -> None:
        if self._limit_count > 0:
            sql_parts.append(f"LIMIT {self._limit_count}")
            if self._offset_count > 0:
                sql_parts.append(f"OFFSET {self._offset_count}")

    def _build_select(self) -> QueryResult:
        """Build SELECT query."""
        sql_parts = ["SELECT " + ", ".join(self._select_columns)]
        sql_parts.append(f"FROM {self._table}")

        # Collect all parameters in order
        all_parameters: list[Any] = []

        if self._join_clauses:
            sql_parts.extend(self._join_clauses)
            all_parameters.extend(self._join_parameters)

        self._append_where(sql_parts, all_parameters)

        if self._group_by_columns:
            sql_parts.append("GROUP BY " + ", ".join(self._group_by_columns))

        if self._having_clauses:
            sql_parts.append("HAVING " + " AND ".join(self._having_clauses))
            all_parameters.extend(self._having_parameters)

        if self._order_by_clauses:
            sql_parts.append("ORDER BY " + ", ".join(self._order_by_clauses))

        self._append_paging(sql_parts)

        return QueryResult(" ".join(sql_parts), all_parameters)

    def _build_count(self) -> QueryResult:
        """Build COUNT query."""
        sql_parts = [f"SELECT COUNT({self._count_expression}) FROM {self._table}"]
        all_parameters: list[Any] = []

        if self._join_clauses:
            sql_parts.extend(self._join_clauses)
            all_parameters.extend(self._join_parameters)

        self._append_where(sql_parts, all_parameters)

        return QueryResult(" ".join(sql_parts), all_parameters)

    def _build_insert(self) -> QueryResult:
        """Build INSERT query."""
        columns_str = ", ".join(self._values)
        markers = ", ".join([self._placeholder] * len(self._values))
        sql = f"INSERT INTO {self._table} ({columns_str}) VALUES ({markers})"

        return QueryResult(sql, list(self._values.values()))

    def _build_update(self) -> QueryResult:
        """Build UPDATE query."""
        assignments = ", ".join(f"{column} = {self._placeholder}" for column in self._values)
        sql_parts = [f"UPDATE {self._table} SET {assignments}"]
        all_parameters = list(self._values.values())

        self._append_where(sql_parts, all_parameters)

        return QueryResult(" ".join(sql_parts), all_parameters)

    def _build_delete(self) -> QueryResult:
        """Build DELETE query."""
        sql_parts = [f"DELETE FROM {self._table}"]
        all_parameters: list[Any] = []

        if self._conditions:
            self._append_where(sql_parts, all_parameters)
        else:
            logger.warning(f"DELETE query on {self._table} without WHERE clause")

        return QueryResult(" ".join(sql_parts), all_parameters)

    # ------------------------------------------------------------------
    # Terminal helpers
    # ------------------------------------------------------------------

    def find_by_id(self, record_id: Any) -> QueryResult:
        return self.where("id", Operator.EQ, record_id).build()

    def find_by_field(self, field: str, value: Any) -> QueryResult:
        return self.where(field, Operator.EQ, value).build()

    def find_by_fields(self, fields: Mapping[str, Any]) -> QueryResult:
        for field, value in fields.items():
            self.where(field, Operator.EQ, value)
        return self.build()

    def search(self, fields: Iterable[str], term: str) -> QueryResult:
        """
        Build a SELECT matching ``term`` as a substring of any of ``fields``.

        The LIKE conditions are OR-joined among themselves and grouped, so the
        group is AND-joined with any conditions added earlier.
        """
        pattern = f"%{term}%"
        likes = tuple(
            Condition(field, Operator.LIKE, pattern, or_=i > 0) for i, field in enumerate(fields)
        )
        if likes:
            self.add_condition(ConditionGroup(likes))
        return self.build()

    def date_range(self, field: str, start: datetime, end: datetime) -> QueryResult:
        return self.where_between(field, start, end).build()

    def paginate(self, page: int, per_page: int) -> QueryResult:
        page = max(page, 1)
        per_page = max(per_page, 0)
        return self.limit(per_page).offset((page - 1) * per_page).build()

    def sort(self, field: str, direction: str = "ASC") -> QueryResult:
        """Build a SELECT ordered by ``field``; an unknown direction falls back to ASC."""
        direction = direction.upper() if direction.upper() in ("ASC", "DESC") else "ASC"
        return self.order_by(field, direction).build()

    def build_count(self, expression: str = "*") -> QueryResult:
        return self.count(expression).build()

    def build_insert(self, values: Mapping[str, Any]) -> QueryResult:
        return self.insert(values).build()

    def build_update(self, values: Mapping[str, Any]) -> QueryResult:
        return self.update(values).build()

    def build_delete(self) -> QueryResult:
        return self.delete().build()


def _format_date(value: date) -> str:
    if not isinstance(value, date):
        raise QueryBuilderError(f"expected a date, got {type(value).__name__}")
    return value.strftime(DATE_FORMAT)
