"""
Bound value classification.

Every value that the query builder binds is classified into a closed set of
kinds. Anything outside that set is rejected before it reaches a driver, so
the operator rendering in the query builder only has to handle known shapes.
"""

from collections.abc import Sequence
from datetime import UTC, date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

from marketplace_db.application.interfaces.exceptions import ValidationError


class ValueKind(Enum):
    """Kinds of values accepted as bound parameters."""

    NULL = "null"
    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    BYTES = "bytes"
    LIST = "list"


def classify_value(value: Any) -> ValueKind:
    """
    Classify a bound value.

    Args:
        value: Python value to bind

    Returns:
        The matching ValueKind

    Raises:
        ValidationError: If the value has no SQL representation
    """
    if value is None:
        return ValueKind.NULL
    if isinstance(value, Enum):
        return classify_value(value.value)
    # bool is a subclass of int
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, Decimal):
        return ValueKind.DECIMAL
    if isinstance(value, str):
        return ValueKind.TEXT
    if isinstance(value, datetime | date | time):
        return ValueKind.TIMESTAMP
    if isinstance(value, bytes | bytearray | memoryview):
        return ValueKind.BYTES
    if isinstance(value, list | tuple | set | frozenset):
        return ValueKind.LIST
    raise ValidationError(f"unsupported parameter type: {type(value).__name__}")


def unwrap_enum(value: Any) -> Any:
    """Replace an Enum member by its value."""
    return value.value if isinstance(value, Enum) else value


def naive_utc(value: Any) -> Any:
    """
    Store timestamps as naive UTC.

    Aware datetimes are converted to UTC and lose their offset; naive ones are
    taken to be UTC already. Other values are returned unchanged.
    """
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


def scalar_kind(value: Any) -> ValueKind:
    """Classify a value that must not be a list."""
    kind = classify_value(value)
    if kind is ValueKind.LIST:
        raise ValidationError("list values are only allowed with IN, NOT IN and BETWEEN")
    return kind


def list_items(value: Any) -> list[Any]:
    """
    Return the elements of a LIST value, each checked to be a scalar.

    Raises:
        ValidationError: If ``value`` is not a list or holds nested lists
    """
    if classify_value(value) is not ValueKind.LIST:
        raise ValidationError(f"expected a list of values, got {type(value).__name__}")
    items = sorted(value, key=repr) if isinstance(value, set | frozenset) else list(value)
    for item in items:
        scalar_kind(item)
    return items


def to_sqlite_param(value: Any) -> Any:
    """
    Convert a classified value to a type sqlite3 binds natively.

    Timestamps are stored as naive UTC ISO-8601 text with a space separator so
    they compare correctly as strings; Decimals are stored as text to keep
    precision.
    """
    value = naive_utc(unwrap_enum(value))
    kind = classify_value(value)
    if kind is ValueKind.TIMESTAMP:
        if isinstance(value, datetime):
            return value.isoformat(sep=" ")
        return value.isoformat()
    if kind is ValueKind.DECIMAL:
        return str(value)
    if kind is ValueKind.BOOLEAN:
        return int(value)
    if kind is ValueKind.BYTES:
        return bytes(value)
    if kind is ValueKind.LIST:
        raise ValidationError("list values must be expanded before binding")
    return value


def to_sqlite_params(params: Sequence[Any]) -> tuple[Any, ...]:
    return tuple(to_sqlite_param(p) for p in params)
