"""
Record mapping - Conversion between record dataclasses and table rows.

Each record type is described once by a ``RecordDescriptor``: an ordered
table of ``FieldDescriptor`` entries holding the attribute name, the column
name, whether the field is exported, and whether it came from an embedded
record. Conversions look the descriptor up by type instead of inspecting the
class on every call.

Column naming:
    - ``db_field("column_name")`` maps an attribute to a different column
    - ``db_field(skip=True)`` keeps an attribute out of the database entirely
    - ``db_field(embedded=True)`` flattens a nested record into the parent row
    - attributes starting with ``_`` are private and never mapped
    - anything else maps to a column of the same name
"""

import dataclasses
import logging
import threading
import types
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, TypeVar, Union, get_args, get_origin, get_type_hints

from marketplace_db.application.interfaces.exceptions import MappingError

logger = logging.getLogger(__name__)

T = TypeVar("T")

COLUMN_KEY = "db"
EMBEDDED_KEY = "embedded"
SKIP_TAG = "-"
ID_FIELD = "id"


def db_field(
    column: str | None = None, *, embedded: bool = False, skip: bool = False, **kwargs: Any
) -> Any:
    """
    Declare a dataclass field with column mapping metadata.

    Args:
        column: Column name, defaults to the attribute name
        embedded: Flatten the nested record held by this field into the parent
        skip: Never read or write this field
        **kwargs: Passed through to ``dataclasses.field``
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    if skip:
        metadata[COLUMN_KEY] = SKIP_TAG
    elif column:
        metadata[COLUMN_KEY] = column
    if embedded:
        metadata[EMBEDDED_KEY] = True
    return dataclasses.field(metadata=metadata, **kwargs)


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
    """Mapping entry for one column of a record type."""

    name: str
    column: str
    exported: bool
    embedded: bool
    path: tuple[str, ...]
    annotation: Any = Any


@dataclasses.dataclass(frozen=True)
class RecordDescriptor:
    """Ordered field table for a record type."""

    record_type: type
    fields: tuple[FieldDescriptor, ...]
    by_name: dict[str, FieldDescriptor] = dataclasses.field(default_factory=dict, compare=False)
    by_column: dict[str, FieldDescriptor] = dataclasses.field(default_factory=dict, compare=False)

    @property
    def columns(self) -> list[str]:
        return [f.column for f in self.fields if f.exported]

    def lookup(self, column: str) -> FieldDescriptor | None:
        """Resolve a result column by exact attribute name first, then by column tag."""
        return self.by_name.get(column) or self.by_column.get(column)


_descriptors: dict[type, RecordDescriptor] = {}
_descriptors_lock = threading.Lock()


def _resolve_hints(cls: type) -> dict[str, Any]:
    try:
        return get_type_hints(cls)
    except (NameError, TypeError):
        logger.debug(f"Could not resolve type hints for {cls.__name__}, using raw annotations")
        return {f.name: f.type for f in dataclasses.fields(cls)}


def _build_fields(cls: type, prefix: tuple[str, ...], embedded: bool) -> list[FieldDescriptor]:
    hints = _resolve_hints(cls)
    entries: list[FieldDescriptor] = []

    for f in dataclasses.fields(cls):
        tag = f.metadata.get(COLUMN_KEY)
        if tag == SKIP_TAG:
            continue

        annotation = hints.get(f.name, Any)
        path = prefix + (f.name,)

        if f.metadata.get(EMBEDDED_KEY):
            nested = _unwrap_optional(annotation)
            if not (isinstance(nested, type) and dataclasses.is_dataclass(nested)):
                raise MappingError(f"embedded field {cls.__name__}.{f.name} must hold a dataclass")
            entries.extend(_build_fields(nested, path, embedded=True))
            continue

        entries.append(
            FieldDescriptor(
                name=f.name,
                column=tag or f.name,
                exported=not f.name.startswith("_"),
                embedded=embedded,
                path=path,
                annotation=annotation,
            )
        )

    return entries


def register_record(cls: type[T]) -> type[T]:
    """
    Build and cache the field table of a record dataclass.

    Usable as a class decorator.

    Raises:
        MappingError: If ``cls`` is not a dataclass
    """
    if not (isinstance(cls, type) and dataclasses.is_dataclass(cls)):
        raise MappingError(f"{cls!r} is not a dataclass record type")

    entries = tuple(_build_fields(cls, (), embedded=False))
    by_name: dict[str, FieldDescriptor] = {}
    by_column: dict[str, FieldDescriptor] = {}
    for entry in entries:
        if not entry.exported:
            continue
        by_name.setdefault(entry.name, entry)
        by_column.setdefault(entry.column, entry)

    with _descriptors_lock:
        _descriptors[cls] = RecordDescriptor(cls, entries, by_name, by_column)
    return cls


def describe(cls: type) -> RecordDescriptor:
    """Return the field table of ``cls``, registering it on first use."""
    descriptor = _descriptors.get(cls)
    if descriptor is None:
        register_record(cls)
        descriptor = _descriptors[cls]
    return descriptor


def is_record(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _read_path(record: Any, path: tuple[str, ...]) -> Any:
    value = record
    for name in path:
        if value is None:
            return None
        value = getattr(value, name)
    return value


def record_to_fields(record: Any, for_insert: bool = False) -> tuple[list[str], list[Any]]:
    """
    Split a record into parallel column and value lists.

    Args:
        record: A dataclass instance or a mapping of column to value
        for_insert: Leave out the ``id`` field of dataclass records

    Returns:
        Tuple of (columns, values)

    Raises:
        MappingError: If ``record`` is neither a dataclass instance nor a mapping
    """
    if isinstance(record, Mapping):
        return list(record.keys()), list(record.values())

    if not is_record(record):
        raise MappingError(f"cannot map value of type {type(record).__name__} to columns")

    columns: list[str] = []
    values: list[Any] = []
    for entry in describe(type(record)).fields:
        if not entry.exported:
            continue
        if for_insert and entry.name.lower() == ID_FIELD:
            continue
        columns.append(entry.column)
        values.append(_read_path(record, entry.path))
    return columns, values


def record_to_mapping(record: Any, for_insert: bool = False) -> dict[str, Any]:
    columns, values = record_to_fields(record, for_insert=for_insert)
    return dict(zip(columns, values))


def _unwrap_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
        return Any
    return annotation


def coerce_value(value: Any, annotation: Any) -> Any:
    """
    Convert a raw driver value to the annotated field type.

    Raises:
        MappingError: If the value cannot be converted
    """
    if value is None:
        return None

    target = _unwrap_optional(annotation)

    if isinstance(value, bytes | bytearray | memoryview):
        if target in (bytes, bytearray):
            return bytes(value)
        try:
            value = bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            return bytes(value)

    if not isinstance(target, type) or target is object:
        return value

    try:
        if target is bool:
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in ("1", "true", "t", "yes"):
                    return True
                if lowered in ("0", "false", "f", "no", ""):
                    return False
                raise ValueError(f"not a boolean: {value!r}")
            return bool(value)
        if target is datetime:
            if isinstance(value, datetime):
                return value
            if isinstance(value, date):
                return datetime(value.year, value.month, value.day)
            return datetime.fromisoformat(str(value))
        if target is date:
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
            return date.fromisoformat(str(value)[:10])
        if target is Decimal:
            return value if isinstance(value, Decimal) else Decimal(str(value))
        if target is int:
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"{value!r} is not integral")
            return int(value)
        if target is float:
            return float(value)
        if target is str:
            return value if isinstance(value, str) else str(value)
        if issubclass(target, Enum):
            return target(value)
    except (ValueError, TypeError, InvalidOperation) as e:
        raise MappingError(f"cannot convert {value!r} to {target.__name__}", e) from e

    return value


def _construct(cls: type, values: dict[tuple[str, ...], Any], prefix: tuple[str, ...]) -> Any:
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        path = prefix + (f.name,)
        if f.metadata.get(EMBEDDED_KEY):
            nested = _unwrap_optional(_resolve_hints(cls).get(f.name, f.type))
            kwargs[f.name] = _construct(nested, values, path)
        elif path in values:
            kwargs[f.name] = values[path]
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            kwargs[f.name] = None
    return cls(**kwargs)


def row_to_record(
    columns: Sequence[str], raw_values: Sequence[Any], record_type: type[T] | None = None
) -> T | dict[str, Any]:
    """
    Convert one result row into a record.

    Args:
        columns: Result column names
        raw_values: Values as returned by the driver
        record_type: Dataclass to build, or ``None``/``dict`` for a plain mapping

    Returns:
        A ``record_type`` instance, or a dict of column to value

    Raises:
        MappingError: If ``record_type`` is not a dataclass or a value cannot be converted
    """
    if len(columns) != len(raw_values):
        raise MappingError(f"row has {len(raw_values)} values for {len(columns)} columns")

    if record_type is None or record_type is dict:
        return {
            column: coerce_value(value, Any) for column, value in zip(columns, raw_values)
        }

    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise MappingError(f"{record_type!r} is not a dataclass record type")

    descriptor = describe(record_type)
    values: dict[tuple[str, ...], Any] = {}
    for column, raw in zip(columns, raw_values):
        entry = descriptor.lookup(column)
        if entry is None:
            continue
        values[entry.path] = coerce_value(raw, entry.annotation)

    try:
        return _construct(record_type, values, ())
    except TypeError as e:
        raise MappingError(f"cannot build {record_type.__name__} from row", e) from e


def mapping_to_record(row: Mapping[str, Any], record_type: type[T] | None = None) -> Any:
    return row_to_record(list(row.keys()), list(row.values()), record_type)


def rows_to_records(rows: Iterable[Mapping[str, Any]], record_type: type[T] | None = None) -> list:
    return [mapping_to_record(row, record_type) for row in rows]
