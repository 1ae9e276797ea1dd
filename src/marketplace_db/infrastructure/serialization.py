"""
JSON serialization for cached rows and audit entries.

Row values include types the json module does not know (timestamps, Decimal
prices, blobs). Audit output writes them as plain text. Cached rows use the
typed form, which wraps each such value as ``{"__type__": ..., "value": ...}``
so it is restored to the same Python type on load.
"""

import base64
import dataclasses
import json
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

TYPE_KEY = "__type__"


def json_default(value: Any) -> Any:
    """``default`` hook for json.dumps."""
    if isinstance(value, datetime | date | time):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bytes | bytearray | memoryview):
        raw = bytes(value)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(raw).decode("ascii")
    if isinstance(value, set | frozenset):
        return sorted(value, key=repr)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json_string(data: Any, sort_keys: bool = True) -> str:
    """Serialize ``data`` compactly."""
    return json.dumps(
        data, default=json_default, sort_keys=sort_keys, separators=(",", ":"), ensure_ascii=False
    )


def to_typed_json_string(data: Any) -> str:
    """Serialize ``data`` so that ``from_typed_json_string`` restores its value types."""
    return json.dumps(
        data, default=_typed_default, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def from_typed_json_string(payload: str | bytes) -> Any:
    return json.loads(payload, object_hook=_restore_typed)


def _typed_default(value: Any) -> Any:
    # datetime is a date subclass and must be tested first
    if isinstance(value, datetime):
        return {TYPE_KEY: "datetime", "value": value.isoformat()}
    if isinstance(value, date):
        return {TYPE_KEY: "date", "value": value.isoformat()}
    if isinstance(value, time):
        return {TYPE_KEY: "time", "value": value.isoformat()}
    if isinstance(value, Decimal):
        return {TYPE_KEY: "decimal", "value": str(value)}
    if isinstance(value, bytes | bytearray | memoryview):
        return {TYPE_KEY: "bytes", "value": base64.b64encode(bytes(value)).decode("ascii")}
    return json_default(value)


_DECODERS = {
    "datetime": datetime.fromisoformat,
    "date": date.fromisoformat,
    "time": time.fromisoformat,
    "decimal": Decimal,
    "bytes": base64.b64decode,
}


def _restore_typed(obj: dict[str, Any]) -> Any:
    if len(obj) == 2 and "value" in obj and obj.get(TYPE_KEY) in _DECODERS:
        return _DECODERS[obj[TYPE_KEY]](obj["value"])
    return obj
