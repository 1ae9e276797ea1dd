"""
Structured Logging for the data-access layer

JSON structured logs with correlation IDs, OpenTelemetry trace context,
data-access log fields and sensitive data masking.
"""

import json
import logging
import re
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from opentelemetry import trace

# Context variables for correlation tracking
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra``
STANDARD_RECORD_FIELDS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "correlation_id",
        "trace_id",
        "span_id",
    }
)

DATA_ACCESS_FIELDS = ("operation", "table", "record_id", "duration_ms", "error_type")


@dataclass
class SensitiveDataConfig:
    """Configuration for sensitive data masking."""

    # Credentials and secrets
    key_patterns: list[str] = field(
        default_factory=lambda: [
            r"password",
            r"passwd",
            r"api[_-]?key",
            r"secret",
            r"access[_-]?token",
            r"token",
            r"authorization",
        ]
    )

    # Replacement text
    mask_replacement: str = "***"


class SensitiveDataMasker:
    """Masks sensitive data in log messages and extra fields."""

    def __init__(self, config: SensitiveDataConfig | None = None) -> None:
        self.config = config or SensitiveDataConfig()
        self._key_patterns = [re.compile(p, re.IGNORECASE) for p in self.config.key_patterns]
        # key:value, key=value and "key": "value" pairs
        self._pair_patterns = [
            re.compile(rf'(["\']?\w*{p}\w*["\']?\s*[:=]\s*)("[^"]*"|\'[^\']*\'|[^\s,}})]+)', re.IGNORECASE)
            for p in self.config.key_patterns
        ]

    def mask_message(self, message: str) -> str:
        """Mask sensitive data in log message."""
        for pattern in self._pair_patterns:
            message = pattern.sub(lambda m: f"{m.group(1)}{self.config.mask_replacement}", message)
        return message

    def is_sensitive_field(self, field_name: str) -> bool:
        return any(p.search(field_name) for p in self._key_patterns)

    def mask_extra_fields(self, extra: dict[str, Any]) -> dict[str, Any]:
        """Mask sensitive data in extra log fields."""
        masked = {}
        for key, value in extra.items():
            if self.is_sensitive_field(key):
                masked[key] = self.config.mask_replacement
            elif isinstance(value, str):
                masked[key] = self.mask_message(value)
            elif isinstance(value, dict):
                masked[key] = self.mask_extra_fields(value)
            else:
                masked[key] = value
        return masked


def _current_trace_ids() -> tuple[str | None, str | None]:
    span = trace.get_current_span()
    span_context = span.get_span_context()
    if not span_context.is_valid:
        return None, None
    return format(span_context.trace_id, "032x"), format(span_context.span_id, "016x")


class DataAccessLogFilter(logging.Filter):
    """
    Attaches correlation and trace context to every record and masks
    sensitive values in the message arguments.
    """

    def __init__(self, masker: SensitiveDataMasker | None = None) -> None:
        super().__init__()
        self.masker = masker or SensitiveDataMasker()

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        record.trace_id, record.span_id = _current_trace_ids()

        # Render once so masking sees the final text
        record.msg = self.masker.mask_message(record.getMessage())
        record.args = None
        return True


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter for structured data-access logs."""

    def __init__(
        self,
        masker: SensitiveDataMasker | None = None,
        include_extra: bool = True,
        sort_keys: bool = True,
    ):
        super().__init__()
        self.include_extra = include_extra
        self.sort_keys = sort_keys
        self.masker = masker or SensitiveDataMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self.masker.mask_message(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add correlation and tracing context
        for key in ("correlation_id", "trace_id", "span_id"):
            value = getattr(record, key, None)
            if value:
                log_entry[key] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in STANDARD_RECORD_FIELDS and not key.startswith("_")
        }

        data_access = {key: extra.pop(key) for key in DATA_ACCESS_FIELDS if key in extra}
        if data_access:
            log_entry["data_access"] = data_access

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra and extra:
            log_entry["extra"] = self.masker.mask_extra_fields(extra)

        return json.dumps(log_entry, sort_keys=self.sort_keys, default=self._serialize_value)

    def _serialize_value(self, value: Any) -> Any:
        """Serialize complex values for JSON output."""
        if isinstance(value, Decimal):
            return str(value)
        elif isinstance(value, set | frozenset):
            return sorted(value, key=repr)
        elif isinstance(value, datetime):
            return value.isoformat()
        return str(value)


# Correlation ID management
def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    """Get current correlation ID."""
    return correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str, None, None]:
    """Context manager for correlation ID scope."""
    if correlation_id is None:
        correlation_id = generate_correlation_id()

    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


def setup_structured_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: str | None = None,
    sensitive_data_config: SensitiveDataConfig | None = None,
) -> None:
    """
    Setup structured logging for the data-access layer.

    Args:
        level: Logging level
        format_type: Formatter type ('json' or 'text')
        log_file: Optional log file path
        sensitive_data_config: Sensitive data masking configuration
    """

    # Clear any existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    masker = SensitiveDataMasker(sensitive_data_config)

    formatter: logging.Formatter
    if format_type == "json":
        formatter = StructuredJSONFormatter(masker)
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    log_filter = DataAccessLogFilter(masker)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(log_filter)
        root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    logging.getLogger(__name__).info("Structured logging configured successfully")
