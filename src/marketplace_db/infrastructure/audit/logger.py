"""
Audit and query logging for repository operations.

``QueryLogger`` records every repository call with its arguments and
duration. ``AuditLogger`` hands mutation entries to an audit storage backend.
"""

import logging
import threading
from datetime import timedelta
from typing import Any

from marketplace_db.infrastructure.security.input_sanitizer import InputSanitizer

from .events import AuditLogEntry
from .exceptions import AuditStorageError
from .storage import AuditStorage, LoggingAuditStorage

QUERY_LOGGER_NAME = "marketplace_db.queries"


def _describe_args(args: Any) -> str:
    text = repr(InputSanitizer.mask_sensitive(args))
    return text if len(text) <= 500 else text[:497] + "..."


class QueryLogger:
    """Logs repository calls and their failures."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(QUERY_LOGGER_NAME)

    def log_query(self, operation: str, table: str, args: Any, duration: timedelta) -> None:
        self._logger.info(
            f"Query: {operation} on {table} args={_describe_args(args)} "
            f"took {duration.total_seconds() * 1000:.2f}ms",
            extra={
                "operation": operation,
                "table": table,
                "duration_ms": duration.total_seconds() * 1000,
            },
        )

    def log_error(
        self,
        operation: str,
        table: str,
        args: Any,
        error: BaseException,
        duration: timedelta | None = None,
    ) -> None:
        took = f" after {duration.total_seconds() * 1000:.2f}ms" if duration is not None else ""
        self._logger.error(
            f"Query error: {operation} on {table} args={_describe_args(args)}{took}: {error}",
            extra={"operation": operation, "table": table, "error_type": type(error).__name__},
        )


class AuditLogger:
    """
    Writes audit entries to a storage backend.

    Storage failures are raised as AuditStorageError; callers decide whether
    an audit failure may interrupt their work.
    """

    def __init__(self, storage: AuditStorage | None = None, enabled: bool = True) -> None:
        """
        Initialize audit logger.

        Args:
            storage: Storage backend, defaults to writing JSON lines to the log
            enabled: When False entries are dropped without touching storage
        """
        self.storage = storage or LoggingAuditStorage()
        self.enabled = enabled
        self._event_count = 0
        self._error_count = 0
        self._lock = threading.Lock()
        self._logger = logging.getLogger(f"{__name__}.AuditLogger")

    def log_audit(self, entry: AuditLogEntry) -> str | None:
        """
        Store one entry.

        Returns:
            Storage reference, or None when logging is disabled

        Raises:
            AuditStorageError: If the backend fails
        """
        if not self.enabled:
            return None

        try:
            reference = self.storage.store(entry.to_dict())
        except AuditStorageError:
            self._record(error=True)
            raise
        except Exception as e:
            self._record(error=True)
            raise AuditStorageError(
                f"Failed to store audit entry for {entry.table_name}/{entry.record_id}: {e}",
                storage_type=type(self.storage).__name__,
            ) from e

        self._record(error=False)
        self._logger.debug(
            f"Audit entry stored: {entry.action.value} {entry.table_name}/{entry.record_id}"
        )
        return reference

    def _record(self, error: bool) -> None:
        with self._lock:
            if error:
                self._error_count += 1
            else:
                self._event_count += 1

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "events_logged": self._event_count,
                "errors": self._error_count,
                "enabled": self.enabled,
            }
