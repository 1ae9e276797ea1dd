"""
Audit storage backends.

``AuditStorage`` is the sink interface. ``LoggingAuditStorage`` appends each
entry to the application log as a single JSON line; ``MemoryAuditStorage``
keeps entries in process for inspection.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any

from .formatters import JSONFormatter

AUDIT_LOGGER_NAME = "marketplace_db.audit"


class AuditStorage(ABC):
    """
    Abstract base class for audit storage backends.

    Defines the interface that all storage backends must implement,
    ensuring consistent behavior across different storage systems.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def store(self, entry_data: dict[str, Any]) -> str:
        """
        Store single audit entry.

        Args:
            entry_data: Audit entry data

        Returns:
            Storage reference/ID for the stored entry
        """
        pass

    def store_batch(self, entries: list[dict[str, Any]]) -> list[str]:
        """Store entries in order and return their references."""
        return [self.store(entry) for entry in entries]

    @abstractmethod
    def query(
        self,
        table_name: str | None = None,
        record_id: Any = None,
        action: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Query stored entries with filters.

        Args:
            table_name: Filter by table
            record_id: Filter by record id
            action: Filter by action name (CREATE, UPDATE, DELETE)
            limit: Maximum number of entries to return

        Returns:
            Matching entries, oldest first
        """
        pass

    @abstractmethod
    def get_storage_stats(self) -> dict[str, Any]:
        pass

    def close(self) -> None:
        """Close storage backend and cleanup resources."""
        pass


class LoggingAuditStorage(AuditStorage):
    """
    Writes each entry to a logger as ``Audit: <json>``.

    Entries are not retained, so ``query`` always returns an empty list.
    """

    def __init__(
        self, logger: logging.Logger | None = None, formatter: JSONFormatter | None = None
    ) -> None:
        super().__init__()
        self.audit_logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)
        self.formatter = formatter or JSONFormatter()
        self._count = 0
        self._lock = threading.Lock()

    def store(self, entry_data: dict[str, Any]) -> str:
        reference = str(uuid.uuid4())
        self.audit_logger.info(f"Audit: {self.formatter.to_json_string(entry_data)}")
        with self._lock:
            self._count += 1
        return reference

    def query(
        self,
        table_name: str | None = None,
        record_id: Any = None,
        action: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        return []

    def get_storage_stats(self) -> dict[str, Any]:
        with self._lock:
            return {"storage_type": "logging", "entries_written": self._count}


class MemoryAuditStorage(AuditStorage):
    """In-process audit storage, mainly for tests and local development."""

    def __init__(self, max_entries: int | None = None) -> None:
        super().__init__()
        self._entries: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()
        self.max_entries = max_entries

    def store(self, entry_data: dict[str, Any]) -> str:
        reference = str(uuid.uuid4())
        with self._lock:
            self._entries.append((reference, dict(entry_data)))
            if self.max_entries is not None and len(self._entries) > self.max_entries:
                del self._entries[0]
        return reference

    def query(
        self,
        table_name: str | None = None,
        record_id: Any = None,
        action: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            entries = [data for _, data in self._entries]

        matched = [
            entry
            for entry in entries
            if (table_name is None or entry.get("table_name") == table_name)
            and (record_id is None or entry.get("record_id") == record_id)
            and (action is None or entry.get("action") == action)
        ]
        return matched[:limit] if limit is not None else matched

    def get_storage_stats(self) -> dict[str, Any]:
        with self._lock:
            return {"storage_type": "memory", "entries": len(self._entries)}

    def close(self) -> None:
        with self._lock:
            self._entries.clear()
