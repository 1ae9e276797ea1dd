"""
Unit tests for the audit and query loggers.
"""

import logging
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from marketplace_db.infrastructure.audit import (
    AuditAction,
    AuditLogEntry,
    AuditLogger,
    AuditStorageError,
    LoggingAuditStorage,
    MemoryAuditStorage,
    QueryLogger,
)


@pytest.fixture
def entry():
    return AuditLogEntry.create("products", 4, AuditAction.CREATE, new_values={"name": "Lamp"})


@pytest.mark.unit
class TestAuditLogger:
    """Test handing entries to storage."""

    def test_stores_entry(self, entry):
        storage = MemoryAuditStorage()
        audit_logger = AuditLogger(storage)

        reference = audit_logger.log_audit(entry)

        assert reference is not None
        assert storage.query()[0]["record_id"] == 4
        assert audit_logger.get_stats() == {"events_logged": 1, "errors": 0, "enabled": True}

    def test_default_storage_is_logging(self):
        assert isinstance(AuditLogger().storage, LoggingAuditStorage)

    def test_disabled_drops_entries(self, entry):
        storage = MagicMock()
        audit_logger = AuditLogger(storage, enabled=False)

        assert audit_logger.log_audit(entry) is None
        storage.store.assert_not_called()

    def test_generic_failure_is_wrapped(self, entry):
        storage = MagicMock()
        storage.store.side_effect = OSError("read-only filesystem")
        audit_logger = AuditLogger(storage)

        with pytest.raises(AuditStorageError) as exc_info:
            audit_logger.log_audit(entry)

        assert "products/4" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, OSError)
        assert audit_logger.get_stats()["errors"] == 1

    def test_storage_error_passes_through(self, entry):
        error = AuditStorageError("disk full", "file")
        storage = MagicMock()
        storage.store.side_effect = error

        with pytest.raises(AuditStorageError) as exc_info:
            AuditLogger(storage).log_audit(entry)

        assert exc_info.value is error


@pytest.mark.unit
class TestQueryLogger:
    """Test query log lines."""

    def test_log_query(self, caplog):
        with caplog.at_level(logging.INFO, logger="marketplace_db.queries"):
            QueryLogger().log_query(
                "find_by_id", "products", {"id": 3}, timedelta(milliseconds=2.5)
            )

        [record] = caplog.records
        assert record.getMessage() == "Query: find_by_id on products args={'id': 3} took 2.50ms"
        assert record.operation == "find_by_id"
        assert record.table == "products"
        assert record.duration_ms == pytest.approx(2.5)

    def test_log_error_masks_arguments(self, caplog):
        with caplog.at_level(logging.ERROR, logger="marketplace_db.queries"):
            QueryLogger().log_error(
                "create_record",
                "users",
                {"email": "a@b.c", "password": "hunter2"},
                ValueError("duplicate"),
                timedelta(milliseconds=1),
            )

        [record] = caplog.records
        message = record.getMessage()
        assert "hunter2" not in message
        assert "after 1.00ms: duplicate" in message
        assert record.error_type == "ValueError"

    def test_long_arguments_are_truncated(self, caplog):
        with caplog.at_level(logging.INFO, logger="marketplace_db.queries"):
            QueryLogger().log_query("bulk_create", "products", ["x" * 1000], timedelta(0))

        assert "..." in caplog.records[0].getMessage()
        assert len(caplog.records[0].getMessage()) < 600

    def test_custom_logger(self):
        target = MagicMock(spec=logging.Logger)

        QueryLogger(target).log_query("count", "orders", None, timedelta(0))

        target.info.assert_called_once()
