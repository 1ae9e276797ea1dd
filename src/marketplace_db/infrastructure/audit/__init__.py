"""
Audit logging for repository mutations.

Provides the audit entry type, storage backends and the loggers used by
the audit repository decorator.
"""

from .events import AuditAction, AuditContext, AuditLogEntry
from .exceptions import AuditException, AuditStorageError
from .formatters import JSONFormatter
from .logger import AuditLogger, QueryLogger
from .storage import AuditStorage, LoggingAuditStorage, MemoryAuditStorage

__all__ = [
    "AuditAction",
    "AuditContext",
    "AuditException",
    "AuditLogEntry",
    "AuditLogger",
    "AuditStorage",
    "AuditStorageError",
    "JSONFormatter",
    "LoggingAuditStorage",
    "MemoryAuditStorage",
    "QueryLogger",
]
