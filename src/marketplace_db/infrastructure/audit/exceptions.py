"""
Audit logging system exceptions.
"""

from typing import Any


class AuditException(Exception):
    """Base exception for all audit logging related errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        """
        Initialize audit exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code for categorization
            context: Additional context information for debugging
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class AuditStorageError(AuditException):
    """Raised when an audit sink cannot store an entry."""

    def __init__(self, message: str, storage_type: str | None = None):
        context = {"storage_type": storage_type} if storage_type else {}
        super().__init__(message, "AUDIT_STORAGE_ERROR", context)
        self.storage_type = storage_type
