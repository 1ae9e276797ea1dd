"""
Repository Exception Definitions

Defines exceptions that the data-access layer may raise.
Every exception carries a stable ``code`` so callers can branch on the
failure category without parsing messages.
"""

# Standard library imports
from typing import Any


class RepositoryError(Exception):
    """Base exception for repository operations."""

    code = "REPOSITORY_ERROR"

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.code}: {self.message}: {self.cause}"
        return f"{self.code}: {self.message}"


class InvalidTableError(RepositoryError):
    """Raised when a table name contains characters outside the allow-list."""

    code = "INVALID_TABLE"

    def __init__(self, table: str) -> None:
        super().__init__(f"invalid table name: {table!r}")
        self.table = table


class InvalidIdentifierError(RepositoryError):
    """Raised when a column or ordering identifier is not a plain SQL name."""

    code = "INVALID_IDENTIFIER"

    def __init__(self, identifier: Any, context: str = "identifier") -> None:
        super().__init__(f"invalid SQL {context}: {identifier!r}")
        self.identifier = identifier
        self.context = context


class DatabaseError(RepositoryError):
    """Base exception for failures reported by the database driver."""

    code = "DATABASE_ERROR"


class PrepareError(DatabaseError):
    """Raised when the driver rejects a statement before running it."""

    code = "PREPARE_ERROR"


class ExecError(DatabaseError):
    """Raised when a write statement fails."""

    code = "EXEC_ERROR"


class QueryError(DatabaseError):
    """Raised when a read statement fails."""

    code = "QUERY_ERROR"


class ScanError(DatabaseError):
    """Raised when rows cannot be fetched from a cursor."""

    code = "SCAN_ERROR"


class MappingError(RepositoryError):
    """Raised when a record cannot be converted to or from a row."""

    code = "MAPPING_ERROR"


class NoRowsError(RepositoryError):
    """Raised when a single-row lookup matches nothing."""

    code = "NO_ROWS"

    def __init__(self, table: str, criteria: Any = None) -> None:
        message = f"no rows in {table}"
        if criteria is not None:
            message += f" matching {criteria!r}"
        super().__init__(message)
        self.table = table
        self.criteria = criteria


class ValidationError(RepositoryError):
    """Raised when input fails validation before reaching the database."""

    code = "VALIDATION_ERROR"


class TransactionError(RepositoryError):
    """Raised when a transaction cannot be started, committed or rolled back."""

    code = "TRANSACTION_ERROR"


class ConnectionError(RepositoryError):
    """Raised when database connection fails."""

    code = "CONNECTION_ERROR"

    def __init__(
        self, message: str = "Database connection failed", cause: Exception | None = None
    ) -> None:
        super().__init__(message, cause)


class BulkOperationError(RepositoryError):
    """
    Raised when a bulk operation stops part way through.

    Bulk operations are not atomic, so ``completed`` lists the ids that were
    already written when ``cause`` occurred.
    """

    code = "BULK_ERROR"

    def __init__(
        self, operation: str, completed: list[Any], cause: Exception | None = None
    ) -> None:
        super().__init__(
            f"{operation} failed after {len(completed)} successful item(s)", cause
        )
        self.operation = operation
        self.completed = completed


class MigrationError(RepositoryError):
    """Raised when a schema migration fails."""

    code = "MIGRATION_ERROR"
