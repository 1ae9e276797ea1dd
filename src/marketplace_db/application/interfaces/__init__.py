"""
Application Interfaces - Repository Contracts

This module defines the repository contract and the error hierarchy that
every repository implementation raises.
"""

from .exceptions import (
    BulkOperationError,
    ConnectionError,
    DatabaseError,
    ExecError,
    InvalidIdentifierError,
    InvalidTableError,
    MappingError,
    MigrationError,
    NoRowsError,
    PrepareError,
    QueryError,
    RepositoryError,
    ScanError,
    TransactionError,
    ValidationError,
)
from .repositories import Conditions, IRepository

__all__ = [
    # Repository interface
    "IRepository",
    "Conditions",
    # Exceptions
    "BulkOperationError",
    "ConnectionError",
    "DatabaseError",
    "ExecError",
    "InvalidIdentifierError",
    "InvalidTableError",
    "MappingError",
    "MigrationError",
    "NoRowsError",
    "PrepareError",
    "QueryError",
    "RepositoryError",
    "ScanError",
    "TransactionError",
    "ValidationError",
]
