"""
Database Infrastructure Module

This module provides SQLite and MySQL access for the marketplace: async
adapters, the connection manager, the query builder, record mapping,
pagination, the query optimizer and schema migrations.
"""

from .adapter import DatabaseAdapter, ExecResult
from .connection import ConnectionState, DatabaseManager, DatabaseType
from .mapper import db_field, register_record, row_to_record
from .migrations import Migration, MigrationManager
from .mysql_adapter import MySQLAdapter
from .pagination import (
    CursorPaginationParams,
    PaginatedQuery,
    PaginationParams,
    build_cursor_query,
    build_pagination_query,
)
from .query_builder import Condition, JoinType, Operator, QueryBuilder, QueryResult
from .query_optimizer import QueryOptimizer, QueryStats
from .sqlite_adapter import SQLiteAdapter

__all__ = [
    "Condition",
    "ConnectionState",
    "CursorPaginationParams",
    "DatabaseAdapter",
    "DatabaseManager",
    "DatabaseType",
    "ExecResult",
    "JoinType",
    "Migration",
    "MigrationManager",
    "MySQLAdapter",
    "Operator",
    "PaginatedQuery",
    "PaginationParams",
    "QueryBuilder",
    "QueryOptimizer",
    "QueryResult",
    "QueryStats",
    "SQLiteAdapter",
    "build_cursor_query",
    "build_pagination_query",
    "db_field",
    "register_record",
    "row_to_record",
]
