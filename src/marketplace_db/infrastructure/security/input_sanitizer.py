"""
Input Sanitization - Infrastructure layer for checking SQL identifiers.

Values never reach SQL text: they are always bound parameters. Identifiers
(tables, columns, ordering fields) cannot be bound, so they are checked here
against a strict character allow-list before the query builder interpolates
them.
"""

import re
from typing import Any


class SanitizationError(Exception):
    """Raised when input cannot be safely used in SQL text."""

    pass


class InputSanitizer:
    """
    Identifier sanitization for security purposes.

    This class only handles security-related checks.
    Whether a column exists is left to the database.
    """

    TABLE_NAME_PATTERN = re.compile(r"[A-Za-z0-9_]*", re.ASCII)
    IDENTIFIER_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*", re.ASCII)

    RESERVED_WORDS = {"SELECT", "INSERT", "UPDATE", "DELETE", "DROP", "CREATE", "ALTER"}

    # Keys whose values are masked before they reach a log line
    SENSITIVE_KEYS = ("password", "passwd", "secret", "token", "api_key", "authorization")

    @classmethod
    def is_valid_table_name(cls, table: str) -> bool:
        """
        Check that a table name holds only ASCII letters, digits and underscores.

        The empty string passes; callers that need a table reject it separately.
        """
        if not isinstance(table, str):
            return False
        return cls.TABLE_NAME_PATTERN.fullmatch(table) is not None

    @classmethod
    def sanitize_sql_identifier(cls, identifier: str, allow_qualified: bool = True) -> str:
        """
        Sanitize a SQL identifier (table/column name).

        Args:
            identifier: SQL identifier to sanitize
            allow_qualified: Accept ``table.column`` forms

        Returns:
            Sanitized identifier

        Raises:
            SanitizationError: If identifier is unsafe
        """
        if not isinstance(identifier, str) or not identifier:
            raise SanitizationError(f"Invalid SQL identifier: {identifier!r}")

        parts = identifier.split(".") if allow_qualified else [identifier]
        if len(parts) > 2:
            raise SanitizationError(f"Invalid SQL identifier: {identifier}")

        for part in parts:
            if not cls.IDENTIFIER_PATTERN.fullmatch(part):
                raise SanitizationError(f"Invalid SQL identifier: {identifier}")
            if part.upper() in cls.RESERVED_WORDS:
                raise SanitizationError(f"Reserved SQL word: {identifier}")

        return identifier

    @classmethod
    def is_sensitive_key(cls, key: str) -> bool:
        lowered = key.lower()
        return any(marker in lowered for marker in cls.SENSITIVE_KEYS)

    @classmethod
    def mask_sensitive(cls, value: Any) -> Any:
        """
        Return a copy of ``value`` with sensitive mapping entries replaced.

        Nested mappings and sequences are walked; anything else is returned
        unchanged.
        """
        if isinstance(value, dict):
            return {
                k: "***" if isinstance(k, str) and cls.is_sensitive_key(k) else cls.mask_sensitive(v)
                for k, v in value.items()
            }
        if isinstance(value, list | tuple):
            return type(value)(cls.mask_sensitive(v) for v in value)
        return value
