"""
Audit entry formatter.

Turns entry dictionaries into JSON-ready output with sensitive values masked.
"""

import json
from typing import Any

from marketplace_db.infrastructure.security.input_sanitizer import InputSanitizer
from marketplace_db.infrastructure.serialization import json_default


class JSONFormatter:
    """
    JSON formatter for audit entries.

    Provides structured JSON output suitable for log analysis tools.
    """

    def __init__(self, include_sensitive_data: bool = False, sort_keys: bool = True) -> None:
        """
        Initialize JSON formatter.

        Args:
            include_sensitive_data: Keep password-like values instead of masking them
            sort_keys: Whether to sort keys in JSON output
        """
        self.include_sensitive_data = include_sensitive_data
        self.sort_keys = sort_keys

    def format(self, entry_data: dict[str, Any]) -> dict[str, Any]:
        if self.include_sensitive_data:
            return dict(entry_data)
        return InputSanitizer.mask_sensitive(dict(entry_data))

    def to_json_string(self, entry_data: dict[str, Any]) -> str:
        """Convert formatted entry to JSON string."""
        return json.dumps(
            self.format(entry_data),
            default=json_default,
            sort_keys=self.sort_keys,
            separators=(",", ":"),
            ensure_ascii=False,
        )
