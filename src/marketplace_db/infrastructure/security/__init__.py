"""Input validation for SQL identifiers and masking of sensitive values."""

from .input_sanitizer import InputSanitizer, SanitizationError

__all__ = ["InputSanitizer", "SanitizationError"]
