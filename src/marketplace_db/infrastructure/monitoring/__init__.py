"""
Monitoring for the data-access layer: structured logging and query profiling.
"""

from .logging import (
    DataAccessLogFilter,
    SensitiveDataMasker,
    StructuredJSONFormatter,
    correlation_context,
    get_correlation_id,
    setup_structured_logging,
)
from .performance import DatabaseQueryProfiler, SlowQueryRecord

__all__ = [
    "DataAccessLogFilter",
    "DatabaseQueryProfiler",
    "SensitiveDataMasker",
    "SlowQueryRecord",
    "StructuredJSONFormatter",
    "correlation_context",
    "get_correlation_id",
    "setup_structured_logging",
]
