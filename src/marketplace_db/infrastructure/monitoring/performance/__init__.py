"""
Performance monitoring for database access.
"""

from .database_profiler import DatabaseQueryProfiler, SlowQueryRecord

__all__ = ["DatabaseQueryProfiler", "SlowQueryRecord"]
