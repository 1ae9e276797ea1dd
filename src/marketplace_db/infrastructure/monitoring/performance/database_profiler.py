"""
Database query performance profiler.

Aggregates timings by normalized query text, so the same statement with
different literal values shares one record. Deciding which executions are
slow is left to the caller (see ``is_slow``); every recorded execution is
folded in. Records are kept for the life of the process.
"""

import re
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

from marketplace_db.infrastructure.concurrency import ReadWriteLock

DEFAULT_SLOW_THRESHOLD = timedelta(milliseconds=100)


def as_timedelta(duration: timedelta | float) -> timedelta:
    """Accept a timedelta or a number of seconds."""
    if isinstance(duration, timedelta):
        return duration
    return timedelta(seconds=duration)


@dataclass(frozen=True)
class SlowQueryRecord:
    """Aggregate timings of one normalized slow query."""

    query: str
    count: int
    total_time: timedelta
    average_time: timedelta
    last_seen: datetime

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "count": self.count,
            "total_time_ms": self.total_time.total_seconds() * 1000,
            "average_time_ms": self.average_time.total_seconds() * 1000,
            "last_seen": self.last_seen.isoformat(),
        }


class DatabaseQueryProfiler:
    """Database query performance profiler."""

    def __init__(self, slow_query_threshold: timedelta | float = DEFAULT_SLOW_THRESHOLD) -> None:
        self._slow_queries: dict[str, SlowQueryRecord] = {}
        self._slow_query_threshold = as_timedelta(slow_query_threshold)
        self._lock = ReadWriteLock()

    @staticmethod
    def normalize_query(query: str) -> str:
        """Normalize query by removing specific values."""
        # Remove string literals
        normalized = re.sub(r"'[^']*'", "'?'", query)

        # Remove numeric literals
        normalized = re.sub(r"\b\d+\b", "?", normalized)

        # Remove whitespace variations
        normalized = re.sub(r"\s+", " ", normalized)

        return normalized.strip()

    def is_slow(self, duration: timedelta | float) -> bool:
        return as_timedelta(duration) > self._slow_query_threshold

    def record_query(self, query: str, duration: timedelta | float) -> SlowQueryRecord:
        """
        Fold one execution into the record for its normalized text.

        Returns:
            The updated record
        """
        duration = as_timedelta(duration)

        key = self.normalize_query(query)
        now = datetime.now(UTC)

        with self._lock.write_locked():
            record = self._slow_queries.get(key)
            if record is None:
                record = SlowQueryRecord(key, 1, duration, duration, now)
            else:
                count = record.count + 1
                total = record.total_time + duration
                record = replace(
                    record, count=count, total_time=total, average_time=total / count, last_seen=now
                )
            self._slow_queries[key] = record
        return record

    def get_slow_queries(self, limit: int = 10) -> list[SlowQueryRecord]:
        """Get slow queries ordered by average duration, slowest first."""
        with self._lock.read_locked():
            records = list(self._slow_queries.values())

        records.sort(key=lambda r: r.average_time, reverse=True)
        return records[:limit] if limit > 0 else records

    def get_slow_query(self, query: str) -> SlowQueryRecord | None:
        with self._lock.read_locked():
            return self._slow_queries.get(self.normalize_query(query))

    def set_slow_query_threshold(self, threshold: timedelta | float) -> None:
        """Set the slow query threshold (timedelta or seconds)."""
        self._slow_query_threshold = as_timedelta(threshold)

    def get_slow_query_threshold(self) -> timedelta:
        """Get the current slow query threshold."""
        return self._slow_query_threshold
