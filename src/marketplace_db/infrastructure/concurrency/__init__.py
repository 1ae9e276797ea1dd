"""
Infrastructure layer concurrency utilities.

This module contains locking primitives shared by the caches and statistics
collectors of the data-access layer.
"""

from .rwlock import ReadWriteLock

__all__ = ["ReadWriteLock"]
