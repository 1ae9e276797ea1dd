"""In-process caching for the data-access layer."""

from .memory_cache import CacheEntry, CacheStats, MemoryCache

__all__ = ["CacheEntry", "CacheStats", "MemoryCache"]
