"""
Repository Infrastructure Module

This module provides the generic base repository and the cache and audit
decorators that wrap it, assembled by ``RepositoryBuilder``.
"""

from .audit_repository import AuditRepository
from .base_repository import BaseRepository
from .cache_repository import CacheRepository
from .repository_builder import RepositoryBuilder

__all__ = [
    "AuditRepository",
    "BaseRepository",
    "CacheRepository",
    "RepositoryBuilder",
]
