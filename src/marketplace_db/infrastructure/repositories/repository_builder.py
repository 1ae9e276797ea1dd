"""
Repository chain assembly.

Builds the decorator chain handed to business services:

    CacheRepository -> AuditRepository -> BaseRepository -> adapter

Each stage holds a reference to the next one. Stages that are not enabled
are left out of the chain.
"""

import logging
from datetime import timedelta

from marketplace_db.application.interfaces.repositories import IRepository
from marketplace_db.infrastructure.audit import AuditContext, AuditLogger, QueryLogger
from marketplace_db.infrastructure.cache import MemoryCache
from marketplace_db.infrastructure.config import CacheConfig
from marketplace_db.infrastructure.database.adapter import DatabaseAdapter
from marketplace_db.infrastructure.database.connection import DatabaseManager
from marketplace_db.infrastructure.repositories.audit_repository import AuditRepository
from marketplace_db.infrastructure.repositories.base_repository import BaseRepository
from marketplace_db.infrastructure.repositories.cache_repository import CacheRepository

logger = logging.getLogger(__name__)


class RepositoryBuilder:
    """
    Fluent builder for a repository chain.

    Usage:
        repository = (RepositoryBuilder(manager.adapter)
            .with_audit()
            .with_cache(ttl=timedelta(minutes=5))
            .build())
    """

    def __init__(self, adapter: DatabaseAdapter) -> None:
        self._adapter = adapter
        self._audit: dict | None = None
        self._cache: dict | None = None

    @classmethod
    def from_manager(cls, manager: DatabaseManager) -> "RepositoryBuilder":
        """Start a chain on the active adapter of ``manager``."""
        return cls(manager.adapter)

    def with_audit(
        self,
        audit_logger: AuditLogger | None = None,
        query_logger: QueryLogger | None = None,
        context: AuditContext | None = None,
        capture_old_values: bool = True,
    ) -> "RepositoryBuilder":
        self._audit = {
            "audit_logger": audit_logger,
            "query_logger": query_logger,
            "context": context,
            "capture_old_values": capture_old_values,
        }
        return self

    def with_cache(
        self,
        cache: MemoryCache | None = None,
        ttl: timedelta | None = None,
        config: CacheConfig | None = None,
    ) -> "RepositoryBuilder":
        """
        Enable the cache stage.

        Args:
            cache: Shared cache, a new one is created when omitted
            ttl: Entry lifetime; taken from ``config`` or the default when omitted
            config: Cache settings read from the environment
        """
        if ttl is None:
            ttl = (config or CacheConfig()).default_ttl
        self._cache = {"cache": cache, "ttl": ttl}
        return self

    def build(self) -> IRepository:
        repository: IRepository = BaseRepository(self._adapter)
        stages = ["base"]

        if self._audit is not None:
            repository = AuditRepository(repository, **self._audit)
            stages.append("audit")

        if self._cache is not None:
            repository = CacheRepository(repository, **self._cache)
            stages.append("cache")

        logger.debug(f"Repository chain built: {' <- '.join(reversed(stages))}")
        return repository
