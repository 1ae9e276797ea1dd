"""
Database connection management.

``DatabaseManager`` owns the adapter for the process. It is created by the
entry point, passed to whatever needs the database, and closed when the
process is done with it; there is no module-level instance.

Engine selection:
    - ``APP_ENV`` (or ``ENVIRONMENT``) unset or ``development``: embedded SQLite
    - any other environment: MySQL, falling back to SQLite if MySQL is unreachable
"""

import logging
from datetime import timedelta
from enum import Enum
from types import TracebackType
from typing import Any

from marketplace_db.application.interfaces.exceptions import ConnectionError
from marketplace_db.infrastructure.config import DatabaseConfig
from marketplace_db.infrastructure.database.adapter import DatabaseAdapter
from marketplace_db.infrastructure.database.mysql_adapter import MySQLAdapter
from marketplace_db.infrastructure.database.sqlite_adapter import SQLiteAdapter

logger = logging.getLogger(__name__)


class DatabaseType(Enum):
    MYSQL = "mysql"
    SQLITE = "sqlite3"


class ConnectionState(Enum):
    UNINITIALIZED = "uninitialized"
    SQLITE_ACTIVE = "sqlite_active"
    MYSQL_ACTIVE = "mysql_active"
    CLOSED = "closed"


class DatabaseManager:
    """
    Database connection manager.

    Chooses the engine from the configured environment, opens it and applies
    the pool limits. Use as an async context manager or call ``initialize()``
    and ``close()`` explicitly.
    """

    def __init__(self, config: DatabaseConfig | None = None) -> None:
        """
        Initialize connection manager.

        Args:
            config: Database configuration, read from the environment when omitted
        """
        self.config = config or DatabaseConfig.from_env()
        self._adapter: DatabaseAdapter | None = None
        self._db_type: DatabaseType | None = None
        self._state = ConnectionState.UNINITIALIZED
        self._fallback_reason: str | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def db_type(self) -> DatabaseType | None:
        return self._db_type

    @property
    def is_active(self) -> bool:
        return self._state in (ConnectionState.SQLITE_ACTIVE, ConnectionState.MYSQL_ACTIVE)

    @property
    def is_mysql(self) -> bool:
        return self._db_type is DatabaseType.MYSQL

    @property
    def is_sqlite(self) -> bool:
        return self._db_type is DatabaseType.SQLITE

    @property
    def fallback_reason(self) -> str | None:
        """Why MySQL was skipped in favour of SQLite, if it was."""
        return self._fallback_reason

    @property
    def adapter(self) -> DatabaseAdapter:
        """
        Get the active adapter.

        Raises:
            ConnectionError: If the manager is not initialized or already closed
        """
        if self._adapter is None or not self.is_active:
            raise ConnectionError(f"Database manager is not active (state={self._state.value})")
        return self._adapter

    @property
    def connection_string(self) -> str:
        """Connection description with the password redacted."""
        if self.is_sqlite:
            return f"sqlite3://{self.config.sqlite_path}"
        return self.config.get_connection_string(redact=True)

    async def initialize(self) -> DatabaseAdapter:
        """
        Open the database selected by the configured environment.

        Returns:
            The active adapter

        Raises:
            ConnectionError: If the manager was closed or no engine could be opened
        """
        if self._state is ConnectionState.CLOSED:
            raise ConnectionError("Database manager has been closed")
        if self.is_active and self._adapter is not None:
            return self._adapter

        if self.config.is_development:
            logger.info("Development environment detected, using SQLite")
            await self._open_sqlite()
        else:
            try:
                await self._open_mysql()
            except ConnectionError as e:
                self._fallback_reason = str(e)
                logger.warning(f"MySQL unavailable, falling back to SQLite: {e}")
                await self._open_sqlite()

        logger.info(f"Database initialized: {self._db_type.value} ({self.connection_string})")
        return self._adapter

    async def _open_sqlite(self) -> None:
        adapter = await SQLiteAdapter.connect(self.config.sqlite_path)
        await adapter.configure_pool(1, 1, timedelta(0))
        self._adapter = adapter
        self._db_type = DatabaseType.SQLITE
        self._state = ConnectionState.SQLITE_ACTIVE

    async def _open_mysql(self) -> None:
        cfg = self.config
        logger.info(f"Connecting to MySQL: {cfg.get_connection_string(redact=True)}")
        self._adapter = await MySQLAdapter.connect(
            cfg.host,
            cfg.port,
            cfg.user,
            cfg.password,
            cfg.database,
            max_open=cfg.max_open_conns,
            max_idle=cfg.max_idle_conns,
            max_lifetime=cfg.conn_max_lifetime,
            connect_timeout=cfg.connect_timeout,
        )
        self._db_type = DatabaseType.MYSQL
        self._state = ConnectionState.MYSQL_ACTIVE

    async def set_connection_pool(
        self, max_open: int, max_idle: int, max_lifetime: timedelta | float
    ) -> None:
        await self.adapter.configure_pool(max_open, max_idle, max_lifetime)

    async def health_check(self) -> bool:
        if not self.is_active or self._adapter is None:
            return False
        return await self._adapter.health_check()

    async def get_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "state": self._state.value,
            "type": self._db_type.value if self._db_type else None,
            "connection": self.connection_string if self._db_type else None,
            "fallback_reason": self._fallback_reason,
        }
        if self.is_active and self._adapter is not None:
            info["pool"] = await self._adapter.get_connection_info()
        return info

    async def close(self) -> None:
        """Close the active adapter. Safe to call more than once."""
        if self._state is ConnectionState.CLOSED:
            return

        adapter, self._adapter = self._adapter, None
        self._state = ConnectionState.CLOSED
        if adapter is not None:
            await adapter.close()
        logger.info("Database manager closed")

    async def __aenter__(self) -> "DatabaseManager":
        await self.initialize()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def __str__(self) -> str:
        engine = self._db_type.value if self._db_type else "none"
        return f"DatabaseManager(engine={engine}, state={self._state.value})"
