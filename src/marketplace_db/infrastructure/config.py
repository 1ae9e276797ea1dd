"""
Configuration Management - Loads data-access settings from the environment
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()

DEVELOPMENT = "development"
DEFAULT_SQLITE_PATH = "data/marketplace.db"


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}={raw!r}, using {default}")
        return default


@dataclass
class DatabaseConfig:
    """Database configuration settings"""

    environment: str = ""
    host: str = "localhost"
    port: int = 3306
    user: str = "marketplace"
    password: str = ""
    database: str = "marketplace"
    sqlite_path: str = DEFAULT_SQLITE_PATH
    max_open_conns: int = 25
    max_idle_conns: int = 10
    conn_max_lifetime: timedelta = field(default_factory=lambda: timedelta(minutes=5))
    connect_timeout: int = 10

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """
        Load database config from environment variables.

        ``APP_ENV`` selects the engine; ``ENVIRONMENT`` is read when it is unset.
        """
        return cls(
            environment=os.getenv("APP_ENV") or os.getenv("ENVIRONMENT", ""),
            host=os.getenv("DB_HOST") or "localhost",
            port=_get_int("DB_PORT", 3306),
            user=os.getenv("DB_USER") or "marketplace",
            password=os.getenv("DB_PASSWORD", ""),
            database=os.getenv("DB_NAME") or "marketplace",
            sqlite_path=os.getenv("SQLITE_PATH") or DEFAULT_SQLITE_PATH,
            max_open_conns=_get_int("DB_MAX_OPEN_CONNS", 25),
            max_idle_conns=_get_int("DB_MAX_IDLE_CONNS", 10),
            conn_max_lifetime=timedelta(seconds=_get_int("DB_CONN_MAX_LIFETIME", 300)),
            connect_timeout=_get_int("DB_CONNECT_TIMEOUT", 10),
        )

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() in ("", DEVELOPMENT)

    def get_connection_string(self, redact: bool = True) -> str:
        """Get MySQL connection string"""
        password = "***" if redact and self.password else self.password
        return f"mysql://{self.user}:{password}@{self.host}:{self.port}/{self.database}"


@dataclass
class CacheConfig:
    """Cache configuration settings"""

    default_ttl: timedelta = field(default_factory=lambda: timedelta(minutes=5))
    count_ttl: timedelta = field(default_factory=lambda: timedelta(minutes=1))
    slow_query_threshold: timedelta = field(default_factory=lambda: timedelta(milliseconds=100))

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Load cache config from environment variables"""
        return cls(
            default_ttl=timedelta(seconds=_get_int("CACHE_TTL", 300)),
            count_ttl=timedelta(seconds=_get_int("COUNT_CACHE_TTL", 60)),
            slow_query_threshold=timedelta(milliseconds=_get_int("SLOW_QUERY_THRESHOLD_MS", 100)),
        )


@dataclass
class LoggingConfig:
    """Logging configuration settings"""

    level: str = "INFO"
    format_type: str = "json"
    log_file: str | None = None

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Load logging config from environment variables"""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            format_type=os.getenv("LOG_FORMAT", "json").lower(),
            log_file=os.getenv("LOG_FILE") or None,
        )


@dataclass
class AppConfig:
    """Application configuration"""

    database: DatabaseConfig
    cache: CacheConfig
    logging: LoggingConfig

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load all configuration from environment variables"""
        return cls(
            database=DatabaseConfig.from_env(),
            cache=CacheConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )
