"""
Unit tests for environment-driven configuration.
"""

# Standard library imports
from datetime import timedelta

# Third-party imports
import pytest

# Local imports
from marketplace_db.infrastructure.config import (
    DEFAULT_SQLITE_PATH,
    AppConfig,
    CacheConfig,
    DatabaseConfig,
    LoggingConfig,
)

DB_ENV_VARS = (
    "APP_ENV",
    "ENVIRONMENT",
    "DB_HOST",
    "DB_PORT",
    "DB_USER",
    "DB_PASSWORD",
    "DB_NAME",
    "SQLITE_PATH",
    "DB_MAX_OPEN_CONNS",
    "DB_MAX_IDLE_CONNS",
    "DB_CONN_MAX_LIFETIME",
    "DB_CONNECT_TIMEOUT",
    "CACHE_TTL",
    "COUNT_CACHE_TTL",
    "SLOW_QUERY_THRESHOLD_MS",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FILE",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in DB_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.unit
class TestDatabaseConfig:
    """Test database settings."""

    def test_defaults(self, clean_env):
        config = DatabaseConfig.from_env()

        assert config.environment == ""
        assert config.is_development is True
        assert config.host == "localhost"
        assert config.port == 3306
        assert config.sqlite_path == DEFAULT_SQLITE_PATH
        assert config.max_open_conns == 25
        assert config.max_idle_conns == 10
        assert config.conn_max_lifetime == timedelta(minutes=5)

    def test_environment_fallback_variable(self, clean_env):
        clean_env.setenv("ENVIRONMENT", "staging")

        config = DatabaseConfig.from_env()

        assert config.environment == "staging"
        assert config.is_development is False

    def test_app_env_wins(self, clean_env):
        clean_env.setenv("ENVIRONMENT", "staging")
        clean_env.setenv("APP_ENV", "Development")

        assert DatabaseConfig.from_env().is_development is True

    def test_overrides(self, clean_env):
        clean_env.setenv("DB_HOST", "mysql.internal")
        clean_env.setenv("DB_PORT", "3310")
        clean_env.setenv("DB_CONN_MAX_LIFETIME", "60")
        clean_env.setenv("SQLITE_PATH", "/tmp/test.db")

        config = DatabaseConfig.from_env()

        assert config.host == "mysql.internal"
        assert config.port == 3310
        assert config.conn_max_lifetime == timedelta(seconds=60)
        assert config.sqlite_path == "/tmp/test.db"

    def test_invalid_integer_uses_default(self, clean_env):
        clean_env.setenv("DB_PORT", "not-a-port")

        assert DatabaseConfig.from_env().port == 3306

    def test_connection_string_redacts_password(self):
        config = DatabaseConfig(user="app", password="hunter2", host="db", port=3306, database="shop")

        assert config.get_connection_string() == "mysql://app:***@db:3306/shop"
        assert config.get_connection_string(redact=False) == "mysql://app:hunter2@db:3306/shop"


@pytest.mark.unit
class TestOtherConfig:
    """Test cache and logging settings."""

    def test_cache_config(self, clean_env):
        clean_env.setenv("COUNT_CACHE_TTL", "30")
        clean_env.setenv("SLOW_QUERY_THRESHOLD_MS", "250")

        config = CacheConfig.from_env()

        assert config.default_ttl == timedelta(minutes=5)
        assert config.count_ttl == timedelta(seconds=30)
        assert config.slow_query_threshold == timedelta(milliseconds=250)

    def test_logging_config(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "debug")
        clean_env.setenv("LOG_FORMAT", "TEXT")

        config = LoggingConfig.from_env()

        assert config.level == "DEBUG"
        assert config.format_type == "text"
        assert config.log_file is None

    def test_app_config(self, clean_env):
        config = AppConfig.from_env()

        assert isinstance(config.database, DatabaseConfig)
        assert isinstance(config.cache, CacheConfig)
        assert isinstance(config.logging, LoggingConfig)
