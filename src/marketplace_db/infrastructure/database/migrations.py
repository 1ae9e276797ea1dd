"""
Database Migration System

Applies an ordered list of named schema scripts and records each one in the
``migrations`` ledger table. A migration whose name is already in the ledger
is skipped, so running the same list again is a no-op.
"""

# Standard library imports
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

# Local imports
from marketplace_db.application.interfaces.exceptions import (
    DatabaseError,
    MigrationError,
    TransactionError,
)

from .adapter import DatabaseAdapter
from .mapper import coerce_value
from .query_builder import QueryBuilder, QueryResult

logger = logging.getLogger(__name__)

SQLITE_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS migrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
)
"""

MYSQL_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS migrations (
    id INT AUTO_INCREMENT PRIMARY KEY,
    name VARCHAR(255) NOT NULL UNIQUE,
    applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci
"""


@dataclass
class Migration:
    """Represents a database migration."""

    name: str
    sql: str
    applied_at: datetime | None = None

    @property
    def is_applied(self) -> bool:
        """Check if migration has been applied."""
        return self.applied_at is not None


_WORD = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*")

# Statements whose body may hold its own semicolons inside BEGIN ... END
_ROUTINE_KINDS = frozenset({"TRIGGER", "PROCEDURE", "FUNCTION"})

# Block kinds that close with "END <kind>" but have no BEGIN of their own
_END_SUFFIXES = frozenset({"IF", "LOOP", "WHILE", "REPEAT"})


def split_statements(script: str) -> list[str]:
    """
    Split a script on semicolons that end a statement.

    Semicolons inside quotes, ``--`` and ``/* */`` comments, and the
    BEGIN ... END body of a trigger or stored routine do not split.
    Statements holding nothing but comments are dropped.
    """
    statements: list[str] = []
    current: list[str] = []
    has_code = False
    first_word: str | None = None
    prev_word: str | None = None
    in_routine = False
    depth = 0
    quote: str | None = None
    i = 0

    while i < len(script):
        char = script[i]

        if quote:
            current.append(char)
            if char == quote:
                quote = None
            i += 1
            continue

        if script.startswith("--", i):
            end = script.find("\n", i)
            end = len(script) if end == -1 else end + 1
            current.append(script[i:end])
            i = end
            continue

        if script.startswith("/*", i):
            end = script.find("*/", i + 2)
            end = len(script) if end == -1 else end + 2
            current.append(script[i:end])
            i = end
            continue

        if char == ";" and depth == 0:
            if has_code:
                statements.append("".join(current).strip())
            current = []
            has_code = False
            first_word = prev_word = None
            in_routine = False
            i += 1
            continue

        match = _WORD.match(script, i)
        if match:
            word = match.group().upper()
            if first_word is None:
                first_word = word
            if first_word == "CREATE" and word in _ROUTINE_KINDS:
                in_routine = True
            elif in_routine:
                if word == "BEGIN" or (word == "CASE" and prev_word != "END"):
                    depth += 1
                elif word == "END" and depth:
                    depth -= 1
                elif word in _END_SUFFIXES and prev_word == "END":
                    depth += 1
            prev_word = word
            current.append(match.group())
            has_code = True
            i = match.end()
            continue

        if char in ("'", '"', "`"):
            quote = char
        if not char.isspace():
            has_code = True
        current.append(char)
        i += 1

    if has_code:
        statements.append("".join(current).strip())
    return statements


class MigrationManager:
    """
    Manages database schema migrations.

    Each migration runs with its ledger insert in one transaction. On MySQL,
    DDL statements commit implicitly, so a failed multi-statement migration
    may leave its earlier statements applied.
    """

    # Migration table name is a constant - not user input
    MIGRATIONS_TABLE = "migrations"

    def __init__(self, adapter: DatabaseAdapter) -> None:
        """
        Initialize migration manager.

        Args:
            adapter: Database adapter for executing migrations
        """
        self.adapter = adapter
        self._migrations: list[Migration] = []
        self._initialized = False

    @property
    def migrations(self) -> list[Migration]:
        return list(self._migrations)

    async def initialize(self) -> None:
        """
        Create the ledger table if it doesn't exist.

        Raises:
            MigrationError: If the table cannot be created
        """
        if self._initialized:
            return

        ddl = MYSQL_LEDGER_DDL if self.adapter.engine == "mysql" else SQLITE_LEDGER_DDL
        try:
            await self.adapter.execute(ddl)
        except DatabaseError as e:
            raise MigrationError("failed to create migrations table", e) from e

        self._initialized = True
        logger.info("Migration system initialized")

    def add_migration(self, name: str, sql: str) -> Migration:
        """
        Add a migration to the manager.

        Args:
            name: Unique migration name (e.g., "001_create_users_table")
            sql: One or more statements separated by semicolons
        """
        migration = Migration(name=name, sql=sql)
        self._migrations.append(migration)
        logger.debug(f"Added migration: {name}")
        return migration

    def load_migrations_from_directory(self, directory: Path | str) -> int:
        """
        Load every ``*.sql`` file of a directory, ordered by file name.

        The migration name is the file name without its extension.

        Returns:
            Number of migrations loaded
        """
        directory = Path(directory)
        if not directory.exists():
            logger.warning(f"Migration directory does not exist: {directory}")
            return 0

        files = sorted(directory.glob("*.sql"))
        for sql_file in files:
            self.add_migration(sql_file.stem, sql_file.read_text(encoding="utf-8"))

        logger.info(f"Loaded {len(files)} migrations from {directory}")
        return len(files)

    def _ledger_lookup(self, name: str, locking: bool = False) -> QueryResult:
        builder = QueryBuilder(self.MIGRATIONS_TABLE, self.adapter.placeholder)
        query = builder.where("name", "=", name).build_count()
        if locking and self.adapter.engine == "mysql":
            # Locks the name's index range until commit
            return QueryResult(f"{query.sql} FOR UPDATE", query.parameters)
        return query

    async def is_applied(self, name: str) -> bool:
        await self.initialize()

        query = self._ledger_lookup(name)
        try:
            count = await self.adapter.fetch_value(query.sql, query.parameters)
        except DatabaseError as e:
            raise MigrationError(f"failed to check migration status: {name}", e) from e
        return int(count or 0) > 0

    async def apply_migration(self, migration: Migration) -> bool:
        """
        Apply a single migration unless the ledger already has it.

        The ledger lookup, the migration statements and the ledger insert
        share one transaction, so a migrator that loses a race sees the
        winner's row and skips.

        Returns:
            True if the migration ran, False if it was already applied

        Raises:
            MigrationError: If the lookup, a statement or the ledger insert fails
        """
        await self.initialize()

        applied_at = datetime.now(UTC).replace(microsecond=0, tzinfo=None)
        lookup = self._ledger_lookup(migration.name, locking=True)
        insert = QueryBuilder(self.MIGRATIONS_TABLE, self.adapter.placeholder).build_insert(
            {"name": migration.name, "applied_at": applied_at}
        )

        try:
            async with self.adapter.transaction() as tx:
                if int(await tx.fetch_value(lookup.sql, lookup.parameters) or 0) > 0:
                    logger.debug(f"Migration already applied: {migration.name}")
                    return False

                logger.info(f"Applying migration: {migration.name}")
                for statement in split_statements(migration.sql):
                    await tx.execute(statement)
                await tx.execute(insert.sql, insert.parameters)
        except (DatabaseError, TransactionError) as e:
            logger.error(f"Failed to apply migration {migration.name}: {e}")
            raise MigrationError(f"migration {migration.name} failed", e) from e

        migration.applied_at = applied_at
        logger.info(f"Applied migration: {migration.name}")
        return True

    async def apply_migrations(self, migrations: list[Migration]) -> int:
        """
        Apply migrations in order, stopping at the first failure.

        Returns:
            Number of migrations that ran
        """
        applied_count = 0
        for migration in migrations:
            if await self.apply_migration(migration):
                applied_count += 1
        return applied_count

    async def migrate_to_latest(self) -> int:
        """
        Apply every registered migration that is not in the ledger yet.

        Returns:
            Number of migrations applied
        """
        applied_count = await self.apply_migrations(self._migrations)

        if applied_count:
            logger.info(f"Applied {applied_count} migrations successfully")
        else:
            logger.info("No pending migrations")
        return applied_count

    async def get_applied_migrations(self) -> list[Migration]:
        """
        Get list of applied migrations from the ledger, oldest first.

        Registered migrations keep their SQL; ledger rows with no registered
        counterpart come back with empty SQL.
        """
        await self.initialize()

        builder = QueryBuilder(self.MIGRATIONS_TABLE, self.adapter.placeholder)
        query = builder.select("name", "applied_at").order_by("id", "ASC").build()
        try:
            records = await self.adapter.fetch_all(query.sql, query.parameters)
        except DatabaseError as e:
            raise MigrationError("failed to read migrations table", e) from e

        known = {m.name: m for m in self._migrations}
        applied = []
        for record in records:
            name = coerce_value(record["name"], str)
            definition = known.get(name)
            applied.append(
                Migration(
                    name=name,
                    sql=definition.sql if definition else "",
                    applied_at=coerce_value(record["applied_at"], datetime | None),
                )
            )
        return applied

    async def get_pending_migrations(self) -> list[Migration]:
        applied_names = {m.name for m in await self.get_applied_migrations()}
        return [m for m in self._migrations if m.name not in applied_names]
