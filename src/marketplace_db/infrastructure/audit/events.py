"""
Audit entry definitions for repository mutations.

One ``AuditLogEntry`` is created for each successful create, update or
delete. Entries are immutable once built.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from marketplace_db.infrastructure.serialization import to_json_string


class AuditAction(Enum):
    """Mutations that produce audit entries."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class AuditContext:
    """Who performed the mutation, attached to every entry the repository writes."""

    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable record of a single mutation."""

    table_name: str
    record_id: Any
    action: AuditAction
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def create(
        cls,
        table_name: str,
        record_id: Any,
        action: AuditAction,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        context: AuditContext | None = None,
    ) -> "AuditLogEntry":
        context = context or AuditContext()
        return cls(
            table_name=table_name,
            record_id=record_id,
            action=action,
            old_values=dict(old_values) if old_values is not None else None,
            new_values=dict(new_values) if new_values is not None else None,
            user_id=context.user_id,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action.value,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }

    def to_json(self) -> str:
        return to_json_string(self.to_dict())
