"""Append-only audit trail of tracked record mutations."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

USER_SOURCE = "user"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"


class AuditLogEntry(SQLModel, table=True):
    """
    One row per create/update/destroy of an audited record.

    changes:
      update  → {"field": {"from": old, "to": new}, ...}
      destroy → {"final_state": {...}}
      create  → None
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    target_type: str = Field(index=True)
    target_id: int = Field(index=True)
    action: str = Field(index=True)
    source: str = Field(default=USER_SOURCE, index=True)
    changes: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    sync_run_id: Optional[int] = Field(default=None, foreign_key="syncrun.id", index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)

    def description(self) -> str:
        """One-line human description, e.g. "Updated MoneyTransaction #3 (amount, description)"."""
        label = f"{self.target_type} #{self.target_id}"
        if self.action == AuditAction.CREATE.value:
            return f"Created {label}"
        if self.action == AuditAction.UPDATE.value:
            fields = ", ".join(self.changes.keys()) if self.changes else "attributes"
            return f"Updated {label} ({fields})"
        if self.action == AuditAction.DESTROY.value:
            return f"Destroyed {label}"
        return f"{self.action} {label}"

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "action": self.action,
            "source": self.source,
            "sync_run_id": self.sync_run_id,
            "changes": self.changes,
            "description": self.description(),
            "created_at": self.created_at,
        }
