"""Sync run model: one row per invocation of a connector's sync()."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlmodel import Field, SQLModel


class SyncStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


IN_PROGRESS_STATUSES = (SyncStatus.PENDING.value, SyncStatus.RUNNING.value)
TERMINAL_STATUSES = (SyncStatus.COMPLETED.value, SyncStatus.FAILED.value)


class SyncRun(SQLModel, table=True):
    """Records each sync attempt. Status only moves forward: pending → running → completed|failed."""

    id: Optional[int] = Field(default=None, primary_key=True)
    connector_name: str = Field(index=True)
    status: str = Field(default=SyncStatus.PENDING.value, index=True)
    started_at: Optional[datetime] = Field(default_factory=datetime.utcnow, index=True)
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    error_message: Optional[str] = None

    @property
    def in_progress(self) -> bool:
        return self.status in IN_PROGRESS_STATUSES

    @property
    def successful(self) -> bool:
        return self.status == SyncStatus.COMPLETED.value

    @property
    def duration(self) -> Optional[float]:
        """Seconds between start and completion, or None if either is missing."""
        if not self.started_at or not self.completed_at:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def duration_formatted(self) -> Optional[str]:
        """Formats as "1.5s" under a minute, "2m 15s" otherwise."""
        seconds = self.duration
        if seconds is None:
            return None
        if seconds < 60:
            return f"{seconds:.1f}s"
        minutes, rest = divmod(int(seconds), 60)
        return f"{minutes}m {rest}s"

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "connector_name": self.connector_name,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration": self.duration,
            "duration_formatted": self.duration_formatted,
            "records_processed": self.records_processed,
            "records_created": self.records_created,
            "records_updated": self.records_updated,
            "error_message": self.error_message,
            "successful": self.successful,
        }
