"""Per-connector persisted configuration."""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from billing.db.encryption import EncryptedJSON


class ConnectorConfiguration(SQLModel, table=True):
    """One row per connector name. Created on first write, never auto-deleted."""

    id: Optional[int] = Field(default=None, primary_key=True)
    connector_name: str = Field(index=True, unique=True)
    enabled: bool = False

    # Encrypted at rest; plain dict in Python
    credentials: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column(EncryptedJSON)
    )
    settings: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def credentials_dict(self) -> Dict[str, Any]:
        return dict(self.credentials or {})

    def settings_dict(self) -> Dict[str, Any]:
        return dict(self.settings or {})

    @property
    def has_credentials(self) -> bool:
        return bool(self.credentials)

    @property
    def has_settings(self) -> bool:
        return bool(self.settings)
