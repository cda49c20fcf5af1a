"""
Connector contract.

A connector is a class that pulls data from one external source into the
local database. Identity and configuration schema live at the class level
so the registry and the admin surface can describe a connector without
instantiating it; the work happens in the instance method sync().

    class MyBankConnector(Connector):
        @classmethod
        def name(cls) -> str:
            return "my_bank"

        @classmethod
        def version(cls) -> str:
            return "1.0.0"

        @classmethod
        def description(cls) -> str:
            return "Sync transactions from My Bank"

        @classmethod
        def credential_fields(cls):
            return [FieldSpec(name="api_key", label="API Key", type="password", required=True)]

        def sync(self, ctx: SyncContext) -> SyncOutcome:
            ...
            return SyncOutcome(records_processed=10, records_created=5)

sync() is normally reached through SyncOrchestrator.execute(), which wraps
it in a SyncRun and an audit context. Raising from sync() marks the run
failed; returning SyncOutcome(success=False, error=...) does the same
without an exception.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

FieldType = Literal["text", "password", "number", "date", "email"]

COUNT_KEYS = ("records_processed", "records_created", "records_updated")


class FieldSpec(BaseModel):
    """One credential or setting input, as rendered by the configuration UI."""

    name: str
    label: str
    type: FieldType = "text"
    required: bool = False
    placeholder: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class SyncOutcome(BaseModel):
    """Result of one sync() call. Missing counts are 0."""

    success: bool = True
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    error: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Union["SyncOutcome", Mapping[str, Any], None]) -> "SyncOutcome":
        """Accept a SyncOutcome or a plain dict; unknown dict keys go to `extra`."""
        if isinstance(value, SyncOutcome):
            return value
        if value is None:
            return cls()
        data = dict(value)
        known = {
            "success": bool(data.pop("success", True)),
            "error": data.pop("error", None),
        }
        for key in COUNT_KEYS:
            known[key] = int(data.pop(key, 0) or 0)
        extra = data.pop("extra", None) or {}
        extra.update(data)
        return cls(extra=extra, **known)

    def counts(self) -> Dict[str, int]:
        return {key: getattr(self, key) for key in COUNT_KEYS}

    def as_dict(self) -> Dict[str, Any]:
        """Flat dict: success, counts, error (if any) and the connector's extra data."""
        result: Dict[str, Any] = {"success": self.success, **self.counts()}
        if self.error is not None:
            result["error"] = self.error
        result.update(self.extra)
        return result


@dataclass
class SyncContext:
    """Everything a connector needs for one run, passed explicitly into sync()."""

    engine: Any
    connector_name: str
    sync_run_id: Optional[int] = None
    credentials: Dict[str, Any] = field(default_factory=dict)
    settings: Dict[str, Any] = field(default_factory=dict)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    def session(self) -> Session:
        return Session(self.engine)


class Connector(ABC):
    """Base class for all connectors. Subclasses must define identity and sync()."""

    @classmethod
    def name(cls) -> str:
        """Unique identifier, lowercase with underscores."""
        raise NotImplementedError(f"{cls.__name__} must implement name()")

    @classmethod
    def version(cls) -> str:
        raise NotImplementedError(f"{cls.__name__} must implement version()")

    @classmethod
    def description(cls) -> str:
        raise NotImplementedError(f"{cls.__name__} must implement description()")

    @classmethod
    def credential_fields(cls) -> List[FieldSpec]:
        return []

    @classmethod
    def setting_fields(cls) -> List[FieldSpec]:
        return []

    @classmethod
    def requires_credentials(cls) -> bool:
        """True if at least one credential field is required."""
        return any(f.required for f in cls.credential_fields())

    @classmethod
    def metadata(cls) -> Dict[str, str]:
        return {
            "name": cls.name(),
            "version": cls.version(),
            "description": cls.description(),
        }

    @abstractmethod
    def sync(self, ctx: SyncContext) -> SyncOutcome:
        """Fetch external records and reconcile them into the database."""
