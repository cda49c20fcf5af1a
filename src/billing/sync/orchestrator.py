"""
SyncOrchestrator: validates preconditions and runs connectors.

    orchestrator = SyncOrchestrator(engine)
    result = orchestrator.execute("example")
    # → ExecutionResult(success=True, connector_name="example", sync_run_id=12, data={...})

execute() never raises. Every outcome is an ExecutionResult whose
error_type is one of:
  not_found      : no registered connector by that name (no run created)
  not_enabled    : configuration missing or disabled (no run created)
  not_configured : required credentials missing (no run created)
  execution_error: sync() raised, or reported failure (run marked failed)

Runs of the same connector inside one process are serialized by a
per-connector lock; concurrent triggers wait rather than race.
"""
import logging
import threading
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from billing.connectors.base import Connector
from billing.connectors.configuration import ConfigurationStore
from billing.connectors.registry import ConnectorNotFoundError, ConnectorRegistry, get_registry
from billing.sync.lifecycle import run_with_audit

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    NOT_FOUND = "not_found"
    NOT_ENABLED = "not_enabled"
    NOT_CONFIGURED = "not_configured"
    EXECUTION_ERROR = "execution_error"


SKIPPED_ERROR_TYPES = (ErrorType.NOT_ENABLED, ErrorType.NOT_CONFIGURED)


class SyncPreconditionError(Exception):
    """Base for checks that stop a run before a SyncRun is created."""


class ConnectorNotEnabledError(SyncPreconditionError):
    pass


class ConnectorNotConfiguredError(SyncPreconditionError):
    pass


class ExecutionResult(BaseModel):
    success: bool
    connector_name: str
    sync_run_id: Optional[int] = None
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None


class ExecutionSummary(BaseModel):
    total: int
    successful: int
    failed: int
    skipped: int
    results: List[ExecutionResult]


_locks_guard = threading.Lock()
_connector_locks: Dict[str, threading.Lock] = {}


def _lock_for(name: str) -> threading.Lock:
    with _locks_guard:
        return _connector_locks.setdefault(name, threading.Lock())


class SyncOrchestrator:
    def __init__(
        self,
        engine,
        registry: Optional[ConnectorRegistry] = None,
        store: Optional[ConfigurationStore] = None,
    ):
        self.engine = engine
        self.registry = registry or get_registry()
        self.store = store or ConfigurationStore(engine, registry=self.registry)

    def execute(self, name: str) -> ExecutionResult:
        """Run one connector by name. Never raises."""
        try:
            connector_cls = self.registry.find_or_raise(name)
            canonical = connector_cls.name()
            self._ensure_enabled(canonical)
            self._ensure_configured(connector_cls)
            return self._run(connector_cls)
        except ConnectorNotFoundError as exc:
            return self._failure(name, exc, ErrorType.NOT_FOUND)
        except ConnectorNotEnabledError as exc:
            return self._failure(name, exc, ErrorType.NOT_ENABLED)
        except ConnectorNotConfiguredError as exc:
            return self._failure(name, exc, ErrorType.NOT_CONFIGURED)
        except Exception as exc:
            logger.exception("Sync of %s raised", name)
            return self._failure(name, exc, ErrorType.EXECUTION_ERROR)

    def execute_all(self) -> List[ExecutionResult]:
        """Run every enabled configuration, in name order."""
        return [
            self.execute(config.connector_name)
            for config in self.store.enabled_configurations()
        ]

    def execute_all_with_summary(self) -> ExecutionSummary:
        results = self.execute_all()
        summary = ExecutionSummary(
            total=len(results),
            successful=sum(1 for r in results if r.success),
            failed=sum(
                1 for r in results
                if not r.success and r.error_type == ErrorType.EXECUTION_ERROR
            ),
            skipped=sum(
                1 for r in results
                if not r.success and r.error_type in SKIPPED_ERROR_TYPES
            ),
            results=results,
        )
        logger.info(
            "Executed %d connectors: %d successful, %d failed, %d skipped",
            summary.total, summary.successful, summary.failed, summary.skipped,
        )
        return summary

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _ensure_enabled(self, name: str) -> None:
        if not self.store.is_enabled(name):
            raise ConnectorNotEnabledError(f"Connector '{name}' is not enabled")

    def _ensure_configured(self, connector_cls: Type[Connector]) -> None:
        if not connector_cls.requires_credentials():
            return
        name = connector_cls.name()
        if not self.store.is_configured(name):
            raise ConnectorNotConfiguredError(
                f"Connector '{name}' is not configured (missing credentials)"
            )

    def _run(self, connector_cls: Type[Connector]) -> ExecutionResult:
        name = connector_cls.name()
        with _lock_for(name):
            run, outcome = run_with_audit(
                self.engine,
                connector_cls(),
                credentials=self.store.credentials(name),
                settings=self.store.settings(name),
            )
        data = outcome.as_dict()
        data["sync_run_id"] = run.id
        if outcome.success:
            return ExecutionResult(
                success=True, connector_name=name, sync_run_id=run.id, data=data
            )
        return ExecutionResult(
            success=False,
            connector_name=name,
            sync_run_id=run.id,
            data=data,
            error=run.error_message,
            error_type=ErrorType.EXECUTION_ERROR,
        )

    def _failure(self, name: str, exc: Exception, error_type: ErrorType) -> ExecutionResult:
        if error_type in SKIPPED_ERROR_TYPES:
            logger.info("Skipping %s: %s", name, exc)
        return ExecutionResult(
            success=False,
            connector_name=str(name),
            error=str(exc) or type(exc).__name__,
            error_type=error_type,
        )
