"""
Ambient audit attribution: who is currently making changes.

The active source (a connector name, or "user" when nothing is bound) and
the correlating SyncRun id live in context variables, so they are local to
the current thread or asyncio task. audit_context() binds new values for
the duration of a block and restores the previous ones on every exit path,
including exceptions, so a reused worker never inherits a stale actor.

Usage:
    with audit_context(source="cnb_exchange_rate", sync_run_id=run.id):
        ...  # every audited mutation here is attributed to the run
"""
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Optional

from billing.models.audit import USER_SOURCE

_source: ContextVar[Optional[str]] = ContextVar("audit_source", default=None)
_sync_run_id: ContextVar[Optional[int]] = ContextVar("audit_sync_run_id", default=None)


@dataclass(frozen=True)
class AuditActor:
    source: str
    sync_run_id: Optional[int] = None


def current_source() -> str:
    return _source.get() or USER_SOURCE


def current_sync_run_id() -> Optional[int]:
    return _sync_run_id.get()


def current_actor() -> AuditActor:
    return AuditActor(source=current_source(), sync_run_id=current_sync_run_id())


@contextmanager
def audit_context(source: str, sync_run_id: Optional[int] = None) -> Iterator[AuditActor]:
    """Bind source/sync_run_id for the block; nested blocks unwind in LIFO order."""
    source_token = _source.set(source)
    run_token = _sync_run_id.set(sync_run_id)
    try:
        yield AuditActor(source=source, sync_run_id=sync_run_id)
    finally:
        _sync_run_id.reset(run_token)
        _source.reset(source_token)
