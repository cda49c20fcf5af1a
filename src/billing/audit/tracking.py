"""
Automatic audit logging for models that mix in Auditable.

A Session "after_flush" listener inspects the flushed objects and inserts
one AuditLogEntry per create/update/destroy through the flush's own
connection, so audit rows commit or roll back together with the change
they describe. Attribution comes from billing.audit.context.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy import event, inspect, insert
from sqlalchemy.orm import Mapper, Session

from billing.audit.context import current_actor
from billing.models.audit import AuditAction, AuditLogEntry

logger = logging.getLogger(__name__)

# Bookkeeping columns never reported as changes
IGNORED_FIELDS = frozenset({"id", "created_at", "updated_at"})


class Auditable:
    """Mixin for table models whose mutations are written to the audit log."""


@event.listens_for(Mapper, "mapper_configured")
def _load_previous_values(mapper: Mapper, class_) -> None:
    """Make audited columns load their committed value before it is overwritten."""
    if not issubclass(class_, Auditable):
        return
    for attr in mapper.column_attrs:
        if attr.key not in IGNORED_FIELDS:
            event.listen(getattr(class_, attr.key), "set", _on_set, active_history=True)


def _on_set(target, value, oldvalue, initiator):
    # Registered only for active_history; the value passes through unchanged
    return value


def install_audit_listener() -> None:
    """Register the flush listener once per process (idempotent)."""
    if not event.contains(Session, "after_flush", _record_flush):
        event.listen(Session, "after_flush", _record_flush)


def _record_flush(session: Session, flush_context) -> None:
    actor = current_actor()
    now = datetime.utcnow()
    rows: List[Dict[str, Any]] = []

    for obj in session.new:
        if isinstance(obj, Auditable):
            rows.append(_row(obj, AuditAction.CREATE, None, actor, now))

    for obj in session.dirty:
        if isinstance(obj, Auditable):
            changes = _diff(obj)
            if changes:
                rows.append(_row(obj, AuditAction.UPDATE, changes, actor, now))

    for obj in session.deleted:
        if isinstance(obj, Auditable):
            rows.append(
                _row(obj, AuditAction.DESTROY, {"final_state": _snapshot(obj)}, actor, now)
            )

    if rows:
        session.connection().execute(insert(AuditLogEntry.__table__), rows)
        logger.debug("Recorded %d audit entries (source=%s)", len(rows), actor.source)


def _row(obj, action: AuditAction, changes: Optional[Dict], actor, now: datetime) -> Dict[str, Any]:
    return {
        "target_type": type(obj).__name__,
        "target_id": obj.id,
        "action": action.value,
        "source": actor.source,
        "changes": changes,
        "sync_run_id": actor.sync_run_id,
        "created_at": now,
    }


def _diff(obj) -> Dict[str, Dict[str, Any]]:
    """Per-field {"from", "to"} for column attributes whose value actually changed."""
    state = inspect(obj)
    changes: Dict[str, Dict[str, Any]] = {}
    for attr in state.mapper.column_attrs:
        if attr.key in IGNORED_FIELDS:
            continue
        history = state.attrs[attr.key].history
        if not history.has_changes():
            continue
        old = history.deleted[0] if history.deleted else None
        new = history.added[0] if history.added else None
        if old == new:
            continue
        changes[attr.key] = {
            "from": to_jsonable_python(old),
            "to": to_jsonable_python(new),
        }
    return changes


def _snapshot(obj) -> Dict[str, Any]:
    state = inspect(obj)
    return {
        attr.key: to_jsonable_python(state.dict.get(attr.key))
        for attr in state.mapper.column_attrs
        if attr.key not in IGNORED_FIELDS
    }
