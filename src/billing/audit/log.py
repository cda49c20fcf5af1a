"""Read side of the audit trail: per-record history, per-source stats, per-run grouping."""
from datetime import datetime, time
from typing import Any, Dict, List, Optional

from sqlalchemy import distinct, func
from sqlmodel import Session, select

from billing.models.audit import USER_SOURCE, AuditAction, AuditLogEntry


class AuditLog:
    """Queries over AuditLogEntry rows. Entries are never modified here."""

    def __init__(self, engine):
        self.engine = engine

    def history_for(self, target_type: str, target_id: int) -> List[Dict[str, Any]]:
        """All entries for one record, oldest first."""
        with Session(self.engine) as s:
            entries = s.exec(
                select(AuditLogEntry)
                .where(
                    AuditLogEntry.target_type == target_type,
                    AuditLogEntry.target_id == target_id,
                )
                .order_by(AuditLogEntry.created_at, AuditLogEntry.id)
            ).all()
            return [e.summary() for e in entries]

    def entries_for_run(self, sync_run_id: int) -> List[Dict[str, Any]]:
        with Session(self.engine) as s:
            entries = s.exec(
                select(AuditLogEntry)
                .where(AuditLogEntry.sync_run_id == sync_run_id)
                .order_by(AuditLogEntry.created_at, AuditLogEntry.id)
            ).all()
            return [e.summary() for e in entries]

    def stats_for(self, source: str) -> Dict[str, Any]:
        """Change counts for one source (a connector name or "user")."""
        today_start = datetime.combine(datetime.utcnow().date(), time.min)

        with Session(self.engine) as s:
            by_action = dict(
                s.exec(
                    select(AuditLogEntry.action, func.count())
                    .where(AuditLogEntry.source == source)
                    .group_by(AuditLogEntry.action)
                ).all()
            )
            affected_records = s.exec(
                select(AuditLogEntry.target_type, AuditLogEntry.target_id)
                .where(AuditLogEntry.source == source)
                .distinct()
            ).all()
            affected_types = s.exec(
                select(distinct(AuditLogEntry.target_type))
                .where(AuditLogEntry.source == source)
                .order_by(AuditLogEntry.target_type)
            ).all()
            changes_today = s.exec(
                select(func.count())
                .select_from(AuditLogEntry)
                .where(
                    AuditLogEntry.source == source,
                    AuditLogEntry.created_at >= today_start,
                )
            ).one()
            last = s.exec(
                select(AuditLogEntry)
                .where(AuditLogEntry.source == source)
                .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
            ).first()

            return {
                "source": source,
                "total_changes": sum(by_action.values()),
                "creates": by_action.get(AuditAction.CREATE.value, 0),
                "updates": by_action.get(AuditAction.UPDATE.value, 0),
                "destroys": by_action.get(AuditAction.DESTROY.value, 0),
                "affected_records": len(affected_records),
                "affected_types": list(affected_types),
                "changes_today": changes_today,
                "last_change": last.summary() if last else None,
            }

    def recent_grouped_by_run(self, limit: int = 10) -> Dict[int, List[Dict[str, Any]]]:
        """
        The `limit` most recently active sync runs mapped to their entries.

        Runs are ordered newest first; entries inside each run oldest first.
        User-originated entries (no run) are not included.
        """
        with Session(self.engine) as s:
            last_seen = func.max(AuditLogEntry.id)
            run_ids = s.exec(
                select(AuditLogEntry.sync_run_id)
                .where(AuditLogEntry.sync_run_id.is_not(None))
                .group_by(AuditLogEntry.sync_run_id)
                .order_by(last_seen.desc())
                .limit(limit)
            ).all()

        return {run_id: self.entries_for_run(run_id) for run_id in run_ids}

    @staticmethod
    def describe(entry: AuditLogEntry) -> str:
        return entry.description()

    def created_by(self, target_type: str, target_id: int) -> Optional[str]:
        """Source of the record's create entry, or None if it predates auditing."""
        with Session(self.engine) as s:
            entry = s.exec(
                select(AuditLogEntry)
                .where(
                    AuditLogEntry.target_type == target_type,
                    AuditLogEntry.target_id == target_id,
                    AuditLogEntry.action == AuditAction.CREATE.value,
                )
                .order_by(AuditLogEntry.created_at, AuditLogEntry.id)
            ).first()
            return entry.source if entry else None

    def created_by_connector(self, target_type: str, target_id: int) -> bool:
        source = self.created_by(target_type, target_id)
        return source is not None and source != USER_SOURCE
