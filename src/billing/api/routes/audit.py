"""Audit trail read routes."""
from fastapi import APIRouter, Depends

from billing.audit.log import AuditLog
from billing.db.engine import get_engine

router = APIRouter()


def get_audit_log(engine=Depends(get_engine)) -> AuditLog:
    return AuditLog(engine)


@router.get("/sources/{source}")
def source_stats(source: str, audit_log: AuditLog = Depends(get_audit_log)):
    """Change counts for a connector name, or "user"."""
    return audit_log.stats_for(source)


@router.get("/records/{target_type}/{target_id}")
def record_history(
    target_type: str,
    target_id: int,
    audit_log: AuditLog = Depends(get_audit_log),
):
    return {
        "target_type": target_type,
        "target_id": target_id,
        "created_by": audit_log.created_by(target_type, target_id),
        "history": audit_log.history_for(target_type, target_id),
    }


@router.get("/runs")
def recent_runs(limit: int = 10, audit_log: AuditLog = Depends(get_audit_log)):
    """Most recently active sync runs (newest first) with their audit entries."""
    grouped = audit_log.recent_grouped_by_run(limit=limit)
    return [
        {"sync_run_id": run_id, "entries": entries}
        for run_id, entries in grouped.items()
    ]
