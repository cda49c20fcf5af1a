"""
SyncRun lifecycle around a connector's sync().

Flow for one run (run_with_audit):
  1. Create SyncRun (status="pending"), then move it to "running"
  2. Bind the audit context: source = connector name, sync_run_id = run id
  3. Call connector.sync(ctx)
  4. Finalize: "completed" with counts, or "failed" with the error message
  5. Restore the previous audit context (always, including on exceptions)

If sync() raises, the run is marked failed and the exception is re-raised
to the caller; converting it into a result is the orchestrator's job.

Runs left pending/running by a crashed process are closed out by
sweep_orphaned_runs(), which is meant to be called periodically.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from sqlalchemy import func
from sqlmodel import Session, select

from billing.audit.context import audit_context
from billing.connectors.base import Connector, SyncContext, SyncOutcome
from billing.models.sync import IN_PROGRESS_STATUSES, SyncRun, SyncStatus

logger = logging.getLogger(__name__)

ORPHAN_THRESHOLD = timedelta(hours=1)
ORPHANED_MESSAGE = "Sync timed out (orphaned process)"
RETURNED_FAILURE_MESSAGE = "Sync returned failure"

# Allowed forward moves; completed/failed have none
_TRANSITIONS = {
    SyncStatus.PENDING.value: {
        SyncStatus.RUNNING.value,
        SyncStatus.COMPLETED.value,
        SyncStatus.FAILED.value,
    },
    SyncStatus.RUNNING.value: {SyncStatus.COMPLETED.value, SyncStatus.FAILED.value},
}


class InvalidTransitionError(RuntimeError):
    """Raised when a SyncRun would move backwards or leave a terminal state."""


class SyncRunRecorder:
    """Records the start and end of runs for one connector."""

    def __init__(self, engine, connector_name: str):
        self.engine = engine
        self.connector_name = connector_name

    def record_start(self, status: SyncStatus = SyncStatus.RUNNING) -> SyncRun:
        run = SyncRun(
            connector_name=self.connector_name,
            status=SyncStatus(status).value,
            started_at=datetime.utcnow(),
        )
        with Session(self.engine) as s:
            s.add(run)
            s.commit()
            s.refresh(run)
        return run

    def mark_running(self, run: SyncRun) -> SyncRun:
        return self._transition(run, SyncStatus.RUNNING)

    def record_success(
        self,
        run: SyncRun,
        stats: Union[SyncOutcome, Mapping[str, Any], None] = None,
    ) -> SyncRun:
        counts = SyncOutcome.coerce(stats).counts()
        return self._transition(
            run,
            SyncStatus.COMPLETED,
            completed_at=datetime.utcnow(),
            **counts,
        )

    def record_failure(self, run: SyncRun, error: str) -> SyncRun:
        return self._transition(
            run,
            SyncStatus.FAILED,
            completed_at=datetime.utcnow(),
            error_message=error,
        )

    def last_run(self) -> Optional[SyncRun]:
        with Session(self.engine) as s:
            return s.exec(
                select(SyncRun)
                .where(SyncRun.connector_name == self.connector_name)
                .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            ).first()

    def last_successful_run(self) -> Optional[SyncRun]:
        with Session(self.engine) as s:
            return s.exec(
                select(SyncRun)
                .where(
                    SyncRun.connector_name == self.connector_name,
                    SyncRun.status == SyncStatus.COMPLETED.value,
                )
                .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            ).first()

    def stats(self) -> Dict[str, Any]:
        return stats_for_connector(self.engine, self.connector_name)

    def _transition(self, run: SyncRun, status: SyncStatus, **fields) -> SyncRun:
        with Session(self.engine) as s:
            db_run = s.get(SyncRun, run.id)
            if db_run is None:
                raise InvalidTransitionError(f"SyncRun {run.id} does not exist")
            if status.value not in _TRANSITIONS.get(db_run.status, set()):
                raise InvalidTransitionError(
                    f"SyncRun {run.id} cannot move from {db_run.status} to {status.value}"
                )
            db_run.status = status.value
            for key, value in fields.items():
                setattr(db_run, key, value)
            s.add(db_run)
            s.commit()
            s.refresh(db_run)
        return db_run


def run_with_audit(
    engine,
    connector: Connector,
    *,
    credentials: Optional[Mapping[str, Any]] = None,
    settings: Optional[Mapping[str, Any]] = None,
) -> Tuple[SyncRun, SyncOutcome]:
    """
    Run connector.sync() inside a SyncRun and an audit context.

    Returns:
        (finalized SyncRun, SyncOutcome)

    Raises:
        Whatever sync() raised, after the run has been marked failed.
    """
    name = type(connector).name()
    recorder = SyncRunRecorder(engine, name)
    run = recorder.record_start(status=SyncStatus.PENDING)
    run = recorder.mark_running(run)
    logger.info("Sync run %s started for %s", run.id, name)

    ctx = SyncContext(
        engine=engine,
        connector_name=name,
        sync_run_id=run.id,
        credentials=dict(credentials or {}),
        settings=dict(settings or {}),
        logger=logging.getLogger(f"billing.connectors.{name}"),
    )

    with audit_context(source=name, sync_run_id=run.id):
        try:
            outcome = SyncOutcome.coerce(connector.sync(ctx))
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error("Sync run %s for %s failed: %s", run.id, name, message)
            try:
                recorder.record_failure(run, message)
            except InvalidTransitionError as transition_error:
                # Already finalized elsewhere (e.g. swept as orphaned)
                logger.warning(
                    "Sync run %s for %s was already finalized: %s",
                    run.id, name, transition_error,
                )
            raise

        if outcome.success:
            run = recorder.record_success(run, outcome)
            logger.info(
                "Sync run %s for %s completed: processed=%d created=%d updated=%d",
                run.id, name,
                outcome.records_processed, outcome.records_created, outcome.records_updated,
            )
        else:
            run = recorder.record_failure(run, outcome.error or RETURNED_FAILURE_MESSAGE)
            logger.warning("Sync run %s for %s reported failure: %s", run.id, name, run.error_message)

    return run, outcome


def sweep_orphaned_runs(
    engine,
    threshold: timedelta = ORPHAN_THRESHOLD,
    now: Optional[datetime] = None,
) -> int:
    """
    Mark pending/running runs started before now - threshold as failed.

    This only closes the bookkeeping record; it does not stop a sync that
    is still executing somewhere.

    Returns:
        Number of runs marked failed.
    """
    now = now or datetime.utcnow()
    cutoff = now - threshold

    with Session(engine) as s:
        orphaned = s.exec(
            select(SyncRun).where(
                SyncRun.status.in_(IN_PROGRESS_STATUSES),
                SyncRun.started_at < cutoff,
            )
        ).all()
        for run in orphaned:
            run.status = SyncStatus.FAILED.value
            run.completed_at = now
            run.error_message = ORPHANED_MESSAGE
            s.add(run)
        s.commit()

    if orphaned:
        logger.warning("Marked %d orphaned sync runs as failed", len(orphaned))
    return len(orphaned)


def _success_rate(successful: int, failed: int) -> float:
    finished = successful + failed
    if not finished:
        return 0.0
    return round(successful * 100.0 / finished, 1)


def _status_counts(s: Session, *criteria) -> Dict[str, int]:
    stmt = select(SyncRun.status, func.count()).group_by(SyncRun.status)
    if criteria:
        stmt = stmt.where(*criteria)
    return dict(s.exec(stmt).all())


def stats_for_connector(engine, connector_name: str) -> Dict[str, Any]:
    with Session(engine) as s:
        counts = _status_counts(s, SyncRun.connector_name == connector_name)
        total_processed = s.exec(
            select(func.coalesce(func.sum(SyncRun.records_processed), 0)).where(
                SyncRun.connector_name == connector_name
            )
        ).one()
        last = s.exec(
            select(SyncRun)
            .where(SyncRun.connector_name == connector_name)
            .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
        ).first()

    successful = counts.get(SyncStatus.COMPLETED.value, 0)
    failed = counts.get(SyncStatus.FAILED.value, 0)
    return {
        "total_syncs": sum(counts.values()),
        "successful_syncs": successful,
        "failed_syncs": failed,
        "success_rate": _success_rate(successful, failed),
        "total_records_processed": total_processed,
        "last_sync": last.summary() if last else None,
    }


def aggregate_stats(engine) -> Dict[str, Any]:
    with Session(engine) as s:
        counts = _status_counts(s)
        connectors = s.exec(
            select(func.count(func.distinct(SyncRun.connector_name)))
        ).one()

    successful = counts.get(SyncStatus.COMPLETED.value, 0)
    failed = counts.get(SyncStatus.FAILED.value, 0)
    return {
        "total_syncs": sum(counts.values()),
        "successful_syncs": successful,
        "failed_syncs": failed,
        "in_progress": sum(counts.get(status, 0) for status in IN_PROGRESS_STATUSES),
        "connectors_synced": connectors,
        "success_rate": _success_rate(successful, failed),
    }


def recent_by_connector(engine, limit: int = 5) -> Dict[str, List[Dict[str, Any]]]:
    """connector name → its `limit` most recent run summaries."""
    with Session(engine) as s:
        names = s.exec(
            select(SyncRun.connector_name).distinct().order_by(SyncRun.connector_name)
        ).all()
        result: Dict[str, List[Dict[str, Any]]] = {}
        for name in names:
            runs = s.exec(
                select(SyncRun)
                .where(SyncRun.connector_name == name)
                .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
                .limit(limit)
            ).all()
            result[name] = [r.summary() for r in runs]
    return result


def runs_for_connector(engine, connector_name: str, limit: int = 50) -> List[SyncRun]:
    with Session(engine) as s:
        return list(
            s.exec(
                select(SyncRun)
                .where(SyncRun.connector_name == connector_name)
                .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
                .limit(limit)
            ).all()
        )
