"""Integration tests for SyncRun lifecycle, orphan sweep and run statistics."""
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, select

from billing.audit.context import current_source
from billing.connectors.base import SyncOutcome
from billing.models.sync import SyncRun, SyncStatus
from billing.sync.lifecycle import (
    ORPHANED_MESSAGE,
    InvalidTransitionError,
    SyncRunRecorder,
    aggregate_stats,
    recent_by_connector,
    run_with_audit,
    runs_for_connector,
    stats_for_connector,
    sweep_orphaned_runs,
)


def _add_run(engine, name="alpha", status="completed", started_at=None, **fields) -> SyncRun:
    run = SyncRun(
        connector_name=name,
        status=status,
        started_at=started_at or datetime.utcnow(),
        **fields,
    )
    with Session(engine) as s:
        s.add(run)
        s.commit()
        s.refresh(run)
    return run


class TestRunWithAudit:
    def test_success_finalizes_completed(self, engine, make_connector):
        connector = make_connector("alpha", lambda ctx: SyncOutcome(records_processed=2, records_created=1))
        run, outcome = run_with_audit(engine, connector())

        assert run.status == SyncStatus.COMPLETED.value
        assert (run.records_processed, run.records_created, run.records_updated) == (2, 1, 0)
        assert outcome.success is True

    def test_exception_is_reraised_after_marking_failed(self, engine, make_connector):
        def boom(ctx):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            run_with_audit(engine, make_connector("alpha", boom)())

        with Session(engine) as s:
            run = s.exec(select(SyncRun)).one()
        assert run.status == SyncStatus.FAILED.value
        assert run.error_message == "boom"
        assert current_source() == "user"

    def test_exception_without_message_uses_class_name(self, engine, make_connector):
        def boom(ctx):
            raise KeyError()

        with pytest.raises(KeyError):
            run_with_audit(engine, make_connector("alpha", boom)())

        with Session(engine) as s:
            assert s.exec(select(SyncRun)).one().error_message == "KeyError"

    def test_swept_run_reraises_original_exception(self, engine, make_connector):
        def sync(ctx):
            sweep_orphaned_runs(
                ctx.engine, threshold=timedelta(0), now=datetime.utcnow() + timedelta(hours=2)
            )
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            run_with_audit(engine, make_connector("alpha", sync)())

        with Session(engine) as s:
            run = s.exec(select(SyncRun)).one()
        assert run.status == SyncStatus.FAILED.value
        assert run.error_message == ORPHANED_MESSAGE
        assert current_source() == "user"

    def test_run_is_running_while_sync_executes(self, engine, make_connector):
        seen = []

        def sync(ctx):
            with ctx.session() as s:
                seen.append(s.get(SyncRun, ctx.sync_run_id).status)
            return SyncOutcome()

        run_with_audit(engine, make_connector("alpha", sync)())
        assert seen == [SyncStatus.RUNNING.value]

    def test_context_logger_named_after_connector(self, engine, make_connector):
        names = []
        run_with_audit(
            engine,
            make_connector("alpha", lambda ctx: names.append(ctx.logger.name))(),
        )
        assert names == ["billing.connectors.alpha"]


class TestTransitions:
    def test_terminal_run_cannot_move(self, engine):
        recorder = SyncRunRecorder(engine, "alpha")
        run = recorder.record_start()
        recorder.record_success(run, {"records_processed": 1})

        with pytest.raises(InvalidTransitionError):
            recorder.record_failure(run, "late")

    def test_swept_run_rejects_late_finish(self, engine):
        recorder = SyncRunRecorder(engine, "alpha")
        run = recorder.record_start()
        sweep_orphaned_runs(engine, threshold=timedelta(0), now=datetime.utcnow() + timedelta(seconds=1))

        with pytest.raises(InvalidTransitionError):
            recorder.record_success(run)

    def test_last_run_and_last_successful(self, engine):
        _add_run(engine, status="completed", started_at=datetime(2025, 1, 1))
        _add_run(engine, status="failed", started_at=datetime(2025, 1, 2))
        recorder = SyncRunRecorder(engine, "alpha")

        assert recorder.last_run().status == "failed"
        assert recorder.last_successful_run().started_at == datetime(2025, 1, 1)


class TestOrphanSweep:
    def test_marks_old_in_progress_runs_failed(self, engine):
        now = datetime(2025, 1, 15, 12, 0)
        old_pending = _add_run(engine, status="pending", started_at=now - timedelta(hours=2))
        old_running = _add_run(engine, status="running", started_at=now - timedelta(hours=3))
        fresh = _add_run(engine, status="running", started_at=now - timedelta(minutes=10))
        done = _add_run(engine, status="completed", started_at=now - timedelta(hours=5))

        assert sweep_orphaned_runs(engine, threshold=timedelta(hours=1), now=now) == 2

        with Session(engine) as s:
            for run in (old_pending, old_running):
                swept = s.get(SyncRun, run.id)
                assert swept.status == SyncStatus.FAILED.value
                assert swept.error_message == ORPHANED_MESSAGE
                assert swept.completed_at == now
            assert s.get(SyncRun, fresh.id).status == "running"
            assert s.get(SyncRun, done.id).status == "completed"

    def test_nothing_to_sweep(self, engine):
        assert sweep_orphaned_runs(engine) == 0


class TestStats:
    def test_stats_for_connector(self, engine):
        _add_run(engine, status="completed", records_processed=5, started_at=datetime(2025, 1, 1))
        _add_run(engine, status="completed", records_processed=3, started_at=datetime(2025, 1, 2))
        _add_run(engine, status="failed", started_at=datetime(2025, 1, 3))
        _add_run(engine, status="running", started_at=datetime(2025, 1, 4))
        _add_run(engine, name="beta", status="completed", records_processed=99)

        stats = stats_for_connector(engine, "alpha")

        assert stats["total_syncs"] == 4
        assert stats["successful_syncs"] == 2
        assert stats["failed_syncs"] == 1
        assert stats["success_rate"] == 66.7
        assert stats["total_records_processed"] == 8
        assert stats["last_sync"]["status"] == "running"

    def test_stats_without_runs(self, engine):
        stats = stats_for_connector(engine, "alpha")
        assert stats["total_syncs"] == 0
        assert stats["success_rate"] == 0.0
        assert stats["last_sync"] is None

    def test_aggregate_stats(self, engine):
        _add_run(engine, status="completed")
        _add_run(engine, status="pending")
        _add_run(engine, name="beta", status="failed")

        stats = aggregate_stats(engine)
        assert stats["total_syncs"] == 3
        assert stats["in_progress"] == 1
        assert stats["connectors_synced"] == 2
        assert stats["success_rate"] == 50.0

    def test_recent_runs_newest_first(self, engine):
        for day in (1, 2, 3):
            _add_run(engine, started_at=datetime(2025, 1, day))
        _add_run(engine, name="beta")

        runs = runs_for_connector(engine, "alpha", limit=2)
        assert [r.started_at.day for r in runs] == [3, 2]

        grouped = recent_by_connector(engine, limit=1)
        assert sorted(grouped) == ["alpha", "beta"]
        assert grouped["alpha"][0]["started_at"] == datetime(2025, 1, 3)


class TestDuration:
    @pytest.mark.parametrize(
        "seconds, expected",
        [(1.5, "1.5s"), (59.94, "59.9s"), (135, "2m 15s")],
    )
    def test_duration_formatted(self, seconds, expected):
        start = datetime(2025, 1, 15, 12, 0)
        run = SyncRun(connector_name="alpha", started_at=start, completed_at=start + timedelta(seconds=seconds))
        assert run.duration_formatted == expected

    def test_duration_none_while_running(self):
        run = SyncRun(connector_name="alpha", status="running")
        assert run.duration is None
        assert run.duration_formatted is None
