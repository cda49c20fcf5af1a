"""
APScheduler jobs: the outside trigger for connector syncs.

A daily cron job runs every enabled connector; an interval job closes out
sync runs orphaned by a crashed or killed process. Connectors never
schedule themselves.

The scheduler runs in the `python -m billing run` process.
"""
import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler

from billing.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> BackgroundScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine passed to the job bodies.

    Returns:
        Configured BackgroundScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = BackgroundScheduler()

    scheduler.add_job(
        _sync_all,
        trigger="cron",
        hour=settings.sync_hour,
        minute=0,
        id="sync_all",
        replace_existing=True,
        kwargs={"engine": engine},
    )
    scheduler.add_job(
        _sweep_orphans,
        trigger="interval",
        minutes=settings.orphan_sweep_interval_minutes,
        id="orphan_sweep",
        replace_existing=True,
        kwargs={
            "engine": engine,
            "threshold": timedelta(minutes=settings.orphan_threshold_minutes),
        },
    )

    return scheduler


def _sync_all(engine) -> None:
    """Daily job: run every enabled connector. Failures are already per-result."""
    from billing.sync.orchestrator import SyncOrchestrator

    logger.info("Scheduled sync starting")
    try:
        summary = SyncOrchestrator(engine).execute_all_with_summary()
        for result in summary.results:
            if not result.success:
                logger.warning(
                    "Scheduled sync of %s did not succeed (%s): %s",
                    result.connector_name, result.error_type.value, result.error,
                )
    except Exception as exc:
        logger.error("Scheduled sync failed: %s", exc)


def _sweep_orphans(engine, threshold: timedelta) -> None:
    from billing.sync.lifecycle import sweep_orphaned_runs

    try:
        sweep_orphaned_runs(engine, threshold=threshold)
    except Exception as exc:
        logger.error("Orphan sweep failed: %s", exc)
