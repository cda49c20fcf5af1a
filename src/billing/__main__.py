"""
Command-line entrypoint.

FastAPI runs separately under uvicorn.

Usage:
    python -m billing list                # connectors and their state
    python -m billing enable NAME         # enable / disable a connector
    python -m billing disable NAME
    python -m billing sync NAME           # run one connector now
    python -m billing sync-all            # run every enabled connector
    python -m billing sweep               # fail orphaned runs now
    python -m billing run                 # start the scheduler and block
    uvicorn billing.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import argparse
import json
import logging
import sys
import time
from datetime import timedelta

from billing.config import get_settings

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _print(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _list(engine, args) -> int:
    from billing.connectors.configuration import ConfigurationStore

    for summary in ConfigurationStore(engine).all_connectors_summary():
        state = "enabled" if summary["enabled"] else "disabled"
        configured = "configured" if summary["configured"] else "not configured"
        print(f"{summary['connector_name']:<20} {summary['version']:<8} {state:<9} {configured}")
    return 0


def _toggle(engine, args) -> int:
    from billing.connectors.configuration import ConfigurationStore
    from billing.connectors.registry import get_registry

    connector = get_registry().find(args.name)
    if connector is None:
        logger.error("Connector '%s' not found", args.name)
        return 1
    store = ConfigurationStore(engine)
    result = store.enable(connector.name()) if args.command == "enable" else store.disable(connector.name())
    if not result.success:
        logger.error("; ".join(result.errors))
        return 1
    _print(store.summary(connector.name()))
    return 0


def _sync(engine, args) -> int:
    from billing.sync.orchestrator import SyncOrchestrator

    result = SyncOrchestrator(engine).execute(args.name)
    _print(result.model_dump(mode="json"))
    return 0 if result.success else 1


def _sync_all(engine, args) -> int:
    from billing.sync.orchestrator import SyncOrchestrator

    summary = SyncOrchestrator(engine).execute_all_with_summary()
    _print(summary.model_dump(mode="json"))
    return 0 if summary.failed == 0 else 1


def _sweep(engine, args) -> int:
    from billing.sync.lifecycle import sweep_orphaned_runs

    threshold = timedelta(minutes=get_settings().orphan_threshold_minutes)
    print(f"Marked {sweep_orphaned_runs(engine, threshold=threshold)} orphaned runs as failed")
    return 0


def _run(engine, args) -> int:
    from billing.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(engine)
    scheduler.start()
    logger.info(
        "Scheduler started (daily sync at %02d:00, orphan sweep every %d min)",
        settings.sync_hour, settings.orphan_sweep_interval_minutes,
    )
    try:
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
    return 0


COMMANDS = {
    "list": _list,
    "enable": _toggle,
    "disable": _toggle,
    "sync": _sync,
    "sync-all": _sync_all,
    "sweep": _sweep,
    "run": _run,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m billing")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="List connectors")
    for command in ("enable", "disable", "sync"):
        sub.add_parser(command, help=f"{command.capitalize()} a connector").add_argument("name")
    sub.add_parser("sync-all", help="Run every enabled connector")
    sub.add_parser("sweep", help="Mark orphaned sync runs as failed")
    sub.add_parser("run", help="Start the scheduler")
    return parser


def main(argv=None) -> int:
    from billing.db.engine import get_engine

    args = build_parser().parse_args(argv)
    return COMMANDS[args.command](get_engine(), args)


if __name__ == "__main__":
    sys.exit(main())
