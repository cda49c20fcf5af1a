"""Connector admin routes: configuration, manual sync, run history."""
from typing import Any, Dict, Type

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlmodel import Session

from billing.audit.log import AuditLog
from billing.connectors.base import Connector
from billing.connectors.configuration import ConfigurationResult, ConfigurationStore
from billing.connectors.registry import ConnectorRegistry, get_registry
from billing.db.engine import get_engine
from billing.models.sync import SyncRun
from billing.sync.lifecycle import aggregate_stats, runs_for_connector, stats_for_connector
from billing.sync.orchestrator import ErrorType, ExecutionResult, ExecutionSummary, SyncOrchestrator

router = APIRouter()

VISIBLE_SUFFIX = 4


def get_store(
    engine=Depends(get_engine),
    registry: ConnectorRegistry = Depends(get_registry),
) -> ConfigurationStore:
    return ConfigurationStore(engine, registry=registry)


def get_orchestrator(
    engine=Depends(get_engine),
    registry: ConnectorRegistry = Depends(get_registry),
) -> SyncOrchestrator:
    return SyncOrchestrator(engine, registry=registry)


def mask_secret(value: Any) -> str:
    """Replace all but the last four characters with '*'."""
    text = "" if value is None else str(value)
    if len(text) <= VISIBLE_SUFFIX:
        return "*" * len(text)
    return "*" * (len(text) - VISIBLE_SUFFIX) + text[-VISIBLE_SUFFIX:]


def _connector_or_404(registry: ConnectorRegistry, name: str) -> Type[Connector]:
    connector = registry.find(name)
    if connector is None:
        raise HTTPException(status_code=404, detail=f"Connector '{name}' not found")
    return connector


def _config_response(store: ConfigurationStore, connector: Type[Connector], result: ConfigurationResult):
    if not result.success:
        return JSONResponse(status_code=422, content={"errors": result.errors})
    return store.summary(connector.name())


# ─── Listing ──────────────────────────────────────────────────────────────────

@router.get("/")
def list_connectors(
    engine=Depends(get_engine),
    store: ConfigurationStore = Depends(get_store),
):
    """All registered connectors with configuration state and sync stats."""
    summaries = store.all_connectors_summary()
    for summary in summaries:
        summary["sync_stats"] = stats_for_connector(engine, summary["connector_name"])
    return summaries


@router.post("/sync", response_model=ExecutionSummary)
def sync_all(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Run every enabled connector, one after another."""
    return orchestrator.execute_all_with_summary()


@router.get("/{name}")
def get_connector(
    name: str,
    store: ConfigurationStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
):
    connector = _connector_or_404(registry, name)
    canonical = connector.name()
    return {
        **store.summary(canonical),
        "credential_fields": [f.model_dump() for f in connector.credential_fields()],
        "setting_fields": [f.model_dump() for f in connector.setting_fields()],
        "requires_credentials": connector.requires_credentials(),
        "credentials": {
            key: mask_secret(value) for key, value in store.credentials(canonical).items()
        },
        "settings": store.settings(canonical),
    }


# ─── Enable / disable ─────────────────────────────────────────────────────────

@router.post("/{name}/enable")
def enable_connector(
    name: str,
    store: ConfigurationStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
):
    connector = _connector_or_404(registry, name)
    return _config_response(store, connector, store.enable(connector.name()))


@router.post("/{name}/disable")
def disable_connector(
    name: str,
    store: ConfigurationStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
):
    connector = _connector_or_404(registry, name)
    return _config_response(store, connector, store.disable(connector.name()))


# ─── Credentials ──────────────────────────────────────────────────────────────

@router.put("/{name}/credentials")
def replace_credentials(
    name: str,
    values: Dict[str, Any] = Body(...),
    store: ConfigurationStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
):
    connector = _connector_or_404(registry, name)
    return _config_response(store, connector, store.replace_credentials(connector.name(), values))


@router.patch("/{name}/credentials")
def merge_credentials(
    name: str,
    values: Dict[str, Any] = Body(...),
    store: ConfigurationStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
):
    connector = _connector_or_404(registry, name)
    return _config_response(store, connector, store.merge_credentials(connector.name(), values))


@router.delete("/{name}/credentials")
def clear_credentials(
    name: str,
    store: ConfigurationStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
):
    connector = _connector_or_404(registry, name)
    return _config_response(store, connector, store.clear_credentials(connector.name()))


# ─── Settings ─────────────────────────────────────────────────────────────────

@router.put("/{name}/settings")
def replace_settings(
    name: str,
    values: Dict[str, Any] = Body(...),
    store: ConfigurationStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
):
    connector = _connector_or_404(registry, name)
    return _config_response(store, connector, store.replace_settings(connector.name(), values))


@router.patch("/{name}/settings")
def merge_settings(
    name: str,
    values: Dict[str, Any] = Body(...),
    store: ConfigurationStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
):
    connector = _connector_or_404(registry, name)
    return _config_response(store, connector, store.merge_settings(connector.name(), values))


@router.delete("/{name}/settings")
def clear_settings(
    name: str,
    store: ConfigurationStore = Depends(get_store),
    registry: ConnectorRegistry = Depends(get_registry),
):
    connector = _connector_or_404(registry, name)
    return _config_response(store, connector, store.clear_settings(connector.name()))


# ─── Sync and history ─────────────────────────────────────────────────────────

@router.post("/{name}/sync", response_model=ExecutionResult)
def sync_connector(
    name: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Run one connector now and wait for it to finish.

    Skipped and failed runs still return 200; inspect `success` and
    `error_type`. Only an unknown connector name is a 404.
    """
    result = orchestrator.execute(name)
    if result.error_type == ErrorType.NOT_FOUND:
        raise HTTPException(status_code=404, detail=result.error)
    return result


@router.get("/{name}/history")
def connector_history(
    name: str,
    limit: int = 50,
    engine=Depends(get_engine),
    registry: ConnectorRegistry = Depends(get_registry),
):
    """Newest runs first, with this connector's stats and the aggregate across all connectors."""
    canonical = _connector_or_404(registry, name).name()
    return {
        "connector_name": canonical,
        "runs": [run.summary() for run in runs_for_connector(engine, canonical, limit=limit)],
        "stats": stats_for_connector(engine, canonical),
        "aggregate": aggregate_stats(engine),
    }


@router.get("/{name}/runs/{run_id}")
def connector_run(
    name: str,
    run_id: int,
    engine=Depends(get_engine),
    registry: ConnectorRegistry = Depends(get_registry),
):
    canonical = _connector_or_404(registry, name).name()
    with Session(engine) as s:
        run = s.get(SyncRun, run_id)
    if run is None or run.connector_name != canonical:
        raise HTTPException(status_code=404, detail="Sync run not found")
    return {
        **run.summary(),
        "audit_entries": AuditLog(engine).entries_for_run(run.id),
    }
