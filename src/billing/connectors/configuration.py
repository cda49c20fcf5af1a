"""
Per-connector configuration: enabled flag, encrypted credentials, settings.

    store = ConfigurationStore(engine)
    store.enable("example")
    store.merge_credentials("example", {"api_key": "secret123"})
    store.merge_settings("example", {"import_limit": "50"})

Every mutation returns a ConfigurationResult. Validation problems,
including database constraint violations, come back in `errors`; they are
never raised. Rows are keyed by the registered connector's canonical name
when one matches, so "EXAMPLE" and "example" share a row.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from billing.connectors.registry import ConnectorRegistry, get_registry
from billing.models.connector import ConnectorConfiguration

logger = logging.getLogger(__name__)


@dataclass
class ConfigurationResult:
    success: bool
    configuration: Optional[ConnectorConfiguration] = None
    errors: List[str] = field(default_factory=list)


def _validate_mapping(values, label: str) -> List[str]:
    if not isinstance(values, Mapping):
        return [f"{label} must be a mapping of field names to values"]
    errors = []
    for key, value in values.items():
        if not isinstance(key, str) or not key.strip():
            errors.append(f"{label} keys must be non-empty strings (got {key!r})")
            continue
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            errors.append(f"{label} value for '{key}' is not JSON-serializable")
    return errors


class ConfigurationStore:
    """Reads and mutates ConnectorConfiguration rows."""

    def __init__(self, engine, registry: Optional[ConnectorRegistry] = None):
        self.engine = engine
        self.registry = registry or get_registry()

    # ─── Reads ────────────────────────────────────────────────────────────────

    def get(self, name: str) -> Optional[ConnectorConfiguration]:
        with Session(self.engine) as s:
            return s.exec(
                select(ConnectorConfiguration).where(
                    ConnectorConfiguration.connector_name == self._canonical(name)
                )
            ).first()

    def is_enabled(self, name: str) -> bool:
        config = self.get(name)
        return bool(config and config.enabled)

    def is_configured(self, name: str) -> bool:
        config = self.get(name)
        return bool(config and config.has_credentials)

    def credentials(self, name: str) -> Dict[str, Any]:
        config = self.get(name)
        return config.credentials_dict() if config else {}

    def settings(self, name: str) -> Dict[str, Any]:
        config = self.get(name)
        return config.settings_dict() if config else {}

    def enabled_configurations(self) -> List[ConnectorConfiguration]:
        with Session(self.engine) as s:
            return list(
                s.exec(
                    select(ConnectorConfiguration)
                    .where(ConnectorConfiguration.enabled == True)  # noqa: E712
                    .order_by(ConnectorConfiguration.connector_name)
                ).all()
            )

    def summary(self, name: str) -> Dict[str, Any]:
        """Display summary. Version/description are None for unregistered names."""
        connector = self.registry.find(name)
        config = self.get(name)
        return {
            "connector_name": connector.name() if connector else self._canonical(name),
            "version": connector.version() if connector else None,
            "description": connector.description() if connector else None,
            "enabled": bool(config and config.enabled),
            "configured": bool(config and config.has_credentials),
            "has_settings": bool(config and config.has_settings),
            "created_at": config.created_at if config else None,
            "updated_at": config.updated_at if config else None,
        }

    def all_connectors_summary(self) -> List[Dict[str, Any]]:
        return [self.summary(c.name()) for c in self.registry.all()]

    # ─── Enable / disable ─────────────────────────────────────────────────────

    def enable(self, name: str) -> ConfigurationResult:
        return self._mutate(name, lambda c: setattr(c, "enabled", True))

    def disable(self, name: str) -> ConfigurationResult:
        return self._mutate(name, lambda c: setattr(c, "enabled", False))

    # ─── Credentials (encrypted) ──────────────────────────────────────────────

    def merge_credentials(self, name: str, partial: Mapping[str, Any]) -> ConfigurationResult:
        """Overwrite only the given keys, keep the rest."""
        errors = _validate_mapping(partial, "Credentials")
        if errors:
            return ConfigurationResult(success=False, errors=errors)

        def apply(config: ConnectorConfiguration) -> None:
            merged = config.credentials_dict()
            merged.update(partial)
            config.credentials = merged

        return self._mutate(name, apply)

    def replace_credentials(self, name: str, full: Mapping[str, Any]) -> ConfigurationResult:
        errors = _validate_mapping(full, "Credentials")
        if errors:
            return ConfigurationResult(success=False, errors=errors)
        return self._mutate(name, lambda c: setattr(c, "credentials", dict(full) or None))

    def clear_credentials(self, name: str) -> ConfigurationResult:
        return self._mutate(name, lambda c: setattr(c, "credentials", None))

    # ─── Settings (plain) ─────────────────────────────────────────────────────

    def merge_settings(self, name: str, partial: Mapping[str, Any]) -> ConfigurationResult:
        errors = _validate_mapping(partial, "Settings")
        if errors:
            return ConfigurationResult(success=False, errors=errors)

        def apply(config: ConnectorConfiguration) -> None:
            merged = config.settings_dict()
            merged.update(partial)
            config.settings = merged

        return self._mutate(name, apply)

    def replace_settings(self, name: str, full: Mapping[str, Any]) -> ConfigurationResult:
        errors = _validate_mapping(full, "Settings")
        if errors:
            return ConfigurationResult(success=False, errors=errors)
        return self._mutate(name, lambda c: setattr(c, "settings", dict(full) or None))

    def clear_settings(self, name: str) -> ConfigurationResult:
        return self._mutate(name, lambda c: setattr(c, "settings", None))

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _canonical(self, name: str) -> str:
        connector = self.registry.find(name)
        return connector.name() if connector else str(name).strip()

    def _mutate(
        self,
        name: str,
        apply: Callable[[ConnectorConfiguration], None],
    ) -> ConfigurationResult:
        """Load (or start) the row, apply the change, save. Errors come back as a list."""
        if name is None or not str(name).strip():
            return ConfigurationResult(success=False, errors=["Connector name can't be blank"])
        key = self._canonical(name)

        try:
            with Session(self.engine) as s:
                config = s.exec(
                    select(ConnectorConfiguration).where(
                        ConnectorConfiguration.connector_name == key
                    )
                ).first()
                if config is None:
                    config = ConnectorConfiguration(connector_name=key)
                apply(config)
                config.updated_at = datetime.utcnow()
                s.add(config)
                s.commit()
                s.refresh(config)
                return ConfigurationResult(success=True, configuration=config)
        except IntegrityError as exc:
            logger.warning("Configuration for %s rejected by database: %s", key, exc.orig)
            return ConfigurationResult(
                success=False,
                errors=[f"Configuration for '{key}' could not be saved: {exc.orig}"],
            )
