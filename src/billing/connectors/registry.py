"""
Connector registry: the fixed set of connector classes known to the process.

Connectors are listed explicitly in default_connectors(); nothing is
discovered at runtime and request-time code never registers new ones.
Lookup is case-insensitive.
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional, Type

from billing.connectors.base import Connector

logger = logging.getLogger(__name__)


class ConnectorNotFoundError(LookupError):
    """Raised when no registered connector matches the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Connector '{name}' not found")


def _normalize(name) -> str:
    return str(name).strip().lower()


def default_connectors() -> List[Type[Connector]]:
    from billing.connectors.cnb.connector import CnbExchangeRateConnector
    from billing.connectors.example.connector import ExampleBankConnector
    from billing.connectors.fio.connector import FioBankConnector

    return [ExampleBankConnector, CnbExchangeRateConnector, FioBankConnector]


class ConnectorRegistry:
    """Caches the connector list on first use; reload() drops the cache."""

    def __init__(self, loader: Callable[[], Iterable[Type[Connector]]] = default_connectors):
        self._loader = loader
        self._connectors: Optional[List[Type[Connector]]] = None

    def all(self) -> List[Type[Connector]]:
        if self._connectors is None:
            self._connectors = self._load()
        return list(self._connectors)

    def reload(self) -> None:
        self._connectors = None

    def find(self, name) -> Optional[Type[Connector]]:
        if name is None:
            return None
        key = _normalize(name)
        for connector in self.all():
            if _normalize(connector.name()) == key:
                return connector
        return None

    def find_or_raise(self, name) -> Type[Connector]:
        connector = self.find(name)
        if connector is None:
            raise ConnectorNotFoundError(name)
        return connector

    def names(self) -> List[str]:
        return [c.name() for c in self.all()]

    def metadata(self) -> List[Dict[str, str]]:
        return [c.metadata() for c in self.all()]

    def _load(self) -> List[Type[Connector]]:
        connectors: List[Type[Connector]] = []
        seen: Dict[str, Type[Connector]] = {}
        for connector in self._loader():
            if not (isinstance(connector, type) and issubclass(connector, Connector)):
                raise TypeError(f"{connector!r} is not a Connector subclass")
            key = _normalize(connector.name())
            if key in seen:
                raise ValueError(
                    f"Duplicate connector name '{key}': "
                    f"{seen[key].__name__} and {connector.__name__}"
                )
            seen[key] = connector
            connectors.append(connector)
        logger.debug("Registered connectors: %s", ", ".join(seen))
        return connectors


_registry: Optional[ConnectorRegistry] = None


def get_registry() -> ConnectorRegistry:
    global _registry
    if _registry is None:
        _registry = ConnectorRegistry()
    return _registry
