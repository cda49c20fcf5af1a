"""Shared test fixtures."""
import os

from cryptography.fernet import Fernet

# Settings are read once per process; set them before anything imports get_settings()
os.environ.setdefault("CREDENTIAL_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Callable, Generator, List, Optional  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from billing.audit.tracking import install_audit_listener  # noqa: E402
from billing.connectors.base import Connector, FieldSpec, SyncContext, SyncOutcome  # noqa: E402
from billing.connectors.registry import ConnectorRegistry  # noqa: E402
from billing.db.engine import import_models  # noqa: E402

import_models()
install_audit_listener()


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


def _make_connector(
    name: str,
    sync: Optional[Callable[[SyncContext], object]] = None,
    *,
    requires_credentials: bool = False,
    version: str = "1.0.0",
) -> type:
    """Build a Connector subclass whose sync() delegates to `sync`."""
    fields = (
        [FieldSpec(name="api_key", label="API Key", type="password", required=True)]
        if requires_credentials
        else []
    )
    behaviour = sync or (lambda ctx: SyncOutcome())

    return type(
        f"Fake{name.title().replace('_', '')}Connector",
        (Connector,),
        {
            "name": classmethod(lambda cls: name),
            "version": classmethod(lambda cls: version),
            "description": classmethod(lambda cls: f"Fake {name} connector"),
            "credential_fields": classmethod(lambda cls: list(fields)),
            "sync": lambda self, ctx: behaviour(ctx),
        },
    )


@pytest.fixture(name="make_connector")
def make_connector_fixture():
    """Factory: make_connector("name", sync=fn, requires_credentials=True)."""
    return _make_connector


@pytest.fixture(name="make_registry")
def make_registry_fixture():
    """Factory: make_registry(ConnectorA, ConnectorB) → ConnectorRegistry over exactly those."""

    def build(*connectors) -> ConnectorRegistry:
        listed: List[type] = list(connectors)
        return ConnectorRegistry(loader=lambda: listed)

    return build
