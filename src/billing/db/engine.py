"""SQLModel engine singleton and session dependency."""
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

from billing.config import get_settings

_engine = None


def import_models() -> None:
    """Import all table models so SQLModel.metadata is populated."""
    from billing.models.audit import AuditLogEntry  # noqa: F401
    from billing.models.connector import ConnectorConfiguration  # noqa: F401
    from billing.models.finance import ExchangeRate, MoneyTransaction  # noqa: F401
    from billing.models.sync import SyncRun  # noqa: F401


def get_engine():
    """Return the module-level engine, creating it (and the tables) on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            # Scheduler jobs and FastAPI workers share the engine across threads
            connect_args["check_same_thread"] = False
        _engine = create_engine(settings.database_url, connect_args=connect_args)

        import_models()
        SQLModel.metadata.create_all(_engine)

        from billing.audit.tracking import install_audit_listener
        install_audit_listener()
    return _engine


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
