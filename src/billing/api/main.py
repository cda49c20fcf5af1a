"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from billing.api.routes import audit, connectors
from billing.db.engine import get_engine


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Creates tables and installs the audit listener (idempotent)
        get_engine()
        yield

    app = FastAPI(
        title="Billing API",
        description="Connector configuration, sync runs and audit trail",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(connectors.router, prefix="/connectors", tags=["connectors"])
    app.include_router(audit.router, prefix="/audit", tags=["audit"])

    return app


# Module-level app instance for uvicorn
app = create_app()
