"""FastAPI application entry point for Realty Escrow.

Lifecycle:
    1. Startup: Initialize logging and the database, create tables (non-production),
       reload the asset registry and funds ledger from their tables.
    2. Running: Serve the REST API on a single Uvicorn process.
    3. Shutdown: Close database connections and drop the in-memory collaborators
       (their state is already persisted).

Run with:
    uvicorn realty_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from realty_escrow.config import get_settings
from realty_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
    )

    # 2. Initialize database
    from realty_escrow.infrastructure.collaborators import load_collaborators
    from realty_escrow.infrastructure.database.engine import (
        close_db,
        get_async_session,
        init_db,
    )

    await init_db()

    # 3. Reload the registry and ledger
    async for session in get_async_session():
        await load_collaborators(session)

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    from realty_escrow.infrastructure.collaborators import reset_collaborators

    logger.info("app.shutting_down")
    await close_db()
    reset_collaborators()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Realty Escrow",
        description=(
            "Escrow protocol for real-estate sales: custodied payments, "
            "party approvals, inspection and atomic settlement."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from realty_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from realty_escrow.api.routes.health import router as health_router
    from realty_escrow.api.routes.registry import router as registry_router
    from realty_escrow.api.routes.sales import router as sales_router

    app.include_router(health_router)
    app.include_router(sales_router)
    app.include_router(registry_router)

    return app


# The app instance used by Uvicorn
app = create_app()
