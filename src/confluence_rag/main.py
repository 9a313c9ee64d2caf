"""
Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and owns the lifespan that wires the
sync engine and read path together.

Design Goals
------------
- Deterministic startup
- Explicit dependency initialization order
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .config import settings
from .core.errors import (
    SyncError,
    sync_error_handler,
    unhandled_exception_handler,
)
from .db.session import init_db
from .wiring import build_components, configure_logging

from .api import (
    health_routes,
    page_routes,
    search_routes,
    sync_routes,
)


logger = logging.getLogger("rag.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Build components, bootstrap the schema, and run the reconciler for the
    lifetime of the application.
    """
    logger.info("Starting confluence-rag for space %s", settings.confluence_space_key)

    components = build_components(settings)
    await init_db(components.engine)

    app.state.store = components.store
    app.state.indexer = components.indexer
    app.state.search_service = components.search_service
    app.state.reconciler = components.reconciler

    if settings.sync_enabled:
        components.reconciler.start()
    else:
        logger.info("Background sync disabled")

    try:
        yield
    finally:
        logger.info("Shutting down confluence-rag")
        await components.reconciler.stop(timeout=settings.sync_stop_timeout)
        await components.engine.dispose()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory pattern allows:
    - Clean test instantiation
    - Controlled dependency overrides in pytest

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    configure_logging(settings.log_level)

    app = FastAPI(
        title="confluence-rag",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(SyncError, sync_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(page_routes.router)
    app.include_router(search_routes.router)
    app.include_router(sync_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
