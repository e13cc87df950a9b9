"""FastAPI application entry point for the Fulfillment Orchestrator.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode).
    2. Running: Serve the REST API on a single Uvicorn process.
    3. Shutdown: Close database and Redis connections gracefully.

The reminder sweep runs either through POST /api/v1/sweeps or as the
standalone job in fulfillment_orchestrator.jobs.reminder_sweep.

Run with:
    uv run uvicorn fulfillment_orchestrator.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from fulfillment_orchestrator.config import get_settings
from fulfillment_orchestrator.logging_config import get_logger, setup_logging

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
    from fulfillment_orchestrator.infrastructure.database.engine import close_db, init_db

    await init_db()

    # 3. Initialize Redis (drafts and the sweep lock)
    from fulfillment_orchestrator.infrastructure.redis_client import close_redis, init_redis

    try:
        await init_redis()
    except Exception as exc:
        logger.warning("app.redis_unavailable", error=str(exc))

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Fulfillment Orchestrator",
        description=(
            "Order lifecycle, escrow bookkeeping and pickup-reminder sweeps "
            "for multi-stage fulfillment orders."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from fulfillment_orchestrator.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from fulfillment_orchestrator.api.routes.drafts import router as drafts_router
    from fulfillment_orchestrator.api.routes.health import router as health_router
    from fulfillment_orchestrator.api.routes.orders import router as orders_router
    from fulfillment_orchestrator.api.routes.sweeps import router as sweeps_router

    app.include_router(health_router)
    app.include_router(orders_router)
    app.include_router(drafts_router)
    app.include_router(sweeps_router)

    return app


# The app instance used by Uvicorn
app = create_app()
