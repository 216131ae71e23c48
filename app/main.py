"""
Cadence FastAPI application entry point.

Flow: coordination events → rule evaluation → triggers → notification gate → nudges
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app import __version__
from app.api import coordination_router, internal_router, notifications_router
from app.config import get_settings
from app.db.session import check_db_connection, engine

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Verify the database before serving; release the pool on exit."""
    settings = get_settings()
    logger.info("Cadence %s starting", __version__)
    try:
        try:
            check_db_connection()
        except Exception as e:
            logger.critical("Database unreachable: %s", e)
            raise
        logger.info("Database connection verified")

        if not settings.internal_job_token:
            logger.warning("INTERNAL_JOB_TOKEN is not set; every coordination route will return 403")
        logger.info(
            "Coordination: lookback=%dh sweep_batch=%d quality_window=%dd",
            settings.coordination_event_lookback_hours,
            settings.coordination_sweep_batch_limit,
            settings.nudge_quality_window_days,
        )
        yield
    finally:
        engine.dispose()
        logger.info("Cadence stopped; database pool closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.include_router(coordination_router, prefix="/api", tags=["coordination"])
    app.include_router(notifications_router, prefix="/api/notifications", tags=["notifications"])
    # Cron and job scripts
    app.include_router(internal_router, tags=["internal"])

    @app.get("/health")
    def health():
        """Liveness plus a round trip to the database."""
        body = {"version": __version__}
        try:
            check_db_connection()
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            return JSONResponse(
                status_code=503,
                content={"status": "unhealthy", **body, "database": "disconnected"},
            )
        return {"status": "ok", **body, "database": "connected"}

    return app


app = create_app()
