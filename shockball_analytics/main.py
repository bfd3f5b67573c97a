"""
Main FastAPI application for the Shockball analytics sync service.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from shockball_analytics.api.routes import sync
from shockball_analytics.core import metrics
from shockball_analytics.core.config import settings
from shockball_analytics.core.database import SessionLocal
from shockball_analytics.core.logging import configure_logging, get_logger
from shockball_analytics.core.middleware import CorrelationIdMiddleware

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if settings.SCHEDULER_ENABLED:
        from shockball_analytics.core.scheduler import start_scheduler
        await start_scheduler()
        logger.info("Sync scheduler started")

    yield

    if settings.SCHEDULER_ENABLED:
        from shockball_analytics.core.scheduler import stop_scheduler
        await stop_scheduler()
        logger.info("Sync scheduler stopped")
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Syncs Shockball match, player and energy data into the coaching analytics store",
    lifespan=lifespan,
)

app.add_middleware(CorrelationIdMiddleware)

# Must run before routes are added
Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

app.include_router(sync.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
    }


@app.get("/api/health")
async def api_health():
    """Component-level health: database connectivity and scheduler state."""
    from sqlalchemy import text

    from shockball_analytics.core.scheduler import get_scheduler

    health_status = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "components": {},
    }

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        health_status["components"]["database"] = {"status": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["components"]["database"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "degraded"

    scheduler = get_scheduler()
    metrics.update_scheduler_metrics()
    if scheduler and scheduler.running:
        health_status["components"]["scheduler"] = {
            "status": "running",
            "jobs": len(scheduler.scheduler.get_jobs()),
        }
    else:
        health_status["components"]["scheduler"] = {
            "status": "disabled" if not settings.SCHEDULER_ENABLED else "stopped",
        }
        if settings.SCHEDULER_ENABLED:
            health_status["status"] = "degraded"

    return health_status
