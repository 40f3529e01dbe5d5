"""FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from transit_arrivals.config import get_settings
from transit_arrivals.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from transit_arrivals.models import ConnectionMode
from transit_arrivals.routers.lines import router as lines_router
from transit_arrivals.routers.realtime import router as realtime_router
from transit_arrivals.routers.stops import router as stops_router
from transit_arrivals.services.engine import get_engine
from transit_arrivals.services.gtfs_rt.worker import get_worker, reset_worker
from transit_arrivals.services.gtfs_static.fetcher import FetchError, InvalidZipError
from transit_arrivals.services.gtfs_static.loader import StaticScheduleLoader
from transit_arrivals.services.gtfs_static.parser import MissingColumnError
from transit_arrivals.services.gtfs_static.reader import MissingRequiredFileError

logger = get_logger(__name__)


async def load_static_schedule() -> bool:
    """Load the configured static feed into the engine.

    Returns False (service stays up, answering 503) when it cannot be loaded.
    """
    settings = get_settings()
    if not (settings.gtfs_static_path or settings.gtfs_static_url):
        logger.warning("No static GTFS source configured")
        return False

    try:
        schedule, report = await StaticScheduleLoader().load(
            path=settings.gtfs_static_path,
            url=settings.gtfs_static_url,
        )
    except (FetchError, InvalidZipError, MissingRequiredFileError, MissingColumnError) as exc:
        logger.error("Static GTFS load failed", error=str(exc))
        return False

    get_engine().load_schedule(schedule)
    logger.info("Static GTFS load report", report=report.to_dict())
    return True


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()
    settings = get_settings()
    logger.info("Starting Transit Arrivals API")

    engine = get_engine()
    if settings.gtfs_rt_start_offline:
        engine.set_mode(ConnectionMode.OFFLINE)

    if settings.gtfs_static_load_on_startup and not engine.is_loaded:
        await load_static_schedule()

    # Auto-start RT worker if configured
    if settings.gtfs_rt_auto_start:
        worker = get_worker()
        await worker.start()

    yield

    # Shutdown RT worker if running
    worker = get_worker()
    if worker.is_running:
        await worker.stop()
    reset_worker()

    logger.info("Shutting down Transit Arrivals API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Upcoming arrivals per stop, merging a static GTFS schedule "
            "with GTFS-Realtime predictions"
        ),
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id=request_id, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        clear_request_context()
        return response

    # Include routers
    app.include_router(stops_router)
    app.include_router(lines_router)
    app.include_router(realtime_router)

    # Health endpoint
    @app.get("/health", tags=["meta"])
    async def health_check() -> dict[str, Any]:
        """Health check endpoint returning application status."""
        settings = get_settings()
        missing_env = settings.missing_required_env()
        engine = get_engine()

        worker = get_worker()
        worker_status = await worker.get_status()
        rt_healthy = worker_status["running"] or not settings.gtfs_rt_auto_start

        if missing_env:
            status = "unhealthy"
        elif engine.is_loaded and rt_healthy:
            status = "healthy"
        else:
            status = "degraded"

        issues: list[str] = []
        if missing_env:
            issues.append("Missing required environment variables: " + ", ".join(missing_env))
        if not engine.is_loaded:
            issues.append("Static GTFS schedule is not loaded")
        if settings.gtfs_rt_auto_start and not worker_status["running"]:
            issues.append("GTFS-RT worker is not running")

        return {
            "service": settings.app_name,
            "status": status,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "staticSchedule": engine.is_loaded,
                "mode": engine.mode.value,
                "gtfsRt": {
                    "workerRunning": worker_status["running"],
                    "pollCount": worker_status["poll_count"],
                    "lastPollAt": worker_status["last_poll_at"],
                    "realtimeTrips": engine.store.trip_count,
                    "feedTimestamp": engine.current_feed_timestamp,
                },
            },
            "issues": issues,
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


app = create_app()
