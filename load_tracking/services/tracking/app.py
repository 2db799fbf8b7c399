# load_tracking/services/tracking/app.py
"""
FastAPI application for the Tracking API.

Endpoints:
- POST /api/v1/tracking/ingest - telemetry ingest (shared secret)
- GET /api/v1/tracking/{load_id} - load summary and ordered points
- POST /api/v1/loads/{load_id}/tracking - manual operator update
- GET /health - health check
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from load_tracking import __version__
from load_tracking.common.errors import TrackingError
from load_tracking.common.logger import log_error, log_info, setup_logging
from load_tracking.config import get_settings
from load_tracking.config.loader import Settings
from load_tracking.infra.database import DatabaseManager, close_db, init_db
from load_tracking.infra.redis_client import RedisClient
from load_tracking.services.tracking.routes import router
from load_tracking.shared.models.common import ErrorResponse, HealthStatus


SERVICE_NAME = "tracking_api"


# === ERROR HANDLERS ===

async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    await log_error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content=ErrorResponse(error="Internal server error").to_content())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TrackingError, tracking_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


# === APP ===

def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the Tracking API.

    PostgreSQL and Redis clients are created in the lifespan and kept on
    app.state; tests may skip the lifespan and override dependencies.
    """
    app_settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()

        db = DatabaseManager()
        await init_db(db, app_settings.database)

        redis = RedisClient()
        await redis.connect(
            url=app_settings.redis.url,
            max_connections=app_settings.redis.REDIS_MAX_CONNECTIONS,
        )

        app.state.db = db
        app.state.redis = redis

        if not app_settings.tracking.TRACKING_INGEST_API_KEY:
            await log_error("TRACKING_INGEST_API_KEY is not set; ingest requests will be rejected")

        await log_info(f"{SERVICE_NAME} started")

        yield

        await redis.disconnect()
        await close_db(db)
        await log_info(f"{SERVICE_NAME} stopped")

    app = FastAPI(
        title="Tracking API",
        description="Telemetry ingest and tracking history for loads.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = app_settings

    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        dependencies: dict[str, str] = {}

        db: DatabaseManager | None = getattr(request.app.state, "db", None)
        if db is not None:
            dependencies["postgres"] = "healthy" if await db.health_check() else "unhealthy"

        redis: RedisClient | None = getattr(request.app.state, "redis", None)
        if redis is not None:
            dependencies["redis"] = "healthy" if await redis.health_check() else "unhealthy"

        status = "healthy" if all(v == "healthy" for v in dependencies.values()) else "degraded"
        return HealthStatus(
            service=SERVICE_NAME,
            status=status,
            version=__version__,
            dependencies=dependencies,
        )

    return app


app = create_app()
