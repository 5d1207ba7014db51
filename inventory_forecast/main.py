from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from inventory_forecast.config import settings
from inventory_forecast.api.v1.router import api_router
from inventory_forecast.database import async_session_factory, engine
from inventory_forecast.jobs.scheduler import get_job_status, start_scheduler, shutdown_scheduler
from inventory_forecast.services.cache_service import close_cache
from inventory_forecast.services.forecasting import (
    ChangeFeedSubscriber,
    create_forecast_service,
    get_change_feed,
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Build the forecast service and run the initial load
    - Subscribe to sales/product change notifications
    - Start the optional periodic refresh job
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    service = create_forecast_service()
    app.state.forecast_service = service

    subscriber = None
    if settings.CHANGE_FEED_ENABLED:
        subscriber = ChangeFeedSubscriber(
            service,
            get_change_feed(),
            sales_channel=settings.SALES_CHANGE_CHANNEL,
            products_channel=settings.PRODUCTS_CHANGE_CHANNEL,
        )
        await subscriber.start()
    app.state.change_feed_subscriber = subscriber

    await service.start()
    start_scheduler(service)

    yield

    # Shutdown
    shutdown_scheduler()
    if subscriber is not None:
        await subscriber.close()
    await service.close()
    await close_cache()
    await engine.dispose()
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Inventory replenishment forecasting for reseller catalogs",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a JSON error body for unhandled exceptions."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")

    error_detail = {
        "error": str(exc),
        "type": type(exc).__name__,
        "path": str(request.url.path),
        "method": request.method,
    }
    if settings.DEBUG:
        error_detail["traceback"] = traceback.format_exc()

    return JSONResponse(status_code=500, content=error_detail)


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Health check with database and forecast pipeline status."""
    service = getattr(request.app.state, "forecast_service", None)

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown",
            "forecast": service.state.value if service else "not_initialized",
        },
        "jobs": get_job_status(),
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except SQLAlchemyError as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
