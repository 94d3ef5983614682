"""
Table Booking API entry point.

Hosts the table booking core of the event platform: bookings against
per-event table availability with DOKU deposit sessions, table-party guest
lists with signed QR passes, and idempotent door check-in.

Run with:  uvicorn app.main:app
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.middleware import RequestLoggingMiddleware
from app.api.router import api_router
from app.core.config import get_settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import get_logger, setup_logging
from app.core.metrics import metrics_endpoint
from app.db.session import engine
from app.services.cache_service import close_redis, get_cache_stats, get_redis

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "application_starting",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        doku_demo_mode=settings.DOKU_DEMO_MODE,
        email_enabled=bool(settings.EMAIL_API_TOKEN),
    )
    # Warm the cache connection; the app runs without it
    await get_redis()

    yield

    await close_redis()
    await engine.dispose()
    logger.info("application_stopped")


async def health_check():
    """Liveness plus database and cache reachability."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        database = "connected"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("health_database_unreachable", error=str(e))
        database = "unreachable"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "version": settings.APP_VERSION,
        "database": database,
        "cache": await get_cache_stats(),
    }


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Table bookings, party guest lists and idempotent check-in",
        lifespan=lifespan,
    )

    # Middleware added last runs first: request ids are bound before CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.APP_BASE_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    application.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(application)

    application.include_router(api_router)
    application.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    application.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
    return application


app = create_app()
