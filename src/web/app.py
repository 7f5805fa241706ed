"""
FastAPI application for notification delivery operations.

Run with:
    uvicorn web.app:app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from config.settings import get_settings
from database.async_engine import close_database, init_database
from services.logging_config import configure_logging
from web.routers import email_admin_router, health_router
from web.middleware import RequestIDMiddleware
from web.routers.email_admin_api import reset_delivery_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json)
    await init_database()
    logger.info(f"{settings.name} {settings.version} started ({settings.environment})")
    yield
    reset_delivery_service()
    await close_database()


def create_app() -> FastAPI:
    """Build the application with the operational routers mounted."""
    settings = get_settings()
    app = FastAPI(
        title=settings.name,
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.add_middleware(RequestIDMiddleware)
    app.include_router(health_router)
    app.include_router(email_admin_router)
    return app


app = create_app()
