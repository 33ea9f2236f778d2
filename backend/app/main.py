"""
FastAPI Application Entry Point.

This is the main application file for the Device Receptionist Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.db.session import Database
from backend.app.services.device_management import DeviceManager
from backend.app.services.notification_service import Mailer
from backend.app.services.side_effects import SideEffectDispatcher
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backend.app.models.location import Location
from backend.app.models.api_key import ApiKey
from backend.app.models.shipment import Shipment
from backend.app.models.device import Device
from backend.app.models.email_log import EmailLog
from backend.app.models.dlq import DeadLetterQueue

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


def build_database() -> Database:
    """Engine for the configured URL; SQLite takes no pool sizing."""
    if settings.database_url.startswith("sqlite"):
        return Database(settings.database_url, echo=settings.db_echo)
    return Database(
        settings.database_url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Opens the database and creates tables.
    2. Builds the side-effect dispatcher and external clients.
    3. On shutdown, waits for in-flight side effects, then releases
       connections.
    """
    database = build_database()
    await database.create_all()

    app.state.database = database
    app.state.dispatcher = SideEffectDispatcher(database.session_factory)
    app.state.mailer = Mailer.from_settings(settings, database.session_factory)
    app.state.device_manager = DeviceManager.from_settings(settings)
    logger.info("%s started (%s)", settings.app_name, settings.api_version)

    yield

    await app.state.dispatcher.drain()
    await app.state.device_manager.aclose()
    await database.dispose()
    logger.info("%s stopped", settings.app_name)


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version=settings.api_version,
        debug=settings.debug,
        description="Shipment intake, receipt and verification for managed devices",
        lifespan=lifespan,
    )

    application.add_middleware(ObservabilityMiddleware)

    # Register global exception handlers
    application.add_exception_handler(AppException, app_exception_handler)
    application.add_exception_handler(HTTPException, http_exception_handler)
    application.add_exception_handler(RequestValidationError, validation_exception_handler)
    application.add_exception_handler(Exception, generic_exception_handler)

    @application.get("/health", tags=["Health"])
    async def health_check():
        """
        Health check endpoint.

        Returns:
            dict: Status and application information
        """
        return {
            "status": "healthy",
            "app_name": settings.app_name,
            "version": settings.api_version,
        }

    # Include API v1 router
    application.include_router(api_v1_router, prefix=f"/{settings.api_version}")
    return application


app = create_app()
