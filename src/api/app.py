"""FastAPI application: Twilio webhooks and health checks."""
from __future__ import annotations

import os
import sys

# Add src/ to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.config import Settings, get_settings
from core.db import init_db, validate_database
from core.exceptions import (
    ConfigurationError,
    RenewalEngineError,
    StoreError,
)
from core.logging_config import get_logger, setup_logging
from api.routes import health, sms_webhooks

LOGGER = get_logger(__name__)


def _log_send_mode(settings: Settings) -> None:
    if settings.dry_run:
        LOGGER.info("DRY_RUN enabled: replies are logged, not sent")
    else:
        LOGGER.warning("!!! LIVE MODE !!! DRY_RUN=false - replies go to real phones")

    if not settings.can_send_sms():
        LOGGER.critical(
            "Twilio credentials missing while DRY_RUN=false; "
            "inbound SMS will be acknowledged but not processed"
        )


def _prepare_database() -> None:
    """Create missing tables; the app still starts if the database is down."""
    status = validate_database()

    if status["status"] == "ok":
        LOGGER.info(f"Database ready ({len(status['tables_found'])} tables)")
        return
    if status["status"] == "error":
        LOGGER.error(f"Database unavailable, starting without it: {status['errors']}")
        return

    LOGGER.warning(f"Creating missing tables: {status['tables_missing']}")
    created = init_db(create_missing_only=True)
    if created["status"] == "error":
        LOGGER.error(f"Could not create missing tables: {created.get('error')}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    setup_logging(level=settings.log_level, json_format=settings.log_format == "json")
    _log_send_mode(settings)

    LOGGER.info(
        "API application starting",
        extra={"extra_data": {
            "environment": settings.environment,
            "enabled_services": settings.get_enabled_services(),
            "phone_lock_backend": settings.phone_lock_backend,
        }},
    )

    try:
        _prepare_database()
    except Exception as e:
        LOGGER.error(f"Database check failed during startup: {e}")

    yield
    LOGGER.info("API application shutting down")


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    LOGGER.error(f"Configuration error on {request.url.path}: {exc}")
    return _error_response(500, "configuration_error", "Service misconfiguration")


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    LOGGER.error(f"Store error on {request.url.path}: {exc}")
    return _error_response(503, "store_error", str(exc))


async def engine_error_handler(request: Request, exc: RenewalEngineError) -> JSONResponse:
    LOGGER.error(f"Application error on {request.url.path}: {exc}", exc_info=True)
    return _error_response(500, "application_error", str(exc))


def create_app() -> FastAPI:
    """
    Build the application.

    The webhook routes never raise: every inbound message gets an empty
    TwiML response. The handlers below cover the other routes.
    """
    application = FastAPI(
        title="Listing Renewal SMS Engine",
        description="Inbound SMS conversation engine for listing renewal and deactivation",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_exception_handler(ConfigurationError, configuration_error_handler)
    application.add_exception_handler(StoreError, store_error_handler)
    application.add_exception_handler(RenewalEngineError, engine_error_handler)

    application.include_router(health.router, tags=["Health"])
    application.include_router(sms_webhooks.router, prefix="/sms", tags=["SMS"])

    return application


app = create_app()
