"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination
from sqlalchemy.exc import OperationalError

from app.config import get_settings
from app.exceptions import MessagingError
from app.infra.logging_config import LoggingConfig, get_logger
from app.routers.conversations_router import conversations_router
from app.routers.notifications_router import notifications_router
from app.routers.presence_router import presence_router
from app.routers.system import router as system_router

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s", app.title)
    try:
        yield
    finally:
        logger.info("Stopping %s", app.title)


async def messaging_error_handler(request: Request, exc: MessagingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def database_unavailable_handler(
    request: Request, exc: OperationalError
) -> JSONResponse:
    logger.warning("Database unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "Database unavailable"})


def create_app(testing: bool = False) -> FastAPI:
    settings = get_settings()
    if not (testing or settings.is_test):
        LoggingConfig(settings.log_level)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    app.add_exception_handler(MessagingError, messaging_error_handler)
    app.add_exception_handler(OperationalError, database_unavailable_handler)

    app.include_router(conversations_router)
    app.include_router(presence_router)
    app.include_router(notifications_router)
    app.include_router(system_router)
    add_pagination(app)

    return app


app = create_app()
