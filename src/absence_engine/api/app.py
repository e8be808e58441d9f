"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from absence_engine.api.routes import (
    health_router,
    milestones_router,
    sickness_cases_router,
    triggers_router,
)
from absence_engine.config import configure_logging, get_settings
from absence_engine.database import dispose_db, init_db
from absence_engine.services.errors import (
    AbsenceEngineError,
    InvalidOverrideError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from absence_engine.services.notifications import LoggingNotifier, NotificationHandler

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[AbsenceEngineError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    InvalidOverrideError: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def status_for(exc: AbsenceEngineError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging()
    _, session_factory = init_db()
    app.state.notification_handler = NotificationHandler(
        session_factory, LoggingNotifier(), settings.app_url
    )
    logger.info("Absence engine %s started", settings.engine_version)
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Absence Engine API",
        description="Sickness absence case lifecycle: workflow, milestones and triggers",
        version=get_settings().engine_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AbsenceEngineError)
    async def engine_error_handler(
        request: Request, exc: AbsenceEngineError
    ) -> JSONResponse:
        """Map domain errors onto HTTP status codes."""
        return JSONResponse(
            status_code=status_for(exc),
            content=exc.to_dict(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(sickness_cases_router, prefix="/api/v1")
    app.include_router(milestones_router, prefix="/api/v1")
    app.include_router(triggers_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
