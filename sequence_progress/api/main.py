"""
Main FastAPI application.

Sequence progress API with:
- Error handling (ProgressError -> typed JSON error body)
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from sequence_progress.config import Settings, get_settings
from sequence_progress.core.engine import ProgressEngine
from sequence_progress.domain.errors import ProgressError
from sequence_progress.infrastructure.content import ContentRepository, InMemoryContentRepository
from sequence_progress.infrastructure.database import (
    SqlAlchemyCompletionStore,
    close_db,
    get_session_factory,
    init_db,
)
from sequence_progress.monitoring.logging import setup_logging

from .routes import experiment_router, monitoring_router, sequence_router, streak_router

logger = structlog.get_logger(__name__)


def load_content(settings: Settings) -> ContentRepository:
    """
    Content repository for the standalone server.

    Reads ``settings.content_path`` (``PROGRESS_CONTENT_PATH``). Without it the
    repository is empty and every sequence request answers sequence_not_found.
    """
    if settings.content_path is None:
        logger.warning("content_not_configured", setting="PROGRESS_CONTENT_PATH")
        return InMemoryContentRepository()
    return InMemoryContentRepository.from_json_file(settings.content_path)


def create_app(
    engine: Optional[ProgressEngine] = None,
    content: Optional[ContentRepository] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        engine: Ready engine (tests, embedding). When omitted the engine is built
            at startup on the configured database.
        content: Content repository used for the database-backed engine.
            Loaded from ``settings.content_path`` when omitted.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        setup_logging()
        logger.info("application_startup", app_name=settings.app_name, env=settings.app_env)

        owns_database = engine is None
        if owns_database:
            try:
                await init_db()
            except Exception as e:
                logger.error("database_initialization_failed", error=str(e))
                raise
            app.state.engine = ProgressEngine(
                SqlAlchemyCompletionStore(get_session_factory()),
                content or load_content(settings),
                settings=settings,
            )
        else:
            app.state.engine = engine

        yield

        logger.info("application_shutdown")
        if owns_database:
            try:
                await close_db()
                logger.info("database_connections_closed")
            except Exception as e:
                logger.error("database_shutdown_error", error=str(e))

    app = FastAPI(
        title="Sequence Progress Engine",
        description=(
            "Completion ledger, unlock state, streaks and experiments for ordered "
            "daily content."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )
    # Available before startup too, so an injected engine serves immediately.
    app.state.engine = engine

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """Add request ID to all requests for tracing."""
        request_id = str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(ProgressError)
    async def progress_error_handler(request: Request, exc: ProgressError) -> JSONResponse:
        """Engine errors are per-command and recoverable; the client re-syncs."""
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "internal_error",
                    "message": "An unexpected error occurred. Please try again later.",
                }
            },
        )

    app.include_router(sequence_router)
    app.include_router(streak_router)
    app.include_router(experiment_router)
    app.include_router(monitoring_router)

    return app


def main() -> None:
    """Run the API with uvicorn on the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
