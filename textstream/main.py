from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from textstream.config.logging import get_logger, setup_logging
from textstream.config.settings import Settings, settings as default_settings
from textstream.v1.core.exceptions import (
    RequestContextMiddleware,
    TextStreamException,
    general_exception_handler,
    http_exception_handler,
    text_stream_exception_handler,
)
from textstream.v1.healthz import router as health_router
from textstream.v1.infra.jobs.routes import router as jobs_router
from textstream.v1.infra.jobs.service import JobService
from textstream.v1.infra.jobs.store import JobStore
from textstream.v1.infra.jobs.worker import JobWorker
from textstream.v1.processing.transform import TextProcessor
from textstream.v1.realtime.hub import ConnectionManager, HubNotificationSink
from textstream.v1.realtime.hub import router as hub_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the job worker on startup and drain it on shutdown."""
    worker: JobWorker = app.state.worker
    await worker.start()
    try:
        yield
    finally:
        await worker.stop()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or default_settings

    # Initialize structured logging
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Asynchronous character-frequency and Base64 text processing",
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
        # All endpoints will be under /v1/ prefix
        openapi_url="/v1/openapi.json" if settings.debug else None,
        docs_url="/v1/docs" if settings.debug else None,
        redoc_url="/v1/redoc" if settings.debug else None,
    )

    # Component graph lives on the app, one per application instance
    store = JobStore()
    processor = TextProcessor(
        min_delay_ms=settings.unit_delay_min_ms,
        max_delay_ms=settings.unit_delay_max_ms,
    )
    connection_manager = ConnectionManager()
    notifier = HubNotificationSink(connection_manager)
    worker = JobWorker(settings, store, processor, notifier)

    app.state.settings = settings
    app.state.job_store = store
    app.state.connection_manager = connection_manager
    app.state.worker = worker
    app.state.job_service = JobService(settings, store, worker, notifier)

    # Add middleware
    app.add_middleware(RequestContextMiddleware)

    # Add CORS middleware for development
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["X-Request-ID", settings.connection_header],
        )

    # Add exception handlers
    app.add_exception_handler(TextStreamException, text_stream_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers with /v1 prefix
    app.include_router(health_router, prefix="/v1", tags=["health"])
    app.include_router(jobs_router, prefix="/v1")
    app.include_router(hub_router, prefix="/v1")

    logger.info(
        "Application configured",
        environment=settings.environment,
        job_concurrency=settings.job_concurrency,
    )
    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "textstream.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )
