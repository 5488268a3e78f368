"""FastAPI application factory."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from sakuga.api.errors import register_exception_handlers
from sakuga.api.routes import generation, history, providers, queue
from sakuga.api.routes import settings as settings_routes
from sakuga.core.config import Settings, configure_logging
from sakuga.core.database import create_engine, create_schema, setup_db_session
from sakuga.services.providers.registry import db_key_loader, default_registry
from sakuga.services.storage import ImageStorage
from sakuga.uow import create_uow_factory
from sakuga.workers.queue_processor import QueueProcessor

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, create schema, wire registry/storage/processor,
      reset jobs orphaned by a previous run and drain anything left pending
    - Shutdown: Cancel a running drain, dispose the engine
    """
    settings: Settings = app.state.settings
    configure_logging(settings)

    engine = create_engine(settings.database_url, settings.db_pool_size)
    await create_schema(engine)

    session_factory = setup_db_session(engine)
    uow_factory = create_uow_factory(session_factory)
    registry = default_registry(settings, key_loader=db_key_loader(uow_factory))
    processor = QueueProcessor(uow_factory, registry, app.state.storage)

    # Store in app.state for access in routes
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.registry = registry
    app.state.processor = processor

    await processor.recover_orphaned_jobs()
    processor.trigger()

    logger.info(
        "application.startup",
        db_url=settings.database_url.split("@")[-1],
        providers=registry.provider_ids,
    )

    yield

    logger.info("application.shutdown")
    await processor.shutdown()
    await engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Sakuga Backend API",
        description="Multi-provider image generation with a durable job queue",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    storage = ImageStorage(settings.images_path)
    storage.ensure_root()
    app.state.storage = storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(queue.router)
    app.include_router(generation.router)
    app.include_router(providers.router)
    app.include_router(settings_routes.router)
    app.include_router(history.router)
    app.mount("/api/images", StaticFiles(directory=settings.images_path), name="images")

    # Health check endpoint with database validation
    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app
