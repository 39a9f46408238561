"""
SafeGig Registry Mirror - FastAPI Application
Main entry point for the registry mirror service.
Mirrors UserRegistered events from the SafeGig registry contract into MongoDB.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.services.sync_scheduler import SyncScheduler
from app.api.services.sync_service import get_sync_service
from app.core.config import is_production, settings
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger, setup_logging
from app.infrastructure.cache import redis_client

logger = get_logger(__name__)


def _build_scheduler() -> Optional[SyncScheduler]:
    if settings.SYNC_INTERVAL_SECONDS <= 0:
        logger.info("Periodic sync disabled (SYNC_INTERVAL_SECONDS=0)")
        return None
    if not settings.REGISTRY_CONTRACT_ADDRESS:
        logger.warning("Periodic sync disabled: REGISTRY_CONTRACT_ADDRESS is not set")
        return None

    service = get_sync_service()
    return SyncScheduler(
        service.coordinator,
        service.resolve_address(),
        settings.SYNC_INTERVAL_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    setup_logging()
    scheduler = _build_scheduler()
    if scheduler:
        service = get_sync_service()
        try:
            await service.cursor_repository.initialize()
            await service.user_repository.initialize()
        except DatabaseError as e:
            # Repositories retry lazily on the first run
            logger.error(f"MongoDB not ready at startup: {e.message}")
        scheduler.start()
    yield
    # Shutdown
    if scheduler:
        await scheduler.stop()
    await redis_client.disconnect()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    show_docs = not is_production()
    app = FastAPI(
        title=settings.APP_NAME,
        description="Read-side mirror of the SafeGig on-chain user registry",
        version="1.0.0",
        docs_url="/docs" if show_docs else None,
        redoc_url="/redoc" if show_docs else None,
        openapi_url="/openapi.json" if show_docs else None,
        lifespan=lifespan,
    )

    logger.info(f"CORS configured with origins: {settings.ALLOWED_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from app.api.routers import sync_router, user_router

    app.include_router(sync_router.router, prefix="/api/v1/sync", tags=["Registry Sync"])
    app.include_router(user_router.router, prefix="/api/v1/users", tags=["Mirrored Users"])

    @app.get("/")
    async def root():
        """Root endpoint for health check."""
        return {
            "message": settings.APP_NAME,
            "version": "1.0.0",
            "status": "healthy",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "chain_id": settings.EVM_CHAIN_ID,
            "registry_address": settings.REGISTRY_CONTRACT_ADDRESS,
            "periodic_sync": settings.SYNC_INTERVAL_SECONDS > 0,
        }

    return app


# Create the FastAPI app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
