"""FastAPI application factory and main entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from helpdesk import __version__
from helpdesk.api.v1 import api_router
from helpdesk.api.v1.errors import helpdesk_error_handler
from helpdesk.core.config import get_settings
from helpdesk.core.logging import configure_logging
from helpdesk.infrastructure.database import dispose_engine
from helpdesk.services.helpdesk.errors import HelpdeskError
from helpdesk.services.notifications import get_notification_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager for startup/shutdown events."""
    # Startup
    settings = get_settings()
    configure_logging(settings)
    app.state.settings = settings
    logger.info(
        f"Starting {settings.app_name} {__version__} "
        f"({settings.environment}, store={settings.ticket_store_backend})"
    )

    yield

    # Shutdown
    await get_notification_service().close()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Helpdesk ticketing and approval API",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(HelpdeskError, helpdesk_error_handler)

    # Register routes
    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all application routes."""
    settings = get_settings()

    # Include API router
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get(f"{settings.api_v1_prefix}/", tags=["API"])
    async def api_root():
        """API root endpoint with application info."""
        settings = get_settings()
        return {
            "name": settings.app_name,
            "version": __version__,
            "environment": settings.environment,
            "docs_url": "/docs" if settings.debug else "Disabled in production",
        }


# Create application instance
app = create_app()
