"""
Inspection Approval Engine - Main FastAPI Application

Configures middleware, routes, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .scheduler.job_scheduler import start_scheduler, stop_scheduler
from .utils.logger import setup_logging, get_logger

APP_VERSION = "1.0.0"

# Setup logging first
setup_logging()
logger = get_logger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Creates MongoDB indexes
        - Starts the grouping/retention/notification scheduler

    Shutdown:
        - Stops scheduler
        - Closes database connections
    """
    # Startup
    logger.info("Starting Inspection Approval Engine...")

    # Indexes back the grouping, batch and outbox queries
    try:
        create_indexes()
        logger.info("MongoDB indexes created")
    except Exception as e:
        logger.error(f"Failed to create indexes: {e}")

    # Grouping sweep, retention sweep and outbox dispatch run in-process
    if settings.scheduler_enabled:
        try:
            start_scheduler()
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
    else:
        logger.info("Job scheduler disabled by configuration")

    logger.info("Application started successfully")

    yield

    # Shutdown
    logger.info("Shutting down...")
    stop_scheduler()
    close_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    application = FastAPI(
        title="Inspection Approval Engine",
        description="Multi-approver inspection approval with rule-based auto-approval and bulk batches",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )

    _configure_middleware(application)
    # Domain errors that escape a route become {"error": {...}} bodies
    register_error_handlers(application)
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI) -> None:
    """Configure application middleware."""
    # Browsers reject credentials with a wildcard origin
    allow_all = settings.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )

    # Outermost, so every log line of a request carries its id
    app.add_middleware(CorrelationIdMiddleware)


def _configure_routes(app: FastAPI) -> None:
    """Configure application routes."""
    # Inspection and workflow routes read the caller from X-User-* headers
    app.include_router(api_router, prefix="/api/v1")

    # No identity headers needed for health checks
    @app.get("/health", tags=["Health"])
    async def health():
        """Liveness plus database connectivity"""
        mongo_health = health_check()
        return {
            "status": "healthy" if mongo_health.get("status") == "healthy" else "degraded",
            "version": APP_VERSION,
            "environment": settings.environment,
            "mongo": mongo_health
        }

    @app.get("/", tags=["Health"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Inspection Approval Engine",
            "version": APP_VERSION,
            "docs": "/api/docs" if settings.debug else None
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()
