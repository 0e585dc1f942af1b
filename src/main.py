"""
Luna Backend - Main Application Entry Point
Application Factory Pattern with ORJSONResponse for maximum performance.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from src.core.config import settings
from src.core.database import close_db, init_db
from src.core.exceptions import (
    LunaException,
    generic_exception_handler,
    http_exception_handler,
    luna_exception_handler,
    validation_exception_handler,
)
from src.core.logging import configure_logging, get_logger

# Configure logging on module load
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info(
        "Starting Luna Backend",
        environment=settings.environment,
        debug=settings.debug,
    )

    # Initialize database (create tables if needed)
    if settings.run_db_init:
        await init_db()
        logger.info("Database initialized")

    yield

    logger.info("Shutting down Luna Backend")
    await close_db()


TAGS_METADATA = [
    {
        "name": "Auth",
        "description": "Bearer JWT authentication. The token's `sub` is the user ID.",
    },
    {
        "name": "Energy",
        "description": """
**Energy ledger**

Every paid feature costs energy. Using the app on consecutive days builds a
streak; every completed streak window credits a bonus.

| Reason | Meaning |
|--------|---------|
| `spend` | Feature usage (negative amount) |
| `streak_bonus` | Streak milestone reached |
| `referral_bonus` | Someone claimed your referral code |
| `pack_purchase` | Paid energy pack |
| `manual_adjustment` | Operator credit |
        """,
    },
    {
        "name": "Referrals",
        "description": "Referral links. The code owner earns energy when a new user claims it.",
    },
    {
        "name": "health",
        "description": "Liveness and Prometheus metrics.",
    },
]


def create_application() -> FastAPI:
    """
    Application factory function.
    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title="Luna API",
        summary="Career coaching backend - energy ledger and referrals",
        version=settings.app_version,
        openapi_url="/openapi.json",
        openapi_tags=TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        swagger_ui_parameters={
            "defaultModelsExpandDepth": -1,
            "docExpansion": "list",
            "persistAuthorization": True,
        },
        default_response_class=ORJSONResponse,
        debug=settings.debug,
        lifespan=lifespan,
    )

    # Add Prometheus metrics middleware
    if settings.prometheus_enabled:
        from src.core.metrics import MetricsMiddleware
        app.add_middleware(MetricsMiddleware)

    # Register exception handlers
    app.add_exception_handler(LunaException, luna_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _include_routers(app)

    @app.get("/health", tags=["health"], response_class=ORJSONResponse)
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "service": "luna-backend"}

    @app.get("/", tags=["root"], response_class=ORJSONResponse)
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": "Luna Backend",
            "version": settings.app_version,
            "docs": "/docs" if settings.debug else "disabled",
        }

    return app


def _include_routers(app: FastAPI) -> None:
    """
    Include all module routers under the versioned prefix.
    Metrics stay at the root.
    """
    from src.core.metrics import router as metrics_router
    from src.modules.auth.router import router as auth_router
    from src.modules.energy.router import router as energy_router
    from src.modules.referrals.router import router as referrals_router

    api_v1_prefix = settings.api_v1_str

    for router in (auth_router, energy_router, referrals_router):
        app.include_router(router, prefix=api_v1_prefix)

    if settings.prometheus_enabled:
        app.include_router(metrics_router)

    logger.info(
        "Routers registered",
        modules=["auth", "energy", "referrals"],
        api_prefix=api_v1_prefix,
    )


# Create application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
