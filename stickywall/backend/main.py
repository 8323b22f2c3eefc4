"""
FastAPI Application Entry Point.

This is the main entry point for the wall backend.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stickywall.backend.api import health
from stickywall.backend.api.v1 import router as api_v1_router
from stickywall.backend.core.concurrency import shutdown_pools
from stickywall.backend.core.config import get_app_config, get_settings
from stickywall.backend.core.database import create_tables, dispose_engine
from stickywall.backend.core.exception_handlers import register_exception_handlers
from stickywall.backend.core.logging import get_logger, setup_logging
from stickywall.backend.core.middleware import RequestContextMiddleware
from stickywall.backend.repositories.memory import InMemoryRateLimitStore
from stickywall.backend.services.classifier import create_moderation_classifier
from stickywall.backend.services.image_storage import create_image_storage

logger = get_logger(__name__)

_app: FastAPI | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    app_config = get_app_config()
    setup_logging(level=app_config.logging.level)

    if app_config.features.security_startup_checks_enabled:
        from stickywall.backend.core.startup_checks import run_startup_checks
        run_startup_checks()

    if app_config.database.create_tables_on_startup:
        await create_tables()

    logger.info(
        "Application starting",
        extra={
            "app_name": app_config.application.name,
            "env": app_config.application.environment,
            "rate_limit_strategy": app_config.security.rate_limiting.strategy,
            "image_backend": app_config.storage.images.backend,
        },
    )
    yield
    logger.info("Application shutting down")
    await shutdown_pools()
    await dispose_engine()


def _init_state(app: FastAPI) -> None:
    """Process-wide collaborators shared by every request."""
    app_config = get_app_config()
    settings = get_settings()

    app.state.classifier = create_moderation_classifier(app_config.moderation.classifier)
    app.state.image_storage = create_image_storage(
        app_config.storage.images,
        settings.image_storage_access_key,
        settings.image_storage_secret_key,
    )
    # Answers for the hashed-identity gate while the database is unreachable.
    app.state.rate_limit_fallback = InMemoryRateLimitStore()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app_config = get_app_config()
    app_settings = app_config.application
    docs_enabled = app_settings.debug and app_settings.docs_enabled

    app = FastAPI(
        title=app_settings.name,
        description=app_settings.description,
        version=app_settings.version,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        lifespan=lifespan,
    )

    _init_state(app)

    app.add_middleware(
        RequestContextMiddleware,
        max_body_size=app_config.security.request_limits.max_body_size_bytes,
    )

    cors_origins = app_settings.cors.origins
    if cors_origins:
        cors_config = app_config.security.cors
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=cors_config.allow_methods,
            allow_headers=cors_config.allow_headers,
        )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(api_v1_router, prefix=app_settings.api_prefix)

    return app


def get_app() -> FastAPI:
    """
    Get the application instance (lazy initialization).

    This function creates the app on first call and caches it.
    Use this instead of importing `app` directly to avoid
    import-time configuration errors.
    """
    global _app
    if _app is None:
        _app = create_app()
    return _app


# For uvicorn: `uvicorn stickywall.backend.main:app`
def __getattr__(name: str) -> FastAPI:
    """Support lazy access to `app` for uvicorn compatibility."""
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
