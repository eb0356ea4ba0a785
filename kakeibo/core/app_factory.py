"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers,
rate limiters and their sweeper) so tests can build isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kakeibo.api.routes import auth_router, health_router, session_router
from kakeibo.core.config import settings
from kakeibo.core.exception_handlers import setup_exception_handlers
from kakeibo.core.logging import configure_logging
from kakeibo.core.middleware import request_id_middleware, security_headers_middleware
from kakeibo.core.openapi import apply_openapi_customizations
from kakeibo.core.rate_limit import RateLimiters, RateLimitSweeper, build_rate_limiters

logger = logging.getLogger(__name__)


def create_app(rate_limiters: RateLimiters | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limiters: Limiters to enforce; built from settings when omitted.
            Passing them in lets callers control the store and the clock.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    limiters = rate_limiters or build_rate_limiters(settings.app)
    sweeper = RateLimitSweeper(
        limiters.store,
        window_seconds=max(limiters.auth.window_seconds, limiters.api.window_seconds),
        interval_seconds=settings.app.rate_limit_sweep_interval_seconds,
        clock=limiters.clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await sweeper.start()
        logger.info(
            "app.startup",
            extra={
                "env": settings.app_env,
                "rate_limit_enabled": settings.app.rate_limit_enabled,
            },
        )
        try:
            yield
        finally:
            await sweeper.stop()
            logger.info("app.shutdown")

    app = FastAPI(
        title="Kakeibo API",
        description=(
            "家計簿 backend. Authentication routes and general API routes are "
            "rate limited independently per client over a fixed 15 minute window."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.rate_limiters = limiters
    app.state.rate_limit_sweeper = sweeper

    # Middleware (last added runs first)
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.app.cors_origins.split(",") if o.strip()],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )

    setup_exception_handlers(app)

    app.include_router(auth_router, prefix="/api")
    app.include_router(session_router, prefix="/api")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
