from __future__ import annotations

"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the limiter lifecycle: the limiter is built once at startup, stored on
``app.state`` and shut down (reclaimer stopped, HTTP client closed) on exit.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from site_limiter.api.routes import health_router, rate_limit_router
from site_limiter.core.config import Settings, settings
from site_limiter.core.exception_handlers import setup_exception_handlers
from site_limiter.core.limiter import RateLimiter, create_rate_limiter
from site_limiter.core.logging import configure_logging
from site_limiter.core.middleware import request_id_middleware
from site_limiter.core.openapi import apply_openapi_customizations


def create_app(
    app_settings: Settings | None = None,
    *,
    rate_limiter: RateLimiter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; defaults to the global settings.
        rate_limiter: Prebuilt limiter (tests); built from settings otherwise.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    limiter = rate_limiter or create_rate_limiter(cfg.rate_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        limiter.start()
        try:
            yield
        finally:
            await limiter.shutdown()

    app = FastAPI(
        title="Site Rate Limiter API",
        description=(
            "Fixed-window rate limiting for the marketing site's public forms "
            "and APIs. Counters live in process memory or in a shared Redis "
            "REST store; backend failures fail open."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.rate_limiter = limiter

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags)
    apply_openapi_customizations(app)

    return app
