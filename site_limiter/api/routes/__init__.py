from __future__ import annotations

from site_limiter.api.routes.health import router as health_router
from site_limiter.api.routes.rate_limit import router as rate_limit_router

__all__ = ["health_router", "rate_limit_router"]
