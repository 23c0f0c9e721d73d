from __future__ import annotations

from fastapi import APIRouter, Depends

from site_limiter.core.limiter import RateLimiter
from site_limiter.core.rate_limit import get_rate_limiter
from site_limiter.schemas.rate_limit import HealthResponse, LimiterHealth

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(limiter: RateLimiter = Depends(get_rate_limiter)) -> HealthResponse:
    """Health check endpoint.

    The API itself is up whenever this answers, so ``status`` stays "ok" even
    when the limiter backend is degraded: the limiter fails open.

    Returns:
        HealthResponse: API status plus limiter backend health.
    """

    limiter_health = await limiter.health_check()
    return HealthResponse(status="ok", rate_limiter=LimiterHealth(**limiter_health))
