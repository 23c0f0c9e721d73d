from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, status

from site_limiter.core.auth import verify_api_key
from site_limiter.core.limiter import RateLimiter
from site_limiter.core.rate_limit import get_client_ip, get_rate_limiter, rate_limit
from site_limiter.schemas.rate_limit import LimitResetResponse, LimitStatusResponse

router = APIRouter(tags=["Rate Limit"])


def _require_known_class(limiter: RateLimiter, limit_class: str) -> None:
    """Reject a client-supplied limit class the policy table does not define."""
    if limit_class not in limiter.policies:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "message": f"Unknown limit class: {limit_class}",
                "known_classes": limiter.policies.names(),
            },
        )


@router.get(
    "/rate-limit/status",
    response_model=LimitStatusResponse,
    dependencies=[Depends(rate_limit("read-only-api"))],
)
async def rate_limit_status(
    request: Request,
    limit_class: str = Query("default", description="Limit class to report on"),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> LimitStatusResponse:
    """Report the caller's quota in ``limit_class`` without consuming it.

    Unknown limit classes come from the client here, so they are answered
    with HTTP 404 rather than treated as configuration errors.
    """
    _require_known_class(limiter, limit_class)
    policy = limiter.policy(limit_class)
    info = await limiter.get_limit_info(get_client_ip(request), limit_class)

    return LimitStatusResponse(
        limit_class=limit_class,
        limit=policy.max_requests,
        window_ms=policy.window_ms,
        remaining=info.remaining,
        reset_time=info.reset_time,
        is_limited=info.is_limited,
        retry_after_seconds=info.retry_after_seconds(limiter.now_ms()) if info.is_limited else 0,
        backend=limiter.backend,
    )


@router.delete(
    "/rate-limit/{limit_class}/{identifier}",
    response_model=LimitResetResponse,
    dependencies=[Depends(verify_api_key)],
)
async def reset_rate_limit(
    limit_class: str = Path(..., description="Limit class of the counter"),
    identifier: str = Path(..., description="Client identifier (e.g., IP address)"),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> LimitResetResponse:
    """Clear a caller's counter so their next request starts a fresh window."""
    _require_known_class(limiter, limit_class)
    await limiter.reset_limit(identifier, limit_class)
    return LimitResetResponse(limit_class=limit_class)
