"""Rate limiting dependency for FastAPI routes.

This module wires the limiter facade into the HTTP layer.

Design goals:
- Minimal coupling: routes declare ``Depends(rate_limit("newsletter"))`` only.
- Fail loudly on typos: the limit class is resolved when the route is wired.
- Safe defaults: enabled unless explicitly disabled via settings.

Caller identity is the client IP: first entry of X-Forwarded-For, else
X-Real-IP, else a loopback placeholder, so the limiter never gets an empty
identifier.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Awaitable, Callable

from fastapi import HTTPException, Request, Response, status

from site_limiter.adapters.rate_limit.base import LimitInfo
from site_limiter.core.config import RateLimitSettings
from site_limiter.core.limiter import RateLimiter
from site_limiter.core.policies import DEFAULT_POLICIES

logger = logging.getLogger(__name__)

FALLBACK_CLIENT_IP = "127.0.0.1"


def get_client_ip(request: Request) -> str:
    """Best-effort client address for the current request.

    Examples:
        X-Forwarded-For: "203.0.113.1, 198.51.100.1" -> "203.0.113.1"
        X-Real-IP: " 192.0.2.1 " -> "192.0.2.1"
        neither header -> "127.0.0.1"
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return FALLBACK_CLIENT_IP


def get_rate_limiter(request: Request) -> RateLimiter:
    """Return the limiter owned by the running application.

    The instance is created by the app factory at startup and stored on
    ``app.state``; there is no module-level limiter.
    """
    return request.app.state.rate_limiter


def get_rate_limit_settings(request: Request) -> RateLimitSettings:
    """Rate limit settings the running application was built with."""
    return request.app.state.settings.rate_limit


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client addresses."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def build_rate_limit_headers(info: LimitInfo, *, limit: int) -> dict[str, str]:
    """X-RateLimit-* headers for a quota snapshot (reset in epoch seconds)."""
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(info.remaining),
        "X-RateLimit-Reset": str(info.reset_time // 1000),
    }


def rate_limit(limit_class: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing ``limit_class`` on a route.

    The class is checked against the default table when the route is wired;
    the policy itself is resolved per request from the app's limiter, so the
    headers and message always match the limit being enforced.

    Usage:
        @router.post("/newsletter", dependencies=[Depends(rate_limit("newsletter"))])

    Args:
        limit_class: Name of the limit class to enforce.

    Returns:
        Async dependency consuming one unit per request.

    Raises:
        UnknownLimitClassError: At wiring time, if the class is not defined.
    """
    DEFAULT_POLICIES.lookup(limit_class)

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        """Consume one unit for the caller or raise HTTP 429."""
        cfg = get_rate_limit_settings(request)
        if not cfg.enabled:
            return

        limiter = get_rate_limiter(request)
        policy = limiter.policy(limit_class)
        identifier = get_client_ip(request)
        key_hash = _hash_limiter_key(f"{limit_class}:{identifier}")

        allowed = await limiter.check_limit(identifier, limit_class)
        info = await limiter.get_limit_info(identifier, limit_class)
        headers = build_rate_limit_headers(info, limit=policy.max_requests)

        if allowed:
            logger.info(
                "rate_limit.allowed",
                extra={
                    "limit_class": limit_class,
                    "key_hash": key_hash,
                    "limit": policy.max_requests,
                    "remaining": info.remaining,
                    "window_ms": policy.window_ms,
                },
            )
            if cfg.include_headers:
                response.headers.update(headers)
            return

        retry_after = info.retry_after_seconds(limiter.now_ms())
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "limit_class": limit_class,
                "key_hash": key_hash,
                "limit": policy.max_requests,
                "remaining": info.remaining,
                "window_ms": policy.window_ms,
                "retry_after_s": retry_after,
                "backend": limiter.backend,
            },
        )

        error_headers: dict[str, str] = {}
        if cfg.include_headers:
            error_headers["Retry-After"] = str(retry_after)
            error_headers.update(headers)

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "message": policy.message,
                "limit_class": limit_class,
                "retry_after_seconds": retry_after,
            },
            headers=error_headers or None,
        )

    return enforce_rate_limit
