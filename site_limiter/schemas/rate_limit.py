from __future__ import annotations

from pydantic import BaseModel, Field


class LimitStatusResponse(BaseModel):
    """Quota for the calling client in one limit class."""

    limit_class: str = Field(..., description="Name of the limit class")
    limit: int = Field(..., description="Requests allowed per window", ge=1)
    window_ms: int = Field(..., description="Window length in milliseconds", ge=1)
    remaining: int = Field(..., description="Requests left in the current window", ge=0)
    reset_time: int = Field(..., description="Window reset as UNIX epoch milliseconds")
    is_limited: bool = Field(..., description="Whether the next request would be rejected")
    retry_after_seconds: int = Field(
        ...,
        description="Seconds until the window resets (0 when not limited)",
        ge=0,
    )
    backend: str = Field(..., description="Active counter backend: memory or redis")


class LimitResetResponse(BaseModel):
    """Acknowledgement of an admin counter reset."""

    limit_class: str
    reset: bool = True


class LimiterHealth(BaseModel):
    status: str = Field(..., description="healthy, degraded or unhealthy")
    backend: str
    detail: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    rate_limiter: LimiterHealth
