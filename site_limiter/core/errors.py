"""Application-level exception types.

This module defines domain errors used across the limiter, its storage
adapters and the HTTP layer, enabling consistent error handling, logging,
and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    hint: str
    limit_class: str
    known_classes: list[str]
    operation: str


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ConfigurationAppError(AppError):
    """Raised when the process is wired with invalid configuration."""


class UnknownLimitClassError(ConfigurationAppError):
    """Raised when a limit class name is not in the policy table."""


class RateLimitBackendError(AppError):
    """Raised inside the shared store adapter when the backend misbehaves.

    Never escapes the adapter: callers see a fail-open verdict instead.
    """


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""
