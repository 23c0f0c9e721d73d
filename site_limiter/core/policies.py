"""Named rate limit classes.

Each limit class pairs a fixed window length with a request budget. The table
is fixed at process start; routes reference classes by name and a typo fails
loudly instead of silently falling back to a default.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from site_limiter.core.errors import UnknownLimitClassError

MINUTE_MS = 60 * 1000


@dataclass(frozen=True)
class LimitPolicy:
    """Window and budget for one limit class.

    Attributes:
        window_ms: Fixed window length in milliseconds.
        max_requests: Units allowed per window.
        message: User-facing text returned when the budget is exhausted.
    """

    window_ms: int
    max_requests: int
    message: str = "Rate limit exceeded. Try again later."

    def __post_init__(self) -> None:
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")


class PolicyTable:
    """Immutable lookup of limit class name to policy."""

    def __init__(self, policies: Mapping[str, LimitPolicy]) -> None:
        if not policies:
            raise ValueError("policy table must define at least one limit class")
        self._policies: Mapping[str, LimitPolicy] = MappingProxyType(dict(policies))

    def __contains__(self, limit_class: object) -> bool:
        return limit_class in self._policies

    def names(self) -> list[str]:
        return sorted(self._policies)

    def lookup(self, limit_class: str) -> LimitPolicy:
        """Resolve a limit class name.

        Args:
            limit_class: Name of the limit class (e.g., "newsletter").

        Returns:
            LimitPolicy for the class.

        Raises:
            UnknownLimitClassError: If the name is not in the table.
        """
        try:
            return self._policies[limit_class]
        except KeyError:
            raise UnknownLimitClassError(
                code="unknown_limit_class",
                message=f"Unknown rate limit class: '{limit_class}'",
                details={"limit_class": limit_class, "known_classes": self.names()},
            ) from None


DEFAULT_POLICIES = PolicyTable(
    {
        "default": LimitPolicy(window_ms=MINUTE_MS, max_requests=100),
        "api": LimitPolicy(
            window_ms=MINUTE_MS,
            max_requests=60,
            message="API rate limit exceeded. Please slow down.",
        ),
        "contact-form": LimitPolicy(
            window_ms=15 * MINUTE_MS,
            max_requests=3,
            message="Too many contact requests. Please wait 15 minutes before submitting again.",
        ),
        "contact-form-api": LimitPolicy(
            window_ms=MINUTE_MS,
            max_requests=5,
            message="Too many contact requests. Please wait a minute.",
        ),
        "newsletter": LimitPolicy(
            window_ms=MINUTE_MS,
            max_requests=3,
            message="Too many newsletter signup attempts. Please wait a minute.",
        ),
        "read-only-api": LimitPolicy(window_ms=MINUTE_MS, max_requests=100),
    }
)
