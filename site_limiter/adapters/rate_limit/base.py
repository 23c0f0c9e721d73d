"""Rate limit store interfaces.

The limiter depends on this abstraction (not the concrete implementation) so
the storage backend is chosen once at startup: in-memory for a single process
or a shared Redis store for several stateless processes.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class WindowEntry:
    """Counter state for one key in the current fixed window.

    Attributes:
        count: Units consumed in the current window.
        reset_at: UNIX epoch milliseconds when the window ends.
    """

    count: int
    reset_at: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.reset_at


@dataclass(frozen=True)
class LimitInfo:
    """Quota snapshot for one key, produced without consuming a unit.

    Attributes:
        remaining: Units left in the current window (0 when limited).
        reset_time: UNIX epoch milliseconds when the current window resets.
        is_limited: Whether the next check would be denied.
    """

    remaining: int
    reset_time: int
    is_limited: bool

    @classmethod
    def fresh(cls, *, max_requests: int, window_ms: int, now_ms: int) -> "LimitInfo":
        """Quota for a key with no live window."""
        return cls(remaining=max_requests, reset_time=now_ms + window_ms, is_limited=False)

    @classmethod
    def from_entry(cls, entry: WindowEntry, *, max_requests: int) -> "LimitInfo":
        return cls(
            remaining=max(0, max_requests - entry.count),
            reset_time=entry.reset_at,
            is_limited=entry.count >= max_requests,
        )

    def retry_after_seconds(self, now_ms: int) -> int:
        """Whole seconds until the window resets (never negative)."""
        return max(0, int(math.ceil((self.reset_time - now_ms) / 1000)))


class AbstractRateLimitStore(ABC):
    """Interface for counter stores used by the limiter."""

    #: Short backend name reported by health checks.
    backend_name: str = "unknown"

    @abstractmethod
    async def try_consume(self, key: str, max_requests: int, window_ms: int) -> bool:
        """Consume one unit for ``key`` if the window still has budget.

        Args:
            key: Namespaced counter key (``limit_class:identifier``).
            max_requests: Budget for the window.
            window_ms: Window length in milliseconds.

        Returns:
            True when the unit was consumed, False when the key is limited.
        """
        raise NotImplementedError

    @abstractmethod
    async def peek(self, key: str, max_requests: int, window_ms: int) -> LimitInfo:
        """Report quota for ``key`` without consuming a unit."""
        raise NotImplementedError

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Drop the counter for ``key`` so its next check starts a new window."""
        raise NotImplementedError

    def start(self) -> None:
        """Start background work, if the store has any."""

    async def close(self) -> None:
        """Release resources held by the store."""
