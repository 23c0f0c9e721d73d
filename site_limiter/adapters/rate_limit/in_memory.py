"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, and no operation awaits while
  holding it, so concurrent checks on one key never both see spare budget.
- A background reclaimer thread drops expired windows to bound memory.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from site_limiter.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    LimitInfo,
    WindowEntry,
)

logger = logging.getLogger(__name__)


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Counter store keeping one fixed window per key in process memory.

    Windows start at the first check for a key (not at wall-clock boundaries)
    and last ``window_ms``. Expired entries are treated as absent by every
    operation, whether or not the reclaimer has swept them yet.
    """

    backend_name = "memory"

    def __init__(
        self,
        *,
        cleanup_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            cleanup_interval_seconds: Seconds between reclaimer sweeps.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If cleanup_interval_seconds is not positive.
        """
        if cleanup_interval_seconds <= 0:
            raise ValueError("cleanup_interval_seconds must be > 0")

        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, WindowEntry] = {}
        self._stop_event = threading.Event()
        self._reclaimer: threading.Thread | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _live_entry_locked(self, key: str, now_ms: int) -> WindowEntry | None:
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(now_ms):
            return None
        return entry

    async def try_consume(self, key: str, max_requests: int, window_ms: int) -> bool:
        if not key:
            raise ValueError("key must be a non-empty string")

        now_ms = self._now_ms()
        with self._lock:
            entry = self._live_entry_locked(key, now_ms)
            if entry is None:
                self._entries[key] = WindowEntry(count=1, reset_at=now_ms + window_ms)
                return True

            if entry.count < max_requests:
                entry.count += 1
                return True

            # Limited: leave reset_at alone so the block ends with the window.
            return False

    async def peek(self, key: str, max_requests: int, window_ms: int) -> LimitInfo:
        now_ms = self._now_ms()
        with self._lock:
            entry = self._live_entry_locked(key, now_ms)
            if entry is None:
                return LimitInfo.fresh(
                    max_requests=max_requests, window_ms=window_ms, now_ms=now_ms
                )
            return LimitInfo.from_entry(entry, max_requests=max_requests)

    async def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        now_ms = self._now_ms()
        with self._lock:
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now_ms)]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)

        if expired:
            logger.debug(
                "rate_limit.reclaimed",
                extra={"removed": len(expired), "entries": remaining},
            )
        return len(expired)

    def _run_reclaimer(self) -> None:
        while not self._stop_event.wait(self._cleanup_interval):
            try:
                self.sweep()
            except Exception:  # noqa: BLE001 - keep the reclaimer alive
                logger.exception("rate_limit.reclaimer_failed")

    def start(self) -> None:
        """Start the background reclaimer thread (idempotent)."""
        if self._reclaimer is not None and self._reclaimer.is_alive():
            return

        self._stop_event.clear()
        self._reclaimer = threading.Thread(
            target=self._run_reclaimer,
            name="rate-limit-reclaimer",
            daemon=True,
        )
        self._reclaimer.start()

    @property
    def reclaimer_running(self) -> bool:
        return self._reclaimer is not None and self._reclaimer.is_alive()

    async def close(self) -> None:
        """Stop the reclaimer thread."""
        self._stop_event.set()
        if self._reclaimer is not None:
            self._reclaimer.join(timeout=self._cleanup_interval)
            self._reclaimer = None
