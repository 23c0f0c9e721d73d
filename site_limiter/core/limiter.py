"""Rate limiter facade.

Routes depend on :class:`RateLimiter` only. It namespaces keys by limit class,
resolves policies, and delegates to exactly one store chosen at startup by
:func:`create_rate_limiter`: the shared Redis store when its URL and token are
configured, the in-memory store otherwise.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from site_limiter.adapters.rate_limit.base import AbstractRateLimitStore, LimitInfo
from site_limiter.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from site_limiter.adapters.rate_limit.redis_rest import RedisRestRateLimitStore
from site_limiter.core.config import RateLimitSettings
from site_limiter.core.policies import DEFAULT_POLICIES, LimitPolicy, PolicyTable

logger = logging.getLogger(__name__)


def build_key(limit_class: str, identifier: str) -> str:
    """Build the namespaced counter key for an identifier within a class."""
    return f"{limit_class}:{identifier}"


class RateLimiter:
    """Public surface of the rate limiter.

    Attributes:
        store: Active counter store (never swapped after construction).
        policies: Policy table used to resolve limit classes.
    """

    def __init__(
        self,
        store: AbstractRateLimitStore,
        *,
        policies: PolicyTable = DEFAULT_POLICIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.policies = policies
        self._clock = clock

    @property
    def using_remote(self) -> bool:
        return isinstance(self.store, RedisRestRateLimitStore)

    @property
    def backend(self) -> str:
        return self.store.backend_name

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def policy(self, limit_class: str) -> LimitPolicy:
        """Resolve a limit class, raising UnknownLimitClassError on typos."""
        return self.policies.lookup(limit_class)

    async def check_limit(self, identifier: str, limit_class: str) -> bool:
        """Consume one unit for ``identifier`` in ``limit_class``.

        Args:
            identifier: Caller identity (e.g., client IP). Must be non-empty.
            limit_class: Name of the limit class.

        Returns:
            True when allowed, False when the caller is over quota.

        Raises:
            UnknownLimitClassError: If the limit class is not defined.
            ValueError: If identifier is empty.
        """
        policy = self.policy(limit_class)
        if not identifier:
            raise ValueError("identifier must be a non-empty string")

        return await self.store.try_consume(
            build_key(limit_class, identifier),
            policy.max_requests,
            policy.window_ms,
        )

    async def get_limit_info(self, identifier: str, limit_class: str) -> LimitInfo:
        """Report remaining quota without consuming a unit."""
        policy = self.policy(limit_class)
        if not identifier:
            raise ValueError("identifier must be a non-empty string")

        return await self.store.peek(
            build_key(limit_class, identifier),
            policy.max_requests,
            policy.window_ms,
        )

    async def reset_limit(self, identifier: str, limit_class: str) -> None:
        """Clear the counter for ``identifier`` in ``limit_class``."""
        self.policy(limit_class)
        key = build_key(limit_class, identifier)
        await self.store.reset(key)
        logger.info(
            "rate_limit.reset",
            extra={"limit_class": limit_class, "backend": self.backend},
        )

    async def health_check(self) -> dict[str, Any]:
        """Report backend health.

        The in-memory backend is always reported as degraded: it works, but
        each process enforces its own budget.
        """
        if isinstance(self.store, RedisRestRateLimitStore):
            healthy = await self.store.ping()
            return {
                "status": "healthy" if healthy else "unhealthy",
                "backend": self.backend,
            }

        return {
            "status": "degraded",
            "backend": self.backend,
            "detail": "In-memory limiter: limits are enforced per process",
        }

    def start(self) -> None:
        self.store.start()

    async def shutdown(self) -> None:
        await self.store.close()


def create_rate_limiter(
    rate_limit_settings: RateLimitSettings,
    *,
    policies: PolicyTable = DEFAULT_POLICIES,
    clock: Callable[[], float] = time.time,
    transport: Any = None,
) -> RateLimiter:
    """Build the limiter with the backend selected from settings.

    The choice is made once. When the remote backend is configured but cannot
    be built, the process keeps the in-memory backend for its whole lifetime.

    Args:
        rate_limit_settings: Resolved rate limit settings.
        policies: Policy table to use.
        clock: Time source function returning UNIX time in seconds.
        transport: Optional httpx transport forwarded to the Redis store.

    Returns:
        RateLimiter: Configured limiter (reclaimer not yet started).
    """
    store: AbstractRateLimitStore | None = None

    if rate_limit_settings.remote_configured:
        try:
            store = RedisRestRateLimitStore(
                url=rate_limit_settings.redis_rest_url or "",
                token=rate_limit_settings.redis_rest_token or "",
                timeout_seconds=rate_limit_settings.backend_timeout_seconds,
                clock=clock,
                transport=transport,
            )
        except ValueError as exc:
            logger.warning(
                "rate_limit.remote_setup_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            store = None

    if store is None:
        store = InMemoryRateLimitStore(
            cleanup_interval_seconds=rate_limit_settings.cleanup_interval_seconds,
            clock=clock,
        )

    limiter = RateLimiter(store, policies=policies, clock=clock)
    log = logger.info if limiter.using_remote else logger.warning
    log(
        "rate_limit.backend_selected",
        extra={
            "backend": limiter.backend,
            "using_remote": limiter.using_remote,
        },
    )
    return limiter
