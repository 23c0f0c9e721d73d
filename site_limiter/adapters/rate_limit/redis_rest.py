"""Shared fixed-window counter store backed by a Redis REST endpoint.

Commands are sent as JSON arrays to an Upstash-style REST API
(``POST <url>`` with ``["GET", key]`` and a bearer token), so stateless
processes can share one budget per key without a persistent connection.

Notes:
- Get-then-set is not atomic across processes. Overlapping checks that read
  the same count are all admitted, so a burst of W overlapping checks can
  overshoot the budget by at most W - 1 units. A denied check never writes,
  so once the stored count reaches the budget the window stays closed.
- Every backend failure fails open: the check is allowed and a single
  warning is logged. The limiter must not take the site down with it.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from typing import Any, Callable

import httpx

from site_limiter.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    LimitInfo,
    WindowEntry,
)
from site_limiter.core.errors import RateLimitBackendError

logger = logging.getLogger(__name__)


def _hash_key(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


class RedisRestRateLimitStore(AbstractRateLimitStore):
    """Counter store delegating state to a shared Redis REST service."""

    backend_name = "redis"

    def __init__(
        self,
        *,
        url: str,
        token: str,
        timeout_seconds: float = 1.0,
        clock: Callable[[], float] = time.time,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the REST client.

        Args:
            url: Base URL of the Redis REST endpoint.
            token: Bearer token for the endpoint.
            timeout_seconds: Deadline for each backend command, end to end.
            clock: Time source function returning UNIX time in seconds.
            transport: Optional httpx transport (used by tests).

        Raises:
            ValueError: If url/token are missing or the timeout is invalid.
        """
        if not url or not token:
            raise ValueError("url and token are required")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        try:
            base_url = httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise ValueError(f"invalid url: {exc}") from exc
        if base_url.scheme not in ("http", "https"):
            raise ValueError("url must use http or https")

        self._clock = clock
        self._timeout = timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def _command(self, *args: str | int) -> Any:
        """Run one Redis command and return its ``result`` field.

        httpx timeouts bound each connect/read/write step separately, so the
        whole exchange is also wrapped in a single deadline.

        Raises:
            TimeoutError: If the command does not complete within the timeout.
            httpx.HTTPError: On transport failures, timeouts and non-2xx codes.
            RateLimitBackendError: On error payloads or malformed responses.
        """
        return await asyncio.wait_for(self._send(*args), timeout=self._timeout)

    async def _send(self, *args: str | int) -> Any:
        response = await self._client.post("", json=[str(arg) for arg in args])
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as exc:
            raise RateLimitBackendError(
                code="rate_limit_backend_malformed_response",
                message="Redis REST response is not valid JSON",
                details={"operation": str(args[0])},
            ) from exc

        if not isinstance(payload, dict):
            raise RateLimitBackendError(
                code="rate_limit_backend_malformed_response",
                message="Redis REST response is not a JSON object",
                details={"operation": str(args[0])},
            )
        if payload.get("error"):
            raise RateLimitBackendError(
                code="rate_limit_backend_error",
                message=str(payload["error"]),
                details={"operation": str(args[0])},
            )
        return payload.get("result")

    @staticmethod
    def _decode_entry(raw: Any) -> WindowEntry | None:
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            entry = WindowEntry(count=int(data["count"]), reset_at=int(data["resetAt"]))
        except (TypeError, ValueError, KeyError) as exc:
            raise RateLimitBackendError(
                code="rate_limit_backend_malformed_entry",
                message="Stored rate limit entry could not be decoded",
            ) from exc
        return entry

    @staticmethod
    def _encode_entry(entry: WindowEntry) -> str:
        return json.dumps({"count": entry.count, "resetAt": entry.reset_at})

    async def _get_entry(self, key: str, now_ms: int) -> WindowEntry | None:
        entry = self._decode_entry(await self._command("GET", key))
        if entry is None or entry.is_expired(now_ms):
            return None
        return entry

    async def _write_entry(self, key: str, entry: WindowEntry, now_ms: int) -> None:
        # Expire with the current window, never extend it. The key outlives
        # reset_at by 1 ms because the window is still live at reset_at.
        ttl_ms = entry.reset_at - now_ms + 1
        await self._command("SET", key, self._encode_entry(entry), "PX", max(1, ttl_ms))

    def _log_backend_error(self, operation: str, key: str, exc: Exception) -> None:
        logger.warning(
            "rate_limit.backend_error",
            extra={
                "operation": operation,
                "key_hash": _hash_key(key),
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
                "fail_open": True,
            },
        )

    async def try_consume(self, key: str, max_requests: int, window_ms: int) -> bool:
        if not key:
            raise ValueError("key must be a non-empty string")

        now_ms = self._now_ms()
        try:
            entry = await self._get_entry(key, now_ms)
            if entry is None:
                fresh = WindowEntry(count=1, reset_at=now_ms + window_ms)
                await self._write_entry(key, fresh, now_ms)
                return True

            if entry.count >= max_requests:
                return False

            entry.count += 1
            await self._write_entry(key, entry, now_ms)
            return True
        except Exception as exc:  # noqa: BLE001 - fail open on any backend failure
            self._log_backend_error("try_consume", key, exc)
            return True

    async def peek(self, key: str, max_requests: int, window_ms: int) -> LimitInfo:
        now_ms = self._now_ms()
        try:
            entry = await self._get_entry(key, now_ms)
        except Exception as exc:  # noqa: BLE001 - report full quota when unknown
            self._log_backend_error("peek", key, exc)
            entry = None

        if entry is None:
            return LimitInfo.fresh(max_requests=max_requests, window_ms=window_ms, now_ms=now_ms)
        return LimitInfo.from_entry(entry, max_requests=max_requests)

    async def reset(self, key: str) -> None:
        try:
            await self._command("DEL", key)
        except Exception as exc:  # noqa: BLE001
            self._log_backend_error("reset", key, exc)

    async def ping(self) -> bool:
        """Return True when the backend answers PING."""
        try:
            return await self._command("PING") == "PONG"
        except Exception as exc:  # noqa: BLE001
            self._log_backend_error("ping", "health-check", exc)
            return False

    async def close(self) -> None:
        await self._client.aclose()
