"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the environment before settings are imported so developer .env
files and real Redis credentials never leak into the run.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

# Tests must start on the in-memory backend
for _name in (
    "UPSTASH_REDIS_REST_URL",
    "UPSTASH_REDIS_REST_TOKEN",
    "RATE_LIMIT_REDIS_REST_URL",
    "RATE_LIMIT_REDIS_REST_TOKEN",
):
    os.environ.pop(_name, None)

os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")

import asyncio
import json

import httpx
import pytest


class FakeClock:
    """Deterministic clock returning UNIX seconds."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeRedisRest:
    """In-process stand-in for a Redis REST endpoint, served via httpx.MockTransport.

    Supports GET, SET (with PX), DEL and PING. ``yield_between`` makes every
    command hand control back to the event loop first, so concurrent callers
    interleave their GET and SET calls.
    """

    def __init__(self, clock: FakeClock, token: str = "test-token") -> None:
        self.clock = clock
        self.token = token
        self.data: dict[str, tuple[str, int | None]] = {}
        self.commands: list[list[str]] = []
        self.yield_between = False

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _get(self, key: str) -> str | None:
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._now_ms() >= expires_at:
            del self.data[key]
            return None
        return value

    def ttl_ms(self, key: str) -> int | None:
        item = self.data.get(key)
        if item is None or item[1] is None:
            return None
        return item[1] - self._now_ms()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if self.yield_between:
            await asyncio.sleep(0)

        if request.headers.get("Authorization") != f"Bearer {self.token}":
            return httpx.Response(401, json={"error": "Unauthorized"})

        command = json.loads(request.content)
        self.commands.append(command)
        name = command[0].upper()

        if name == "PING":
            return httpx.Response(200, json={"result": "PONG"})
        if name == "GET":
            return httpx.Response(200, json={"result": self._get(command[1])})
        if name == "SET":
            expires_at = None
            if len(command) >= 5 and command[3].upper() == "PX":
                expires_at = self._now_ms() + int(command[4])
            self.data[command[1]] = (command[2], expires_at)
            return httpx.Response(200, json={"result": "OK"})
        if name == "DEL":
            existed = self.data.pop(command[1], None) is not None
            return httpx.Response(200, json={"result": int(existed)})

        return httpx.Response(400, json={"error": f"ERR unknown command '{name}'"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeRedisRest:
    return FakeRedisRest(clock)
