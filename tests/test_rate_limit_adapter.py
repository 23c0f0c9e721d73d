"""Unit tests for the in-memory counter store."""

import asyncio
import threading
from unittest.mock import Mock

import pytest

from site_limiter.adapters.rate_limit.in_memory import InMemoryRateLimitStore


@pytest.mark.asyncio
async def test_allows_up_to_limit_then_blocks_until_window_expires() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    results = [await store.try_consume("k", 3, 1000) for _ in range(4)]
    assert results == [True, True, True, False]

    # Still inside the window (reset_at is inclusive)
    clock.return_value = 1001.0
    assert await store.try_consume("k", 3, 1000) is False

    clock.return_value = 1001.5
    assert await store.try_consume("k", 3, 1000) is True


@pytest.mark.asyncio
async def test_denied_check_does_not_extend_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    assert await store.try_consume("k", 1, 10_000) is True
    clock.return_value = 1009.0
    assert await store.try_consume("k", 1, 10_000) is False

    info = await store.peek("k", 1, 10_000)
    assert info.reset_time == 1_010_000

    clock.return_value = 1010.5
    assert await store.try_consume("k", 1, 10_000) is True


@pytest.mark.asyncio
async def test_isolated_by_key() -> None:
    store = InMemoryRateLimitStore(clock=Mock(return_value=1000.0))

    assert await store.try_consume("k1", 1, 60_000) is True
    assert await store.try_consume("k1", 1, 60_000) is False

    assert await store.try_consume("k2", 1, 60_000) is True


@pytest.mark.asyncio
async def test_peek_reports_full_quota_for_absent_key() -> None:
    store = InMemoryRateLimitStore(clock=Mock(return_value=1000.0))

    info = await store.peek("k", 5, 60_000)

    assert info.remaining == 5
    assert info.is_limited is False
    assert info.reset_time == 1_000_000 + 60_000
    assert "k" not in store


@pytest.mark.asyncio
async def test_peek_is_read_only() -> None:
    store = InMemoryRateLimitStore(clock=Mock(return_value=1000.0))
    await store.try_consume("k", 5, 60_000)

    first = await store.peek("k", 5, 60_000)
    second = await store.peek("k", 5, 60_000)

    assert first == second
    assert first.remaining == 4


@pytest.mark.asyncio
async def test_peek_treats_expired_entry_as_absent() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)
    for _ in range(3):
        await store.try_consume("k", 3, 1000)
    assert (await store.peek("k", 3, 1000)).is_limited is True

    clock.return_value = 1002.0
    info = await store.peek("k", 3, 1000)

    assert info.remaining == 3
    assert info.is_limited is False
    assert info.reset_time == 1_002_000 + 1000


@pytest.mark.asyncio
async def test_reset_drops_counter() -> None:
    store = InMemoryRateLimitStore(clock=Mock(return_value=1000.0))
    await store.try_consume("k", 1, 60_000)
    assert await store.try_consume("k", 1, 60_000) is False

    await store.reset("k")

    assert await store.try_consume("k", 1, 60_000) is True


@pytest.mark.asyncio
async def test_sweep_removes_only_expired_entries() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)
    await store.try_consume("short", 5, 1000)
    await store.try_consume("long", 5, 60_000)

    clock.return_value = 1005.0
    removed = store.sweep()

    assert removed == 1
    assert "short" not in store
    assert "long" in store
    assert len(store) == 1


@pytest.mark.asyncio
async def test_reclaimer_thread_sweeps_and_stops() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(cleanup_interval_seconds=0.01, clock=clock)
    await store.try_consume("k", 1, 1000)

    store.start()
    assert store.reclaimer_running is True

    clock.return_value = 1002.0
    for _ in range(200):
        if "k" not in store:
            break
        await asyncio.sleep(0.01)

    assert "k" not in store

    await store.close()
    assert store.reclaimer_running is False


@pytest.mark.asyncio
async def test_start_is_idempotent() -> None:
    store = InMemoryRateLimitStore(cleanup_interval_seconds=5)
    store.start()
    first = store._reclaimer
    store.start()

    assert store._reclaimer is first

    await store.close()


def test_concurrent_threads_never_exceed_budget() -> None:
    store = InMemoryRateLimitStore(clock=Mock(return_value=1000.0))
    allowed: list[bool] = []
    lock = threading.Lock()

    def _worker() -> None:
        result = asyncio.run(store.try_consume("shared", 10, 60_000))
        with lock:
            allowed.append(result)

    threads = [threading.Thread(target=_worker) for _ in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert allowed.count(True) == 10
    assert allowed.count(False) == 40


def test_invalid_constructor_args() -> None:
    with pytest.raises(ValueError):
        InMemoryRateLimitStore(cleanup_interval_seconds=0)


@pytest.mark.asyncio
async def test_empty_key_rejected() -> None:
    store = InMemoryRateLimitStore()

    with pytest.raises(ValueError):
        await store.try_consume("", 1, 1000)
