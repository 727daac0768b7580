"""Tests for the read-through resource cache."""

from __future__ import annotations

import asyncio

import pytest

from kaiten_mcp.foundation.errors import ErrorKind, KaitenException
from kaiten_mcp.foundation.testing import FakeClock
from kaiten_mcp.io.cache import ALL_KEY, CacheKind, ResourceCache, board_key, read_through, space_key


def test_round_trip(clock: FakeClock) -> None:
    cache = ResourceCache(ttl=60, capacity=10, clock=clock)
    boards = [{"id": 1, "title": "Dev"}]

    cache.put(CacheKind.BOARDS, space_key(7), boards)

    assert cache.get(CacheKind.BOARDS, space_key(7)) is boards
    assert cache.get(CacheKind.BOARDS, space_key(8)) is None


def test_ttl_expiry(clock: FakeClock) -> None:
    cache = ResourceCache(ttl=60, clock=clock)
    cache.put(CacheKind.SPACES, ALL_KEY, ["s"])

    clock.advance(60)
    assert cache.get(CacheKind.SPACES, ALL_KEY) == ["s"]

    clock.advance(0.5)
    assert cache.get(CacheKind.SPACES, ALL_KEY) is None
    assert cache.size(CacheKind.SPACES) == 0


def test_lru_eviction(clock: FakeClock) -> None:
    """Inserting capacity + 1 keys evicts the least recently used one."""
    cache = ResourceCache(ttl=60, capacity=3, clock=clock)
    for i in (1, 2, 3):
        cache.put(CacheKind.BOARDS, board_key(i), i)

    cache.get(CacheKind.BOARDS, board_key(1))  # 2 is now least recent
    cache.put(CacheKind.BOARDS, board_key(4), 4)

    assert cache.size(CacheKind.BOARDS) == 3
    assert cache.get(CacheKind.BOARDS, board_key(2)) is None
    assert cache.get(CacheKind.BOARDS, board_key(1)) == 1


def test_capacity_is_per_kind(clock: FakeClock) -> None:
    cache = ResourceCache(ttl=60, capacity=1, clock=clock)
    cache.put(CacheKind.SPACES, ALL_KEY, "spaces")
    cache.put(CacheKind.USERS, ALL_KEY, "users")

    assert cache.get(CacheKind.SPACES, ALL_KEY) == "spaces"
    assert cache.get(CacheKind.USERS, ALL_KEY) == "users"


def test_invalidate_isolates_kinds(clock: FakeClock) -> None:
    cache = ResourceCache(ttl=60, clock=clock)
    cache.put(CacheKind.SPACES, ALL_KEY, 1)
    cache.put(CacheKind.SPACES, space_key(1), 2)
    cache.put(CacheKind.BOARDS, board_key(1), 3)
    cache.put(CacheKind.USERS, ALL_KEY, 4)

    assert cache.invalidate(CacheKind.SPACES) == 2
    assert cache.get(CacheKind.SPACES, ALL_KEY) is None
    assert cache.get(CacheKind.BOARDS, board_key(1)) == 3
    assert cache.get(CacheKind.USERS, ALL_KEY) == 4

    assert cache.invalidate_all() == 2
    assert all(cache.size(kind) == 0 for kind in CacheKind)


def test_zero_ttl_disables(clock: FakeClock) -> None:
    cache = ResourceCache(ttl=0, clock=clock)
    cache.put(CacheKind.SPACES, ALL_KEY, ["s"])

    assert not cache.enabled
    assert cache.get(CacheKind.SPACES, ALL_KEY) is None
    assert cache.size(CacheKind.SPACES) == 0


def test_stats(clock: FakeClock) -> None:
    cache = ResourceCache(ttl=30, capacity=5, clock=clock)
    cache.put(CacheKind.USERS, ALL_KEY, [])
    cache.get(CacheKind.USERS, ALL_KEY)
    cache.get(CacheKind.USERS, "missing")

    stats = cache.stats()
    assert stats["enabled"] is True
    assert (stats["hits"], stats["misses"]) == (1, 1)
    assert stats["users"] == {"size": 1, "capacity": 5}


def test_invalid_capacity() -> None:
    with pytest.raises(ValueError):
        ResourceCache(capacity=0)


# ═════════════════════════════════════════════════════════════════════════════
# Read-Through
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
class TestReadThrough:

    async def test_miss_then_hit(self, clock: FakeClock) -> None:
        cache = ResourceCache(ttl=60, clock=clock)
        calls = 0

        async def fetch() -> list[dict[str, int]]:
            nonlocal calls
            calls += 1
            return [{"id": 1}]

        first, hit1 = await read_through(cache, CacheKind.SPACES, ALL_KEY, fetch)
        second, hit2 = await read_through(cache, CacheKind.SPACES, ALL_KEY, fetch)

        assert (hit1, hit2) == (False, True)
        assert first == second == [{"id": 1}]
        assert calls == 1

    async def test_failure_is_not_cached(self, clock: FakeClock) -> None:
        cache = ResourceCache(ttl=60, clock=clock)

        async def failing() -> object:
            raise KaitenException.create(ErrorKind.SERVER_ERROR, "down", http_status=503)

        with pytest.raises(KaitenException):
            await read_through(cache, CacheKind.BOARDS, board_key(1), failing)

        assert cache.size(CacheKind.BOARDS) == 0

    async def test_disabled_cache_always_fetches(self, clock: FakeClock) -> None:
        cache = ResourceCache(ttl=0, clock=clock)
        calls = 0

        async def fetch() -> int:
            nonlocal calls
            calls += 1
            return calls

        assert (await read_through(cache, CacheKind.USERS, ALL_KEY, fetch))[1] is False
        assert (await read_through(cache, CacheKind.USERS, ALL_KEY, fetch))[1] is False
        assert calls == 2

    async def test_concurrent_misses_share_one_fetch(self, clock: FakeClock) -> None:
        cache = ResourceCache(ttl=60, clock=clock)
        release = asyncio.Event()
        calls = 0

        async def fetch() -> list[str]:
            nonlocal calls
            calls += 1
            await release.wait()
            return ["s"]

        tasks = [asyncio.create_task(read_through(cache, CacheKind.SPACES, ALL_KEY, fetch)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert [hit for _, hit in results] == [False, True, True]
        assert all(value == ["s"] for value, _ in results)

    async def test_shared_failure_reaches_every_waiter(self, clock: FakeClock) -> None:
        cache = ResourceCache(ttl=60, clock=clock)
        release = asyncio.Event()
        calls = 0

        async def failing() -> object:
            nonlocal calls
            calls += 1
            await release.wait()
            raise KaitenException.create(ErrorKind.SERVER_ERROR, "down", http_status=503)

        tasks = [asyncio.create_task(read_through(cache, CacheKind.BOARDS, board_key(1), failing)) for _ in range(2)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert calls == 1
        assert all(isinstance(r, KaitenException) for r in results)
        assert cache.size(CacheKind.BOARDS) == 0

    async def test_waiter_takes_over_after_cancellation(self, clock: FakeClock) -> None:
        cache = ResourceCache(ttl=60, clock=clock)
        release = asyncio.Event()
        calls = 0

        async def fetch() -> int:
            nonlocal calls
            calls += 1
            await release.wait()
            return calls

        first = asyncio.create_task(read_through(cache, CacheKind.USERS, ALL_KEY, fetch))
        await asyncio.sleep(0)
        second = asyncio.create_task(read_through(cache, CacheKind.USERS, ALL_KEY, fetch))
        await asyncio.sleep(0)

        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first
        release.set()

        assert await second == (2, False)
        assert calls == 2
