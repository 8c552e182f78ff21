import asyncio

import pytest

from explore_feed.storage.cache import CacheKeys, TTLCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.mark.asyncio
async def test_get_returns_value_within_ttl():
    clock = FakeClock()
    cache = TTLCache(clock=clock)

    await cache.set("feed:area:durban:20:0", {"shorts": []}, ttl=60)
    clock.advance(59)

    assert await cache.get("feed:area:durban:20:0") == {"shorts": []}
    assert cache.stats.hits == 1


@pytest.mark.asyncio
async def test_expired_entry_is_evicted_on_access():
    clock = FakeClock()
    cache = TTLCache(clock=clock)

    await cache.set("k", "v", ttl=10)
    clock.advance(10)

    assert await cache.get("k") is None
    assert len(cache) == 0
    assert cache.stats.evictions == 1
    assert cache.stats.misses == 1


@pytest.mark.asyncio
async def test_default_ttl_is_applied():
    clock = FakeClock()
    cache = TTLCache(default_ttl=300, clock=clock)

    await cache.set("k", "v")
    clock.advance(299)
    assert await cache.get("k") == "v"

    clock.advance(1)
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_one_second_ttl_expires_in_real_time():
    cache = TTLCache()

    await cache.set("short-lived", 42, ttl=1)
    assert await cache.get("short-lived") == 42

    await asyncio.sleep(1.1)
    assert await cache.get("short-lived") is None


@pytest.mark.asyncio
async def test_missing_key_is_a_miss_not_an_error():
    cache = TTLCache()
    assert await cache.get("nope") is None


@pytest.mark.asyncio
async def test_delete_and_clear():
    cache = TTLCache()
    await cache.set("a", 1)
    await cache.set("b", 2)

    await cache.delete("a")
    await cache.delete("never-set")
    assert await cache.get("a") is None
    assert await cache.get("b") == 2

    await cache.clear()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_delete_prefix_only_removes_matching_keys():
    cache = TTLCache()
    await cache.set(CacheKeys.agency_feed(12, 20, 0, True), "p1")
    await cache.set(CacheKeys.agency_feed(12, 20, 20, True), "p2")
    await cache.set(CacheKeys.agency_feed(120, 20, 0, True), "other agency")
    await cache.set(CacheKeys.area_feed("Durban", 20, 0), "area")

    removed = await cache.delete_prefix(CacheKeys.feed_prefix("agency", 12))

    assert removed == 2
    assert await cache.get(CacheKeys.agency_feed(120, 20, 0, True)) == "other agency"
    assert await cache.get(CacheKeys.area_feed("Durban", 20, 0)) == "area"


def test_sweep_expired_removes_only_stale_entries():
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    asyncio.run(cache.set("stale", 1, ttl=5))
    asyncio.run(cache.set("fresh", 2, ttl=50))

    clock.advance(10)
    assert cache.sweep_expired() == 1
    assert "stale" not in cache
    assert "fresh" in cache


@pytest.mark.asyncio
async def test_background_sweep_runs_until_destroyed():
    clock = FakeClock()
    cache = TTLCache(sweep_interval=0.02, clock=clock)
    await cache.set("never-read", "x", ttl=1)
    await cache.start()
    assert cache.is_sweeping

    clock.advance(5)
    await asyncio.sleep(0.1)

    assert len(cache) == 0
    assert cache.stats.sweeps >= 1

    await cache.destroy()
    assert not cache.is_sweeping


@pytest.mark.asyncio
async def test_start_is_idempotent():
    cache = TTLCache(sweep_interval=10)
    await cache.start()
    task = cache._sweep_task
    await cache.start()

    assert cache._sweep_task is task
    await cache.destroy()


@pytest.mark.asyncio
async def test_ping_and_stats():
    cache = TTLCache()
    assert await cache.ping()

    stats = cache.get_stats()
    assert stats["backend"] == "memory"
    assert stats["hits"] == 1
    assert stats["size"] == 0


def test_feed_keys_are_deterministic():
    assert CacheKeys.area_feed(" Cape Town ", 20, 0) == "feed:area:cape town:20:0"
    assert CacheKeys.category_feed("pet_friendly", 10, 20) == "feed:category:pet_friendly:10:20"
    assert CacheKeys.agent_feed(5, 20, 0) == "feed:agent:5:20:0"
    assert CacheKeys.developer_feed(9, 20, 40) == "feed:developer:9:20:40"
    assert CacheKeys.agency_feed(12, 20, 0, False) == "feed:agency:12:0:20:0"
    assert CacheKeys.user_profile(3) == "profile:3"

    digest = CacheKeys.digest({"session_history": [3, 1], "filters": None})
    assert digest == CacheKeys.digest({"filters": None, "session_history": [3, 1]})
    assert CacheKeys.recommended_feed(None, digest, 20, 0) == f"feed:recommended:guest:{digest}:20:0"
