import fnmatch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from explore_feed.core.models import FeedResult, FeedType, UserProfile
from explore_feed.storage.redis_cache import RedisCache, decode_value, encode_value

from conftest import make_item


class DictClient:
    """Minimal stand-in for ``redis.asyncio.Redis`` backed by a dict"""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def scan_iter(self, match=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatch(key, match):
                yield key

    async def aclose(self):
        self.closed = True


class DownClient:
    async def get(self, key):
        raise RedisConnectionError("connection refused")

    async def set(self, key, value, ex=None):
        raise RedisConnectionError("connection refused")

    async def delete(self, key):
        raise RedisConnectionError("connection refused")

    async def scan_iter(self, match=None):
        raise RedisConnectionError("connection refused")
        yield

    async def aclose(self):
        raise RedisConnectionError("connection refused")


@pytest.fixture
def client():
    return DictClient()


@pytest.fixture
def cache(client):
    return RedisCache(client=client, default_ttl=120)


@pytest.mark.asyncio
async def test_feed_result_survives_the_wire(cache, client):
    page = FeedResult.for_page(
        [make_item(1, score=12.5, lifestyle_categories=frozenset({"beach"}))],
        FeedType.AREA, limit=1, offset=0, metadata={"location": "cape town"},
    )
    await cache.set("feed:area:cape town:1:0", page, ttl=30)

    cached = await cache.get("feed:area:cape town:1:0")

    assert isinstance(cached, FeedResult)
    assert cached.shorts[0].id == 1
    assert cached.shorts[0].lifestyle_categories == frozenset({"beach"})
    assert cached.shorts[0].created_at == page.shorts[0].created_at
    assert cached.has_more is True
    assert client.expiry["explore-feed:feed:area:cape town:1:0"] == 30


@pytest.mark.asyncio
async def test_ranked_item_lists_and_profiles_are_rebuilt(cache):
    await cache.set("feed:personalized:1:abc:20:0", [make_item(1, score=4.0), make_item(2)])
    await cache.set("profile:1", UserProfile(user_id=1, followed_creators=frozenset({3})))

    items = await cache.get("feed:personalized:1:abc:20:0")
    profile = await cache.get("profile:1")

    assert [item.id for item in items] == [1, 2]
    assert items[0].score == 4.0
    assert profile.followed_creators == frozenset({3})


@pytest.mark.asyncio
async def test_default_ttl_and_namespace(cache, client):
    await cache.set("k", {"a": 1})
    assert client.expiry["explore-feed:k"] == 120
    assert await cache.get("k") == {"a": 1}


@pytest.mark.asyncio
async def test_delete_prefix_is_namespaced(cache, client):
    await cache.set("feed:agency:12:1:20:0", [])
    await cache.set("feed:agency:12:1:20:20", [])
    await cache.set("feed:agency:120:1:20:0", [])
    client.data["other-app:feed:agency:12:1:20:0"] = b"{}"

    assert await cache.delete_prefix("feed:agency:12:") == 2
    assert "explore-feed:feed:agency:120:1:20:0" in client.data
    assert "other-app:feed:agency:12:1:20:0" in client.data


@pytest.mark.asyncio
async def test_undecodable_entry_is_a_miss(cache, client):
    client.data["explore-feed:broken"] = b"not json"
    assert await cache.get("broken") is None
    assert cache.misses == 1


@pytest.mark.asyncio
async def test_unavailable_redis_degrades_to_miss():
    cache = RedisCache(client=DownClient())

    await cache.set("k", "v")
    assert await cache.get("k") is None
    await cache.delete("k")
    assert await cache.delete_prefix("feed:") == 0
    assert not await cache.ping()
    await cache.close()

    assert cache.fallback_activations >= 4
    assert cache.get_stats()["backend"] == "redis"


@pytest.mark.asyncio
async def test_close(cache, client):
    await cache.close()
    assert client.closed


def test_encode_tags_model_types():
    assert decode_value(encode_value({"x": [1, 2]})) == {"x": [1, 2]}
    assert decode_value(encode_value([])) == []
    assert decode_value(encode_value(frozenset({"b", "a"}))) == ["a", "b"]
