"""
Redis-backed feed cache

Shared cache for multi-process deployments. Any Redis failure degrades to a
cache miss so feed generation keeps working uncached.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import orjson
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .cache import CacheBackend, CacheTTL
from ..core.models import ContentItem, FeedResult, UserProfile


def _decode_items(data: List[Dict[str, Any]]) -> List[ContentItem]:
    return [ContentItem.from_dict(item) for item in data]


DECODERS: Dict[str, Callable[[Any], Any]] = {
    "FeedResult": FeedResult.from_dict,
    "UserProfile": UserProfile.from_dict,
    "ContentItemList": _decode_items,
}

CACHE_ERRORS = (RedisError, OSError)


def encode_value(value: Any) -> bytes:
    """Serialize a value, tagging model objects so they can be rebuilt"""
    type_name = type(value).__name__
    if type_name in DECODERS:
        envelope = {"type": type_name, "data": value.to_dict()}
    elif isinstance(value, list) and value and all(isinstance(item, ContentItem) for item in value):
        envelope = {"type": "ContentItemList", "data": [item.to_dict() for item in value]}
    else:
        envelope = {"type": "json", "data": value}
    return orjson.dumps(envelope, default=_encode_default)


def decode_value(raw: bytes) -> Any:
    envelope = orjson.loads(raw)
    decoder = DECODERS.get(envelope.get("type"))
    if decoder is None:
        return envelope.get("data")
    return decoder(envelope["data"])


def _encode_default(obj: Any) -> Any:
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Type is not serializable: {type(obj).__name__}")


class RedisCache(CacheBackend):
    """Cache backend over ``redis.asyncio`` with degrade-to-miss semantics"""

    def __init__(
        self,
        client: Optional[Any] = None,
        url: str = "redis://localhost:6379/0",
        namespace: str = "explore-feed:",
        default_ttl: int = CacheTTL.DEFAULT
    ):
        """
        Initialize the Redis cache

        Args:
            client: Pre-built async Redis client (built from ``url`` if omitted)
            url: Redis connection URL
            namespace: Prefix applied to every key
            default_ttl: TTL in seconds applied when ``set`` receives none
        """
        self.client = client if client is not None else aioredis.from_url(url)
        self.namespace = namespace
        self.default_ttl = default_ttl

        self.hits = 0
        self.misses = 0
        self.fallback_activations = 0

        self.logger = logging.getLogger(__name__)

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def _degrade(self, operation: str, error: Exception):
        self.fallback_activations += 1
        self.logger.warning(f"Redis {operation} failed, degrading to miss: {error}")

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(self._key(key))
        except CACHE_ERRORS as e:
            self._degrade("get", e)
            self.misses += 1
            return None

        if raw is None:
            self.misses += 1
            return None

        try:
            value = decode_value(raw)
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            self.logger.error(f"Discarding undecodable cache entry {key}: {e}")
            self.misses += 1
            return None

        self.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        ttl = self.default_ttl if ttl is None else ttl
        try:
            payload = encode_value(value)
        except TypeError as e:
            self.logger.error(f"Cannot cache value for {key}: {e}")
            return

        try:
            await self.client.set(self._key(key), payload, ex=max(1, int(ttl)))
        except CACHE_ERRORS as e:
            self._degrade("set", e)

    async def delete(self, key: str):
        try:
            await self.client.delete(self._key(key))
        except CACHE_ERRORS as e:
            self._degrade("delete", e)

    async def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        try:
            async for raw_key in self.client.scan_iter(match=f"{self._key(prefix)}*"):
                deleted += await self.client.delete(raw_key)
        except CACHE_ERRORS as e:
            self._degrade("delete_prefix", e)
        return deleted

    async def clear(self):
        await self.delete_prefix("")

    async def close(self):
        try:
            await self.client.aclose()
        except CACHE_ERRORS as e:
            self.logger.warning(f"Error closing Redis connection: {e}")

    def get_stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "backend": "redis",
            "hit_rate": self.hits / max(1, total),
            "total_requests": total,
            "hits": self.hits,
            "misses": self.misses,
            "fallback_activations": self.fallback_activations,
        }
