"""
Feed Caching System

In-process TTL cache used to avoid recomputing feed pages and profiles.
"""

import asyncio
import time
import json
import hashlib
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass


class CacheTTL:
    """TTL policy in seconds"""
    DEFAULT = 300
    USER_PREFERENCES = 600


class CacheKeys:
    """
    Deterministic cache key builders

    Feed keys follow ``feed:<type>:<param1>:...:<limit>:<offset>`` so pages
    can be invalidated by exact key or by prefix.
    """

    @staticmethod
    def _join(*parts: Any) -> str:
        return ":".join("" if part is None else str(part) for part in parts)

    @staticmethod
    def digest(data: Dict[str, Any]) -> str:
        key_string = json.dumps(data, sort_keys=True, default=str)
        return hashlib.md5(key_string.encode()).hexdigest()

    @classmethod
    def feed_prefix(cls, feed_type: str, *params: Any) -> str:
        return cls._join("feed", feed_type, *params) + ":"

    @classmethod
    def recommended_feed(
        cls,
        user_id: Optional[int],
        context_digest: str,
        limit: int,
        offset: int
    ) -> str:
        user = "guest" if user_id is None else user_id
        return cls._join("feed", "recommended", user, context_digest, limit, offset)

    @classmethod
    def personalized_feed(cls, user_id: Optional[int], context_digest: str, limit: int) -> str:
        user = "guest" if user_id is None else user_id
        return cls._join("feed", "personalized", user, context_digest, limit, 0)

    @staticmethod
    def normalise_location(location: str) -> str:
        return location.strip().lower()

    @classmethod
    def area_feed(cls, location: str, limit: int, offset: int) -> str:
        return cls._join("feed", "area", cls.normalise_location(location), limit, offset)

    @classmethod
    def category_feed(cls, category: str, limit: int, offset: int) -> str:
        return cls._join("feed", "category", category, limit, offset)

    @classmethod
    def agent_feed(cls, agent_id: int, limit: int, offset: int) -> str:
        return cls._join("feed", "agent", agent_id, limit, offset)

    @classmethod
    def developer_feed(cls, developer_id: int, limit: int, offset: int) -> str:
        return cls._join("feed", "developer", developer_id, limit, offset)

    @classmethod
    def agency_feed(
        cls,
        agency_id: int,
        limit: int,
        offset: int,
        include_agent_content: bool
    ) -> str:
        return cls._join(
            "feed", "agency", agency_id, int(include_agent_content), limit, offset
        )

    @classmethod
    def user_profile(cls, user_id: int) -> str:
        return cls._join("profile", user_id)


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


@dataclass
class CacheStats:
    """Cache statistics"""
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    sweeps: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        return self.hits / max(1, self.total_requests)


class CacheBackend(ABC):
    """
    Key/value cache contract used by the feed engine

    Implementations must never raise from these calls: an unavailable
    backend behaves as a permanent miss.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        pass

    @abstractmethod
    async def delete(self, key: str):
        pass

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        pass

    @abstractmethod
    async def clear(self):
        pass

    async def start(self):
        """Start background maintenance, if any"""

    async def close(self):
        """Release resources"""

    def get_stats(self) -> Dict[str, Any]:
        return {}

    async def ping(self) -> bool:
        """Health check for the cache"""
        test_key = f"ping_test_{int(time.time())}"
        await self.set(test_key, "pong", ttl=10)
        result = await self.get(test_key)
        await self.delete(test_key)
        return result == "pong"


class TTLCache(CacheBackend):
    """
    In-memory cache with per-entry expiry

    Expired entries are evicted lazily on lookup and eagerly by a periodic
    sweep task. There is no size cap: keys come from bounded request shapes.
    Single-process only.
    """

    def __init__(
        self,
        default_ttl: int = CacheTTL.DEFAULT,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the cache

        Args:
            default_ttl: TTL in seconds applied when ``set`` receives none
            sweep_interval: Seconds between expiry sweeps
            clock: Time source returning seconds
        """
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._sweep_task: Optional[asyncio.Task] = None

        self.stats = CacheStats()
        self.logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.expires_at > self._clock()

    async def get(self, key: str) -> Optional[Any]:
        """
        Get a value from the cache

        Args:
            key: Cache key

        Returns:
            Cached value, or None when absent or expired
        """
        try:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return None

            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self.stats.evictions += 1
                self.stats.misses += 1
                self.logger.debug(f"Cache entry expired: {key}")
                return None

            self.stats.hits += 1
            return entry.value

        except Exception as e:
            self.logger.error(f"Cache get error: {e}")
            self.stats.misses += 1
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """
        Set a value in the cache

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds
        """
        try:
            ttl = self.default_ttl if ttl is None else ttl
            self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        except Exception as e:
            self.logger.error(f"Cache set error: {e}")

    async def delete(self, key: str):
        self._entries.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``"""
        keys_to_delete = [key for key in self._entries if key.startswith(prefix)]
        for key in keys_to_delete:
            del self._entries[key]

        self.logger.debug(f"Invalidated {len(keys_to_delete)} cache entries with prefix {prefix}")
        return len(keys_to_delete)

    async def clear(self):
        self._entries.clear()

    def sweep_expired(self) -> int:
        """Evict every entry whose expiry has passed"""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]

        self.stats.evictions += len(expired)
        self.stats.sweeps += 1
        if expired:
            self.logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    async def _sweep_periodically(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep_expired()
            except Exception as e:
                self.logger.error(f"Cache sweep failed: {e}")

    async def start(self):
        """Start the background sweep task"""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_periodically())
            self.logger.info(f"Cache sweep started (interval {self.sweep_interval}s)")

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def destroy(self):
        """Stop the background sweep and drop all entries"""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        self._entries.clear()
        self.logger.info("Cache destroyed")

    async def close(self):
        await self.destroy()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        return {
            "backend": "memory",
            "hit_rate": self.stats.hit_rate,
            "total_requests": self.stats.total_requests,
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "evictions": self.stats.evictions,
            "sweeps": self.stats.sweeps,
            "size": len(self._entries),
        }
