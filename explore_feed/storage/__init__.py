"""Storage layer for the feed engine"""

from .cache import CacheBackend, TTLCache, CacheKeys, CacheTTL
from .repository import ContentRepository, InMemoryContentRepository, content_item_from_row
from .profile_store import PreferenceStore, InMemoryPreferenceStore, UserProfileProvider

__all__ = [
    "CacheBackend", "TTLCache", "CacheKeys", "CacheTTL",
    "ContentRepository", "InMemoryContentRepository", "content_item_from_row",
    "PreferenceStore", "InMemoryPreferenceStore", "UserProfileProvider",
]
