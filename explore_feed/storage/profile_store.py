"""
User Profile Store

Preference records, engagement learning and feed sessions backing
personalized ranking.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List, Optional

from .cache import CacheBackend, CacheKeys, CacheTTL
from ..core.exceptions import EngagementRecordError
from ..core.models import (
    ContentItem, EngagementSignal, EngagementType, FeedSession, UserProfile, utcnow
)


MAX_ENGAGEMENT_HISTORY = 100

LEARNING_SIGNALS = (EngagementType.COMPLETE, EngagementType.SAVE)


class PreferenceStore(ABC):
    """Persistence contract for preference records, engagements and sessions"""

    @abstractmethod
    async def get_preference_record(self, user_id: int) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def save_preference_record(self, user_id: int, record: Dict[str, Any]):
        pass

    @abstractmethod
    async def insert_engagement(
        self,
        user_id: int,
        signal: EngagementSignal,
        session_id: Optional[int] = None
    ):
        pass

    @abstractmethod
    async def get_content(self, content_id: int) -> Optional[ContentItem]:
        pass

    @abstractmethod
    async def create_session(self, user_id: int, device_type: Optional[str]) -> FeedSession:
        pass

    @abstractmethod
    async def get_session(self, session_id: int) -> Optional[FeedSession]:
        pass

    @abstractmethod
    async def update_session(self, session: FeedSession):
        pass


class InMemoryPreferenceStore(PreferenceStore):
    """Preference store held in process memory"""

    def __init__(self, content_lookup=None):
        """
        Args:
            content_lookup: Object exposing ``async get_content(content_id)``,
                typically the content repository
        """
        self.records: Dict[int, Dict[str, Any]] = {}
        self.engagements: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
        self.sessions: Dict[int, FeedSession] = {}
        self.content_lookup = content_lookup
        self._next_session_id = 1
        self._lock = asyncio.Lock()

    async def get_preference_record(self, user_id: int) -> Optional[Dict[str, Any]]:
        record = self.records.get(user_id)
        return dict(record) if record is not None else None

    async def save_preference_record(self, user_id: int, record: Dict[str, Any]):
        self.records[user_id] = dict(record)

    async def insert_engagement(
        self,
        user_id: int,
        signal: EngagementSignal,
        session_id: Optional[int] = None
    ):
        row = signal.to_dict()
        row["sessionId"] = session_id
        self.engagements[user_id].append(row)

    async def get_content(self, content_id: int) -> Optional[ContentItem]:
        if self.content_lookup is None:
            return None
        return await self.content_lookup.get_content(content_id)

    async def create_session(self, user_id: int, device_type: Optional[str]) -> FeedSession:
        async with self._lock:
            session = FeedSession(id=self._next_session_id, user_id=user_id, device_type=device_type)
            self.sessions[session.id] = session
            self._next_session_id += 1
        return session

    async def get_session(self, session_id: int) -> Optional[FeedSession]:
        return self.sessions.get(session_id)

    async def update_session(self, session: FeedSession):
        self.sessions[session.id] = session


def empty_preference_record() -> Dict[str, Any]:
    return {
        "price_range_min": None,
        "price_range_max": None,
        "preferred_locations": [],
        "preferred_property_types": [],
        "preferred_lifestyle_categories": [],
        "followed_neighbourhoods": [],
        "followed_creators": [],
        "engagement_history": [],
        "last_active": None,
    }


def profile_from_record(user_id: int, record: Dict[str, Any]) -> UserProfile:
    """Build a UserProfile from a stored preference record"""
    history = []
    for signal in record.get("engagement_history") or ():
        history.append(signal if isinstance(signal, EngagementSignal) else EngagementSignal.from_dict(signal))

    return UserProfile(
        user_id=user_id,
        price_range_min=record.get("price_range_min"),
        price_range_max=record.get("price_range_max"),
        preferred_locations=frozenset(record.get("preferred_locations") or ()),
        preferred_property_types=frozenset(record.get("preferred_property_types") or ()),
        preferred_lifestyle_categories=frozenset(record.get("preferred_lifestyle_categories") or ()),
        followed_neighbourhoods=frozenset(record.get("followed_neighbourhoods") or ()),
        followed_creators=frozenset(record.get("followed_creators") or ()),
        engagement_history=history,
        last_active=record.get("last_active"),
    )


class UserProfileProvider:
    """
    Resolves user profiles and learns preferences from engagement
    """

    def __init__(
        self,
        store: PreferenceStore,
        cache: Optional[CacheBackend] = None,
        profile_ttl: int = CacheTTL.USER_PREFERENCES
    ):
        self.store = store
        self.cache = cache
        self.profile_ttl = profile_ttl
        self.logger = logging.getLogger(__name__)

    async def get_user_profile(self, user_id: int) -> UserProfile:
        """
        Get a user's profile

        A user without a stored preference record gets an empty profile.

        Args:
            user_id: User identifier

        Returns:
            The user's profile
        """
        cache_key = CacheKeys.user_profile(user_id)
        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return cached

        record = await self.store.get_preference_record(user_id)
        if record is None:
            self.logger.debug(f"No preference record for user {user_id}, using empty profile")
            return UserProfile.empty(user_id)

        profile = profile_from_record(user_id, record)
        if self.cache is not None:
            await self.cache.set(cache_key, profile, ttl=self.profile_ttl)
        return profile

    async def record_engagement(
        self,
        user_id: int,
        content_id: int,
        signal: EngagementSignal,
        session_id: Optional[int] = None
    ):
        """
        Record an engagement signal and update the user's preferences

        Args:
            user_id: User identifier
            content_id: Content the signal refers to
            signal: Engagement signal
            session_id: Feed session the signal belongs to
        """
        try:
            await self.store.insert_engagement(user_id, signal, session_id)
        except Exception as e:
            self.logger.error(f"Failed to record engagement for user {user_id}: {e}")
            raise EngagementRecordError(f"Failed to record engagement: {e}") from e

        self.logger.info(
            f"Recorded {signal.engagement_type.value} for user {user_id}, content {content_id}"
        )

        # Learning is best effort once the engagement row is stored
        try:
            await self._update_profile_from_engagement(user_id, content_id, signal)
        except Exception as e:
            self.logger.error(f"Failed to update preferences for user {user_id}: {e}")
        finally:
            if self.cache is not None:
                await self.cache.delete(CacheKeys.user_profile(user_id))

    async def _update_profile_from_engagement(
        self,
        user_id: int,
        content_id: int,
        signal: EngagementSignal
    ):
        content = await self.store.get_content(content_id)
        if content is None:
            self.logger.warning(f"Content {content_id} not found, preferences unchanged")
            return

        record = await self.store.get_preference_record(user_id)
        if record is None:
            record = empty_preference_record()

        if signal.engagement_type in LEARNING_SIGNALS:
            # Widen the price range to include this content
            if content.price_min is not None and content.price_max is not None:
                current_min = record.get("price_range_min")
                current_max = record.get("price_range_max")
                record["price_range_min"] = (
                    content.price_min if current_min is None else min(current_min, content.price_min)
                )
                record["price_range_max"] = (
                    content.price_max if current_max is None else max(current_max, content.price_max)
                )

            property_types = list(record.get("preferred_property_types") or [])
            if content.property_type and content.property_type not in property_types:
                property_types.append(content.property_type)
            record["preferred_property_types"] = property_types

            categories = list(record.get("preferred_lifestyle_categories") or [])
            for category in sorted(content.lifestyle_categories):
                if category not in categories:
                    categories.append(category)
            record["preferred_lifestyle_categories"] = categories

        history = list(record.get("engagement_history") or [])
        history.insert(0, signal.to_dict())
        record["engagement_history"] = history[:MAX_ENGAGEMENT_HISTORY]
        record["last_active"] = utcnow()

        await self.store.save_preference_record(user_id, record)
        self.logger.debug(f"Updated preferences for user {user_id}")

    async def create_feed_session(self, user_id: int, device_type: Optional[str] = None) -> int:
        """Open a feed session and return its id"""
        session = await self.store.create_session(user_id, device_type)
        self.logger.info(f"Created feed session {session.id} for user {user_id}")
        return session.id

    async def close_feed_session(self, session_id: int) -> Optional[FeedSession]:
        """Close a feed session, recording its duration in seconds"""
        session = await self.store.get_session(session_id)
        if session is None:
            self.logger.warning(f"Feed session {session_id} not found")
            return None

        session.session_end = utcnow()
        session.total_duration = int((session.session_end - session.session_start).total_seconds())
        await self.store.update_session(session)

        self.logger.info(f"Closed feed session {session_id}, duration: {session.total_duration}s")
        return session
