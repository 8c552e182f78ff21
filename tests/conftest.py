from datetime import datetime, timezone
from typing import List

import pytest

from explore_feed.config import FeedConfig
from explore_feed.core.engine import ExploreFeedService
from explore_feed.core.models import ContentItem, CreatorType, GeoPoint
from explore_feed.storage.cache import TTLCache
from explore_feed.storage.profile_store import InMemoryPreferenceStore, UserProfileProvider
from explore_feed.storage.repository import ContentQuery, ContentRepository, InMemoryContentRepository


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
OLD = datetime(2020, 1, 1, tzinfo=timezone.utc)

CAPE_TOWN = GeoPoint(-33.9249, 18.4241)


def make_item(content_id: int, **overrides) -> ContentItem:
    fields = {
        "id": content_id,
        "creator_type": CreatorType.AGENT,
        "creator_id": 100 + content_id,
        "engagement_score": 1.0,
        "view_count": 10,
        "created_at": OLD,
        "city": "Cape Town",
        "suburb": "Sea Point",
        "province": "Western Cape",
        "title": f"Short {content_id}",
    }
    fields.update(overrides)
    return ContentItem(**fields)


class StaticRepository(ContentRepository):
    """Returns a fixed list for every query and counts calls"""

    def __init__(self, items: List[ContentItem]):
        self.items = list(items)
        self.queries: List[ContentQuery] = []

    @property
    def query_count(self) -> int:
        return len(self.queries)

    async def query(self, query: ContentQuery) -> List[ContentItem]:
        self.queries.append(query)
        return list(self.items)


class FailingRepository(ContentRepository):
    async def query(self, query: ContentQuery) -> List[ContentItem]:
        raise RuntimeError("database unavailable")


def build_service(repository, store=None, cache=None, config=None, **kwargs) -> ExploreFeedService:
    cache = cache if cache is not None else TTLCache()
    store = store if store is not None else InMemoryPreferenceStore(repository)
    return ExploreFeedService(
        repository=repository,
        profiles=UserProfileProvider(store, cache=cache),
        cache=cache,
        config=config or FeedConfig(),
        **kwargs
    )


@pytest.fixture
def repository():
    return InMemoryContentRepository([
        make_item(1, engagement_score=5.0, is_featured=True, lifestyle_categories=frozenset({"luxury"})),
        make_item(2, engagement_score=8.0, city="Johannesburg", suburb="Sandton", province="Gauteng"),
        make_item(3, engagement_score=2.0, lifestyle_categories=frozenset({"pet_friendly"})),
        make_item(4, engagement_score=9.0, is_active=False),
        make_item(5, engagement_score=3.0, creator_type=CreatorType.DEVELOPER, creator_id=7),
        make_item(6, engagement_score=4.0, creator_type=CreatorType.AGENCY, agency_id=12),
        make_item(7, engagement_score=6.0, creator_id=55, agent_agency_id=12),
    ])


@pytest.fixture
def preference_store(repository):
    return InMemoryPreferenceStore(repository)


@pytest.fixture
def service(repository, preference_store):
    return build_service(repository, store=preference_store)
