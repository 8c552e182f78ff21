"""
Content Repository Access

Declarative predicates and ordering over content records, plus the single
mapping from raw store rows to ``ContentItem``.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, FrozenSet

from ..core.models import ContentItem, CreatorType, GeoPoint, parse_timestamp


class Predicate(ABC):
    """A single filter condition over content records"""

    @abstractmethod
    def matches(self, item: ContentItem) -> bool:
        pass


@dataclass(frozen=True)
class ActiveOnly(Predicate):
    def matches(self, item: ContentItem) -> bool:
        return item.is_active


@dataclass(frozen=True)
class ContentTypeIs(Predicate):
    content_type: str

    def matches(self, item: ContentItem) -> bool:
        return item.content_type == self.content_type


@dataclass(frozen=True)
class CreatorIs(Predicate):
    creator_type: CreatorType
    creator_id: int

    def matches(self, item: ContentItem) -> bool:
        return item.creator_type == self.creator_type and item.creator_id == self.creator_id


@dataclass(frozen=True)
class AgencyIs(Predicate):
    """Content attributed to an agency, optionally including its agents' content"""
    agency_id: int
    include_agent_content: bool = True

    def matches(self, item: ContentItem) -> bool:
        if item.agency_id == self.agency_id:
            return True
        return self.include_agent_content and item.agent_agency_id == self.agency_id


@dataclass(frozen=True)
class LocationMatches(Predicate):
    """Case-insensitive substring match on city, suburb or province"""
    text: str

    def matches(self, item: ContentItem) -> bool:
        needle = self.text.strip().lower()
        if not needle:
            return False
        return any(
            needle in value.lower()
            for value in (item.city, item.suburb, item.province)
            if value
        )


@dataclass(frozen=True)
class LocationIn(Predicate):
    """Any of several location substrings"""
    locations: FrozenSet[str]

    def matches(self, item: ContentItem) -> bool:
        return any(LocationMatches(location).matches(item) for location in self.locations)


@dataclass(frozen=True)
class CategoryAny(Predicate):
    """Item carries at least one of the lifestyle category tags"""
    tags: FrozenSet[str]

    def matches(self, item: ContentItem) -> bool:
        return not item.lifestyle_categories.isdisjoint(self.tags)


@dataclass(frozen=True)
class ExcludeIds(Predicate):
    ids: FrozenSet[int]

    def matches(self, item: ContentItem) -> bool:
        return item.id not in self.ids


@dataclass(frozen=True)
class PropertyTypeIn(Predicate):
    property_types: FrozenSet[str]

    def matches(self, item: ContentItem) -> bool:
        return item.property_type in self.property_types


@dataclass(frozen=True)
class PriceOverlaps(Predicate):
    """Item price range intersects the requested range; open bounds allowed"""
    min: Optional[float] = None
    max: Optional[float] = None

    def matches(self, item: ContentItem) -> bool:
        if item.price_min is None and item.price_max is None:
            return False
        item_min = item.price_min if item.price_min is not None else item.price_max
        item_max = item.price_max if item.price_max is not None else item.price_min
        if self.min is not None and item_max < self.min:
            return False
        if self.max is not None and item_min > self.max:
            return False
        return True


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = True


DEFAULT_ORDERING: Tuple[OrderBy, ...] = (
    OrderBy("is_featured"),
    OrderBy("engagement_score"),
    OrderBy("view_count"),
    OrderBy("created_at"),
)

TYPE_FEED_ORDERING: Tuple[OrderBy, ...] = (
    OrderBy("is_featured"),
    OrderBy("engagement_score"),
    OrderBy("created_at"),
)


@dataclass(frozen=True)
class ContentQuery:
    """Predicates, ordering and page window for one repository call"""
    predicates: Tuple[Predicate, ...] = ()
    ordering: Tuple[OrderBy, ...] = DEFAULT_ORDERING
    limit: int = 20
    offset: int = 0

    def matches(self, item: ContentItem) -> bool:
        return all(predicate.matches(item) for predicate in self.predicates)

    def describe(self) -> Dict[str, Any]:
        return {
            "predicates": [repr(predicate) for predicate in self.predicates],
            "ordering": [f"{o.field} {'desc' if o.descending else 'asc'}" for o in self.ordering],
            "limit": self.limit,
            "offset": self.offset,
        }


class ContentRepository(ABC):
    """Query capability over content records"""

    @abstractmethod
    async def query(self, query: ContentQuery) -> List[ContentItem]:
        """
        Return one page of content matching the query

        Args:
            query: Predicates, ordering and page window

        Returns:
            Content items in query order
        """
        pass

    async def get_by_ids(self, ids: Iterable[int]) -> List[ContentItem]:
        wanted = frozenset(ids)
        if not wanted:
            return []
        return await self.query(ContentQuery(
            predicates=(ActiveOnly(), _IdIn(wanted)),
            limit=len(wanted),
        ))

    async def ping(self) -> bool:
        return True

    async def close(self):
        pass


@dataclass(frozen=True)
class _IdIn(Predicate):
    ids: FrozenSet[int]

    def matches(self, item: ContentItem) -> bool:
        return item.id in self.ids


def _sort_value(item: ContentItem, name: str) -> Any:
    value = getattr(item, name)
    if value is None:
        return 0
    return value


class InMemoryContentRepository(ContentRepository):
    """
    Content repository held in process memory

    Evaluates predicates in Python and applies a stable multi-key sort.
    """

    def __init__(self, items: Optional[Iterable[ContentItem]] = None):
        self.items: Dict[int, ContentItem] = {}
        self.query_count = 0
        self.logger = logging.getLogger(__name__)

        for item in items or ():
            self.add(item)

    def add(self, item: ContentItem):
        self.items[item.id] = item

    def bulk_load_rows(self, rows: Iterable[Mapping[str, Any]]) -> int:
        """Load raw store rows through the row mapper"""
        count = 0
        for row in rows:
            self.add(content_item_from_row(row))
            count += 1
        self.logger.info(f"Bulk loaded {count} content rows")
        return count

    def deactivate(self, content_id: int):
        item = self.items.get(content_id)
        if item is not None:
            item.is_active = False

    async def query(self, query: ContentQuery) -> List[ContentItem]:
        self.query_count += 1

        matched = [item for item in self.items.values() if query.matches(item)]

        # Stable sorts applied from the least significant key
        for order in reversed(query.ordering):
            matched.sort(key=lambda item: _sort_value(item, order.field), reverse=order.descending)

        page = matched[query.offset:query.offset + query.limit]
        self.logger.debug(f"Query matched {len(matched)} items, returning {len(page)}")
        return page

    async def get_content(self, content_id: int) -> Optional[ContentItem]:
        return self.items.get(content_id)


def _pick(row: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in row and row[name] is not None:
            return row[name]
    return default


def _parse_string_set(value: Any) -> FrozenSet[str]:
    if value is None or value == "":
        return frozenset()
    if isinstance(value, str):
        value = json.loads(value)
    return frozenset(str(tag) for tag in value)


def _parse_optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _parse_optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def content_item_from_row(row: Mapping[str, Any]) -> ContentItem:
    """
    Map a raw store row to a ContentItem

    Accepts snake_case or camelCase columns, JSON-encoded category arrays,
    0/1 flags and datetime, ISO-string or epoch timestamps.
    """
    lat = _pick(row, "latitude", "lat")
    lng = _pick(row, "longitude", "lng")
    coordinates = None
    if lat is not None and lng is not None:
        coordinates = GeoPoint(float(lat), float(lng))

    creator_type = _pick(row, "creator_type", "creatorType", default="unknown")
    try:
        creator_type = CreatorType(creator_type)
    except ValueError:
        creator_type = CreatorType.UNKNOWN

    created_at = _pick(row, "created_at", "createdAt", "published_at", "publishedAt")
    if created_at is None:
        raise ValueError(f"Content row {row.get('id')!r} has no creation timestamp")

    return ContentItem(
        id=int(row["id"]),
        content_type=_pick(row, "content_type", "contentType", default="video"),
        creator_type=creator_type,
        creator_id=_parse_optional_int(_pick(row, "creator_id", "creatorId")),
        engagement_score=max(0.0, float(_pick(row, "engagement_score", "engagementScore", default=0.0))),
        view_count=max(0, int(_pick(row, "view_count", "viewCount", default=0))),
        created_at=parse_timestamp(created_at),
        price_min=_parse_optional_float(_pick(row, "price_min", "priceMin")),
        price_max=_parse_optional_float(_pick(row, "price_max", "priceMax")),
        lifestyle_categories=_parse_string_set(
            _pick(row, "lifestyle_categories", "lifestyleCategories", "highlights")
        ),
        coordinates=coordinates,
        is_featured=bool(_pick(row, "is_featured", "isFeatured", default=False)),
        is_active=bool(_pick(row, "is_active", "isActive", default=True)),
        agency_id=_parse_optional_int(_pick(row, "agency_id", "agencyId")),
        agent_agency_id=_parse_optional_int(_pick(row, "agent_agency_id", "agentAgencyId")),
        property_type=_pick(row, "property_type", "propertyType"),
        city=_pick(row, "city"),
        suburb=_pick(row, "suburb"),
        province=_pick(row, "province"),
        title=_pick(row, "title", default=""),
        thumbnail_url=_pick(row, "thumbnail_url", "thumbnailUrl", default=""),
        video_url=_pick(row, "video_url", "videoUrl"),
    )
