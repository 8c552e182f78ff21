"""
Data Models for the Explore Feed Engine
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, FrozenSet, Iterable
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Coerce a datetime, ISO string or epoch seconds into an aware UTC datetime"""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise TypeError(f"Unsupported timestamp value: {value!r}")


class FeedType(str, Enum):
    """Feed surfaces served by the router"""
    RECOMMENDED = "recommended"
    AREA = "area"
    CATEGORY = "category"
    AGENT = "agent"
    DEVELOPER = "developer"
    AGENCY = "agency"


class CreatorType(str, Enum):
    AGENT = "agent"
    DEVELOPER = "developer"
    AGENCY = "agency"
    UNKNOWN = "unknown"


class EngagementType(str, Enum):
    """Types of engagement signals on a piece of content"""
    VIEW = "view"
    SAVE = "save"
    SHARE = "share"
    CLICK = "click"
    SKIP = "skip"
    COMPLETE = "complete"


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class PriceRange:
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass
class ContentItem:
    """A candidate feed entry (property video or listing)"""
    id: int
    content_type: str = "video"
    creator_type: CreatorType = CreatorType.UNKNOWN
    creator_id: Optional[int] = None
    engagement_score: float = 0.0
    view_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    lifestyle_categories: FrozenSet[str] = field(default_factory=frozenset)
    coordinates: Optional[GeoPoint] = None
    is_featured: bool = False
    is_active: bool = True
    agency_id: Optional[int] = None
    agent_agency_id: Optional[int] = None
    property_type: Optional[str] = None
    city: Optional[str] = None
    suburb: Optional[str] = None
    province: Optional[str] = None
    title: str = ""
    thumbnail_url: str = ""
    video_url: Optional[str] = None

    # Ranking output
    score: Optional[float] = None
    is_sponsored: bool = False
    sponsored_label: Optional[str] = None
    campaign_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "contentType": self.content_type,
            "creatorType": self.creator_type.value,
            "creatorId": self.creator_id,
            "engagementScore": self.engagement_score,
            "viewCount": self.view_count,
            "createdAt": self.created_at.isoformat(),
            "priceMin": self.price_min,
            "priceMax": self.price_max,
            "lifestyleCategories": sorted(self.lifestyle_categories),
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "isFeatured": self.is_featured,
            "isActive": self.is_active,
            "agencyId": self.agency_id,
            "agentAgencyId": self.agent_agency_id,
            "propertyType": self.property_type,
            "city": self.city,
            "suburb": self.suburb,
            "province": self.province,
            "title": self.title,
            "thumbnailUrl": self.thumbnail_url,
            "videoUrl": self.video_url,
            "score": self.score,
            "isSponsored": self.is_sponsored,
            "sponsoredLabel": self.sponsored_label,
            "campaignId": self.campaign_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentItem":
        coordinates = data.get("coordinates")
        return cls(
            id=data["id"],
            content_type=data.get("contentType", "video"),
            creator_type=CreatorType(data.get("creatorType", "unknown")),
            creator_id=data.get("creatorId"),
            engagement_score=data.get("engagementScore", 0.0),
            view_count=data.get("viewCount", 0),
            created_at=parse_timestamp(data["createdAt"]),
            price_min=data.get("priceMin"),
            price_max=data.get("priceMax"),
            lifestyle_categories=frozenset(data.get("lifestyleCategories") or ()),
            coordinates=GeoPoint(**coordinates) if coordinates else None,
            is_featured=data.get("isFeatured", False),
            is_active=data.get("isActive", True),
            agency_id=data.get("agencyId"),
            agent_agency_id=data.get("agentAgencyId"),
            property_type=data.get("propertyType"),
            city=data.get("city"),
            suburb=data.get("suburb"),
            province=data.get("province"),
            title=data.get("title", ""),
            thumbnail_url=data.get("thumbnailUrl", ""),
            video_url=data.get("videoUrl"),
            score=data.get("score"),
            is_sponsored=data.get("isSponsored", False),
            sponsored_label=data.get("sponsoredLabel"),
            campaign_id=data.get("campaignId"),
        )


@dataclass
class EngagementSignal:
    """A single engagement event on a piece of content"""
    content_id: int
    engagement_type: EngagementType
    watch_time: Optional[float] = None
    completed: bool = False
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if isinstance(self.engagement_type, str):
            self.engagement_type = EngagementType(self.engagement_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contentId": self.content_id,
            "engagementType": self.engagement_type.value,
            "watchTime": self.watch_time,
            "completed": self.completed,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngagementSignal":
        return cls(
            content_id=data["contentId"],
            engagement_type=EngagementType(data["engagementType"]),
            watch_time=data.get("watchTime"),
            completed=data.get("completed", False),
            timestamp=parse_timestamp(data["timestamp"]) if data.get("timestamp") else utcnow(),
        )


@dataclass
class UserProfile:
    """Read-mostly projection of a user's stored preferences"""
    user_id: int
    price_range_min: Optional[float] = None
    price_range_max: Optional[float] = None
    preferred_locations: FrozenSet[str] = field(default_factory=frozenset)
    preferred_property_types: FrozenSet[str] = field(default_factory=frozenset)
    preferred_lifestyle_categories: FrozenSet[str] = field(default_factory=frozenset)
    followed_neighbourhoods: FrozenSet[int] = field(default_factory=frozenset)
    followed_creators: FrozenSet[int] = field(default_factory=frozenset)
    engagement_history: List[EngagementSignal] = field(default_factory=list)
    last_active: Optional[datetime] = None

    @classmethod
    def empty(cls, user_id: int) -> "UserProfile":
        return cls(user_id=user_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "priceRangeMin": self.price_range_min,
            "priceRangeMax": self.price_range_max,
            "preferredLocations": sorted(self.preferred_locations),
            "preferredPropertyTypes": sorted(self.preferred_property_types),
            "preferredLifestyleCategories": sorted(self.preferred_lifestyle_categories),
            "followedNeighbourhoods": sorted(self.followed_neighbourhoods),
            "followedCreators": sorted(self.followed_creators),
            "engagementHistory": [signal.to_dict() for signal in self.engagement_history],
            "lastActive": self.last_active.isoformat() if self.last_active else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        last_active = data.get("lastActive")
        return cls(
            user_id=data["userId"],
            price_range_min=data.get("priceRangeMin"),
            price_range_max=data.get("priceRangeMax"),
            preferred_locations=frozenset(data.get("preferredLocations") or ()),
            preferred_property_types=frozenset(data.get("preferredPropertyTypes") or ()),
            preferred_lifestyle_categories=frozenset(data.get("preferredLifestyleCategories") or ()),
            followed_neighbourhoods=frozenset(data.get("followedNeighbourhoods") or ()),
            followed_creators=frozenset(data.get("followedCreators") or ()),
            engagement_history=[
                EngagementSignal.from_dict(signal)
                for signal in data.get("engagementHistory") or ()
            ],
            last_active=parse_timestamp(last_active) if last_active else None,
        )


@dataclass(frozen=True)
class FilterSet:
    """Active client-side filters applied to candidate retrieval"""
    property_types: FrozenSet[str] = frozenset()
    price_range: Optional[PriceRange] = None
    lifestyle_categories: FrozenSet[str] = frozenset()
    locations: FrozenSet[str] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "propertyTypes": sorted(self.property_types),
            "priceRange": (
                {"min": self.price_range.min, "max": self.price_range.max}
                if self.price_range else None
            ),
            "lifestyleCategories": sorted(self.lifestyle_categories),
            "locations": sorted(self.locations),
        }


@dataclass(frozen=True)
class FeedRequestContext:
    """Per-request parameters for the personalized feed"""
    user_id: Optional[int] = None
    session_history: FrozenSet[int] = frozenset()
    location: Optional[GeoPoint] = None
    filters: Optional[FilterSet] = None
    limit: int = 20
    offset: int = 0

    @property
    def is_personalized(self) -> bool:
        return self.user_id is not None

    def cache_fingerprint(self) -> Dict[str, Any]:
        """Parameters other than user/limit/offset that change the result"""
        return {
            "session_history": sorted(self.session_history),
            "location": self.location.to_dict() if self.location else None,
            "filters": self.filters.to_dict() if self.filters else None,
        }


@dataclass
class FeedOptions:
    """Options accepted by the feed router"""
    user_id: Optional[int] = None
    limit: int = 20
    offset: int = 0
    location: Optional[str] = None
    category: Optional[str] = None
    agent_id: Optional[int] = None
    developer_id: Optional[int] = None
    agency_id: Optional[int] = None
    include_agent_content: bool = True
    session_history: Iterable[int] = ()
    coordinates: Optional[GeoPoint] = None
    filters: Optional[FilterSet] = None

    def to_context(self) -> FeedRequestContext:
        return FeedRequestContext(
            user_id=self.user_id,
            session_history=frozenset(self.session_history),
            location=self.coordinates,
            filters=self.filters,
            limit=self.limit,
            offset=self.offset,
        )


@dataclass
class FeedResult:
    """Response envelope for one feed page"""
    shorts: List[ContentItem]
    feed_type: FeedType
    has_more: bool
    offset: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_page(
        cls,
        shorts: List[ContentItem],
        feed_type: FeedType,
        limit: int,
        offset: int,
        metadata: Optional[Dict[str, Any]] = None
    ) -> "FeedResult":
        return cls(
            shorts=shorts,
            feed_type=feed_type,
            has_more=len(shorts) == limit,
            offset=offset + len(shorts),
            metadata=metadata or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shorts": [item.to_dict() for item in self.shorts],
            "feedType": self.feed_type.value,
            "hasMore": self.has_more,
            "offset": self.offset,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedResult":
        return cls(
            shorts=[ContentItem.from_dict(item) for item in data["shorts"]],
            feed_type=FeedType(data["feedType"]),
            has_more=data["hasMore"],
            offset=data["offset"],
            metadata=data.get("metadata") or {},
        )


@dataclass
class FeedSession:
    """A viewing session on the explore feed"""
    id: int
    user_id: int
    device_type: Optional[str] = None
    session_start: datetime = field(default_factory=utcnow)
    session_end: Optional[datetime] = None
    total_duration: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "deviceType": self.device_type,
            "sessionStart": self.session_start.isoformat(),
            "sessionEnd": self.session_end.isoformat() if self.session_end else None,
            "totalDuration": self.total_duration,
        }
