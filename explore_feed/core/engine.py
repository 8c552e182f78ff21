"""
Explore Feed Engine

Assembles personalized and type-scoped feed pages: candidate retrieval,
session exclusion, scoring, pagination, sponsorship overlay and caching.
"""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from .boost import BoostInjector, NoOpBoostInjector, CampaignBoostInjector, BoostCampaignSource
from .exceptions import FeedValidationError, UnknownFeedTypeError
from .models import (
    ContentItem, CreatorType, EngagementSignal, FeedOptions, FeedRequestContext,
    FeedResult, FeedType, UserProfile
)
from .scoring import PersonalizedScorer
from ..config import FeedConfig
from ..storage.cache import CacheBackend, CacheKeys, TTLCache
from ..storage.profile_store import PreferenceStore, UserProfileProvider
from ..storage.repository import (
    ActiveOnly, AgencyIs, CategoryAny, ContentQuery, ContentRepository, CreatorIs,
    ExcludeIds, LocationIn, LocationMatches, Predicate, PriceOverlaps, PropertyTypeIn,
    DEFAULT_ORDERING, TYPE_FEED_ORDERING
)


GUEST_USER_ID = 0

PERSONALIZED_KEY_TYPE = "personalized"

# Category feed names mapped to content highlight tags
CATEGORY_TAGS: Dict[str, Tuple[str, ...]] = {
    "luxury_homes": ("luxury", "high_end", "premium", "modern_finishes"),
    "student_rentals": ("student", "university", "close_to_schools"),
    "apartments_under_1m": ("affordable", "budget", "negotiable"),
    "large_yard_homes": ("large_yard", "garden", "pool"),
    "new_developments": ("new_development", "under_construction"),
    "move_in_ready": ("ready_to_move", "move_in_ready"),
    "pet_friendly": ("pet_friendly",),
    "secure_estate": ("secure_estate",),
    "off_grid": ("off_grid_ready",),
}


def category_tags(category: str) -> Tuple[str, ...]:
    return CATEGORY_TAGS.get(category, (category,))


def build_cache(config: FeedConfig) -> CacheBackend:
    """Create the cache backend selected by the configuration"""
    if config.cache_backend == "redis":
        from ..storage.redis_cache import RedisCache
        return RedisCache(url=config.redis_url, default_ttl=config.cache_default_ttl)
    return TTLCache(default_ttl=config.cache_default_ttl, sweep_interval=config.cache_sweep_interval)


class ExploreFeedService:
    """
    Feed assembler and router for the explore surface
    """

    def __init__(
        self,
        repository: ContentRepository,
        profiles: UserProfileProvider,
        cache: Optional[CacheBackend] = None,
        boost_injector: Optional[BoostInjector] = None,
        config: Optional[FeedConfig] = None,
        scorer: Optional[PersonalizedScorer] = None
    ):
        """
        Initialize the feed service

        Args:
            repository: Content query capability
            profiles: User profile provider
            cache: Cache backend (built from config if omitted)
            boost_injector: Sponsorship overlay (no-op if omitted)
            config: Feed configuration
            scorer: Personalized scorer (built from config weights if omitted)
        """
        self.config = config or FeedConfig()
        self.logger = logging.getLogger(__name__)

        self.repository = repository
        self.profiles = profiles
        self.cache = cache if cache is not None else build_cache(self.config)
        self.boost_injector = boost_injector or NoOpBoostInjector()
        self.scorer = scorer or PersonalizedScorer(self.config.scoring)

        # Performance tracking
        self.request_count = 0
        self.total_latency = 0.0
        self.error_count = 0
        self.start_time = time.time()

        self._handlers: Dict[FeedType, Callable[[FeedOptions], Awaitable[FeedResult]]] = {
            FeedType.RECOMMENDED: self.get_recommended_feed,
            FeedType.AREA: self.get_area_feed,
            FeedType.CATEGORY: self.get_category_feed,
            FeedType.AGENT: self.get_agent_feed,
            FeedType.DEVELOPER: self.get_developer_feed,
            FeedType.AGENCY: self.get_agency_feed,
        }

        self.logger.info(f"ExploreFeedService initialized with config: {self.config}")

    async def start(self):
        """Start background cache maintenance"""
        await self.cache.start()

    # Routing

    async def get_feed(
        self,
        feed_type: Union[FeedType, str],
        options: Optional[FeedOptions] = None
    ) -> FeedResult:
        """
        Get a feed page by type

        Args:
            feed_type: One of the FeedType values
            options: Feed options; required parameters depend on the type

        Returns:
            The feed page

        Raises:
            FeedValidationError: A required parameter is missing or invalid
            UnknownFeedTypeError: The feed type is not recognised
        """
        options = options or FeedOptions()
        try:
            feed_type = FeedType(feed_type)
        except ValueError:
            raise UnknownFeedTypeError(feed_type) from None

        handler = self._handlers.get(feed_type)
        if handler is None:
            raise UnknownFeedTypeError(feed_type)
        return await handler(options)

    def validate_options(self, feed_type: FeedType, options: FeedOptions):
        """Fail fast on missing or out-of-range parameters"""
        self._validate_page(options.limit, options.offset)

        if feed_type == FeedType.AREA:
            if not options.location or not options.location.strip():
                raise FeedValidationError("Location required for area feed", parameter="location")
        elif feed_type == FeedType.CATEGORY:
            if not options.category:
                raise FeedValidationError("Category required for category feed", parameter="category")
        elif feed_type == FeedType.AGENT:
            if not options.agent_id:
                raise FeedValidationError("Agent ID required for agent feed", parameter="agent_id")
        elif feed_type == FeedType.DEVELOPER:
            if not options.developer_id:
                raise FeedValidationError("Developer ID required for developer feed", parameter="developer_id")
        elif feed_type == FeedType.AGENCY:
            if not options.agency_id:
                raise FeedValidationError("Agency ID required for agency feed", parameter="agency_id")

    def _validate_page(self, limit: int, offset: int = 0):
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self.config.max_limit:
            raise FeedValidationError(
                f"limit must be an integer between 1 and {self.config.max_limit}", parameter="limit"
            )
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise FeedValidationError("offset must be a non-negative integer", parameter="offset")

    # Personalized path

    async def get_personalized_feed(
        self,
        context: FeedRequestContext,
        limit: Optional[int] = None
    ) -> List[ContentItem]:
        """
        Rank a page of content for the requesting user

        Candidates are over-fetched, session history is excluded, the rest
        are scored and the top ``limit`` returned. No sponsorship overlay.

        Args:
            context: Request context (guest when ``user_id`` is None)
            limit: Page size, defaults to ``context.limit``

        Returns:
            Ranked content items with ``score`` set
        """
        limit = context.limit if limit is None else limit
        self._validate_page(limit, context.offset)

        cache_key = CacheKeys.personalized_feed(
            context.user_id, CacheKeys.digest(context.cache_fingerprint()), limit
        )
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        start_time = time.time()

        profile = None
        if context.user_id is not None:
            profile = await self.profiles.get_user_profile(context.user_id)

        candidates = await self._fetch_candidates(context, limit)
        candidates = [
            item for item in candidates
            if item.is_active and item.id not in context.session_history
        ]

        ranked = self.scorer.rank(candidates, profile, context)
        page = ranked[:limit]

        await self.cache.set(cache_key, page, ttl=self.config.feed_ttl)

        self.logger.info(
            f"Generated {len(page)} personalized items for user {context.user_id} "
            f"from {len(candidates)} candidates"
        )
        self._record_latency(start_time, "personalized")
        return page

    async def _fetch_candidates(self, context: FeedRequestContext, limit: int) -> List[ContentItem]:
        predicates: List[Predicate] = [ActiveOnly()]
        if context.session_history:
            predicates.append(ExcludeIds(frozenset(context.session_history)))
        predicates.extend(self._filter_predicates(context))

        query = ContentQuery(
            predicates=tuple(predicates),
            ordering=DEFAULT_ORDERING,
            limit=limit * self.config.over_fetch_multiplier,
            offset=0,
        )
        return await self._run_query(query, "personalized")

    @staticmethod
    def _filter_predicates(context: FeedRequestContext) -> List[Predicate]:
        filters = context.filters
        if filters is None:
            return []

        predicates: List[Predicate] = []
        if filters.property_types:
            predicates.append(PropertyTypeIn(frozenset(filters.property_types)))
        if filters.price_range and (filters.price_range.min is not None or filters.price_range.max is not None):
            predicates.append(PriceOverlaps(filters.price_range.min, filters.price_range.max))
        if filters.lifestyle_categories:
            predicates.append(CategoryAny(frozenset(filters.lifestyle_categories)))
        if filters.locations:
            predicates.append(LocationIn(frozenset(filters.locations)))
        return predicates

    async def get_recommended_feed(self, options: FeedOptions) -> FeedResult:
        """
        Personalized feed wrapped in a feed page with sponsorship overlay

        ``has_more`` and ``offset`` count organic items only, so a page with a
        sponsored insertion holds more than ``limit`` items while the next
        offset still advances by the organic count.
        """
        self.validate_options(FeedType.RECOMMENDED, options)
        context = options.to_context()

        cache_key = CacheKeys.recommended_feed(
            context.user_id, CacheKeys.digest(context.cache_fingerprint()),
            options.limit, options.offset
        )
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        items = await self.get_personalized_feed(context, options.limit)

        result = FeedResult.for_page(
            items, FeedType.RECOMMENDED, options.limit, options.offset,
            metadata={"personalized": context.is_personalized, "userId": context.user_id},
        )
        result.shorts = await self.boost_injector.inject(
            result.shorts, await self._boost_profile(context.user_id),
            exclude_ids=context.session_history,
        )

        await self.cache.set(cache_key, result, ttl=self.config.feed_ttl)
        return result

    async def _boost_profile(self, user_id: Optional[int]) -> UserProfile:
        if user_id is None:
            return UserProfile.empty(GUEST_USER_ID)
        return await self.profiles.get_user_profile(user_id)

    # Type-scoped feeds

    async def get_area_feed(self, options: FeedOptions) -> FeedResult:
        """Content located in a city, suburb or province"""
        self.validate_options(FeedType.AREA, options)
        location = CacheKeys.normalise_location(options.location)

        return await self._type_feed(
            FeedType.AREA,
            CacheKeys.area_feed(location, options.limit, options.offset),
            (LocationMatches(location),),
            options,
            metadata={"location": location},
        )

    async def get_category_feed(self, options: FeedOptions) -> FeedResult:
        """Content carrying any highlight tag of a predefined category"""
        self.validate_options(FeedType.CATEGORY, options)
        tags = category_tags(options.category)

        return await self._type_feed(
            FeedType.CATEGORY,
            CacheKeys.category_feed(options.category, options.limit, options.offset),
            (CategoryAny(frozenset(tags)),),
            options,
            metadata={"category": options.category, "tags": list(tags)},
        )

    async def get_agent_feed(self, options: FeedOptions) -> FeedResult:
        self.validate_options(FeedType.AGENT, options)

        return await self._type_feed(
            FeedType.AGENT,
            CacheKeys.agent_feed(options.agent_id, options.limit, options.offset),
            (CreatorIs(CreatorType.AGENT, options.agent_id),),
            options,
            metadata={"agentId": options.agent_id},
        )

    async def get_developer_feed(self, options: FeedOptions) -> FeedResult:
        self.validate_options(FeedType.DEVELOPER, options)

        return await self._type_feed(
            FeedType.DEVELOPER,
            CacheKeys.developer_feed(options.developer_id, options.limit, options.offset),
            (CreatorIs(CreatorType.DEVELOPER, options.developer_id),),
            options,
            metadata={"developerId": options.developer_id},
        )

    async def get_agency_feed(self, options: FeedOptions) -> FeedResult:
        """Content attributed to an agency, optionally with its agents' content"""
        self.validate_options(FeedType.AGENCY, options)

        return await self._type_feed(
            FeedType.AGENCY,
            CacheKeys.agency_feed(
                options.agency_id, options.limit, options.offset, options.include_agent_content
            ),
            (AgencyIs(options.agency_id, options.include_agent_content),),
            options,
            metadata={
                "agencyId": options.agency_id,
                "includeAgentContent": options.include_agent_content,
            },
        )

    async def _type_feed(
        self,
        feed_type: FeedType,
        cache_key: str,
        predicates: Tuple[Predicate, ...],
        options: FeedOptions,
        metadata: Dict[str, Any]
    ) -> FeedResult:
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        start_time = time.time()

        query = ContentQuery(
            predicates=(ActiveOnly(),) + tuple(predicates),
            ordering=TYPE_FEED_ORDERING,
            limit=options.limit,
            offset=options.offset,
        )
        items = [item for item in await self._run_query(query, feed_type.value) if item.is_active]

        result = FeedResult.for_page(items, feed_type, options.limit, options.offset, metadata)
        # Type-scoped feeds use no per-user inference
        result.shorts = await self.boost_injector.inject(
            result.shorts, UserProfile.empty(GUEST_USER_ID)
        )

        await self.cache.set(cache_key, result, ttl=self.config.feed_ttl)
        self._record_latency(start_time, feed_type.value)
        return result

    async def _run_query(self, query: ContentQuery, label: str) -> List[ContentItem]:
        try:
            return await self.repository.query(query)
        except Exception as e:
            self.error_count += 1
            self.logger.error(f"Error generating {label} feed: {e}")
            raise

    # Cache management and pass-through accessors

    async def invalidate_feed(self, feed_type: Union[FeedType, str], *params: Any) -> int:
        """
        Drop cached pages of a feed type, optionally narrowed by leading parameters

        ``personalized`` names the pre-boost ranked pages. An area location is
        normalised the way area keys are built.
        """
        if feed_type != PERSONALIZED_KEY_TYPE:
            feed_type = FeedType(feed_type).value
        if feed_type == FeedType.AREA.value and params:
            params = (CacheKeys.normalise_location(str(params[0])),) + params[1:]
        removed = await self.cache.delete_prefix(CacheKeys.feed_prefix(feed_type, *params))
        self.logger.info(f"Invalidated {removed} cached {feed_type} feed pages")
        return removed

    async def get_user_profile(self, user_id: int) -> UserProfile:
        return await self.profiles.get_user_profile(user_id)

    async def record_engagement(
        self,
        user_id: int,
        content_id: int,
        signal: EngagementSignal,
        session_id: Optional[int] = None
    ):
        """Record engagement and drop the user's cached personalized pages"""
        await self.profiles.record_engagement(user_id, content_id, signal, session_id)
        await self.cache.delete_prefix(CacheKeys.feed_prefix(FeedType.RECOMMENDED.value, user_id))
        await self.cache.delete_prefix(CacheKeys.feed_prefix(PERSONALIZED_KEY_TYPE, user_id))

    def get_categories(self) -> List[str]:
        """Names accepted by the category feed"""
        return list(CATEGORY_TAGS)

    async def create_feed_session(self, user_id: int, device_type: Optional[str] = None) -> int:
        return await self.profiles.create_feed_session(user_id, device_type)

    async def close_feed_session(self, session_id: int):
        return await self.profiles.close_feed_session(session_id)

    # Monitoring and lifecycle

    def _record_latency(self, start_time: float, label: str):
        latency = time.time() - start_time
        self.request_count += 1
        self.total_latency += latency

        latency_ms = latency * 1000
        if latency_ms > self.config.slow_feed_ms:
            self.logger.warning(f"Slow {label} feed: {latency_ms:.2f}ms > {self.config.slow_feed_ms}ms")

    def get_statistics(self) -> Dict[str, Any]:
        """Get feed service statistics"""
        uptime = time.time() - self.start_time
        avg_latency = self.total_latency / max(1, self.request_count) * 1000

        return {
            "uptime_seconds": uptime,
            "total_requests": self.request_count,
            "average_latency_ms": avg_latency,
            "error_count": self.error_count,
            "cache_stats": self.cache.get_stats(),
            "boost_injector": self.boost_injector.get_metadata(),
        }

    async def health_check(self) -> Dict[str, Any]:
        """Perform health check"""
        health = {
            "status": "healthy",
            "timestamp": time.time(),
            "components": {}
        }

        try:
            cache_ok = await self.cache.ping()
            health["components"]["cache"] = "healthy" if cache_ok else "degraded"
            if not cache_ok:
                health["status"] = "degraded"
        except Exception as e:
            health["components"]["cache"] = f"unhealthy: {e}"
            health["status"] = "degraded"

        try:
            await self.repository.ping()
            health["components"]["repository"] = "healthy"
        except Exception as e:
            health["components"]["repository"] = f"unhealthy: {e}"
            health["status"] = "degraded"

        return health

    async def shutdown(self):
        """Gracefully shut down the service"""
        self.logger.info("Shutting down ExploreFeedService...")

        await self.cache.close()
        await self.repository.close()

        self.logger.info("ExploreFeedService shutdown complete")

    def __repr__(self) -> str:
        stats = self.get_statistics()
        return (
            f"ExploreFeedService(total_requests={stats['total_requests']}, "
            f"avg_latency_ms={stats['average_latency_ms']:.2f})"
        )


def create_feed_service(
    repository: ContentRepository,
    preference_store: PreferenceStore,
    config: Optional[FeedConfig] = None,
    campaign_source: Optional[BoostCampaignSource] = None,
    cache: Optional[CacheBackend] = None
) -> ExploreFeedService:
    """
    Wire a feed service from its collaborators

    The same cache instance backs feed pages and user profiles. A campaign
    source enables sponsored content insertion.
    """
    config = config or FeedConfig()
    cache = cache if cache is not None else build_cache(config)

    profiles = UserProfileProvider(preference_store, cache=cache, profile_ttl=config.profile_ttl)
    if campaign_source is not None:
        injector: BoostInjector = CampaignBoostInjector(
            campaign_source, repository, organic_interval=config.boost_organic_interval
        )
    else:
        injector = NoOpBoostInjector()

    return ExploreFeedService(
        repository=repository,
        profiles=profiles,
        cache=cache,
        boost_injector=injector,
        config=config,
    )
