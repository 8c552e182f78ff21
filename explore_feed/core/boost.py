"""
Boost / Sponsorship Injection

Post-processes an assembled feed so every item carries an explicit
``is_sponsored`` flag, optionally inserting sponsored content.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import AbstractSet, Any, Dict, List, Optional, Sequence, FrozenSet

from .models import ContentItem, UserProfile


SPONSORED_LABEL = "Sponsored"


@dataclass
class BoostCampaign:
    """A paid campaign promoting one piece of content"""
    id: int
    content_id: int
    is_active: bool = True
    target_price_min: Optional[float] = None
    target_price_max: Optional[float] = None
    target_property_types: FrozenSet[str] = field(default_factory=frozenset)

    def targets(self, profile: UserProfile) -> bool:
        """Whether this campaign's audience targeting admits the profile"""
        if (
            self.target_price_min is not None
            and self.target_price_max is not None
            and profile.price_range_min is not None
            and profile.price_range_max is not None
        ):
            user_avg_price = (profile.price_range_min + profile.price_range_max) / 2
            if not self.target_price_min <= user_avg_price <= self.target_price_max:
                return False

        if self.target_property_types and profile.preferred_property_types:
            if self.target_property_types.isdisjoint(profile.preferred_property_types):
                return False

        return True


class BoostCampaignSource(ABC):
    """Source of currently running boost campaigns"""

    @abstractmethod
    async def get_active_campaigns(self) -> List[BoostCampaign]:
        pass


class InMemoryCampaignSource(BoostCampaignSource):
    def __init__(self, campaigns: Optional[Sequence[BoostCampaign]] = None):
        self.campaigns: List[BoostCampaign] = list(campaigns or ())

    async def get_active_campaigns(self) -> List[BoostCampaign]:
        return [campaign for campaign in self.campaigns if campaign.is_active]


class BoostInjector(ABC):
    """Marks or inserts sponsored content in an assembled feed"""

    @abstractmethod
    async def inject(
        self,
        feed: Sequence[ContentItem],
        profile: UserProfile,
        exclude_ids: AbstractSet[int] = frozenset()
    ) -> List[ContentItem]:
        """
        Return the feed with ``is_sponsored`` set on every item

        Args:
            feed: Ranked feed page
            profile: Profile of the requesting user
            exclude_ids: Content the client has already seen; never inserted

        Returns:
            New list of items; inputs are not mutated
        """
        pass

    def get_metadata(self) -> Dict[str, Any]:
        return {"name": self.__class__.__name__}


def mark_organic(feed: Sequence[ContentItem]) -> List[ContentItem]:
    return [
        replace(item, is_sponsored=False, sponsored_label=None, campaign_id=None)
        for item in feed
    ]


class NoOpBoostInjector(BoostInjector):
    """Passes every item through as organic content"""

    async def inject(
        self,
        feed: Sequence[ContentItem],
        profile: UserProfile,
        exclude_ids: AbstractSet[int] = frozenset()
    ) -> List[ContentItem]:
        return mark_organic(feed)


class CampaignBoostInjector(BoostInjector):
    """
    Inserts one sponsored item after every ``organic_interval`` organic items
    """

    def __init__(
        self,
        campaign_source: BoostCampaignSource,
        content_lookup,
        organic_interval: int = 10
    ):
        """
        Args:
            campaign_source: Source of active campaigns
            content_lookup: Object exposing ``async get_by_ids(ids)``,
                typically the content repository
            organic_interval: Organic items between sponsored insertions
        """
        self.campaign_source = campaign_source
        self.content_lookup = content_lookup
        self.organic_interval = max(1, organic_interval)
        self.logger = logging.getLogger(__name__)

    async def inject(
        self,
        feed: Sequence[ContentItem],
        profile: UserProfile,
        exclude_ids: AbstractSet[int] = frozenset()
    ) -> List[ContentItem]:
        organic = mark_organic(feed)

        campaigns = await self.campaign_source.get_active_campaigns()
        relevant = [campaign for campaign in campaigns if campaign.targets(profile)]
        if not relevant:
            return organic

        campaign_by_content = {campaign.content_id: campaign.id for campaign in relevant}
        skip_ids = {item.id for item in organic} | set(exclude_ids)
        boosted = [
            item for item in await self.content_lookup.get_by_ids(campaign_by_content)
            if item.id not in skip_ids
        ]
        if not boosted:
            return organic

        result: List[ContentItem] = []
        organic_count = 0
        boosted_index = 0

        for item in organic:
            result.append(item)
            organic_count += 1

            if organic_count == self.organic_interval and boosted_index < len(boosted):
                sponsored = boosted[boosted_index]
                result.append(replace(
                    sponsored,
                    is_sponsored=True,
                    sponsored_label=SPONSORED_LABEL,
                    campaign_id=campaign_by_content[sponsored.id],
                ))
                boosted_index += 1
                organic_count = 0

        if boosted_index:
            self.logger.debug(f"Injected {boosted_index} sponsored items")
        return result

    def get_metadata(self) -> Dict[str, Any]:
        return {"name": self.__class__.__name__, "organic_interval": self.organic_interval}
