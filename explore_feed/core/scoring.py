"""
Personalized Scoring Engine

Scores content for a user as a weighted sum of independent, capped factors:

    engagement        min(engagement_score * 4, 40)
    price overlap     20 * overlap / user range width
    lifestyle match   15 if any category matches
    followed creator  10 if the creator is followed
    recency           10 * (1 - days / 7) within a week
    proximity         5 * (1 - km / 50) within 50 km

Guests are scored on engagement and recency only.
"""

import math
import logging
from dataclasses import dataclass, asdict, replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import numpy as np

from .models import ContentItem, FeedRequestContext, GeoPoint, UserProfile, utcnow
from ..config import ScoringWeights


@dataclass
class ScoreBreakdown:
    engagement: float = 0.0
    price: float = 0.0
    category: float = 0.0
    creator: float = 0.0
    recency: float = 0.0
    proximity: float = 0.0

    @property
    def total(self) -> float:
        return (
            self.engagement + self.price + self.category
            + self.creator + self.recency + self.proximity
        )

    def to_dict(self) -> Dict[str, float]:
        factors = asdict(self)
        factors["total"] = self.total
        return factors


def _finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def haversine_km(a: GeoPoint, b: GeoPoint, earth_radius_km: float = 6371.0) -> float:
    """Great-circle distance between two points in kilometres"""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * earth_radius_km * math.asin(min(1.0, math.sqrt(h)))


class PersonalizedScorer:
    """
    Computes relevance scores for (content, profile, context) triples
    """

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()
        self.logger = logging.getLogger(__name__)

    def engagement_factor(self, item: ContentItem) -> float:
        if not _finite(item.engagement_score):
            return 0.0
        scaled = max(0.0, item.engagement_score) * self.weights.engagement_multiplier
        return min(scaled, self.weights.engagement_cap)

    def price_factor(self, item: ContentItem, profile: UserProfile) -> float:
        bounds = (profile.price_range_min, profile.price_range_max, item.price_min, item.price_max)
        if not all(_finite(bound) for bound in bounds):
            return 0.0

        user_min, user_max, item_min, item_max = bounds
        user_width = user_max - user_min
        if user_width <= 0:
            return 0.0

        overlap = max(0.0, min(user_max, item_max) - max(user_min, item_min))
        fraction = min(1.0, overlap / user_width)
        return fraction * self.weights.price_cap

    def category_factor(self, item: ContentItem, profile: UserProfile) -> float:
        if item.lifestyle_categories and not item.lifestyle_categories.isdisjoint(
            profile.preferred_lifestyle_categories
        ):
            return self.weights.category_cap
        return 0.0

    def creator_factor(self, item: ContentItem, profile: UserProfile) -> float:
        if item.creator_id is not None and item.creator_id in profile.followed_creators:
            return self.weights.creator_cap
        return 0.0

    def recency_factor(self, item: ContentItem, now: datetime) -> float:
        # Whole calendar days; future-dated content counts as today
        days = (now.date() - item.created_at.astimezone(now.tzinfo).date()).days
        days = max(0, days)
        window = self.weights.recency_window_days
        if window <= 0 or days > window:
            return 0.0
        return self.weights.recency_cap * (1 - days / window)

    def proximity_factor(self, item: ContentItem, context: FeedRequestContext) -> float:
        if context.location is None or item.coordinates is None:
            return 0.0

        points = (context.location.lat, context.location.lng, item.coordinates.lat, item.coordinates.lng)
        if not all(_finite(value) for value in points):
            return 0.0

        radius = self.weights.proximity_radius_km
        distance = haversine_km(context.location, item.coordinates, self.weights.earth_radius_km)
        if radius <= 0 or distance >= radius:
            return 0.0
        return self.weights.proximity_cap * (1 - distance / radius)

    def score_breakdown(
        self,
        item: ContentItem,
        profile: Optional[UserProfile],
        context: FeedRequestContext,
        now: Optional[datetime] = None
    ) -> ScoreBreakdown:
        """
        Compute each scoring factor for one item

        Args:
            item: Candidate content
            profile: User profile, or None for guest requests
            context: Request context
            now: Reference time for recency

        Returns:
            Per-factor scores
        """
        now = now or utcnow()
        breakdown = ScoreBreakdown(
            engagement=self.engagement_factor(item),
            recency=self.recency_factor(item, now),
        )
        if profile is None:
            return breakdown

        breakdown.price = self.price_factor(item, profile)
        breakdown.category = self.category_factor(item, profile)
        breakdown.creator = self.creator_factor(item, profile)
        breakdown.proximity = self.proximity_factor(item, context)
        return breakdown

    def score(
        self,
        item: ContentItem,
        profile: Optional[UserProfile],
        context: FeedRequestContext,
        now: Optional[datetime] = None
    ) -> float:
        return self.score_breakdown(item, profile, context, now).total

    def rank(
        self,
        items: Sequence[ContentItem],
        profile: Optional[UserProfile],
        context: FeedRequestContext,
        now: Optional[datetime] = None
    ) -> List[ContentItem]:
        """
        Score items and order them by descending score

        Equal scores keep their input order.

        Returns:
            Copies of the items with ``score`` set
        """
        if not items:
            return []

        now = now or utcnow()
        scores = np.array([self.score(item, profile, context, now) for item in items], dtype=float)
        order = np.argsort(-scores, kind="stable")

        return [replace(items[i], score=float(scores[i])) for i in order]
