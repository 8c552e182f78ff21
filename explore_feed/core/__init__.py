"""Core feed ranking components"""

from .models import ContentItem, UserProfile, FeedRequestContext, FeedOptions, FeedResult, FeedType
from .scoring import PersonalizedScorer, ScoreBreakdown
from .boost import BoostInjector, NoOpBoostInjector, CampaignBoostInjector
from .exceptions import FeedError, FeedValidationError, UnknownFeedTypeError

__all__ = [
    "ContentItem", "UserProfile", "FeedRequestContext", "FeedOptions", "FeedResult", "FeedType",
    "PersonalizedScorer", "ScoreBreakdown",
    "BoostInjector", "NoOpBoostInjector", "CampaignBoostInjector",
    "FeedError", "FeedValidationError", "UnknownFeedTypeError",
]
