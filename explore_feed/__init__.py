"""
Explore Feed Engine

Personalized ranking and cached feed assembly for the property explore
surface.
"""

__version__ = "1.0.0"

from .config import FeedConfig, ScoringWeights, load_config
from .core.engine import ExploreFeedService, create_feed_service
from .core.models import FeedOptions, FeedRequestContext, FeedResult, FeedType
from .storage.cache import TTLCache

__all__ = [
    "FeedConfig",
    "ScoringWeights",
    "load_config",
    "ExploreFeedService",
    "create_feed_service",
    "FeedOptions",
    "FeedRequestContext",
    "FeedResult",
    "FeedType",
    "TTLCache",
]
