"""Error taxonomy for feed generation"""

from typing import Optional


class FeedError(Exception):
    """Base class for explore feed errors"""


class FeedValidationError(FeedError, ValueError):
    """A request is missing or carries an invalid parameter"""

    def __init__(self, message: str, parameter: Optional[str] = None):
        super().__init__(message)
        self.parameter = parameter


class UnknownFeedTypeError(FeedValidationError):
    def __init__(self, feed_type):
        super().__init__(f"Unknown feed type: {feed_type}", parameter="feed_type")
        self.feed_type = feed_type


class EngagementRecordError(FeedError):
    """Persisting an engagement signal failed"""
