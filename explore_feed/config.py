"""
Configuration for the Explore Feed Engine

Values come from dataclass defaults, then an optional YAML file, then
``EXPLORE_FEED_*`` environment variables (a ``.env`` file is honoured).
"""

import os
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv


ENV_PREFIX = "EXPLORE_FEED_"

logger = logging.getLogger(__name__)


@dataclass
class ScoringWeights:
    """Caps and scaling knobs for each scoring factor"""
    engagement_multiplier: float = 4.0
    engagement_cap: float = 40.0
    price_cap: float = 20.0
    category_cap: float = 15.0
    creator_cap: float = 10.0
    recency_cap: float = 10.0
    recency_window_days: int = 7
    proximity_cap: float = 5.0
    proximity_radius_km: float = 50.0
    earth_radius_km: float = 6371.0

    @property
    def max_score(self) -> float:
        return (
            self.engagement_cap + self.price_cap + self.category_cap
            + self.creator_cap + self.recency_cap + self.proximity_cap
        )


@dataclass
class FeedConfig:
    """Configuration for feed generation"""
    default_limit: int = 20
    max_limit: int = 50
    over_fetch_multiplier: int = 3
    feed_ttl: int = 300
    profile_ttl: int = 600
    cache_default_ttl: int = 300
    cache_sweep_interval: float = 60.0
    cache_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    boost_organic_interval: int = 10
    slow_feed_ms: float = 250.0
    scoring: ScoringWeights = field(default_factory=ScoringWeights)

    def __post_init__(self):
        if isinstance(self.scoring, dict):
            self.scoring = ScoringWeights(**self.scoring)
        if self.max_limit < 1:
            raise ValueError("max_limit must be at least 1")
        if not 1 <= self.default_limit <= self.max_limit:
            raise ValueError("default_limit must be between 1 and max_limit")
        if self.over_fetch_multiplier < 1:
            raise ValueError("over_fetch_multiplier must be at least 1")
        if self.cache_backend not in ("memory", "redis"):
            raise ValueError(f"Unsupported cache backend: {self.cache_backend}")


def _coerce(value: str, current: Any) -> Any:
    if isinstance(current, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return value


def _env_overrides(target: Any, prefix: str) -> Dict[str, Any]:
    overrides = {}
    for f in fields(target):
        if f.name == "scoring":
            continue
        env_value = os.environ.get(f"{prefix}{f.name.upper()}")
        if env_value is not None:
            overrides[f.name] = _coerce(env_value, getattr(target, f.name))
    return overrides


def load_config(path: Optional[Union[str, Path]] = None, use_env: bool = True) -> FeedConfig:
    """
    Load feed configuration

    Args:
        path: Optional YAML file; its ``feed`` section (or top level) is read
        use_env: Apply ``EXPLORE_FEED_*`` environment overrides

    Returns:
        Feed configuration
    """
    data: Dict[str, Any] = {}
    if path is not None:
        with open(path, "r", encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh) or {}
        data = loaded.get("feed", loaded)
        logger.info(f"Loaded feed configuration from {path}")

    config = FeedConfig(**data)

    if use_env:
        load_dotenv()
        overrides = _env_overrides(config, ENV_PREFIX)
        scoring_overrides = _env_overrides(config.scoring, f"{ENV_PREFIX}SCORING_")
        if scoring_overrides:
            overrides["scoring"] = replace(config.scoring, **scoring_overrides)
        if overrides:
            logger.info(f"Applied environment overrides: {sorted(overrides)}")
            config = replace(config, **overrides)

    return config
