from pathlib import Path

import pytest

from explore_feed.config import FeedConfig, ScoringWeights, load_config


DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "config" / "feed.yaml"


def test_defaults():
    config = load_config(use_env=False)
    assert config == FeedConfig()
    assert config.scoring.max_score == 100.0


def test_shipped_yaml_matches_defaults():
    assert load_config(DEFAULT_CONFIG, use_env=False) == FeedConfig()


def test_yaml_feed_section(tmp_path):
    path = tmp_path / "feed.yaml"
    path.write_text(
        "feed:\n"
        "  max_limit: 30\n"
        "  cache_backend: redis\n"
        "  scoring:\n"
        "    creator_cap: 12\n"
    )

    config = load_config(path, use_env=False)

    assert config.max_limit == 30
    assert config.cache_backend == "redis"
    assert isinstance(config.scoring, ScoringWeights)
    assert config.scoring.creator_cap == 12
    assert config.scoring.engagement_cap == 40.0


def test_yaml_without_section(tmp_path):
    path = tmp_path / "flat.yaml"
    path.write_text("feed_ttl: 60\n")
    assert load_config(path, use_env=False).feed_ttl == 60


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("EXPLORE_FEED_FEED_TTL", "45")
    monkeypatch.setenv("EXPLORE_FEED_SLOW_FEED_MS", "100.5")
    monkeypatch.setenv("EXPLORE_FEED_CACHE_BACKEND", "redis")
    monkeypatch.setenv("EXPLORE_FEED_SCORING_PROXIMITY_RADIUS_KM", "25")

    config = load_config()

    assert config.feed_ttl == 45
    assert config.slow_feed_ms == 100.5
    assert config.cache_backend == "redis"
    assert config.scoring.proximity_radius_km == 25.0
    assert config.scoring.engagement_cap == 40.0


def test_environment_overrides_yaml(tmp_path, monkeypatch):
    path = tmp_path / "feed.yaml"
    path.write_text("feed:\n  max_limit: 30\n")
    monkeypatch.setenv("EXPLORE_FEED_MAX_LIMIT", "40")

    assert load_config(path).max_limit == 40


@pytest.mark.parametrize("overrides", [
    {"cache_backend": "memcached"},
    {"max_limit": 0},
    {"default_limit": 60},
    {"over_fetch_multiplier": 0},
])
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ValueError):
        FeedConfig(**overrides)


def test_invalid_environment_value(monkeypatch):
    monkeypatch.setenv("EXPLORE_FEED_CACHE_BACKEND", "memcached")
    with pytest.raises(ValueError):
        load_config()
