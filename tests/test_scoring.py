import math
from datetime import timedelta

import pytest
from hypothesis import given, settings, strategies as st

from explore_feed.config import ScoringWeights
from explore_feed.core.models import FeedRequestContext, GeoPoint, UserProfile
from explore_feed.core.scoring import PersonalizedScorer, haversine_km

from conftest import CAPE_TOWN, NOW, OLD, make_item


@pytest.fixture
def scorer():
    return PersonalizedScorer()


CONTEXT = FeedRequestContext(user_id=1)


class TestFactors:
    def test_engagement_is_scaled_and_capped(self, scorer):
        assert scorer.engagement_factor(make_item(1, engagement_score=2.5)) == 10.0
        assert scorer.engagement_factor(make_item(1, engagement_score=10)) == 40.0
        assert scorer.engagement_factor(make_item(1, engagement_score=250)) == 40.0
        assert scorer.engagement_factor(make_item(1, engagement_score=-3)) == 0.0

    def test_price_overlap_fraction_of_user_range(self, scorer):
        profile = UserProfile(user_id=1, price_range_min=1_000_000, price_range_max=2_000_000)
        half = make_item(1, price_min=1_500_000, price_max=3_000_000)
        full = make_item(2, price_min=500_000, price_max=5_000_000)
        none = make_item(3, price_min=2_500_000, price_max=3_000_000)

        assert scorer.price_factor(half, profile) == pytest.approx(10.0)
        assert scorer.price_factor(full, profile) == pytest.approx(20.0)
        assert scorer.price_factor(none, profile) == 0.0

    def test_price_requires_all_four_bounds_and_positive_width(self, scorer):
        item = make_item(1, price_min=1_000_000, price_max=2_000_000)
        assert scorer.price_factor(item, UserProfile(user_id=1, price_range_min=1_000_000)) == 0.0
        assert scorer.price_factor(make_item(2), UserProfile(
            user_id=1, price_range_min=1, price_range_max=10
        )) == 0.0

        degenerate = UserProfile(user_id=1, price_range_min=1_500_000, price_range_max=1_500_000)
        assert scorer.price_factor(item, degenerate) == 0.0

    def test_category_match_is_flat(self, scorer):
        profile = UserProfile(user_id=1, preferred_lifestyle_categories=frozenset({"luxury", "beach"}))
        one = make_item(1, lifestyle_categories=frozenset({"beach"}))
        two = make_item(2, lifestyle_categories=frozenset({"beach", "luxury"}))
        miss = make_item(3, lifestyle_categories=frozenset({"rural"}))

        assert scorer.category_factor(one, profile) == 15.0
        assert scorer.category_factor(two, profile) == 15.0
        assert scorer.category_factor(miss, profile) == 0.0

    def test_followed_creator(self, scorer):
        profile = UserProfile(user_id=1, followed_creators=frozenset({101}))
        assert scorer.creator_factor(make_item(1), profile) == 10.0
        assert scorer.creator_factor(make_item(2), profile) == 0.0
        assert scorer.creator_factor(make_item(3, creator_id=None), profile) == 0.0

    @pytest.mark.parametrize("days,expected", [
        (0, 10.0),
        (1, 10.0 * 6 / 7),
        (3, 10.0 * 4 / 7),
        (7, 0.0),
        (8, 0.0),
    ])
    def test_recency_decays_over_a_week(self, scorer, days, expected):
        item = make_item(1, created_at=NOW - timedelta(days=days))
        assert scorer.recency_factor(item, NOW) == pytest.approx(expected)

    def test_recency_counts_calendar_days(self, scorer):
        late_yesterday = NOW.replace(hour=0, minute=30) - timedelta(hours=1)
        assert scorer.recency_factor(make_item(1, created_at=late_yesterday), NOW) == pytest.approx(10.0 * 6 / 7)

    def test_future_content_counts_as_today(self, scorer):
        item = make_item(1, created_at=NOW + timedelta(days=3))
        assert scorer.recency_factor(item, NOW) == 10.0

    def test_proximity_within_radius(self, scorer):
        context = FeedRequestContext(user_id=1, location=CAPE_TOWN)
        same_spot = make_item(1, coordinates=CAPE_TOWN)
        stellenbosch = make_item(2, coordinates=GeoPoint(-33.9321, 18.8602))
        johannesburg = make_item(3, coordinates=GeoPoint(-26.2041, 28.0473))

        assert scorer.proximity_factor(same_spot, context) == pytest.approx(5.0)
        assert 0.0 < scorer.proximity_factor(stellenbosch, context) < 5.0
        assert scorer.proximity_factor(johannesburg, context) == 0.0

    def test_proximity_needs_both_points(self, scorer):
        assert scorer.proximity_factor(make_item(1, coordinates=CAPE_TOWN), CONTEXT) == 0.0
        context = FeedRequestContext(user_id=1, location=CAPE_TOWN)
        assert scorer.proximity_factor(make_item(2), context) == 0.0


def test_haversine_known_distance():
    stellenbosch = GeoPoint(-33.9321, 18.8602)
    assert haversine_km(CAPE_TOWN, stellenbosch) == pytest.approx(40.2, abs=0.5)
    assert haversine_km(CAPE_TOWN, CAPE_TOWN) == 0.0


def test_guest_scores_engagement_and_recency_only(scorer):
    item = make_item(
        1,
        engagement_score=2.0,
        created_at=NOW,
        price_min=1,
        price_max=10,
        lifestyle_categories=frozenset({"luxury"}),
        coordinates=CAPE_TOWN,
    )
    breakdown = scorer.score_breakdown(item, None, FeedRequestContext(location=CAPE_TOWN), NOW)

    assert breakdown.engagement == 8.0
    assert breakdown.recency == 10.0
    assert breakdown.price == breakdown.category == breakdown.creator == breakdown.proximity == 0.0
    assert breakdown.total == 18.0


def test_full_match_reaches_max_score(scorer):
    profile = UserProfile(
        user_id=1,
        price_range_min=1_000_000,
        price_range_max=2_000_000,
        preferred_lifestyle_categories=frozenset({"luxury"}),
        followed_creators=frozenset({101}),
    )
    item = make_item(
        1,
        engagement_score=50,
        created_at=NOW,
        price_min=1_000_000,
        price_max=2_000_000,
        lifestyle_categories=frozenset({"luxury"}),
        coordinates=CAPE_TOWN,
    )
    context = FeedRequestContext(user_id=1, location=CAPE_TOWN)

    assert scorer.score(item, profile, context, NOW) == pytest.approx(ScoringWeights().max_score)
    assert ScoringWeights().max_score == 100.0


def test_rank_orders_by_score_and_keeps_input_order_on_ties(scorer):
    items = [
        make_item(1, engagement_score=1.0),
        make_item(2, engagement_score=5.0),
        make_item(3, engagement_score=1.0),
        make_item(4, engagement_score=5.0),
    ]
    ranked = scorer.rank(items, None, CONTEXT, NOW)

    assert [item.id for item in ranked] == [2, 4, 1, 3]
    assert [item.score for item in ranked] == [20.0, 20.0, 4.0, 4.0]
    assert items[0].score is None


def test_rank_empty(scorer):
    assert scorer.rank([], None, CONTEXT, NOW) == []


def test_custom_weights():
    scorer = PersonalizedScorer(ScoringWeights(engagement_multiplier=1.0, engagement_cap=5.0))
    assert scorer.engagement_factor(make_item(1, engagement_score=3)) == 3.0
    assert scorer.engagement_factor(make_item(1, engagement_score=30)) == 5.0


optional_price = st.one_of(st.none(), st.floats(allow_nan=True, allow_infinity=True))
optional_point = st.one_of(
    st.none(),
    st.builds(GeoPoint, st.floats(-90, 90), st.floats(-180, 180)),
)


@settings(max_examples=200, deadline=None)
@given(
    engagement=st.floats(allow_nan=True, allow_infinity=True),
    item_min=optional_price,
    item_max=optional_price,
    user_min=optional_price,
    user_max=optional_price,
    item_point=optional_point,
    user_point=optional_point,
    age_days=st.integers(min_value=-30, max_value=3650),
    categories=st.frozensets(st.sampled_from(["luxury", "beach", "rural"])),
    follows=st.booleans(),
)
def test_score_is_bounded_and_never_fails(
    engagement, item_min, item_max, user_min, user_max,
    item_point, user_point, age_days, categories, follows
):
    scorer = PersonalizedScorer()
    item = make_item(
        1,
        engagement_score=engagement,
        price_min=item_min,
        price_max=item_max,
        coordinates=item_point,
        created_at=NOW - timedelta(days=age_days),
        lifestyle_categories=categories,
    )
    profile = UserProfile(
        user_id=1,
        price_range_min=user_min,
        price_range_max=user_max,
        preferred_lifestyle_categories=frozenset({"luxury"}),
        followed_creators=frozenset({101}) if follows else frozenset(),
    )
    context = FeedRequestContext(user_id=1, location=user_point)

    for candidate_profile in (profile, None):
        breakdown = scorer.score_breakdown(item, candidate_profile, context, NOW)
        for value in breakdown.to_dict().values():
            assert math.isfinite(value)
            assert value >= 0.0
        assert breakdown.total <= ScoringWeights().max_score + 1e-9


def test_missing_data_scores_zero_for_that_factor(scorer):
    profile = UserProfile(user_id=1)
    item = make_item(1, engagement_score=0.0, created_at=OLD)
    assert scorer.score(item, profile, CONTEXT, NOW) == 0.0
