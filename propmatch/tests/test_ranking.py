from datetime import timedelta

import pytest

from propmatch.core.config import ScoringWeights
from propmatch.core.models import Feature, LocationFilter, SearchCriteria, Source, SourceType
from propmatch.core.ranking import (
    calculate_compatibility_score,
    calculate_final_score,
    calculate_temporal_score,
    filter_properties,
    group_by_score_range,
    rank_properties,
    score_and_rank_properties,
    score_characteristics,
    score_location,
    score_price,
)
from propmatch.core.reasons import (
    EXCELLENT_MATCH,
    NEW_ON_MARKET,
    PRICE_IN_RANGE,
    URGENT_OPPORTUNITY,
    generate_reasons,
)


def test_empty_criteria_give_neutral_half_credit(make_property):
    assert calculate_compatibility_score(make_property(), SearchCriteria()) == pytest.approx(50.0)


def test_price_curve_peaks_at_range_midpoint():
    assert score_price(350_000, (300_000, 400_000)) == pytest.approx(1.0)
    assert score_price(300_000, (300_000, 400_000)) == pytest.approx(0.8)
    assert score_price(400_000, (300_000, 400_000)) == pytest.approx(0.8)
    assert score_price(250_000, (300_000, 400_000)) == pytest.approx(0.7)
    assert score_price(420_000, (300_000, 400_000)) == pytest.approx(0.45)
    assert score_price(500_000, (300_000, 400_000)) == 0.0


def test_price_curve_degenerate_ranges():
    assert score_price(100_000, (100_000, 100_000)) == 1.0
    assert score_price(10, (0, 0)) == 0.0


def test_full_match_scores_one_hundred(make_property):
    property = make_property(price_main=350_000.0, typology="T2", bedrooms=2, area_m2=80.0)
    criteria = SearchCriteria(
        location=LocationFilter(municipality="lisboa", parish="ARROIOS"),
        price_range=(300_000, 400_000),
        typology=("t2", "t3"),
        bedrooms_min=2,
        area_range=(70, 120),
    )
    assert calculate_compatibility_score(property, criteria) == pytest.approx(100.0)


def test_partial_location_and_type_mismatch(make_property):
    property = make_property(typology="T1")
    criteria = SearchCriteria(
        location=LocationFilter(district="Lisboa", municipality="Sintra"),
        typology=("T3",),
    )
    # location 0.5*30 + price 15 + type 0 + characteristics 10
    assert calculate_compatibility_score(property, criteria) == pytest.approx(40.0)


def test_location_ignores_fields_the_property_lacks(make_property):
    criteria = LocationFilter(municipality="Lisboa", parish="Arroios")
    assert score_location(make_property(parish=None), criteria) == 1.0
    assert score_location(make_property(parish="Alvalade"), criteria) == 0.5
    assert score_location(make_property(municipality=None, parish=None), criteria) == 0.5

    property = make_property(parish=None)
    full = SearchCriteria(location=criteria)
    assert calculate_compatibility_score(property, full) == pytest.approx(calculate_compatibility_score(make_property(), full))


def test_bedroom_shortfall_reduces_characteristics(make_property):
    property = make_property(bedrooms=1, area_m2=60.0)
    assert score_characteristics(property, SearchCriteria(bedrooms_min=3)) == pytest.approx(0.6)
    assert score_characteristics(property, SearchCriteria(bedrooms_min=9)) == 0.0
    assert score_characteristics(property, SearchCriteria(bedrooms_min=3, area_range=(80, 100))) == pytest.approx(0.55)


def test_compatibility_stays_within_bounds(make_property):
    properties = [
        make_property(),
        make_property(price_main=0.0, area_m2=0.0, typology=None, bedrooms=None, municipality=None, parish=None),
        make_property(price_main=10_000_000.0, bedrooms=0),
    ]
    criteria_options = [
        SearchCriteria(),
        SearchCriteria(location=LocationFilter()),
        SearchCriteria(price_range=(1, 2), typology=("T5",), bedrooms_min=10, area_range=(500, 600)),
        SearchCriteria(location=LocationFilter(parish="Arroios"), price_range=(0, 0)),
    ]
    for property in properties:
        for criteria in criteria_options:
            score = calculate_compatibility_score(property, criteria)
            assert 0.0 <= score <= 100.0


def test_temporal_score_rewards_fresh_available_multi_portal(make_property, now):
    property = make_property(first_seen=now - timedelta(days=2), availability_probability=0.9, portal_count=5)
    assert calculate_temporal_score(property, now) == 100.0


def test_temporal_score_treats_missing_first_seen_as_stale(make_property, now):
    property = make_property(first_seen=None)
    assert calculate_temporal_score(property, now) == pytest.approx(55.0)


@pytest.mark.parametrize(
    ("days", "expected"),
    [(20, 85.0), (60, 75.0), (200, 55.0)],
)
def test_temporal_score_days_on_market_bands(make_property, now, days, expected):
    property = make_property(first_seen=now - timedelta(days=days))
    assert calculate_temporal_score(property, now) == pytest.approx(expected)


def test_final_score_weights():
    assert calculate_final_score(50, 50, 55) == pytest.approx(51.5)
    assert calculate_final_score(100, 0, 0, ScoringWeights(0.5, 0.25, 0.25)) == pytest.approx(50.0)


def test_scoring_weights_must_sum_to_one():
    with pytest.raises(ValueError):
        ScoringWeights(0.5, 0.5, 0.5)


def test_reasons_follow_fixed_priority_and_truncate(make_property, now):
    property = make_property(
        price_main=350_000.0,
        first_seen=now - timedelta(days=1),
        availability_probability=0.9,
        portal_count=5,
    )
    criteria = SearchCriteria(
        location=LocationFilter(municipality="Lisboa"),
        price_range=(300_000, 400_000),
        typology=("T2",),
    )

    scored = score_and_rank_properties([property], criteria, now=now)[0]

    assert scored.compatibility_score >= 80
    assert scored.temporal_score >= 80
    assert scored.reasons == [
        EXCELLENT_MATCH,
        "Located in Arroios, Lisboa",
        PRICE_IN_RANGE,
        URGENT_OPPORTUNITY,
        NEW_ON_MARKET,
    ]


def test_location_and_multi_portal_reasons_without_location_filter(make_property, now):
    property = make_property(portal_count=4, first_seen=None)
    scored = score_and_rank_properties([property], SearchCriteria(), now=now)[0]
    assert scored.reasons == ["Located in Arroios, Lisboa", "Listed on 4 different portals"]


def test_location_reason_needs_parish_and_municipality(make_property, now):
    assert generate_reasons(make_property(parish=None), 50, 50, SearchCriteria(), now) == []
    assert generate_reasons(make_property(), 50, 50, SearchCriteria(), now) == ["Located in Arroios, Lisboa"]


def test_price_reason_needs_both_range_bounds(make_property, now):
    property = make_property(parish=None, price_main=150_000.0)
    assert generate_reasons(property, 50, 50, SearchCriteria(price_range=(100_000, 200_000)), now) == [PRICE_IN_RANGE]
    assert generate_reasons(property, 50, 50, SearchCriteria(price_range=(0, 200_000)), now) == []


def _ranking_pool(make_property, now):
    stale = make_property(id="stale", first_seen=None)
    fresh = make_property(id="fresh", first_seen=now - timedelta(days=1))
    recent = make_property(id="recent", first_seen=now - timedelta(days=20))
    return [stale, fresh, recent]


def test_score_and_rank_orders_descending_with_dense_ranks(make_property, now):
    ranked = score_and_rank_properties(_ranking_pool(make_property, now), SearchCriteria(), now=now)

    assert [item.property.id for item in ranked] == ["fresh", "recent", "stale"]
    assert [item.final_score for item in ranked] == [63.5, 60.5, 51.5]
    assert [item.rank for item in ranked] == [1, 2, 3]


def test_score_and_rank_keeps_input_order_on_ties(make_property, now):
    pool = [make_property(id=name) for name in ("c", "a", "b")]
    ranked = score_and_rank_properties(pool, SearchCriteria(), now=now)
    assert [item.property.id for item in ranked] == ["c", "a", "b"]
    assert [item.rank for item in ranked] == [1, 2, 3]


def test_score_and_rank_is_deterministic(make_property, now):
    pool = _ranking_pool(make_property, now)
    criteria = SearchCriteria(price_range=(250_000, 350_000))

    first = score_and_rank_properties(pool, criteria, now=now)
    second = score_and_rank_properties(pool, criteria, now=now)

    assert [(i.property.id, i.final_score, i.reasons, i.rank) for i in first] == [
        (i.property.id, i.final_score, i.reasons, i.rank) for i in second
    ]


def test_behavior_scores_are_looked_up_by_property_id(make_property, now):
    pool = _ranking_pool(make_property, now)
    ranked = score_and_rank_properties(pool, SearchCriteria(), behavior_scores={"stale": 100.0}, now=now)
    stale = next(item for item in ranked if item.property.id == "stale")
    assert stale.behavior_score == 100.0
    assert stale.final_score == pytest.approx(66.5)
    assert ranked[0].property.id == "stale"


def test_empty_input_ranks_nothing():
    assert score_and_rank_properties([], SearchCriteria()) == []


def test_rank_properties_filters_and_paginates(make_property, now):
    result = rank_properties(
        _ranking_pool(make_property, now),
        SearchCriteria(),
        min_score=55,
        limit=1,
        offset=1,
        now=now,
    )

    assert result.total == 2
    assert [item.property.id for item in result.ranked] == ["recent"]
    assert result.ranked[0].rank == 2
    assert result.page == 2
    assert result.per_page == 1
    assert result.average_score == 62.0
    assert result.top_score == 63.5


def test_rank_properties_uses_criteria_min_score(make_property, now):
    result = rank_properties(_ranking_pool(make_property, now), SearchCriteria(min_score=62), now=now)
    assert [item.property.id for item in result.ranked] == ["fresh"]
    assert result.page == 1


def test_group_by_score_range(make_property, now):
    ranked = score_and_rank_properties(_ranking_pool(make_property, now), SearchCriteria(), now=now)
    groups = group_by_score_range(ranked)
    assert [item.property.id for item in groups["good"]] == ["fresh", "recent"]
    assert [item.property.id for item in groups["fair"]] == ["stale"]
    assert groups["excellent"] == [] and groups["poor"] == []


def test_filter_properties_applies_hard_filters(make_property, now):
    keep = make_property(
        id="keep",
        bathrooms=2,
        features=(Feature("garage", True),),
        availability_probability=0.8,
        sources=(Source(SourceType.PORTAL, "Idealista", now),),
    )
    few_baths = make_property(id="baths", bathrooms=1, features=(Feature("garage", True),), availability_probability=0.8)
    no_garage = make_property(id="garage", bathrooms=2, features=(Feature("garage", False),), availability_probability=0.8)
    unavailable = make_property(id="avail", bathrooms=2, features=(Feature("garage", True),), availability_probability=0.2)
    criteria = SearchCriteria(bathrooms_min=2, features=("garage",), availability="high", sources=("idealista",))

    kept = filter_properties([keep, few_baths, no_garage, unavailable], criteria)

    assert [property.id for property in kept] == ["keep"]


def test_filter_properties_medium_band_treats_missing_probability_as_neutral(make_property):
    property = make_property(availability_probability=None)
    assert filter_properties([property], SearchCriteria(availability="medium")) == [property]
    assert filter_properties([property], SearchCriteria(availability="high")) == []
