import pytest

from propmatch.core.curves import (
    area_similarity_score,
    distance_score,
    divergence_pct,
    jaccard_score,
    pct_difference,
    price_similarity_score,
)
from propmatch.core.geo import haversine_distance_km, haversine_distance_meters


def test_haversine_same_point_is_zero():
    assert haversine_distance_km(38.7223, -9.1393, 38.7223, -9.1393) == 0.0


def test_haversine_one_degree_of_latitude():
    assert haversine_distance_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.01)
    assert haversine_distance_meters(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, abs=10)


def test_distance_score_tiers_are_strict_upper_bounds():
    assert distance_score(0.03) == 100
    assert distance_score(0.05) == 80
    assert distance_score(0.07) == 80
    assert distance_score(0.15) == 50
    assert distance_score(0.20) == 0


def test_price_similarity_tiers():
    assert price_similarity_score(100_000, 104_000) == 100
    assert price_similarity_score(100_000, 108_000) == 70
    assert price_similarity_score(100_000, 115_000) == 40
    assert price_similarity_score(100_000, 130_000) == 0


def test_area_similarity_tiers():
    assert area_similarity_score(80, 82) == 100
    assert area_similarity_score(80, 87) == 80
    assert area_similarity_score(80, 95) == 50
    assert area_similarity_score(80, 120) == 0


def test_zero_values_never_produce_nan():
    assert pct_difference(0, 0) == 0.0
    assert pct_difference(0, 100) == 200.0
    assert pct_difference(-50, 50) is None
    assert pct_difference(None, 10) is None
    assert price_similarity_score(0, 0) == 100
    assert price_similarity_score(0, 100_000) == 0
    assert area_similarity_score(None, 80) == 0


def test_jaccard_score():
    assert jaccard_score({"elevator", "garage"}, {"elevator"}) == 50.0
    assert jaccard_score(set(), set()) == 100.0
    assert jaccard_score({"pool"}, set()) == 0.0


def test_divergence_pct_handles_zero_min():
    assert divergence_pct(200_000, 220_000) == pytest.approx(10.0)
    assert divergence_pct(0, 220_000) == 0.0
