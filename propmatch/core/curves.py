"""Scoring curves shared by the dedup and ranking engines."""
from __future__ import annotations

from collections.abc import Iterable, Sequence


# (upper bound, score) pairs, evaluated in order; anything beyond the last bound scores 0.
GEO_DISTANCE_TIERS_KM: Sequence[tuple[float, float]] = ((0.05, 100.0), (0.10, 80.0), (0.20, 50.0))
PRICE_DIFF_TIERS_PCT: Sequence[tuple[float, float]] = ((5.0, 100.0), (10.0, 70.0), (20.0, 40.0))
AREA_DIFF_TIERS_PCT: Sequence[tuple[float, float]] = ((5.0, 100.0), (10.0, 80.0), (20.0, 50.0))


def pct_difference(a: float | None, b: float | None) -> float | None:
    """
    Absolute difference as a percentage of the pair's average.
    None when the pair cannot be compared (missing value or non-positive average).
    """
    if a is None or b is None:
        return None
    if a == b:
        return 0.0
    avg = (a + b) / 2
    if avg <= 0:
        return None
    return abs(a - b) / avg * 100.0


def tiered_score(value: float | None, tiers: Sequence[tuple[float, float]], inclusive: bool = True) -> float:
    if value is None:
        return 0.0
    for bound, score in tiers:
        if value <= bound if inclusive else value < bound:
            return score
    return 0.0


def distance_score(distance_km: float) -> float:
    return tiered_score(distance_km, GEO_DISTANCE_TIERS_KM, inclusive=False)


def price_similarity_score(price_a: float | None, price_b: float | None) -> float:
    return tiered_score(pct_difference(price_a, price_b), PRICE_DIFF_TIERS_PCT)


def area_similarity_score(area_a: float | None, area_b: float | None) -> float:
    return tiered_score(pct_difference(area_a, area_b), AREA_DIFF_TIERS_PCT)


def jaccard_score(left: Iterable[str], right: Iterable[str]) -> float:
    # Two empty sets are identical.
    left_set = set(left)
    right_set = set(right)
    union = left_set | right_set
    if not union:
        return 100.0
    return len(left_set & right_set) / len(union) * 100.0


def divergence_pct(price_min: float, price_max: float) -> float:
    if price_min == 0:
        return 0.0
    return (price_max - price_min) / price_min * 100.0
