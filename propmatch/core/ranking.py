from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime

from propmatch.core.config import DEFAULT_SCORING_WEIGHTS, NEUTRAL_BEHAVIOR_SCORE, ScoringWeights
from propmatch.core.models import CanonicalProperty, LocationFilter, RankingResult, ScoredProperty, SearchCriteria
from propmatch.core.reasons import generate_reasons
from propmatch.core.timeutil import utcnow


LOGGER = logging.getLogger(__name__)

LOCATION_POINTS = 30.0
PRICE_POINTS = 30.0
TYPE_POINTS = 20.0
CHARACTERISTICS_POINTS = 20.0
MAX_COMPATIBILITY_POINTS = LOCATION_POINTS + PRICE_POINTS + TYPE_POINTS + CHARACTERISTICS_POINTS

# Share of the points awarded when the searcher left a dimension unspecified.
NEUTRAL_SHARE = 0.5

AVAILABILITY_BANDS = {"high": (0.7, 1.0), "medium": (0.4, 0.7), "low": (0.0, 0.4)}


def calculate_compatibility_score(property: CanonicalProperty, criteria: SearchCriteria) -> float:
    """
    0-100 fit of a property against explicit search criteria.

    Dimensions the searcher did not specify earn half of their points, so sparse
    criteria do not push scores towards zero.
    """
    score = 0.0

    if criteria.location is not None:
        score += score_location(property, criteria.location) * LOCATION_POINTS
    else:
        score += LOCATION_POINTS * NEUTRAL_SHARE

    if criteria.price_range is not None and property.price_main:
        score += score_price(property.price_main, criteria.price_range) * PRICE_POINTS
    else:
        score += PRICE_POINTS * NEUTRAL_SHARE

    if criteria.typology and property.typology:
        wanted = {typology.lower() for typology in criteria.typology}
        if property.typology.lower() in wanted:
            score += TYPE_POINTS
    else:
        score += TYPE_POINTS * NEUTRAL_SHARE

    score += score_characteristics(property, criteria) * CHARACTERISTICS_POINTS

    return max(0.0, min(100.0, score / MAX_COMPATIBILITY_POINTS * 100.0))


def score_location(property: CanonicalProperty, location: LocationFilter) -> float:
    # Only fields known on both sides are compared.
    compared = 0
    matched = 0
    for key, wanted in location.specified().items():
        actual = getattr(property, key)
        if not actual:
            continue
        compared += 1
        if actual.lower() == wanted.lower():
            matched += 1
    if not compared:
        return NEUTRAL_SHARE
    return matched / compared


def score_price(price: float, price_range: tuple[float, float]) -> float:
    low, high = price_range
    if low <= price <= high:
        half_width = (high - low) / 2
        if half_width <= 0:
            return 1.0
        distance_from_mid = abs(price - (low + high) / 2)
        return 1.0 - (distance_from_mid / half_width) * 0.2
    if price < low:
        return 0.7
    tolerance = high * 0.2
    if tolerance <= 0:
        return 0.0
    return max(0.0, 0.6 - ((price - high) / tolerance) * 0.6)


def score_characteristics(property: CanonicalProperty, criteria: SearchCriteria) -> float:
    parts: list[float] = []

    if criteria.bedrooms_min is not None and property.bedrooms is not None:
        if property.bedrooms >= criteria.bedrooms_min:
            parts.append(1.0)
        else:
            parts.append(max(0.0, 1.0 - (criteria.bedrooms_min - property.bedrooms) * 0.2))

    if criteria.area_range is not None and property.area_m2:
        area_min = criteria.area_range[0]
        parts.append(1.0 if property.area_m2 >= area_min else 0.5)

    if not parts:
        return NEUTRAL_SHARE
    return sum(parts) / len(parts)


def calculate_temporal_score(property: CanonicalProperty, now: datetime | None = None) -> float:
    score = 50.0

    days_on_market = property.days_on_market(now)
    if days_on_market < 7:
        score += 30
    elif days_on_market < 30:
        score += 20
    elif days_on_market < 90:
        score += 10
    else:
        score -= 10

    if property.availability_probability is not None:
        score += property.availability_probability * 30
    else:
        score += 15

    if property.portal_count > 3:
        score += 10

    return max(0.0, min(100.0, score))


def calculate_final_score(
    compatibility: float,
    behavior: float,
    temporal: float,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
) -> float:
    final = weights.compatibility * compatibility + weights.behavior * behavior + weights.temporal * temporal
    return round(final, 2)


def score_property(
    property: CanonicalProperty,
    criteria: SearchCriteria,
    behavior_score: float | None = None,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
    now: datetime | None = None,
) -> ScoredProperty:
    compatibility = calculate_compatibility_score(property, criteria)
    temporal = calculate_temporal_score(property, now)
    behavior = NEUTRAL_BEHAVIOR_SCORE if behavior_score is None else float(behavior_score)
    return ScoredProperty(
        property=property,
        compatibility_score=compatibility,
        behavior_score=behavior,
        temporal_score=temporal,
        final_score=calculate_final_score(compatibility, behavior, temporal, weights),
        reasons=generate_reasons(property, compatibility, temporal, criteria, now),
    )


def score_and_rank_properties(
    properties: list[CanonicalProperty],
    criteria: SearchCriteria,
    behavior_scores: Mapping[str, float] | None = None,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
    now: datetime | None = None,
) -> list[ScoredProperty]:
    """
    Score every property and order by final score, highest first.

    Ties keep input order (sorted() is stable); ranks are 1..n.
    """
    scored_at = now or utcnow()
    behavior_scores = behavior_scores or {}
    scored = [
        score_property(property, criteria, behavior_scores.get(property.id), weights, scored_at)
        for property in properties
    ]
    scored.sort(key=lambda item: item.final_score, reverse=True)
    for idx, item in enumerate(scored, start=1):
        item.rank = idx
    return scored


def rank_properties(
    properties: list[CanonicalProperty],
    criteria: SearchCriteria,
    behavior_scores: Mapping[str, float] | None = None,
    min_score: float | None = None,
    limit: int | None = None,
    offset: int = 0,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
    now: datetime | None = None,
) -> RankingResult:
    threshold = min_score if min_score is not None else criteria.min_score
    scored = score_and_rank_properties(properties, criteria, behavior_scores, weights, now)
    if threshold is not None:
        scored = [item for item in scored if item.final_score >= threshold]

    total = len(scored)
    offset = max(0, offset)
    per_page = limit if limit else total
    page_items = scored[offset : offset + per_page] if limit else scored[offset:]
    for idx, item in enumerate(page_items, start=offset + 1):
        item.rank = idx

    average = sum(item.final_score for item in scored) / total if total else 0.0
    top = scored[0].final_score if scored else 0.0
    LOGGER.debug("Ranked properties input=%s kept=%s returned=%s", len(properties), total, len(page_items))
    return RankingResult(
        ranked=page_items,
        total=total,
        page=offset // (per_page or 1) + 1,
        per_page=per_page,
        average_score=round(average, 2),
        top_score=round(top, 2),
    )


def group_by_score_range(scored: list[ScoredProperty]) -> dict[str, list[ScoredProperty]]:
    groups: dict[str, list[ScoredProperty]] = {"excellent": [], "good": [], "fair": [], "poor": []}
    for item in scored:
        if item.final_score >= 80:
            groups["excellent"].append(item)
        elif item.final_score >= 60:
            groups["good"].append(item)
        elif item.final_score >= 40:
            groups["fair"].append(item)
        else:
            groups["poor"].append(item)
    return groups


def filter_properties(properties: list[CanonicalProperty], criteria: SearchCriteria) -> list[CanonicalProperty]:
    """
    Hard filters for criteria that do not feed the compatibility score.
    """
    return [property for property in properties if _passes_filters(property, criteria)]


def _passes_filters(property: CanonicalProperty, criteria: SearchCriteria) -> bool:
    if criteria.bathrooms_min is not None and (property.bathrooms or 0) < criteria.bathrooms_min:
        return False

    for feature_type in criteria.features:
        if not property.feature_value(feature_type):
            return False

    if criteria.sources:
        names = [source.source_name.lower() for source in property.sources]
        wanted = [name.lower() for name in criteria.sources]
        if not any(want in name for want in wanted for name in names):
            return False

    if criteria.availability:
        band = AVAILABILITY_BANDS.get(criteria.availability.lower())
        if band is not None:
            probability = property.availability_probability
            probability = 0.5 if probability is None else probability
            low, high = band
            if probability < low or (probability >= high and high < 1.0):
                return False

    return True
