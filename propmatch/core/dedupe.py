from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from propmatch.core.config import DEFAULT_DEDUPE_SETTINGS, DedupeSettings
from propmatch.core.curves import (
    area_similarity_score,
    distance_score,
    divergence_pct,
    jaccard_score,
    price_similarity_score,
)
from propmatch.core.geo import haversine_distance_km
from propmatch.core.models import (
    CanonicalProperty,
    DedupeResult,
    Feature,
    Listing,
    MatchReview,
    MatchScore,
    MergeDecision,
)
from propmatch.core.timeutil import as_utc, utcnow


LOGGER = logging.getLogger(__name__)


def find_existing_listing(
    listings: list[Listing],
    source_name: str,
    source_listing_id: str | None,
    url: str | None,
) -> Listing | None:
    """
    Primary identity key: (source, source_listing_id), fallback: url.
    """
    if source_listing_id:
        for listing in listings:
            if listing.source_name == source_name and listing.source_listing_id == source_listing_id:
                return listing
    if url:
        needle = url.strip().lower()
        for listing in listings:
            listing_url = (listing.url or "").strip().lower()
            if listing_url and listing_url == needle:
                return listing
    return None


def find_candidates(
    target: CanonicalProperty,
    pool: list[CanonicalProperty],
    settings: DedupeSettings = DEFAULT_DEDUPE_SETTINGS,
) -> list[CanonicalProperty]:
    """
    Cheap pre-filter: same municipality and typology, area within ±20% and
    price within ±30% of the target. No ordering guarantee.
    """
    area_threshold = target.area_m2 * settings.area_tolerance
    price_threshold = target.price_main * settings.price_tolerance
    candidates: list[CanonicalProperty] = []
    for candidate in pool:
        if candidate.id == target.id:
            continue
        if candidate.municipality != target.municipality:
            continue
        if candidate.typology != target.typology:
            continue
        if abs(candidate.area_m2 - target.area_m2) > area_threshold:
            continue
        if abs(candidate.price_main - target.price_main) > price_threshold:
            continue
        candidates.append(candidate)
    return candidates


def score_match(
    a: CanonicalProperty,
    b: CanonicalProperty,
    settings: DedupeSettings = DEFAULT_DEDUPE_SETTINGS,
) -> MatchScore:
    weights = settings.weights
    geo = distance_score(haversine_distance_km(a.lat, a.lon, b.lat, b.lon))
    features = jaccard_score(a.feature_types(), b.feature_types())
    price = price_similarity_score(a.price_main, b.price_main)
    area = area_similarity_score(a.area_m2, b.area_m2)
    typology = 100.0 if a.typology == b.typology else 0.0

    total = (
        geo * weights.geo
        + features * weights.features
        + price * weights.price
        + area * weights.area
        + typology * weights.typology
    )
    return MatchScore(
        geo=geo,
        features=features,
        price=price,
        area=area,
        typology=typology,
        probability=min(total / 100.0, 1.0),
    )


def calculate_match_probability(
    a: CanonicalProperty,
    b: CanonicalProperty,
    settings: DedupeSettings = DEFAULT_DEDUPE_SETTINGS,
) -> float:
    return score_match(a, b, settings).probability


def should_merge(probability: float, settings: DedupeSettings = DEFAULT_DEDUPE_SETTINGS) -> MergeDecision:
    if probability >= settings.auto_threshold:
        return MergeDecision.AUTO
    if probability >= settings.review_threshold:
        return MergeDecision.REVIEW
    return MergeDecision.NO


def merge_properties(
    a: CanonicalProperty,
    b: CanonicalProperty,
    now: datetime | None = None,
) -> CanonicalProperty:
    """
    Merge two records of the same physical property.

    Non-aggregate attributes (location, typology, rooms, stored scores) come
    from `a`. price_main is the plain mean of both inputs, not weighted by
    source count, so merging three or more records in sequence drifts from
    the true mean across sources.
    """
    survivor = a if _survivor_key(a) <= _survivor_key(b) else b
    price_min = min(a.price_min, b.price_min)
    price_max = max(a.price_max, b.price_max)
    events = sorted(a.events + b.events, key=lambda event: as_utc(event.timestamp), reverse=True)

    return replace(
        a,
        id=survivor.id,
        sources=a.sources + b.sources,
        portal_count=a.portal_count + b.portal_count,
        price_main=(a.price_main + b.price_main) / 2,
        price_min=price_min,
        price_max=price_max,
        price_divergence_pct=divergence_pct(price_min, price_max),
        features=merge_features(a.features, b.features),
        first_seen=_earliest(a.first_seen, b.first_seen),
        last_seen=_latest(a.last_seen, b.last_seen),
        events=tuple(events),
        created_at=_earliest(a.created_at, b.created_at),
        updated_at=now or utcnow(),
    )


def merge_features(first: tuple[Feature, ...], second: tuple[Feature, ...]) -> tuple[Feature, ...]:
    # On a type collision the first definition is kept.
    merged: dict[str, Feature] = {}
    for feature in first + second:
        merged.setdefault(feature.type, feature)
    return tuple(merged.values())


def find_duplicates(
    pool: list[CanonicalProperty],
    settings: DedupeSettings = DEFAULT_DEDUPE_SETTINGS,
    now: datetime | None = None,
) -> DedupeResult:
    """
    Greedy pass over a pool snapshot in input order.

    Each surviving record absorbs later records classified `auto`; `review`
    pairs are reported and left unmerged. The input list is not modified.
    """
    merged_at = now or utcnow()
    absorbed: dict[str, str] = {}
    reviews: list[MatchReview] = []
    out: list[CanonicalProperty] = []
    consumed: set[int] = set()

    for i, record in enumerate(pool):
        if i in consumed:
            continue
        current = record
        remaining = [j for j in range(i + 1, len(pool)) if j not in consumed]
        shortlisted = {id(other) for other in find_candidates(current, [pool[j] for j in remaining], settings)}
        for j in remaining:
            candidate = pool[j]
            if id(candidate) not in shortlisted:
                continue
            probability = calculate_match_probability(current, candidate, settings)
            decision = should_merge(probability, settings)
            if decision is MergeDecision.AUTO:
                previous_id = current.id
                consumed.add(j)
                current = merge_properties(current, candidate, now=merged_at)
                loser_id = candidate.id if current.id == previous_id else previous_id
                absorbed[loser_id] = current.id
                for key, value in absorbed.items():
                    if value == loser_id:
                        absorbed[key] = current.id
            elif decision is MergeDecision.REVIEW:
                reviews.append(MatchReview(current.id, candidate.id, round(probability, 4)))
        out.append(current)

    reviews = _resolve_reviews(reviews, absorbed)

    LOGGER.info(
        "Dedup pass pool=%s survivors=%s merged=%s reviews=%s",
        len(pool),
        len(out),
        len(absorbed),
        len(reviews),
    )
    return DedupeResult(properties=out, absorbed=absorbed, reviews=reviews)


def _resolve_reviews(reviews: list[MatchReview], absorbed: dict[str, str]) -> list[MatchReview]:
    # A later auto merge can hand the survivor a different id; point reviews at final ids.
    resolved: list[MatchReview] = []
    seen: set[tuple[str, str]] = set()
    for review in reviews:
        property_id = absorbed.get(review.property_id, review.property_id)
        candidate_id = absorbed.get(review.candidate_id, review.candidate_id)
        if property_id == candidate_id or (property_id, candidate_id) in seen:
            continue
        seen.add((property_id, candidate_id))
        resolved.append(MatchReview(property_id, candidate_id, review.probability))
    return resolved


def _survivor_key(record: CanonicalProperty) -> tuple[datetime, datetime, str]:
    far_future = datetime.max.replace(tzinfo=timezone.utc)
    return (
        as_utc(record.first_seen) if record.first_seen else far_future,
        as_utc(record.created_at) if record.created_at else far_future,
        record.id,
    )


def _earliest(left: datetime | None, right: datetime | None) -> datetime | None:
    values = [value for value in (left, right) if value is not None]
    return min(values, key=as_utc) if values else None


def _latest(left: datetime | None, right: datetime | None) -> datetime | None:
    values = [value for value in (left, right) if value is not None]
    return max(values, key=as_utc) if values else None
