"""
Opportunity scores stored on canonical properties as snapshots.

angaria_score rates a property as an acquisition lead (fresh, under-exposed,
price already moving); venda_score rates it as something to put in front of
a buyer.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from propmatch.core.models import CanonicalProperty, MarketEventType, SearchCriteria, SearchMode, SourceType
from propmatch.core.timeutil import as_utc, days_since, utcnow


ANGARIA_WEIGHTS = {
    "recency": 0.25,
    "price_drop": 0.20,
    "low_exposure": 0.15,
    "price_divergence": 0.10,
    "quality": 0.10,
    "availability": 0.10,
    "private_seller": 0.10,
}

VENDA_WEIGHTS = {
    "buyer_fit": 0.35,
    "availability": 0.20,
    "price_vs_market": 0.15,
    "seller_motivation": 0.10,
    "quality": 0.10,
    "logistics": 0.10,
}

# No market-price or logistics feed yet; both components contribute fixed values.
PRICE_VS_MARKET_SCORE = 70.0
LOGISTICS_SCORE = 75.0


def calculate_angaria_score(property: CanonicalProperty, now: datetime | None = None) -> int:
    current = now or utcnow()
    parts = {
        "recency": _recency_score(days_since(property.last_seen, current)),
        "price_drop": _price_drop_score(property),
        "low_exposure": _low_exposure_score(property.portal_count),
        "price_divergence": min(property.price_divergence_pct * 10, 100.0),
        "quality": listing_quality_indicator(property),
        "availability": _availability(property) * 100,
        "private_seller": _private_seller_signal(property),
    }
    total = sum(parts[key] * weight for key, weight in ANGARIA_WEIGHTS.items())
    return round(total)


def calculate_venda_score(
    property: CanonicalProperty,
    buyer: SearchCriteria | None = None,
    now: datetime | None = None,
) -> float:
    current = now or utcnow()
    parts = {
        "buyer_fit": buyer_fit_score(property, buyer) if buyer is not None else 50.0,
        "availability": _availability(property) * 100,
        "price_vs_market": PRICE_VS_MARKET_SCORE,
        "seller_motivation": _seller_motivation_score(property, current),
        "quality": 100 - listing_quality_indicator(property),
        "logistics": LOGISTICS_SCORE,
    }
    total = sum(parts[key] * weight for key, weight in VENDA_WEIGHTS.items())
    return round(total, 2)


def buyer_fit_score(property: CanonicalProperty, buyer: SearchCriteria) -> float:
    score = 0.0
    max_score = 0.0

    if buyer.typology:
        max_score += 30
        if property.typology in buyer.typology:
            score += 30

    if buyer.location is not None:
        max_score += 25
        wanted_municipality = (buyer.location.municipality or "").lower()
        wanted_district = (buyer.location.district or "").lower()
        if wanted_municipality and (property.municipality or "").lower() == wanted_municipality:
            score += 25
        elif wanted_district and (property.district or "").lower() == wanted_district:
            score += 15

    if buyer.price_range is not None:
        max_score += 25
        low, high = buyer.price_range
        price = property.price_main
        if low <= price <= high:
            score += 25
        elif price < low:
            diff = (low - price) / low * 100 if low else 0.0
            score += max(25 - diff, 0.0)
        else:
            diff = (price - high) / high * 100 if high else 100.0
            score += max(25 - diff, 0.0)

    if buyer.area_range is not None:
        max_score += 20
        low, high = buyer.area_range
        if low <= property.area_m2 <= high:
            score += 20

    return score / max_score * 100 if max_score > 0 else 50.0


def listing_quality_indicator(property: CanonicalProperty) -> float:
    """High when the listing looks amateur (few features, single portal, no CRM)."""
    score = 100.0
    if len(property.features) >= 5:
        score -= 30
    if property.portal_count >= 3:
        score -= 20
    if any(source.source_type is SourceType.CRM for source in property.sources):
        score -= 30
    if property.price_divergence_pct < 2:
        score -= 20
    return max(score, 0.0)


def generate_top_reasons(
    property: CanonicalProperty,
    mode: SearchMode,
    buyer: SearchCriteria | None = None,
    now: datetime | None = None,
) -> list[tuple[str, float]]:
    reasons: list[tuple[str, float]] = []
    has_price_drop = _count_events(property, MarketEventType.PRICE_DROP) > 0

    if mode is SearchMode.ANGARIACAO:
        if days_since(property.last_seen, now) <= 3:
            reasons.append(("Updated in the last 3 days", 0.25))
        if has_price_drop:
            reasons.append(("Recent price drop", 0.20))
        if property.portal_count <= 1:
            reasons.append(("Low exposure (1 portal)", 0.15))
        if property.price_divergence_pct > 5:
            reasons.append((f"Price divergence {property.price_divergence_pct:.1f}%", 0.10))
    else:
        if _availability(property) >= 0.8:
            reasons.append(("High probability of availability", 0.20))
        if buyer is not None and property.typology in buyer.typology:
            reasons.append(("Exact typology match", 0.35))
        if has_price_drop:
            reasons.append(("Motivated seller (price drop)", 0.10))

    reasons.sort(key=lambda item: item[1], reverse=True)
    return reasons[:5]


def snapshot_opportunity_scores(
    property: CanonicalProperty,
    buyer: SearchCriteria | None = None,
    now: datetime | None = None,
) -> CanonicalProperty:
    current = now or utcnow()
    return replace(
        property,
        angaria_score=float(calculate_angaria_score(property, current)),
        venda_score=calculate_venda_score(property, buyer, current),
        updated_at=current,
    )


def _recency_score(days_old: int) -> float:
    if days_old <= 0:
        return 100.0
    if days_old >= 30:
        return 0.0
    return 100.0 - days_old / 30 * 100


def _price_drop_score(property: CanonicalProperty) -> float:
    return float(min(_count_events(property, MarketEventType.PRICE_DROP) * 33, 100))


def _low_exposure_score(portal_count: int) -> float:
    if portal_count <= 1:
        return 100.0
    if portal_count == 2:
        return 60.0
    if portal_count == 3:
        return 30.0
    return 10.0


def _private_seller_signal(property: CanonicalProperty) -> float:
    score = 0.0
    if property.portal_count <= 1:
        score += 40
    if not any(source.source_type is SourceType.CRM for source in property.sources):
        score += 30
    if len(property.features) <= 2:
        score += 30
    return min(score, 100.0)


def _seller_motivation_score(property: CanonicalProperty, now: datetime) -> float:
    score = 0.0
    if _count_events(property, MarketEventType.PRICE_DROP):
        score += 40
    if _count_events(property, MarketEventType.BACK_ON_MARKET):
        score += 30
    week_ago = as_utc(now) - timedelta(days=7)
    if any(
        event.type is MarketEventType.CONTENT_CHANGED and as_utc(event.timestamp) > week_ago
        for event in property.events
    ):
        score += 30
    return min(score, 100.0)


def _availability(property: CanonicalProperty) -> float:
    if property.availability_probability is None:
        return 0.5
    return property.availability_probability


def _count_events(property: CanonicalProperty, event_type: MarketEventType) -> int:
    return sum(1 for event in property.events if event.type is event_type)
