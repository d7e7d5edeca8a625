from __future__ import annotations

from datetime import datetime

from propmatch.core.config import MAX_REASONS
from propmatch.core.models import CanonicalProperty, SearchCriteria


EXCELLENT_MATCH = "Excellent match for your search criteria"
GOOD_MATCH = "Good match for your preferences"
PRICE_IN_RANGE = "Price within your preferred range"
URGENT_OPPORTUNITY = "Urgent opportunity - act quickly"
NEW_ON_MARKET = "New on market"
HIGH_AVAILABILITY = "High probability of availability"


def generate_reasons(
    property: CanonicalProperty,
    compatibility_score: float,
    temporal_score: float,
    criteria: SearchCriteria,
    now: datetime | None = None,
) -> list[str]:
    """
    Human-readable reasons in fixed priority order, truncated to the first five.
    """
    reasons: list[str] = []

    if compatibility_score >= 80:
        reasons.append(EXCELLENT_MATCH)
    elif compatibility_score >= 60:
        reasons.append(GOOD_MATCH)

    if property.parish and property.municipality:
        reasons.append(f"Located in {property.parish}, {property.municipality}")

    if criteria.price_range is not None and property.price_main:
        low, high = criteria.price_range
        # An open-ended range (zero bound) is not confirmed.
        if low and high and low <= property.price_main <= high:
            reasons.append(PRICE_IN_RANGE)

    if temporal_score >= 80:
        reasons.append(URGENT_OPPORTUNITY)

    if property.days_on_market(now) < 7:
        reasons.append(NEW_ON_MARKET)

    if property.availability_probability is not None and property.availability_probability > 0.7:
        reasons.append(HIGH_AVAILABILITY)

    if property.portal_count > 3:
        reasons.append(f"Listed on {property.portal_count} different portals")

    return reasons[:MAX_REASONS]
