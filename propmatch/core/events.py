from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any

from propmatch.core.models import CanonicalProperty, MarketEvent, MarketEventType
from propmatch.core.timeutil import as_utc, days_since, utcnow


PRICE_CHANGE_MIN_PCT = 1.0
DIVERGENCE_CHANGE_MIN_POINTS = 3.0
AREA_CHANGE_MIN_M2 = 5.0


def detect_events(
    current: CanonicalProperty,
    previous: CanonicalProperty | None = None,
    now: datetime | None = None,
) -> list[MarketEvent]:
    """
    Compare two snapshots of the same canonical property and describe what changed.
    """
    timestamp = now or utcnow()
    if previous is None:
        return [
            MarketEvent(
                MarketEventType.NEW_ON_MARKET,
                timestamp,
                {
                    "first_seen": current.first_seen.isoformat() if current.first_seen else None,
                    "price": current.price_main,
                    "portal_count": current.portal_count,
                },
            )
        ]

    events: list[MarketEvent] = []
    price_event = _price_change(current, previous, timestamp)
    if price_event:
        events.append(price_event)
    events.extend(_source_changes(current, previous, timestamp))

    if previous.portal_count == 0 and current.portal_count > 0:
        events.append(
            MarketEvent(
                MarketEventType.BACK_ON_MARKET,
                timestamp,
                {
                    "days_off_market": days_since(previous.last_seen, timestamp, default=0),
                    "new_portal_count": current.portal_count,
                    "new_price": current.price_main,
                    "old_price": previous.price_main,
                },
            )
        )
    if previous.portal_count > 0 and current.portal_count == 0:
        events.append(
            MarketEvent(
                MarketEventType.OFF_MARKET,
                timestamp,
                {
                    "days_on_market": _days_between(previous.first_seen, previous.last_seen),
                    "last_price": previous.price_main,
                    "last_portal_count": previous.portal_count,
                },
            )
        )

    changes = _content_changes(current, previous)
    if changes:
        events.append(MarketEvent(MarketEventType.CONTENT_CHANGED, timestamp, {"changes": changes}))

    if abs(current.price_divergence_pct - previous.price_divergence_pct) >= DIVERGENCE_CHANGE_MIN_POINTS:
        events.append(
            MarketEvent(
                MarketEventType.PRICE_DIVERGENCE_CHANGED,
                timestamp,
                {
                    "old_divergence": round(previous.price_divergence_pct, 2),
                    "new_divergence": round(current.price_divergence_pct, 2),
                    "price_min": current.price_min,
                    "price_max": current.price_max,
                },
            )
        )
    return events


def append_events(property: CanonicalProperty, events: list[MarketEvent]) -> CanonicalProperty:
    if not events:
        return property
    history = sorted(property.events + tuple(events), key=lambda event: as_utc(event.timestamp), reverse=True)
    return replace(property, events=tuple(history))


def _price_change(current: CanonicalProperty, previous: CanonicalProperty, timestamp: datetime) -> MarketEvent | None:
    if previous.price_main <= 0:
        return None
    diff = current.price_main - previous.price_main
    diff_pct = abs(diff) / previous.price_main * 100.0
    if diff_pct < PRICE_CHANGE_MIN_PCT:
        return None
    event_type = MarketEventType.PRICE_DROP if diff < 0 else MarketEventType.PRICE_RISE
    return MarketEvent(
        event_type,
        timestamp,
        {
            "old_price": previous.price_main,
            "new_price": current.price_main,
            "difference": abs(diff),
            "percentage": round(diff_pct, 2),
        },
    )


def _source_changes(current: CanonicalProperty, previous: CanonicalProperty, timestamp: datetime) -> list[MarketEvent]:
    current_keys = {(source.source_type, source.source_name) for source in current.sources}
    previous_keys = {(source.source_type, source.source_name) for source in previous.sources}
    events: list[MarketEvent] = []
    for source in current.sources:
        if (source.source_type, source.source_name) not in previous_keys:
            events.append(
                MarketEvent(
                    MarketEventType.NEW_SOURCE_APPEARANCE,
                    timestamp,
                    {
                        "source_type": source.source_type.value,
                        "source_name": source.source_name,
                        "url": source.url,
                        "price": source.price,
                    },
                )
            )
    for source in previous.sources:
        if (source.source_type, source.source_name) not in current_keys:
            events.append(
                MarketEvent(
                    MarketEventType.SOURCE_REMOVED,
                    timestamp,
                    {
                        "source_type": source.source_type.value,
                        "source_name": source.source_name,
                        "last_seen": source.last_seen.isoformat(),
                    },
                )
            )
    return events


def _content_changes(current: CanonicalProperty, previous: CanonicalProperty) -> list[dict[str, Any]]:
    changes: list[dict[str, Any]] = []
    if current.typology != previous.typology:
        changes.append({"field": "typology", "old": previous.typology, "new": current.typology})
    if abs(current.area_m2 - previous.area_m2) > AREA_CHANGE_MIN_M2:
        changes.append({"field": "area_m2", "old": previous.area_m2, "new": current.area_m2})
    if current.bedrooms != previous.bedrooms:
        changes.append({"field": "bedrooms", "old": previous.bedrooms, "new": current.bedrooms})
    if current.bathrooms != previous.bathrooms:
        changes.append({"field": "bathrooms", "old": previous.bathrooms, "new": current.bathrooms})
    return changes


def _days_between(start: datetime | None, end: datetime | None) -> int:
    if start is None or end is None:
        return 0
    return days_since(start, end)
