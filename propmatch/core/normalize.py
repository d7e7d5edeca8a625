from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any

from propmatch.core.curves import divergence_pct
from propmatch.core.models import CanonicalProperty, Feature, Listing, MarketEvent, MarketEventType, Source, SourceType
from propmatch.core.timeutil import parse_timestamp, utcnow


def build_property_id(tenant_id: str, source_name: str, source_listing_id: str | None, url: str | None) -> str:
    stable = {
        "tenant_id": tenant_id,
        "source": source_name,
        "source_listing_id": source_listing_id,
        "url": (url or "").strip().lower(),
    }
    serialized = json.dumps(stable, sort_keys=True, ensure_ascii=True)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:32]


def listing_to_property(listing: Listing, tenant_id: str, now: datetime | None = None) -> CanonicalProperty | None:
    """
    One-source canonical record for a freshly ingested listing.
    Returns None when the listing lacks coordinates or area.
    """
    if listing.lat is None or listing.lon is None or listing.area_m2 is None:
        return None
    created = now or utcnow()
    price = float(listing.price_eur)
    return CanonicalProperty(
        id=build_property_id(tenant_id, listing.source_name, listing.source_listing_id, listing.url),
        tenant_id=tenant_id,
        lat=float(listing.lat),
        lon=float(listing.lon),
        district=listing.district,
        municipality=listing.municipality,
        parish=listing.parish,
        typology=listing.typology,
        area_m2=float(listing.area_m2),
        price_main=price,
        price_min=price,
        price_max=price,
        price_divergence_pct=0.0,
        bedrooms=listing.bedrooms,
        bathrooms=listing.bathrooms,
        features=listing.features,
        sources=(
            Source(
                source_type=listing.source_type,
                source_name=listing.source_name,
                last_seen=listing.last_seen,
                url=listing.url,
                price=price,
            ),
        ),
        portal_count=1,
        first_seen=listing.last_seen,
        last_seen=listing.last_seen,
        created_at=created,
        updated_at=created,
    )


def property_to_record(property: CanonicalProperty) -> dict[str, Any]:
    return {
        "id": property.id,
        "tenant_id": property.tenant_id,
        "lat": property.lat,
        "lon": property.lon,
        "distrito": property.district,
        "concelho": property.municipality,
        "freguesia": property.parish,
        "typology": property.typology,
        "area_m2": property.area_m2,
        "bedrooms": property.bedrooms,
        "bathrooms": property.bathrooms,
        "features": [{"type": feature.type, "value": feature.value} for feature in property.features],
        "price_main": property.price_main,
        "price_min": property.price_min,
        "price_max": property.price_max,
        "price_divergence_pct": round(property.price_divergence_pct, 4),
        "portal_count": property.portal_count,
        "sources": [
            {
                "source_type": source.source_type.value,
                "source_name": source.source_name,
                "last_seen": source.last_seen.isoformat(),
                "url": source.url,
                "price": source.price,
            }
            for source in property.sources
        ],
        "first_seen": _iso(property.first_seen),
        "last_seen": _iso(property.last_seen),
        "events": [
            {"type": event.type.value, "timestamp": event.timestamp.isoformat(), "data": event.data}
            for event in property.events
        ],
        "angaria_score": property.angaria_score,
        "venda_score": property.venda_score,
        "availability_probability": property.availability_probability,
        "created_at": _iso(property.created_at),
        "updated_at": _iso(property.updated_at),
    }


def property_from_record(row: dict[str, Any]) -> CanonicalProperty:
    price_main = float(row.get("price_main") or 0)
    price_min = _float_or(row.get("price_min"), price_main)
    price_max = _float_or(row.get("price_max"), price_main)
    divergence = row.get("price_divergence_pct")
    sources = tuple(
        Source(
            source_type=SourceType(item.get("source_type") or SourceType.PORTAL.value),
            source_name=str(item.get("source_name") or ""),
            last_seen=parse_timestamp(item.get("last_seen")) or utcnow(),
            url=item.get("url"),
            price=_float_or(item.get("price"), None),
        )
        for item in row.get("sources") or []
    )
    events = tuple(
        MarketEvent(
            type=MarketEventType(item["type"]),
            timestamp=parse_timestamp(item.get("timestamp")) or utcnow(),
            data=item.get("data") or {},
        )
        for item in row.get("events") or []
        if item.get("type")
    )
    portal_count = row.get("portal_count")
    return CanonicalProperty(
        id=str(row["id"]),
        tenant_id=str(row.get("tenant_id") or ""),
        lat=float(row.get("lat") or 0),
        lon=float(row.get("lon") or 0),
        district=row.get("distrito"),
        municipality=row.get("concelho"),
        parish=row.get("freguesia"),
        typology=row.get("typology"),
        area_m2=float(row.get("area_m2") or 0),
        price_main=price_main,
        price_min=price_min,
        price_max=price_max,
        price_divergence_pct=float(divergence) if divergence is not None else divergence_pct(price_min, price_max),
        bedrooms=_int_or_none(row.get("bedrooms")),
        bathrooms=_int_or_none(row.get("bathrooms")),
        features=tuple(
            Feature(type=str(item["type"]), value=item.get("value", True))
            for item in row.get("features") or []
            if item.get("type")
        ),
        sources=sources,
        portal_count=int(portal_count) if portal_count is not None else len(sources),
        first_seen=parse_timestamp(row.get("first_seen")),
        last_seen=parse_timestamp(row.get("last_seen")),
        events=events,
        angaria_score=_float_or(row.get("angaria_score"), None),
        venda_score=_float_or(row.get("venda_score"), None),
        availability_probability=_float_or(row.get("availability_probability"), None),
        created_at=parse_timestamp(row.get("created_at")),
        updated_at=parse_timestamp(row.get("updated_at")),
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _float_or(value: Any, default: float | None) -> float | None:
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
