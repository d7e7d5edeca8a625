from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from propmatch.core.models import CanonicalProperty, Feature, Source, SourceType


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def build_property(**overrides: Any) -> CanonicalProperty:
    first_seen = overrides.pop("first_seen", NOW - timedelta(days=40))
    features = overrides.pop("features", ())
    base = CanonicalProperty(
        id="p1",
        tenant_id="t1",
        lat=38.7223,
        lon=-9.1393,
        district="Lisboa",
        municipality="Lisboa",
        parish="Arroios",
        typology="T2",
        area_m2=80.0,
        price_main=300_000.0,
        price_min=300_000.0,
        price_max=300_000.0,
        bedrooms=2,
        bathrooms=1,
        features=tuple(Feature(item) if isinstance(item, str) else item for item in features),
        sources=(Source(SourceType.PORTAL, "idealista", NOW, url="https://example.com/1", price=300_000.0),),
        portal_count=1,
        first_seen=first_seen,
        last_seen=NOW,
        created_at=first_seen,
        updated_at=first_seen,
    )
    return replace(base, **overrides)


@pytest.fixture
def make_property() -> Callable[..., CanonicalProperty]:
    return build_property


@pytest.fixture
def now() -> datetime:
    return NOW
