from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from propmatch.core.config import UNKNOWN_DAYS_ON_MARKET
from propmatch.core.timeutil import days_since


class SourceType(str, Enum):
    PORTAL = "portal"
    CRM = "crm"
    CASAFARI = "casafari"


class MarketEventType(str, Enum):
    NEW_ON_MARKET = "NEW_ON_MARKET"
    PRICE_DROP = "PRICE_DROP"
    PRICE_RISE = "PRICE_RISE"
    BACK_ON_MARKET = "BACK_ON_MARKET"
    OFF_MARKET = "OFF_MARKET"
    NEW_SOURCE_APPEARANCE = "NEW_SOURCE_APPEARANCE"
    SOURCE_REMOVED = "SOURCE_REMOVED"
    CONTENT_CHANGED = "CONTENT_CHANGED"
    PRICE_DIVERGENCE_CHANGED = "PRICE_DIVERGENCE_CHANGED"


class MergeDecision(str, Enum):
    AUTO = "auto"
    REVIEW = "review"
    NO = "no"


class SearchMode(str, Enum):
    ANGARIACAO = "angariacao"
    VENDA = "venda"


@dataclass(slots=True, frozen=True)
class Feature:
    type: str
    value: bool | str | float | int = True


@dataclass(slots=True, frozen=True)
class Source:
    source_type: SourceType
    source_name: str
    last_seen: datetime
    url: str | None = None
    price: float | None = None


@dataclass(slots=True, frozen=True)
class MarketEvent:
    type: MarketEventType
    timestamp: datetime
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Listing:
    """One portal's snapshot of a property, immutable once ingested."""

    source_type: SourceType
    source_name: str
    source_listing_id: str | None
    url: str | None
    last_seen: datetime
    price_eur: float
    typology: str | None = None
    area_m2: float | None = None
    bedrooms: int | None = None
    bathrooms: int | None = None
    features: tuple[Feature, ...] = ()
    lat: float | None = None
    lon: float | None = None
    district: str | None = None
    municipality: str | None = None
    parish: str | None = None


@dataclass(slots=True, frozen=True)
class CanonicalProperty:
    """
    Deduplicated entity for one physical property.

    Coordinates and sizes are taken as supplied: range checks belong to the
    ingestion layer, not to dedup or ranking.
    """

    id: str
    tenant_id: str
    lat: float
    lon: float
    district: str | None
    municipality: str | None
    parish: str | None
    typology: str | None
    area_m2: float
    price_main: float
    price_min: float
    price_max: float
    price_divergence_pct: float = 0.0
    bedrooms: int | None = None
    bathrooms: int | None = None
    features: tuple[Feature, ...] = ()
    sources: tuple[Source, ...] = ()
    portal_count: int = 0
    first_seen: datetime | None = None
    last_seen: datetime | None = None
    events: tuple[MarketEvent, ...] = ()
    angaria_score: float | None = None
    venda_score: float | None = None
    availability_probability: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def feature_types(self) -> set[str]:
        return {feature.type for feature in self.features}

    def days_on_market(self, now: datetime | None = None) -> int:
        return days_since(self.first_seen, now, default=UNKNOWN_DAYS_ON_MARKET)

    def feature_value(self, feature_type: str) -> Any:
        for feature in self.features:
            if feature.type == feature_type:
                return feature.value
        return None


@dataclass(slots=True, frozen=True)
class LocationFilter:
    district: str | None = None
    municipality: str | None = None
    parish: str | None = None

    def specified(self) -> dict[str, str]:
        values = {"district": self.district, "municipality": self.municipality, "parish": self.parish}
        return {key: value for key, value in values.items() if value}


@dataclass(slots=True, frozen=True)
class SearchCriteria:
    mode: SearchMode = SearchMode.VENDA
    location: LocationFilter | None = None
    typology: tuple[str, ...] = ()
    area_range: tuple[float, float] | None = None
    price_range: tuple[float, float] | None = None
    bedrooms_min: int | None = None
    bathrooms_min: int | None = None
    min_score: float | None = None
    features: tuple[str, ...] = ()
    availability: str | None = None  # high | medium | low
    sources: tuple[str, ...] = ()


@dataclass(slots=True)
class ScoredProperty:
    property: CanonicalProperty
    compatibility_score: float
    behavior_score: float
    temporal_score: float
    final_score: float
    reasons: list[str] = field(default_factory=list)
    rank: int | None = None


@dataclass(slots=True, frozen=True)
class MatchScore:
    geo: float
    features: float
    price: float
    area: float
    typology: float
    probability: float


@dataclass(slots=True, frozen=True)
class MatchReview:
    property_id: str
    candidate_id: str
    probability: float


@dataclass(slots=True)
class DedupeResult:
    properties: list[CanonicalProperty]
    absorbed: dict[str, str] = field(default_factory=dict)
    reviews: list[MatchReview] = field(default_factory=list)


@dataclass(slots=True)
class RankingResult:
    ranked: list[ScoredProperty]
    total: int
    page: int
    per_page: int
    average_score: float
    top_score: float
