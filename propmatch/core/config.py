from __future__ import annotations

import os
from dataclasses import dataclass


AUTO_MERGE_THRESHOLD = 0.90
REVIEW_MERGE_THRESHOLD = 0.70

# Candidate pre-filter tolerances, relative to the target listing.
CANDIDATE_AREA_TOLERANCE = 0.20
CANDIDATE_PRICE_TOLERANCE = 0.30

EARTH_RADIUS_KM = 6371.0

NEUTRAL_BEHAVIOR_SCORE = 50.0
MAX_REASONS = 5
UNKNOWN_DAYS_ON_MARKET = 999


@dataclass(slots=True, frozen=True)
class MatchWeights:
    geo: float = 0.30
    features: float = 0.25
    price: float = 0.20
    area: float = 0.15
    typology: float = 0.10


@dataclass(slots=True, frozen=True)
class DedupeSettings:
    auto_threshold: float = AUTO_MERGE_THRESHOLD
    review_threshold: float = REVIEW_MERGE_THRESHOLD
    area_tolerance: float = CANDIDATE_AREA_TOLERANCE
    price_tolerance: float = CANDIDATE_PRICE_TOLERANCE
    weights: MatchWeights = MatchWeights()

    def __post_init__(self) -> None:
        if self.review_threshold > self.auto_threshold:
            raise ValueError(
                f"review_threshold ({self.review_threshold}) must not exceed auto_threshold ({self.auto_threshold})."
            )

    @classmethod
    def from_env(cls) -> DedupeSettings:
        return cls(
            auto_threshold=_env_float("DEDUPE_AUTO_THRESHOLD", AUTO_MERGE_THRESHOLD),
            review_threshold=_env_float("DEDUPE_REVIEW_THRESHOLD", REVIEW_MERGE_THRESHOLD),
            area_tolerance=_env_float("DEDUPE_AREA_TOLERANCE", CANDIDATE_AREA_TOLERANCE),
            price_tolerance=_env_float("DEDUPE_PRICE_TOLERANCE", CANDIDATE_PRICE_TOLERANCE),
        )


@dataclass(slots=True, frozen=True)
class ScoringWeights:
    """Final score = compatibility*w1 + behavior*w2 + temporal*w3."""

    compatibility: float = 0.4
    behavior: float = 0.3
    temporal: float = 0.3

    def __post_init__(self) -> None:
        total = self.compatibility + self.behavior + self.temporal
        if abs(total - 1.0) > 0.01:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.3f}.")

    @classmethod
    def from_env(cls) -> ScoringWeights:
        return cls(
            compatibility=_env_float("SCORE_WEIGHT_COMPATIBILITY", 0.4),
            behavior=_env_float("SCORE_WEIGHT_BEHAVIOR", 0.3),
            temporal=_env_float("SCORE_WEIGHT_TEMPORAL", 0.3),
        )


DEFAULT_DEDUPE_SETTINGS = DedupeSettings()
DEFAULT_SCORING_WEIGHTS = ScoringWeights()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except (TypeError, ValueError):
        return default
