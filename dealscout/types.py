"""Core records shared by the scoring and portfolio engines.

All records are frozen dataclasses. Engines never mutate their inputs; batch
scoring returns copies built with :func:`dataclasses.replace`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

SIGNAL_TYPES = ("funding", "hiring", "product", "press", "github", "partnership", "leadership", "other")
CONFIDENCE_LEVELS = ("high", "medium", "low")
ENRICHMENT_STATUSES = ("pending", "success", "partial", "failed")

# Signals dated further ahead than this are rejected at every input boundary.
SIGNAL_FUTURE_TOLERANCE = timedelta(days=1)

STAGE_ORDER = ("Pre-Seed", "Seed", "Series A", "Series B", "Series C+")

SECTORS = (
    "AI/ML", "DevTools", "FinTech", "HealthTech", "Climate", "Security",
    "Infrastructure", "SaaS", "Marketplace", "Consumer", "DeepTech", "Other",
)


def stage_index(stage: str | None) -> int:
    """Ordinal position of a funding stage, -1 when unknown."""
    try:
        return STAGE_ORDER.index(stage)  # type: ignore[arg-type]
    except ValueError:
        return -1


# ---------------------------------------------------------------------------
# Company inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Signal:
    type: str
    title: str
    timestamp: datetime
    confidence: str = "medium"
    is_new: bool = False
    id: str = ""
    description: str = ""
    source: str = ""


@dataclass(frozen=True)
class EnrichmentPayload:
    """Output of the external enrichment provider."""
    status: str
    summary: str | None = None
    keywords: tuple[str, ...] = ()
    what_they_do: tuple[str, ...] = ()
    company_id: str = ""
    enriched_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True)
class Company:
    id: str
    name: str
    sector: str
    stage: str
    geography: str = ""
    domain: str = ""
    tagline: str = ""
    description: str = ""
    founded_year: int | None = None
    headcount: str | None = None
    last_funding_amount: float | None = None
    last_funding_date: datetime | None = None
    total_raised: float | None = None
    founder_names: tuple[str, ...] = ()
    investor_names: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    signals: tuple[Signal, ...] = ()
    enrichment: EnrichmentPayload | None = None
    thesis_score: ScoreResult | None = None


# ---------------------------------------------------------------------------
# Thesis
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DimensionCriteria:
    sectors: tuple[str, ...] = ()
    stages: tuple[str, ...] = ()
    geographies: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class Dimension:
    key: str
    label: str
    weight: float
    criteria: DimensionCriteria = field(default_factory=DimensionCriteria)
    description: str = ""


@dataclass(frozen=True)
class ThesisConfig:
    fund_id: str
    fund_name: str
    version: str
    dimensions: tuple[Dimension, ...]
    minimum_score: float = 0
    description: str = ""

    def dimension(self, key: str) -> Dimension | None:
        return next((d for d in self.dimensions if d.key == key), None)


# ---------------------------------------------------------------------------
# Scoring results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DimensionScore:
    key: str
    label: str
    weight: float
    raw_score: float
    weighted_score: float
    matched: bool
    evidence: tuple[str, ...] = ()
    missing: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoreResult:
    total: float
    grade: str
    confidence: str
    dimensions: tuple[DimensionScore, ...]
    explanation: str
    scored_at: datetime
    thesis_version: str

    def raw_scores(self) -> dict[str, float]:
        """Map of dimension key to raw (unweighted) score."""
        return {d.key: d.raw_score for d in self.dimensions}


@dataclass(frozen=True)
class RiskFactor:
    key: str
    label: str
    severity: str
    score: int
    reason: str


@dataclass(frozen=True)
class RiskResult:
    total_risk: int
    grade: str
    factors: tuple[RiskFactor, ...]
    summary: str


@dataclass(frozen=True)
class MomentumResult:
    score: int
    level: str
    label: str
    signal_velocity: float
    prior_velocity: float
    trend: str


@dataclass(frozen=True)
class SimilarCompany:
    company: Company
    similarity_score: int
    match_reasons: tuple[str, ...]


# ---------------------------------------------------------------------------
# Longitudinal records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreSnapshot:
    company_id: str
    score: float
    timestamp: datetime
    dimensions: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id, "score": self.score,
            "timestamp": self.timestamp.isoformat(), "dimensions": dict(self.dimensions),
        }


@dataclass(frozen=True)
class ScoreDrift:
    current_score: float
    previous_score: float
    delta: float
    delta_percent: int
    direction: str
    reasons: tuple[str, ...]
    period: str


@dataclass(frozen=True)
class LearningEvent:
    company_id: str
    company_name: str
    action: str
    dimensions: dict[str, float]
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "company_id": self.company_id, "company_name": self.company_name,
            "action": self.action, "dimensions": dict(self.dimensions),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class WeightAdjustment:
    dimension_key: str
    original_weight: float
    adjusted_weight: float
    delta: float
    reason: str
