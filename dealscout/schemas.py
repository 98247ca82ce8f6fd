"""Pydantic request/response schemas for the DealScout API.

Input schemas validate at the boundary and convert to the frozen core records
via ``to_domain()``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from dealscout.types import (
    CONFIDENCE_LEVELS,
    ENRICHMENT_STATUSES,
    SIGNAL_FUTURE_TOLERANCE,
    SIGNAL_TYPES,
    Company,
    Dimension,
    DimensionCriteria,
    DimensionScore,
    EnrichmentPayload,
    Signal,
    ThesisConfig,
)
from dealscout.utils import is_future, parse_timestamp


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class SignalIn(BaseModel):
    type: str = "other"
    title: str = ""
    timestamp: datetime
    confidence: str = "medium"
    is_new: bool = False
    id: str = ""
    description: str = ""
    source: str = ""

    @field_validator("timestamp", mode="before")
    @classmethod
    def timestamp_must_parse(cls, v):
        ts = parse_timestamp(v)
        if is_future(ts, SIGNAL_FUTURE_TOLERANCE):
            raise ValueError("signal timestamp is in the future")
        return ts

    @field_validator("type")
    @classmethod
    def type_must_be_known(cls, v: str) -> str:
        v = v.strip().lower()
        return v if v in SIGNAL_TYPES else "other"

    @field_validator("confidence")
    @classmethod
    def confidence_must_be_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in CONFIDENCE_LEVELS:
            raise ValueError(f"confidence must be one of {', '.join(CONFIDENCE_LEVELS)}")
        return v

    def to_domain(self) -> Signal:
        return Signal(
            type=self.type, title=self.title, timestamp=self.timestamp,
            confidence=self.confidence, is_new=self.is_new, id=self.id,
            description=self.description, source=self.source,
        )


class EnrichmentIn(BaseModel):
    status: str = "success"
    summary: str | None = None
    keywords: list[str] = []
    what_they_do: list[str] = []
    company_id: str = ""
    enriched_at: datetime | None = None

    @field_validator("status")
    @classmethod
    def status_must_be_known(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ENRICHMENT_STATUSES:
            raise ValueError(f"status must be one of {', '.join(ENRICHMENT_STATUSES)}")
        return v

    def to_domain(self) -> EnrichmentPayload:
        return EnrichmentPayload(
            status=self.status, summary=self.summary, keywords=tuple(self.keywords),
            what_they_do=tuple(self.what_they_do), company_id=self.company_id,
            enriched_at=parse_timestamp(self.enriched_at) if self.enriched_at else None,
        )


class CompanyIn(BaseModel):
    id: str
    name: str
    sector: str = "Other"
    stage: str = ""
    geography: str = ""
    domain: str = ""
    tagline: str = ""
    description: str = ""
    founded_year: int | None = None
    headcount: str | None = None
    last_funding_amount: float | None = None
    last_funding_date: datetime | None = None
    total_raised: float | None = None
    founder_names: list[str] = []
    investor_names: list[str] = []
    tags: list[str] = []
    signals: list[SignalIn] = []
    enrichment: EnrichmentIn | None = None

    @field_validator("last_funding_date", mode="before")
    @classmethod
    def funding_date_must_parse(cls, v):
        return None if v in (None, "") else parse_timestamp(v)

    def to_domain(self) -> Company:
        return Company(
            id=self.id, name=self.name, sector=self.sector, stage=self.stage,
            geography=self.geography, domain=self.domain, tagline=self.tagline,
            description=self.description, founded_year=self.founded_year,
            headcount=self.headcount, last_funding_amount=self.last_funding_amount,
            last_funding_date=self.last_funding_date, total_raised=self.total_raised,
            founder_names=tuple(self.founder_names), investor_names=tuple(self.investor_names),
            tags=tuple(self.tags), signals=tuple(s.to_domain() for s in self.signals),
            enrichment=self.enrichment.to_domain() if self.enrichment else None,
        )


class DimensionCriteriaIn(BaseModel):
    sectors: list[str] = []
    stages: list[str] = []
    geographies: list[str] = []
    keywords: list[str] = []

    def to_domain(self) -> DimensionCriteria:
        return DimensionCriteria(
            sectors=tuple(self.sectors), stages=tuple(self.stages),
            geographies=tuple(self.geographies), keywords=tuple(self.keywords),
        )


class DimensionIn(BaseModel):
    key: str
    label: str = ""
    weight: float = Field(ge=0, le=100)
    criteria: DimensionCriteriaIn = DimensionCriteriaIn()
    description: str = ""

    def to_domain(self) -> Dimension:
        return Dimension(
            key=self.key, label=self.label or self.key.replace("_", " ").title(),
            weight=self.weight, criteria=self.criteria.to_domain(), description=self.description,
        )


class ThesisIn(BaseModel):
    fund_id: str = "fund"
    fund_name: str = ""
    version: str = "1.0.0"
    dimensions: list[DimensionIn]
    minimum_score: float = Field(default=0, ge=0, le=100)
    description: str = ""

    def to_domain(self) -> ThesisConfig:
        return ThesisConfig(
            fund_id=self.fund_id, fund_name=self.fund_name, version=self.version,
            dimensions=tuple(d.to_domain() for d in self.dimensions),
            minimum_score=self.minimum_score, description=self.description,
        )


class ScoreRequest(BaseModel):
    company: CompanyIn
    thesis: ThesisIn | None = None
    enrichment: EnrichmentIn | None = None
    record: bool = True


class BatchScoreRequest(BaseModel):
    companies: list[CompanyIn]
    thesis: ThesisIn | None = None


class CompanyRequest(BaseModel):
    company: CompanyIn
    enrichment: EnrichmentIn | None = None


class SimilarRequest(BaseModel):
    target: CompanyIn
    pool: list[CompanyIn]
    limit: int = Field(default=5, ge=1, le=100)


class PortfolioRequest(BaseModel):
    companies: list[CompanyIn]


class DimensionScoreIn(BaseModel):
    key: str
    label: str = ""
    weight: float = 0
    raw_score: float = Field(ge=0, le=100)

    def to_domain(self) -> DimensionScore:
        return DimensionScore(
            key=self.key, label=self.label or self.key, weight=self.weight,
            raw_score=self.raw_score, weighted_score=round(self.raw_score * self.weight / 100, 2),
            matched=False,
        )


class DecisionIn(BaseModel):
    company: CompanyIn
    action: Literal["ic", "invested", "passed"]
    dimension_scores: list[DimensionScoreIn] | None = None
    thesis: ThesisIn | None = None


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class DimensionScoreOut(BaseModel):
    key: str
    label: str
    weight: float
    raw_score: float
    weighted_score: float
    matched: bool
    evidence: list[str]
    missing: list[str]


class ScoreOut(BaseModel):
    company_id: str
    total: float
    grade: str
    confidence: str
    dimensions: list[DimensionScoreOut]
    explanation: str
    scored_at: str
    thesis_version: str


class RiskFactorOut(BaseModel):
    key: str
    label: str
    severity: str
    score: int
    reason: str


class RiskOut(BaseModel):
    company_id: str
    total_risk: int
    grade: str
    factors: list[RiskFactorOut]
    summary: str


class MomentumOut(BaseModel):
    company_id: str
    score: int
    level: str
    label: str
    signal_velocity: float
    prior_velocity: float
    trend: str


class SimilarOut(BaseModel):
    company_id: str
    name: str
    similarity_score: int
    match_reasons: list[str]


class DriftOut(BaseModel):
    company_id: str
    current_score: float
    previous_score: float
    delta: float
    delta_percent: int
    direction: str
    reasons: list[str]
    period: str


class SnapshotOut(BaseModel):
    company_id: str
    score: float
    timestamp: str
    dimensions: dict[str, float]


class WeightAdjustmentOut(BaseModel):
    dimension_key: str
    original_weight: float
    adjusted_weight: float
    delta: float
    reason: str


class LearningEventOut(BaseModel):
    company_id: str
    company_name: str
    action: str
    dimensions: dict[str, float]
    timestamp: str


class LearningStatsOut(BaseModel):
    total_events: int
    adjustments: dict[str, float]
    recent_events: list[LearningEventOut]
