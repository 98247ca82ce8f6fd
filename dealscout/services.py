"""Shared business logic for DealScout API and MCP server."""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Iterable, Sequence
from typing import Any

from dealscout.config import get_settings
from dealscout.drift import DriftTracker
from dealscout.momentum import calculate_momentum
from dealscout.risk import calculate_risk
from dealscout.scorer import score_all_companies, score_cache_key, score_company
from dealscout.store import ListStore
from dealscout.types import (
    SECTORS,
    STAGE_ORDER,
    Company,
    DimensionScore,
    EnrichmentPayload,
    LearningEvent,
    MomentumResult,
    RiskResult,
    ScoreDrift,
    ScoreResult,
    ScoreSnapshot,
    SimilarCompany,
    ThesisConfig,
    WeightAdjustment,
)
from dealscout.utils import utcnow
from dealscout.weight_learner import WeightLearner

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Score cache
# ---------------------------------------------------------------------------


class ScoreCache:
    """TTL-bounded LRU of ScoreResults keyed by :func:`score_cache_key`."""

    def __init__(self, ttl_seconds: float | None = None, max_entries: int | None = None) -> None:
        settings = get_settings()
        self.ttl_seconds = settings.score_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.max_entries = settings.score_cache_max_entries if max_entries is None else max_entries
        self._entries: OrderedDict[tuple[str, str, str], tuple[float, ScoreResult]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: tuple[str, str, str]) -> ScoreResult | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, result = entry
            if expires_at < time.monotonic():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return result

    def set(self, key: tuple[str, str, str], result: ScoreResult) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + self.ttl_seconds, result)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, company_id: str | None = None) -> None:
        with self._lock:
            if company_id is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[0] == company_id]:
                del self._entries[key]


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def dimension_to_dict(d: DimensionScore) -> dict[str, Any]:
    return {
        "key": d.key, "label": d.label, "weight": d.weight, "raw_score": d.raw_score,
        "weighted_score": d.weighted_score, "matched": d.matched,
        "evidence": list(d.evidence), "missing": list(d.missing),
    }


def score_to_dict(company_id: str, result: ScoreResult) -> dict[str, Any]:
    return {
        "company_id": company_id, "total": result.total, "grade": result.grade,
        "confidence": result.confidence,
        "dimensions": [dimension_to_dict(d) for d in result.dimensions],
        "explanation": result.explanation, "scored_at": result.scored_at.isoformat(),
        "thesis_version": result.thesis_version,
    }


def risk_to_dict(company_id: str, risk: RiskResult) -> dict[str, Any]:
    return {
        "company_id": company_id, "total_risk": risk.total_risk, "grade": risk.grade,
        "factors": [
            {"key": f.key, "label": f.label, "severity": f.severity, "score": f.score, "reason": f.reason}
            for f in risk.factors
        ],
        "summary": risk.summary,
    }


def momentum_to_dict(company_id: str, m: MomentumResult) -> dict[str, Any]:
    return {
        "company_id": company_id, "score": m.score, "level": m.level, "label": m.label,
        "signal_velocity": m.signal_velocity, "prior_velocity": m.prior_velocity, "trend": m.trend,
    }


def similar_to_dict(s: SimilarCompany) -> dict[str, Any]:
    return {
        "company_id": s.company.id, "name": s.company.name,
        "similarity_score": s.similarity_score, "match_reasons": list(s.match_reasons),
    }


def drift_to_dict(company_id: str, d: ScoreDrift) -> dict[str, Any]:
    return {
        "company_id": company_id, "current_score": d.current_score, "previous_score": d.previous_score,
        "delta": d.delta, "delta_percent": d.delta_percent, "direction": d.direction,
        "reasons": list(d.reasons), "period": d.period,
    }


def snapshot_to_dict(s: ScoreSnapshot) -> dict[str, Any]:
    return s.to_dict()


def event_to_dict(e: LearningEvent) -> dict[str, Any]:
    return e.to_dict()


def adjustment_to_dict(a: WeightAdjustment) -> dict[str, Any]:
    return {
        "dimension_key": a.dimension_key, "original_weight": a.original_weight,
        "adjusted_weight": a.adjusted_weight, "delta": a.delta, "reason": a.reason,
    }


def thesis_to_dict(thesis: ThesisConfig) -> dict[str, Any]:
    return {
        "fund_id": thesis.fund_id, "fund_name": thesis.fund_name, "version": thesis.version,
        "minimum_score": thesis.minimum_score, "description": thesis.description,
        "dimensions": [
            {
                "key": d.key, "label": d.label, "weight": d.weight, "description": d.description,
                "criteria": {
                    "sectors": list(d.criteria.sectors), "stages": list(d.criteria.stages),
                    "geographies": list(d.criteria.geographies), "keywords": list(d.criteria.keywords),
                },
            }
            for d in thesis.dimensions
        ],
    }


def company_summary(company: Company, now=None) -> dict[str, Any]:
    """Flat overview row: identity plus thesis score, risk, and momentum."""
    now = now or utcnow()
    risk = calculate_risk(company, company.enrichment, now)
    momentum = calculate_momentum(company, now)
    score = company.thesis_score
    return {
        "id": company.id, "name": company.name, "sector": company.sector,
        "stage": company.stage, "geography": company.geography, "tags": list(company.tags),
        "signal_count": len(company.signals),
        "score": score.total if score else None,
        "grade": score.grade if score else None,
        "confidence": score.confidence if score else None,
        "explanation": score.explanation if score else None,
        "risk": risk.total_risk, "risk_grade": risk.grade,
        "momentum": momentum.score, "momentum_level": momentum.level, "trend": momentum.trend,
    }


# ---------------------------------------------------------------------------
# Filtering and sorting
# ---------------------------------------------------------------------------


def filter_and_sort(
    items: list[dict], *, sector=None, stage=None, geography=None, tag=None, search=None,
    min_score=None, max_score=None, sort_by="score", sort_dir="desc",
) -> list[dict]:
    """Filter ``company_summary`` rows. Comma-separated filters match any value."""
    if sector:
        ss = {s.strip().lower() for s in sector.split(",")}
        items = [i for i in items if (i.get("sector") or "").lower() in ss]
    if stage:
        st = {s.strip().lower() for s in stage.split(",")}
        items = [i for i in items if (i.get("stage") or "").lower() in st]
    if geography:
        gs = [g.strip().lower() for g in geography.split(",") if g.strip()]
        items = [i for i in items if any(g in (i.get("geography") or "").lower() for g in gs)]
    if tag:
        ts = {t.strip().lower() for t in tag.split(",")}
        items = [i for i in items if ts & {t.lower() for t in i.get("tags", [])}]
    if min_score is not None:
        items = [i for i in items if (i.get("score") or 0) >= min_score]
    if max_score is not None:
        items = [i for i in items if (i.get("score") or 0) <= max_score]
    if search:
        q = search.lower()
        items = [i for i in items if q in i["name"].lower()
                 or q in (i.get("sector") or "").lower()
                 or any(q in t.lower() for t in i.get("tags", []))]

    def sort_key(item: dict):
        if sort_by == "score":
            return item["score"] if item["score"] is not None else -1
        if sort_by == "name":
            return item["name"].lower()
        if sort_by in ("risk", "momentum", "signal_count"):
            return item.get(sort_by) or 0
        return item["name"].lower()

    return sorted(items, key=sort_key, reverse=(sort_dir == "desc"))


# ---------------------------------------------------------------------------
# Portfolio views
# ---------------------------------------------------------------------------


def build_heatmap(companies: Iterable[Company]) -> list[dict[str, Any]]:
    """Sector x stage grid of signal counts, intensity normalised to the busiest cell."""
    companies = list(companies)
    cells = []
    for sector in SECTORS:
        for stage in STAGE_ORDER:
            matching = [c for c in companies if c.sector == sector and c.stage == stage]
            cells.append({
                "sector": sector, "stage": stage,
                "signal_count": sum(len(c.signals) for c in matching),
                "company_count": len(matching),
            })
    max_signals = max((c["signal_count"] for c in cells), default=0)
    for cell in cells:
        cell["intensity"] = cell["signal_count"] / max_signals if max_signals else 0.0
    return cells


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def score_and_record(
    store: ListStore,
    company: Company,
    thesis: ThesisConfig,
    enrichment: EnrichmentPayload | None = None,
    *,
    record: bool = True,
    cache: ScoreCache | None = None,
    now=None,
) -> ScoreResult:
    """Score a company and append the result to its drift history (caller must commit)."""
    now = now or utcnow()
    if enrichment is None:
        enrichment = company.enrichment
    key = score_cache_key(company, thesis, enrichment)
    result = cache.get(key) if cache is not None else None
    if result is not None:
        log.debug("Score cache hit for %s", company.id)
    else:
        result = score_company(company, thesis, enrichment, now=now)
        if cache is not None:
            cache.set(key, result)
    if record:
        DriftTracker(store).record_result(company.id, result, now=now)
    return result


def score_portfolio(companies: Sequence[Company], thesis: ThesisConfig, now=None) -> list[dict[str, Any]]:
    now = now or utcnow()
    return [company_summary(c, now) for c in score_all_companies(companies, thesis, now)]


def learned_thesis(store: ListStore, thesis: ThesisConfig) -> ThesisConfig:
    return WeightLearner(store).apply_learned_weights(thesis)


def record_decision(
    store: ListStore,
    company: Company,
    action: str,
    thesis: ThesisConfig,
    dimension_scores: Sequence[DimensionScore] | None = None,
    now=None,
) -> list[WeightAdjustment]:
    """Record a pipeline decision; scores the company first when no dimension scores are given."""
    if dimension_scores is None:
        dimension_scores = score_company(company, thesis, company.enrichment, now=now).dimensions
    return WeightLearner(store).record_decision(company, action, dimension_scores, now=now)
