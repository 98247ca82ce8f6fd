"""Scoring engine: rule-based dimension scorers with deterministic aggregation.

Architecture
------------
Each thesis dimension is scored by a pure function selected from its ``key``:

- **Sector fit**: sector allow-list membership plus keyword hits in tags,
  enrichment keywords, and tagline/description.
- **Stage fit**: exact stage match, with borderline credit one stage above
  the mandate.
- **Geography fit**: region substring match, partial credit for remote teams.
- **Traction signals**: typed, confidence-rated signals with recency decay.
- **Team quality**: founder background keywords, co-founder count, and
  doctoral titles.

Keys that do not name one of these kinds fall back to a neutral scorer so a
single custom dimension never blocks evaluation of the rest.

The dimension results are combined as:

- ``total``        sum of per-dimension ``weighted_score`` (each rounded to
  2 dp first), rounded to 1 dp
- ``grade``        fixed thresholds on ``total``
- ``confidence``   evidence density (signals + enrichment)
- ``explanation``  deterministic paragraph naming matched/missed dimensions
  and quoting up to three evidence strings
"""
from __future__ import annotations

import hashlib
import json
import logging
import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import asdict, replace
from datetime import datetime
from enum import Enum

from dealscout.types import (
    Company,
    Dimension,
    DimensionScore,
    EnrichmentPayload,
    ScoreResult,
    ThesisConfig,
    stage_index,
)
from dealscout.utils import days_since, utcnow

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dimension kinds
# ---------------------------------------------------------------------------


class DimensionKind(str, Enum):
    SECTOR_FIT = "sector_fit"
    STAGE_FIT = "stage_fit"
    GEOGRAPHY_FIT = "geography_fit"
    TRACTION_SIGNALS = "traction_signals"
    TEAM_QUALITY = "team_quality"
    CUSTOM = "custom"

    @classmethod
    def from_key(cls, key: str) -> DimensionKind:
        """Resolve a thesis dimension key; unrecognised keys map to CUSTOM."""
        try:
            return cls(key)
        except ValueError:
            return cls.CUSTOM


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

NEUTRAL_SCORE = 50.0

SECTOR_MATCH_POINTS = 60
TAG_HIT_POINTS, TAG_HIT_CAP = 8, 25
ENRICHMENT_HIT_POINTS, ENRICHMENT_HIT_CAP = 5, 15
DESCRIPTION_HIT_POINTS, DESCRIPTION_HIT_CAP = 3, 10

STAGE_EXACT_SCORE = 100
STAGE_BORDERLINE_SCORE = 40

GEO_MATCH_SCORE = 100
GEO_REMOTE_SCORE = 70

SIGNAL_BASE_VALUES: dict[str, float] = {
    "funding": 25,
    "partnership": 20,
    "product": 18,
    "hiring": 15,
    "github": 14,
    "press": 12,
    "leadership": 10,
    "other": 5,
}
CONFIDENCE_MULTIPLIERS: dict[str, float] = {"high": 1.0, "medium": 0.7, "low": 0.4}
NEW_SIGNAL_BONUS = 5

TEAM_BASELINE = 30
TEAM_FOUNDER_KEYWORD_POINTS = 30
TEAM_ENRICHMENT_KEYWORD_POINTS = 20
TEAM_COFOUNDER_POINTS = 10
TEAM_DOCTORAL_POINTS = 10

MATCH_THRESHOLDS: dict[DimensionKind, float] = {
    DimensionKind.SECTOR_FIT: 50,
    DimensionKind.STAGE_FIT: 50,
    DimensionKind.GEOGRAPHY_FIT: 50,
    DimensionKind.TRACTION_SIGNALS: 40,
    DimensionKind.TEAM_QUALITY: 50,
}

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_DOCTORAL_RE = re.compile(r"(?:^|\s)(?:dr|ph\.?\s?d)\.?(?=\s|,|$)", re.IGNORECASE)


def recency_multiplier(days: int) -> float:
    if days <= 60:
        return 1.0
    if days <= 180:
        return 0.75
    if days <= 365:
        return 0.5
    return 0.2


def to_grade(total: float) -> str:
    """Map a 0-100 total onto a discrete match grade."""
    if total >= 75:
        return "Strong Match"
    if total >= 55:
        return "Good Match"
    if total >= 35:
        return "Weak Match"
    return "No Match"


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _normalize_text(text: str) -> str:
    return _NON_ALNUM_RE.sub(" ", (text or "").lower())


def keyword_hits(keywords: Iterable[str], targets: Iterable[str]) -> list[str]:
    """Return the keywords (in criteria order) found in any of *targets*."""
    normalized = [_normalize_text(t) for t in targets if t]
    hits: list[str] = []
    for kw in keywords:
        needle = _normalize_text(kw).strip()
        if needle and kw not in hits and any(needle in t for t in normalized):
            hits.append(kw)
    return hits


def _dimension_score(
    dimension: Dimension,
    raw_score: float,
    matched: bool,
    evidence: Sequence[str] = (),
    missing: Sequence[str] = (),
) -> DimensionScore:
    raw_score = _clamp(raw_score)
    return DimensionScore(
        key=dimension.key,
        label=dimension.label,
        weight=dimension.weight,
        raw_score=round(raw_score, 2),
        weighted_score=round(raw_score * dimension.weight / 100, 2),
        matched=matched,
        evidence=tuple(evidence),
        missing=tuple(missing),
    )


# ---------------------------------------------------------------------------
# Dimension scorers
# ---------------------------------------------------------------------------


def score_sector_fit(
    company: Company,
    dimension: Dimension,
    enrichment: EnrichmentPayload | None = None,
    now: datetime | None = None,
) -> DimensionScore:
    criteria = dimension.criteria
    keywords = criteria.keywords
    evidence: list[str] = []
    missing: list[str] = []
    raw = 0.0

    if company.sector in criteria.sectors:
        raw += SECTOR_MATCH_POINTS
        evidence.append(f'Sector "{company.sector}" is in thesis target list')
    elif criteria.sectors:
        missing.append(f'Sector "{company.sector}" not in target sectors: {", ".join(criteria.sectors)}')
    else:
        missing.append("No target sectors configured")

    tag_hits = keyword_hits(keywords, company.tags)
    if tag_hits:
        raw += min(TAG_HIT_CAP, len(tag_hits) * TAG_HIT_POINTS)
        evidence.append(f"Tag matches: {', '.join(tag_hits)}")

    if enrichment is not None and enrichment.keywords:
        enrich_hits = keyword_hits(keywords, enrichment.keywords)
        if enrich_hits:
            raw += min(ENRICHMENT_HIT_CAP, len(enrich_hits) * ENRICHMENT_HIT_POINTS)
            evidence.append(f"Enrichment keyword matches: {', '.join(enrich_hits)}")

    desc_hits = keyword_hits(keywords, (company.tagline, company.description))
    if desc_hits:
        raw += min(DESCRIPTION_HIT_CAP, len(desc_hits) * DESCRIPTION_HIT_POINTS)
        evidence.append(f"Description keyword matches: {', '.join(desc_hits)}")

    raw = _clamp(raw)
    return _dimension_score(
        dimension, raw, raw >= MATCH_THRESHOLDS[DimensionKind.SECTOR_FIT], evidence, missing,
    )


def score_stage_fit(
    company: Company,
    dimension: Dimension,
    enrichment: EnrichmentPayload | None = None,
    now: datetime | None = None,
) -> DimensionScore:
    stages = dimension.criteria.stages
    if not stages:
        # No stage opinion: neutral rather than penalising every company.
        return _dimension_score(
            dimension, NEUTRAL_SCORE, True, ["No stage criteria defined - neutral score"],
        )

    evidence: list[str] = []
    missing: list[str] = []
    preferred = ", ".join(stages)
    known = [stage_index(s) for s in stages if stage_index(s) >= 0]
    company_idx = stage_index(company.stage)

    if company.stage in stages:
        raw = STAGE_EXACT_SCORE
        evidence.append(f'Stage "{company.stage}" is an exact thesis match')
    elif known and company_idx >= 0 and company_idx == max(known) + 1:
        raw = STAGE_BORDERLINE_SCORE
        evidence.append(f'Stage "{company.stage}" is one stage above thesis range - borderline')
        missing.append(f"Preferred stages: {preferred}")
    else:
        raw = 0
        missing.append(f'Stage "{company.stage}" is outside thesis mandate. Preferred: {preferred}')

    return _dimension_score(
        dimension, raw, raw >= MATCH_THRESHOLDS[DimensionKind.STAGE_FIT], evidence, missing,
    )


def score_geography_fit(
    company: Company,
    dimension: Dimension,
    enrichment: EnrichmentPayload | None = None,
    now: datetime | None = None,
) -> DimensionScore:
    geographies = dimension.criteria.geographies
    if not geographies:
        return _dimension_score(
            dimension, NEUTRAL_SCORE, True, ["No geography criteria defined - neutral score"],
        )

    evidence: list[str] = []
    missing: list[str] = []
    geo = (company.geography or "").lower()
    region = next((g for g in geographies if g and g.lower() in geo), None)

    if region is not None:
        raw = GEO_MATCH_SCORE
        evidence.append(f'Geography "{company.geography}" matches thesis region "{region}"')
    elif "remote" in geo:
        raw = GEO_REMOTE_SCORE
        evidence.append(f'Remote-first company ("{company.geography}") - geography is flexible')
    else:
        raw = 0
        missing.append(
            f'Geography "{company.geography}" is outside thesis regions: {", ".join(geographies)}'
        )

    return _dimension_score(
        dimension, raw, raw >= MATCH_THRESHOLDS[DimensionKind.GEOGRAPHY_FIT], evidence, missing,
    )


def score_traction_signals(
    company: Company,
    dimension: Dimension,
    enrichment: EnrichmentPayload | None = None,
    now: datetime | None = None,
) -> DimensionScore:
    if not company.signals:
        return _dimension_score(
            dimension, 0, False, missing=["No signals detected for this company"],
        )

    now = now or utcnow()
    evidence: list[str] = []
    missing: list[str] = []
    signal_sum = 0.0

    for signal in company.signals:
        base = SIGNAL_BASE_VALUES.get(signal.type)
        if base is None:
            log.warning("Unknown signal type %r on %s, scoring as 'other'", signal.type, company.name)
            base = SIGNAL_BASE_VALUES["other"]
        confidence = CONFIDENCE_MULTIPLIERS.get(signal.confidence, CONFIDENCE_MULTIPLIERS["low"])
        days = days_since(signal.timestamp, now)
        points = base * confidence * recency_multiplier(days)
        signal_sum += points
        evidence.append(
            f'{signal.type.upper()}: "{signal.title}" '
            f"({days}d ago, {signal.confidence} confidence, +{points:.1f} pts)"
        )

    raw = _clamp(signal_sum)
    new_count = sum(1 for s in company.signals if s.is_new)
    if new_count:
        raw = _clamp(raw + new_count * NEW_SIGNAL_BONUS)
        evidence.append(f"{new_count} new signal(s) detected since last check")

    if raw < 30:
        missing.append("Signal activity is low - limited recent momentum detected")

    return _dimension_score(
        dimension, raw, raw >= MATCH_THRESHOLDS[DimensionKind.TRACTION_SIGNALS], evidence, missing,
    )


def score_team_quality(
    company: Company,
    dimension: Dimension,
    enrichment: EnrichmentPayload | None = None,
    now: datetime | None = None,
) -> DimensionScore:
    keywords = dimension.criteria.keywords
    if not keywords:
        return _dimension_score(
            dimension, TEAM_BASELINE, False, ["No team keyword criteria defined"],
        )

    evidence: list[str] = []
    missing: list[str] = []
    raw = float(TEAM_BASELINE)

    founder_text = " ".join(company.founder_names).lower()
    founder_hits = [kw for kw in keywords if kw.lower() in founder_text]
    if founder_hits:
        raw += TEAM_FOUNDER_KEYWORD_POINTS
        evidence.append(f"Founder background signals: {', '.join(founder_hits)}")

    if enrichment is not None and enrichment.summary:
        summary = enrichment.summary.lower()
        summary_hits = [kw for kw in keywords if kw.lower() in summary]
        if summary_hits:
            raw += TEAM_ENRICHMENT_KEYWORD_POINTS
            evidence.append(f"Enrichment team signals: {', '.join(summary_hits)}")

    if len(company.founder_names) >= 2:
        raw += TEAM_COFOUNDER_POINTS
        evidence.append(f"{len(company.founder_names)} co-founders detected")

    doctors = [n for n in company.founder_names if _DOCTORAL_RE.search(n)]
    if doctors:
        raw += TEAM_DOCTORAL_POINTS
        evidence.append(f"Research background detected (doctoral title): {', '.join(doctors)}")

    raw = _clamp(raw)
    if raw < 50:
        missing.append("Limited founder background signals - consider manual research")

    return _dimension_score(
        dimension, raw, raw >= MATCH_THRESHOLDS[DimensionKind.TEAM_QUALITY], evidence, missing,
    )


def score_neutral(
    company: Company,
    dimension: Dimension,
    enrichment: EnrichmentPayload | None = None,
    now: datetime | None = None,
) -> DimensionScore:
    return _dimension_score(
        dimension, NEUTRAL_SCORE, True, [f'Custom dimension "{dimension.key}" - scored at neutral 50'],
    )


Scorer = Callable[[Company, Dimension, EnrichmentPayload | None, datetime | None], DimensionScore]

SCORERS: dict[DimensionKind, Scorer] = {
    DimensionKind.SECTOR_FIT: score_sector_fit,
    DimensionKind.STAGE_FIT: score_stage_fit,
    DimensionKind.GEOGRAPHY_FIT: score_geography_fit,
    DimensionKind.TRACTION_SIGNALS: score_traction_signals,
    DimensionKind.TEAM_QUALITY: score_team_quality,
    DimensionKind.CUSTOM: score_neutral,
}


def score_dimension(
    company: Company,
    dimension: Dimension,
    enrichment: EnrichmentPayload | None = None,
    now: datetime | None = None,
) -> DimensionScore:
    """Dispatch a dimension to its scorer."""
    kind = DimensionKind.from_key(dimension.key)
    if kind is DimensionKind.CUSTOM and dimension.key != DimensionKind.CUSTOM.value:
        log.warning("Unknown dimension key %r, using neutral scorer", dimension.key)
    return SCORERS[kind](company, dimension, enrichment, now)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def compute_confidence(company: Company, enrichment: EnrichmentPayload | None) -> str:
    """Label how much evidence backs a score, independent of its magnitude."""
    enriched = enrichment is not None and enrichment.succeeded
    high_conf = sum(1 for s in company.signals if s.confidence == "high")
    if high_conf >= 3 and enriched:
        return "High"
    if enriched or len(company.signals) >= 2:
        return "Medium"
    return "Low"


def generate_explanation(
    company: Company,
    dimensions: Sequence[DimensionScore],
    total: float,
    grade: str,
) -> str:
    opening = f"{company.name} scores {total:g}/100 - {grade}."
    if not dimensions:
        return f"{opening} The thesis defines no dimensions to evaluate."

    matched = [d for d in dimensions if d.matched]
    missed = [d for d in dimensions if not d.matched]
    top_evidence = "; ".join([e for d in dimensions for e in d.evidence][:3])
    matched_labels = ", ".join(d.label for d in matched)
    missed_labels = ", ".join(d.label for d in missed)
    evidence_clause = f" Key evidence: {top_evidence}." if top_evidence else ""

    if not missed:
        return (
            f"{opening} All thesis dimensions matched.{evidence_clause} "
            "This company aligns strongly with the fund's mandate."
        )
    if len(matched) > len(missed):
        return f"{opening} Matched on {matched_labels}.{evidence_clause} Weaker on: {missed_labels}."
    if matched:
        return (
            f"{opening} Partial match - strong on {matched_labels} but missed on "
            f"{missed_labels}.{evidence_clause}"
        )
    return (
        f"{opening} No thesis dimensions matched. Missed on: {missed_labels}."
        f"{evidence_clause} Outside current fund mandate."
    )


def score_company(
    company: Company,
    thesis: ThesisConfig,
    enrichment: EnrichmentPayload | None = None,
    now: datetime | None = None,
) -> ScoreResult:
    """Score a company against every thesis dimension, in declared order."""
    now = now or utcnow()
    dimension_scores = tuple(
        score_dimension(company, dimension, enrichment, now) for dimension in thesis.dimensions
    )
    total = round(_clamp(sum(d.weighted_score for d in dimension_scores)), 1)
    grade = to_grade(total)
    result = ScoreResult(
        total=total,
        grade=grade,
        confidence=compute_confidence(company, enrichment),
        dimensions=dimension_scores,
        explanation=generate_explanation(company, dimension_scores, total, grade),
        scored_at=now,
        thesis_version=thesis.version,
    )
    log.debug("Scored %s: %.1f (%s)", company.name, total, grade)
    return result


def score_all_companies(
    companies: Iterable[Company],
    thesis: ThesisConfig,
    now: datetime | None = None,
) -> list[Company]:
    """Score each company with its attached enrichment; sort by total, best first.

    The sort is stable, so equal totals keep their input order.
    """
    now = now or utcnow()
    scored = [
        replace(company, thesis_score=score_company(company, thesis, company.enrichment, now))
        for company in companies
    ]
    return sorted(scored, key=lambda c: c.thesis_score.total, reverse=True)


def score_cache_key(
    company: Company,
    thesis: ThesisConfig,
    enrichment: EnrichmentPayload | None = None,
) -> tuple[str, str, str]:
    """Key under which a ScoreResult may be cached.

    The digest covers every scoring input: the company profile and signals,
    the thesis dimensions and the enrichment. Theses sharing a version string
    or companies edited under the same id never share an entry.
    """
    payload = {
        "company": asdict(replace(company, enrichment=None, thesis_score=None)),
        "dimensions": [asdict(d) for d in thesis.dimensions],
        "enrichment": asdict(enrichment) if enrichment is not None else None,
    }
    text = json.dumps(payload, sort_keys=True, default=str)
    return company.id, thesis.version, hashlib.sha256(text.encode("utf-8")).hexdigest()

