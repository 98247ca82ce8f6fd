"""Similarity ranking between one company and a candidate pool.

Weighted factors (max points):

- sector exact match (40)
- tag-set Jaccard similarity (30)
- funding stage proximity (15)
- region match on the target's leading geography component (15)
"""
from __future__ import annotations

import logging
from collections.abc import Iterable

from dealscout.types import Company, SimilarCompany, stage_index
from dealscout.utils import round_half_up

log = logging.getLogger(__name__)

SECTOR_POINTS = 40
TAG_POINTS = 30
STAGE_POINTS = 15
GEO_POINTS = 15

MIN_SIMILARITY = 10
STAGE_DISTANCE_PENALTY = 0.3


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    set_a = {s.lower() for s in a}
    set_b = {s.lower() for s in b}
    union = set_a | set_b
    return len(set_a & set_b) / len(union) if union else 0.0


def stage_proximity(a: str, b: str) -> float:
    idx_a, idx_b = stage_index(a), stage_index(b)
    if idx_a < 0 or idx_b < 0:
        return 0.0
    return max(0.0, 1 - STAGE_DISTANCE_PENALTY * abs(idx_a - idx_b))


def _region(geography: str) -> str:
    return (geography or "").split(",")[0].strip().lower()


def similarity(target: Company, candidate: Company) -> SimilarCompany:
    reasons: list[str] = []
    total = 0.0

    if candidate.sector == target.sector:
        total += SECTOR_POINTS
        reasons.append(f"Same sector: {target.sector}")

    tag_sim = jaccard_similarity(candidate.tags, target.tags)
    if tag_sim > 0:
        target_tags = {t.lower() for t in target.tags}
        overlap = [t for t in candidate.tags if t.lower() in target_tags]
        reasons.append(f"Tags: {', '.join(overlap[:3])}")
    total += tag_sim * TAG_POINTS

    stage_sim = stage_proximity(candidate.stage, target.stage)
    if stage_sim >= 0.7:
        reasons.append(f"Similar stage: {candidate.stage}")
    total += stage_sim * STAGE_POINTS

    region = _region(target.geography)
    if region and region in (candidate.geography or "").lower():
        total += GEO_POINTS
        reasons.append("Same region")

    return SimilarCompany(company=candidate, similarity_score=round_half_up(total), match_reasons=tuple(reasons))


def find_similar_companies(
    target: Company,
    pool: Iterable[Company],
    limit: int = 5,
) -> list[SimilarCompany]:
    """Rank *pool* by similarity to *target*, best first.

    The target itself (by id) is never a candidate. Candidates scoring at or
    below ``MIN_SIMILARITY`` are dropped before the top ``limit`` are taken;
    ties keep pool order.
    """
    scored = [similarity(target, c) for c in pool if c.id != target.id]
    ranked = sorted(scored, key=lambda s: s.similarity_score, reverse=True)
    return [s for s in ranked if s.similarity_score > MIN_SIMILARITY][:max(0, limit)]
