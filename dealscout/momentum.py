"""Momentum index: signal velocity and trend from a company's event history."""
from __future__ import annotations

import logging

from dealscout.types import Company, MomentumResult
from dealscout.utils import days_since, round_half_up, utcnow

log = logging.getLogger(__name__)

CONFIDENCE_WEIGHTS: dict[str, float] = {"high": 1.0, "medium": 0.6, "low": 0.3}

TYPE_WEIGHTS: dict[str, float] = {
    "funding": 3.0,
    "partnership": 2.5,
    "product": 2.0,
    "hiring": 1.8,
    "press": 1.5,
    "github": 1.2,
    "leadership": 1.0,
    "other": 0.5,
}

RECENT_WINDOW_DAYS = 30
PRIOR_WINDOW_DAYS = 90
ACCELERATION_RATIO = 1.3
DECELERATION_RATIO = 0.7

LEVEL_LABELS = {"high": "High Momentum", "emerging": "Emerging", "stale": "Stale"}


def recency_decay(days: int) -> float:
    if days <= 7:
        return 1.0
    if days <= 30:
        return 0.8
    if days <= 90:
        return 0.5
    if days <= 180:
        return 0.25
    return 0.1


def momentum_level(score: float) -> str:
    if score >= 60:
        return "high"
    if score >= 30:
        return "emerging"
    return "stale"


def classify_trend(velocity: float, prior_velocity: float) -> str:
    if velocity > prior_velocity * ACCELERATION_RATIO:
        return "accelerating"
    if velocity < prior_velocity * DECELERATION_RATIO:
        return "decelerating"
    return "steady"


def calculate_momentum(company: Company, now=None) -> MomentumResult:
    """Score how much recent, credible activity a company shows."""
    if not company.signals:
        return MomentumResult(
            score=0, level="stale", label=LEVEL_LABELS["stale"],
            signal_velocity=0.0, prior_velocity=0.0, trend="decelerating",
        )

    now = now or utcnow()
    ages = [days_since(s.timestamp, now) for s in company.signals]

    raw = 0.0
    for signal, days in zip(company.signals, ages):
        confidence = CONFIDENCE_WEIGHTS.get(signal.confidence, CONFIDENCE_WEIGHTS["low"])
        type_weight = TYPE_WEIGHTS.get(signal.type, TYPE_WEIGHTS["other"])
        raw += recency_decay(days) * confidence * type_weight * 10
    score = min(100, round_half_up(raw))

    recent = sum(1 for d in ages if d <= RECENT_WINDOW_DAYS)
    prior = sum(1 for d in ages if RECENT_WINDOW_DAYS < d <= PRIOR_WINDOW_DAYS)
    velocity = round(float(recent), 1)
    # Prior window spans two months; normalise to signals per month.
    months = (PRIOR_WINDOW_DAYS - RECENT_WINDOW_DAYS) / 30
    prior_velocity = round(prior / months, 1)

    level = momentum_level(score)
    result = MomentumResult(
        score=score,
        level=level,
        label=LEVEL_LABELS[level],
        signal_velocity=velocity,
        prior_velocity=prior_velocity,
        trend=classify_trend(velocity, prior_velocity),
    )
    log.debug("Momentum for %s: %d (%s, %s)", company.name, score, level, result.trend)
    return result
