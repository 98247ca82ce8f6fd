"""Adaptive thesis weights learned from pipeline decisions.

When a company is advanced (``ic`` / ``invested``) the dimensions it scored
high on are nudged up and those it scored low on are nudged down; a ``passed``
company nudges up the dimensions that correctly filtered it out. Nudges live in
a separate adjustment map bounded to ``[-max_drift, +max_drift]``; the
thesis's declared weights are never edited in place.
"""
from __future__ import annotations

import logging
import math
import threading
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from dealscout.store import ListStore
from dealscout.types import Company, DimensionScore, LearningEvent, ThesisConfig, WeightAdjustment
from dealscout.utils import as_utc, parse_timestamp, utcnow

log = logging.getLogger(__name__)

LEARNING_RATE = 0.5
PASS_RATE_FACTOR = 0.3
MAX_DRIFT = 10.0
MIN_WEIGHT = 5
MAX_WEIGHT = 50
MAX_EVENTS = 100

ADVANCE_ACTIONS = ("ic", "invested")
VALID_ACTIONS = (*ADVANCE_ACTIONS, "passed")

HIGH_SCORE = 70
LOW_SCORE_ADVANCED = 30
LOW_SCORE_PASSED = 40

EVENTS_KEY = "learning:events"
ADJUSTMENTS_KEY = "learning:adjustments"


def _event_from_dict(data: dict[str, Any]) -> LearningEvent:
    return LearningEvent(
        company_id=str(data.get("company_id", "")),
        company_name=str(data.get("company_name", "")),
        action=str(data.get("action", "")),
        dimensions={k: float(v) for k, v in (data.get("dimensions") or {}).items()},
        timestamp=parse_timestamp(data["timestamp"]),
    )


def apportion(weights: Sequence[float], total: int = 100) -> list[int]:
    """Scale *weights* to integers summing exactly to *total* (largest remainder)."""
    weight_sum = sum(weights)
    if not weights or weight_sum <= 0:
        return [0 for _ in weights]
    exact = [w / weight_sum * total for w in weights]
    floors = [math.floor(x) for x in exact]
    remainder = total - sum(floors)
    # Largest fractional part first; earlier dimension wins ties.
    order = sorted(range(len(exact)), key=lambda i: (-(exact[i] - floors[i]), i))
    for i in order[:remainder]:
        floors[i] += 1
    return floors


class WeightLearner:
    """Learns additive weight nudges from human decisions."""

    def __init__(
        self,
        store: ListStore,
        learning_rate: float = LEARNING_RATE,
        max_drift: float = MAX_DRIFT,
        max_events: int = MAX_EVENTS,
    ) -> None:
        self.store = store
        self.learning_rate = learning_rate
        self.max_drift = max_drift
        self.max_events = max_events
        self._lock = threading.Lock()

    # -- persisted state ----------------------------------------------------

    def events(self) -> list[LearningEvent]:
        return [_event_from_dict(d) for d in self.store.get(EVENTS_KEY)]

    def adjustments(self) -> dict[str, float]:
        return {
            str(d["key"]): float(d["value"])
            for d in self.store.get(ADJUSTMENTS_KEY)
            if "key" in d and "value" in d
        }

    def _save_adjustments(self, adjustments: dict[str, float]) -> None:
        self.store.set(ADJUSTMENTS_KEY, [{"key": k, "value": v} for k, v in adjustments.items()])

    # -- learning -----------------------------------------------------------

    def _nudge(
        self, adjustments: dict[str, float], dim: DimensionScore, action: str, company: Company,
    ) -> tuple[float, str] | None:
        current = adjustments.get(dim.key, 0.0)
        if action in ADVANCE_ACTIONS:
            label = "invested" if action == "invested" else "IC"
            if dim.raw_score >= HIGH_SCORE:
                delta = min(self.learning_rate, self.max_drift - current)
                if delta > 0:
                    return delta, f'High on {label} company "{company.name}" (score: {dim.raw_score:g})'
            elif dim.raw_score < LOW_SCORE_ADVANCED:
                delta = max(-self.learning_rate, -self.max_drift - current)
                if delta < 0:
                    return delta, (
                        f'Low on {label} company "{company.name}" (score: {dim.raw_score:g}) but still '
                        "progressed - dimension may be less critical"
                    )
        elif action == "passed" and dim.raw_score < LOW_SCORE_PASSED:
            delta = min(self.learning_rate * PASS_RATE_FACTOR, self.max_drift - current)
            if delta > 0:
                return delta, (
                    f'Low on passed company "{company.name}" (score: {dim.raw_score:g}) '
                    "- confirms dimension importance"
                )
        return None

    def record_decision(
        self,
        company: Company,
        action: str,
        dimension_scores: Sequence[DimensionScore],
        now=None,
    ) -> list[WeightAdjustment]:
        """Log a decision and return the weight nudges it produced."""
        if action not in VALID_ACTIONS:
            raise ValueError(f"Unknown decision action {action!r}; expected one of {', '.join(VALID_ACTIONS)}")
        now = as_utc(now) if now is not None else utcnow()

        event = LearningEvent(
            company_id=company.id,
            company_name=company.name,
            action=action,
            dimensions={d.key: d.raw_score for d in dimension_scores},
            timestamp=now,
        )

        with self._lock:
            events = [*self.store.get(EVENTS_KEY), event.to_dict()][-self.max_events:]
            self.store.set(EVENTS_KEY, events)

            adjustments = self.adjustments()
            results: list[WeightAdjustment] = []
            for dim in dimension_scores:
                nudge = self._nudge(adjustments, dim, action, company)
                if nudge is None:
                    continue
                delta, reason = nudge
                updated = adjustments.get(dim.key, 0.0) + delta
                adjustments = {**adjustments, dim.key: updated}
                results.append(WeightAdjustment(
                    dimension_key=dim.key,
                    original_weight=dim.weight,
                    adjusted_weight=dim.weight + updated,
                    delta=delta,
                    reason=reason,
                ))
            self._save_adjustments(adjustments)

        log.info("Recorded %s decision for %s: %d weight adjustment(s)", action, company.name, len(results))
        return results

    def apply_learned_weights(self, thesis: ThesisConfig) -> ThesisConfig:
        """Return a copy of *thesis* with learned nudges applied and weights renormalised to 100."""
        if not thesis.dimensions:
            return replace(thesis)
        adjustments = self.adjustments()
        clamped = [
            max(MIN_WEIGHT, min(MAX_WEIGHT, d.weight + adjustments.get(d.key, 0.0)))
            for d in thesis.dimensions
        ]
        weights = apportion(clamped)
        dimensions = tuple(replace(d, weight=w) for d, w in zip(thesis.dimensions, weights))
        return replace(thesis, dimensions=dimensions)

    def stats(self, recent: int = 10) -> dict[str, Any]:
        events = self.events()
        return {
            "total_events": len(events),
            "adjustments": self.adjustments(),
            "recent_events": events[-recent:] if recent > 0 else [],
        }

    def reset(self) -> None:
        with self._lock:
            self.store.set(EVENTS_KEY, [])
            self.store.set(ADJUSTMENTS_KEY, [])
