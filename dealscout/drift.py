"""Score drift: per-company snapshot history and week-over-week deltas."""
from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Any

from dealscout.store import ListStore
from dealscout.types import ScoreDrift, ScoreResult, ScoreSnapshot
from dealscout.utils import SECONDS_PER_DAY, as_utc, parse_timestamp, round_half_up, title_case_key, utcnow

log = logging.getLogger(__name__)

MAX_SNAPSHOTS = 50
DEDUPE_WINDOW = timedelta(hours=1)
LOOKBACK = timedelta(days=7)
DIRECTION_THRESHOLD = 1.0
DIMENSION_REASON_THRESHOLD = 5.0


def snapshot_key(company_id: str) -> str:
    return f"snapshots:{company_id}"


def _snapshot_from_dict(data: dict[str, Any]) -> ScoreSnapshot:
    return ScoreSnapshot(
        company_id=str(data.get("company_id", "")),
        score=float(data.get("score", 0.0)),
        timestamp=parse_timestamp(data["timestamp"]),
        dimensions={k: float(v) for k, v in (data.get("dimensions") or {}).items()},
    )


def _period(days: int) -> str:
    if days <= 1:
        return "today"
    if days <= 7:
        return "this week"
    return f"{days}d ago"


class DriftTracker:
    """Append-only, capped score history on top of an injected :class:`ListStore`."""

    def __init__(
        self,
        store: ListStore,
        max_snapshots: int = MAX_SNAPSHOTS,
        dedupe_window: timedelta = DEDUPE_WINDOW,
        lookback: timedelta = LOOKBACK,
    ) -> None:
        self.store = store
        self.max_snapshots = max_snapshots
        self.dedupe_window = dedupe_window
        self.lookback = lookback
        self._lock = threading.Lock()

    def snapshots(self, company_id: str) -> list[ScoreSnapshot]:
        return [_snapshot_from_dict(d) for d in self.store.get(snapshot_key(company_id))]

    def timeline(self, company_id: str, limit: int = 20) -> list[ScoreSnapshot]:
        """Newest ``limit`` snapshots, oldest first."""
        snaps = self.snapshots(company_id)
        return snaps[-limit:] if limit > 0 else []

    def record_score(
        self,
        company_id: str,
        score: float,
        dimensions: dict[str, float] | None = None,
        now=None,
    ) -> ScoreSnapshot | None:
        """Append a snapshot; returns None when skipped as a duplicate.

        An unchanged score recorded within the dedupe window of the last
        snapshot is skipped. The log keeps only the newest ``max_snapshots``.
        """
        now = as_utc(now) if now is not None else utcnow()
        with self._lock:
            history = self.snapshots(company_id)
            if history:
                latest = history[-1]
                if latest.score == score and now - latest.timestamp < self.dedupe_window:
                    log.debug("Skipping unchanged snapshot for %s", company_id)
                    return None
            snapshot = ScoreSnapshot(
                company_id=company_id, score=score, timestamp=now,
                dimensions=dict(dimensions or {}),
            )
            trimmed = [*history, snapshot][-self.max_snapshots:]
            self.store.set(snapshot_key(company_id), [s.to_dict() for s in trimmed])
        return snapshot

    def record_result(self, company_id: str, result: ScoreResult, now=None) -> ScoreSnapshot | None:
        return self.record_score(company_id, result.total, result.raw_scores(), now=now or result.scored_at)

    def get_drift(self, company_id: str, now=None) -> ScoreDrift | None:
        """Compare the latest snapshot with the one nearest ``lookback`` ago.

        Returns None until at least two snapshots exist.
        """
        snaps = self.snapshots(company_id)
        if len(snaps) < 2:
            return None

        now = as_utc(now) if now is not None else utcnow()
        current = snaps[-1]
        target = now - self.lookback
        # Earlier snapshot wins ties. When the whole log predates the lookback
        # the latest snapshot is nearest, and drift reads as no change.
        previous = min(snaps, key=lambda s: abs((s.timestamp - target).total_seconds()))

        delta = round(current.score - previous.score, 1)
        reasons: list[str] = []
        for key, current_val in current.dimensions.items():
            dim_delta = current_val - previous.dimensions.get(key, 0.0)
            if abs(dim_delta) >= DIMENSION_REASON_THRESHOLD:
                sign = "+" if dim_delta > 0 else ""
                reasons.append(f"{title_case_key(key)} {sign}{round_half_up(dim_delta)}")

        if delta > DIRECTION_THRESHOLD:
            direction = "up"
        elif delta < -DIRECTION_THRESHOLD:
            direction = "down"
        else:
            direction = "stable"

        elapsed_days = max(0, round_half_up((now - previous.timestamp).total_seconds() / SECONDS_PER_DAY))
        return ScoreDrift(
            current_score=current.score,
            previous_score=previous.score,
            delta=delta,
            delta_percent=round_half_up(delta / previous.score * 100) if previous.score > 0 else 0,
            direction=direction,
            reasons=tuple(reasons),
            period=_period(elapsed_days),
        )
