from __future__ import annotations

from datetime import timedelta

from conftest import NOW, make_company, make_signal
from dealscout.drift import DriftTracker, snapshot_key
from dealscout.scorer import score_company
from dealscout.store import SqlStore
from dealscout.thesis import DEFAULT_THESIS


def _at(hours=0, days=0):
    return NOW + timedelta(hours=hours, days=days)


class TestRecordScore:
    def test_unchanged_score_within_an_hour_is_skipped(self, memory_store):
        tracker = DriftTracker(memory_store)
        assert tracker.record_score("c1", 60.0, now=_at()) is not None
        assert tracker.record_score("c1", 60.0, now=NOW + timedelta(minutes=30)) is None
        assert len(tracker.snapshots("c1")) == 1

    def test_changed_score_or_elapsed_hour_is_kept(self, memory_store):
        tracker = DriftTracker(memory_store)
        tracker.record_score("c1", 60.0, now=_at())
        tracker.record_score("c1", 61.0, now=NOW + timedelta(minutes=10))
        tracker.record_score("c1", 61.0, now=_at(hours=2))
        assert [s.score for s in tracker.snapshots("c1")] == [60.0, 61.0, 61.0]

    def test_log_is_capped_keeping_newest(self, memory_store):
        tracker = DriftTracker(memory_store)
        for i in range(60):
            tracker.record_score("c1", float(i), now=_at(hours=i))
        snaps = tracker.snapshots("c1")
        assert len(snaps) == 50
        assert snaps[0].score == 10.0
        assert snaps[-1].score == 59.0

    def test_companies_have_separate_logs(self, memory_store):
        tracker = DriftTracker(memory_store)
        tracker.record_score("a", 10.0, now=_at())
        tracker.record_score("b", 20.0, now=_at())
        assert memory_store.keys() == [snapshot_key("a"), snapshot_key("b")]

    def test_record_result_stores_raw_dimension_scores(self, memory_store):
        company = make_company(signals=(make_signal(days_ago=10, is_new=True),))
        result = score_company(company, DEFAULT_THESIS, now=NOW)
        snap = DriftTracker(memory_store).record_result(company.id, result)
        assert snap.score == 67.0
        assert snap.timestamp == NOW
        assert snap.dimensions["traction_signals"] == 30
        assert snap.dimensions["stage_fit"] == 100


class TestGetDrift:
    def test_needs_two_snapshots(self, memory_store):
        tracker = DriftTracker(memory_store)
        assert tracker.get_drift("c1", now=NOW) is None
        tracker.record_score("c1", 50.0, now=_at())
        assert tracker.get_drift("c1", now=NOW) is None

    def test_week_over_week(self, memory_store):
        tracker = DriftTracker(memory_store)
        tracker.record_score("c1", 50.0, {"sector_fit": 40, "traction_signals": 20}, now=_at(days=-10))
        tracker.record_score("c1", 55.0, {"sector_fit": 50, "traction_signals": 20}, now=_at(days=-7))
        tracker.record_score("c1", 70.0, {"sector_fit": 62, "traction_signals": 22}, now=_at())
        drift = tracker.get_drift("c1", now=NOW)
        assert drift.previous_score == 55.0
        assert drift.current_score == 70.0
        assert drift.delta == 15.0
        assert drift.delta_percent == 27
        assert drift.direction == "up"
        assert drift.reasons == ("Sector Fit +12",)
        assert drift.period == "this week"

    def test_recent_history_compares_against_oldest_snapshot(self, memory_store):
        tracker = DriftTracker(memory_store)
        tracker.record_score("c1", 80.0, now=_at(hours=-3))
        tracker.record_score("c1", 72.0, {"team_quality": 30}, now=_at())
        drift = tracker.get_drift("c1", now=NOW)
        assert drift.previous_score == 80.0
        assert drift.direction == "down"
        assert drift.delta_percent == -10
        assert drift.reasons == ("Team Quality +30",)
        assert drift.period == "today"

    def test_history_older_than_lookback_reports_no_change(self, memory_store):
        tracker = DriftTracker(memory_store)
        tracker.record_score("c1", 40.0, {"sector_fit": 20}, now=_at(days=-30))
        tracker.record_score("c1", 70.0, {"sector_fit": 60}, now=_at(days=-20))
        drift = tracker.get_drift("c1", now=NOW)
        assert drift.previous_score == 70.0
        assert drift.delta == 0.0
        assert drift.delta_percent == 0
        assert drift.direction == "stable"
        assert drift.reasons == ()
        assert drift.period == "20d ago"

    def test_period_rounds_elapsed_days(self, memory_store):
        tracker = DriftTracker(memory_store)
        tracker.record_score("c1", 50.0, now=_at(days=-7, hours=-14.4))
        tracker.record_score("c1", 52.5, now=_at())
        drift = tracker.get_drift("c1", now=NOW)
        assert drift.previous_score == 50.0
        assert drift.delta_percent == 5
        assert drift.period == "8d ago"

    def test_earlier_snapshot_wins_ties(self, memory_store):
        tracker = DriftTracker(memory_store)
        tracker.record_score("c1", 40.0, now=_at(days=-8))
        tracker.record_score("c1", 45.0, now=_at(days=-6))
        tracker.record_score("c1", 45.5, now=_at())
        drift = tracker.get_drift("c1", now=NOW)
        assert drift.previous_score == 40.0
        assert drift.period == "8d ago"

    def test_small_delta_is_stable(self, memory_store):
        tracker = DriftTracker(memory_store)
        tracker.record_score("c1", 0.0, now=_at(days=-7))
        tracker.record_score("c1", 1.0, now=_at())
        drift = tracker.get_drift("c1", now=NOW)
        assert drift.direction == "stable"
        assert drift.delta_percent == 0


def test_timeline_returns_newest(memory_store):
    tracker = DriftTracker(memory_store)
    for i in range(5):
        tracker.record_score("c1", float(i), now=_at(hours=i))
    assert [s.score for s in tracker.timeline("c1", limit=3)] == [2.0, 3.0, 4.0]
    assert len(tracker.timeline("c1")) == 5


def test_works_on_sql_store(session):
    tracker = DriftTracker(SqlStore(session))
    tracker.record_score("c1", 50.0, {"sector_fit": 60}, now=_at(days=-7))
    tracker.record_score("c1", 58.0, {"sector_fit": 70}, now=_at())
    session.commit()
    drift = DriftTracker(SqlStore(session)).get_drift("c1", now=NOW)
    assert drift.delta == 8.0
    assert drift.reasons == ("Sector Fit +10",)
