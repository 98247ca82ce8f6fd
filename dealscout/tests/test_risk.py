from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, make_company, make_enrichment, make_signal
from dealscout.risk import calculate_risk, risk_grade


def _keys(result):
    return {f.key for f in result.factors}


def test_every_factor_fires_and_total_is_capped():
    company = make_company(
        stage="Series A", headcount="1-10", founder_names=(),
        last_funding_date=NOW - timedelta(days=400),
    )
    result = calculate_risk(company, None, now=NOW)
    assert _keys(result) == {
        "signal_sparsity", "funding_stale", "stage_traction_mismatch", "founder_unknown",
        "no_enrichment", "no_hiring", "small_team_late_stage",
    }
    assert sum(f.score for f in result.factors) == 103
    assert result.total_risk == 100
    assert result.grade == "Very High Risk"
    assert "Key concerns: Signal Sparsity, Stale Funding, Unknown Founders." in result.summary


def test_healthy_company_has_minimal_risk():
    company = make_company(
        stage="Seed", founder_names=("Ada Lovelace", "Alan Turing"),
        last_funding_date=NOW - timedelta(days=30),
        signals=(make_signal("hiring"), make_signal("funding"), make_signal("product")),
    )
    result = calculate_risk(company, make_enrichment(), now=NOW)
    assert result.total_risk == 0
    assert result.factors == ()
    assert result.grade == "Low Risk"
    assert "minimal risk" in result.summary


@pytest.mark.parametrize("count,score", [(0, 25), (1, 12), (2, 12)])
def test_signal_sparsity(count, score):
    company = make_company(signals=tuple(make_signal("hiring") for _ in range(count)))
    factor = next(f for f in calculate_risk(company, now=NOW).factors if f.key == "signal_sparsity")
    assert factor.score == score


@pytest.mark.parametrize("days,key,score", [
    (None, "funding_unknown", 15),
    (400, "funding_stale", 20),
    (200, "funding_stale", 10),
])
def test_funding_staleness(days, key, score):
    funded = NOW - timedelta(days=days) if days is not None else None
    result = calculate_risk(make_company(last_funding_date=funded), now=NOW)
    factor = next(f for f in result.factors if f.key == key)
    assert factor.score == score


def test_recent_funding_is_not_a_risk():
    result = calculate_risk(make_company(last_funding_date=NOW - timedelta(days=90)), now=NOW)
    assert not _keys(result) & {"funding_unknown", "funding_stale"}


def test_stage_traction_gap_needs_two_high_confidence_signals():
    weak = make_company(stage="Series B", signals=(make_signal(confidence="high"), make_signal(confidence="low")))
    strong = make_company(stage="Series B", signals=(make_signal(confidence="high"), make_signal(confidence="high")))
    assert "stage_traction_mismatch" in _keys(calculate_risk(weak, now=NOW))
    assert "stage_traction_mismatch" not in _keys(calculate_risk(strong, now=NOW))


def test_single_unknown_founder_counts_as_unknown():
    result = calculate_risk(make_company(founder_names=("Unknown",)), now=NOW)
    assert "founder_unknown" in _keys(result)


def test_non_success_enrichment_counts_as_missing():
    result = calculate_risk(make_company(), make_enrichment(status="partial"), now=NOW)
    assert "no_enrichment" in _keys(result)


def test_small_team_only_flags_late_stages():
    assert "small_team_late_stage" not in _keys(calculate_risk(make_company(stage="Seed", headcount="1-10"), now=NOW))
    assert "small_team_late_stage" in _keys(calculate_risk(make_company(stage="Series C+", headcount="11-50"), now=NOW))


@pytest.mark.parametrize("total,grade", [(0, "Low Risk"), (19, "Low Risk"), (20, "Moderate Risk"), (40, "High Risk"), (60, "Very High Risk")])
def test_risk_grade(total, grade):
    assert risk_grade(total) == grade
