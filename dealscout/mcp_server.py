from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, contextmanager

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from dealscout import services
from dealscout.db import get_session, init_db
from dealscout.drift import DriftTracker
from dealscout.momentum import calculate_momentum
from dealscout.risk import calculate_risk
from dealscout.schemas import CompanyIn, DimensionScoreIn, ThesisIn
from dealscout.similarity import find_similar_companies
from dealscout.store import SqlStore
from dealscout.thesis import active_thesis
from dealscout.weight_learner import VALID_ACTIONS, WeightLearner

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def dealscout_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "DealScout",
    instructions=(
        "DealScout scores startups against a venture fund's investment thesis. "
        "Companies are passed as JSON objects (id, name, sector, stage, geography, "
        "signals, ...). Start with score_company_tool() for thesis fit, then "
        "assess_risk() and get_momentum(); record_decision() teaches the thesis weights."
    ),
    lifespan=dealscout_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _session():
    session = get_session()
    try:
        yield session
    finally:
        session.close()


def _company_or_error(data: dict):
    try:
        return CompanyIn.model_validate(data).to_domain(), None
    except ValidationError as exc:
        return None, {"error": f"Invalid company: {exc}"}


def _thesis_or_error(data: dict | None):
    if data is None:
        return active_thesis(), None
    try:
        return ThesisIn.model_validate(data).to_domain(), None
    except ValidationError as exc:
        return None, {"error": f"Invalid thesis: {exc}"}


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("dealscout://overview")
def dealscout_overview() -> str:
    """Overview of DealScout: data model, workflow, and grade bands."""
    return json.dumps({
        "system": "DealScout - Thesis-fit scoring for venture deal sourcing",
        "description": (
            "DealScout scores companies against a fund's weighted investment thesis, "
            "explains each dimension with evidence, and tracks how scores drift over time. "
            "Pipeline decisions nudge the thesis weights within a bounded band."
        ),
        "data_model": {
            "company": "Startup profile: sector, stage, geography, founders, tags, and dated signals.",
            "signal": "Dated event (funding, hiring, product, press, github, partnership, leadership, other) with a confidence level.",
            "thesis": "Weighted dimensions (sector_fit, stage_fit, geography_fit, traction_signals, team_quality, or custom).",
            "snapshot": "Recorded score for a company at a point in time, used for drift.",
        },
        "workflow": [
            "1. score_company_tool(company) - thesis-fit score with per-dimension evidence.",
            "2. assess_risk(company) and get_momentum(company) - diligence flags and signal velocity.",
            "3. find_similar(target, pool) - comparable companies.",
            "4. get_drift(company_id) / get_timeline(company_id) - score history.",
            "5. record_decision(company, action) - ic, invested, or passed.",
            "6. get_learning_stats() - learned weight adjustments.",
        ],
        "grades": {
            "Strong Match": "total >= 75",
            "Good Match": "total >= 55",
            "Weak Match": "total >= 35",
            "No Match": "total < 35",
        },
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Scoring & Analysis
# ---------------------------------------------------------------------------


@mcp.tool()
def score_company_tool(company: dict, thesis: dict | None = None, record: bool = True) -> dict:
    """Score a company against the investment thesis and record a drift snapshot.

    Args:
        company: Company object with id, name, sector, stage, geography, founder_names,
                 tags, signals (type, title, timestamp, confidence, is_new).
        thesis: Optional thesis override; the configured thesis is used when omitted.
        record: Append the result to the company's score history.
    """
    comp, err = _company_or_error(company)
    if err:
        return err
    th, err = _thesis_or_error(thesis)
    if err:
        return err
    with _session() as session:
        result = services.score_and_record(SqlStore(session), comp, th, record=record)
        session.commit()
        return services.score_to_dict(comp.id, result)


@mcp.tool()
def score_companies(
    companies: list[dict], thesis: dict | None = None,
    sector: str | None = None, stage: str | None = None, search: str | None = None,
    min_score: float | None = None, sort_by: str = "score", sort_dir: str = "desc",
) -> list[dict] | dict:
    """Score a batch of companies and return filtered summary rows, best first."""
    comps = []
    for data in companies:
        comp, err = _company_or_error(data)
        if err:
            return err
        comps.append(comp)
    th, err = _thesis_or_error(thesis)
    if err:
        return err
    items = services.score_portfolio(comps, th)
    return services.filter_and_sort(
        items, sector=sector, stage=stage, search=search, min_score=min_score,
        sort_by=sort_by, sort_dir=sort_dir,
    )


@mcp.tool()
def assess_risk(company: dict) -> dict:
    """Flag diligence risks: sparse signals, stale funding, unknown founders, and more."""
    comp, err = _company_or_error(company)
    if err:
        return err
    return services.risk_to_dict(comp.id, calculate_risk(comp, comp.enrichment))


@mcp.tool()
def get_momentum(company: dict) -> dict:
    """Signal momentum score, 30-day velocity, and trend."""
    comp, err = _company_or_error(company)
    if err:
        return err
    return services.momentum_to_dict(comp.id, calculate_momentum(comp))


@mcp.tool()
def find_similar(target: dict, pool: list[dict], limit: int = 5) -> list[dict] | dict:
    """Rank companies in the pool by similarity to the target (never the target itself)."""
    tgt, err = _company_or_error(target)
    if err:
        return err
    candidates = []
    for data in pool:
        comp, err = _company_or_error(data)
        if err:
            return err
        candidates.append(comp)
    matches = find_similar_companies(tgt, candidates, max(1, min(limit, 100)))
    return [services.similar_to_dict(s) for s in matches]


# ---------------------------------------------------------------------------
# Tools: Drift
# ---------------------------------------------------------------------------


@mcp.tool()
def get_drift(company_id: str) -> dict:
    """Score change against the snapshot nearest one week ago."""
    with _session() as session:
        drift = DriftTracker(SqlStore(session)).get_drift(company_id)
        if drift is None:
            return {"error": f"Not enough score history for {company_id}"}
        return services.drift_to_dict(company_id, drift)


@mcp.tool()
def get_timeline(company_id: str, limit: int = 20) -> list[dict]:
    """Recent score snapshots for a company, oldest first."""
    with _session() as session:
        snaps = DriftTracker(SqlStore(session)).timeline(company_id, max(1, min(limit, 50)))
        return [services.snapshot_to_dict(s) for s in snaps]


# ---------------------------------------------------------------------------
# Tools: Learning
# ---------------------------------------------------------------------------


@mcp.tool()
def record_decision(
    company: dict, action: str,
    dimension_scores: list[dict] | None = None, thesis: dict | None = None,
) -> list[dict] | dict:
    """Record a pipeline decision (ic, invested, passed) and return the weight nudges.

    Args:
        company: Company object the decision is about.
        action: One of ic, invested, passed.
        dimension_scores: Optional [{key, weight, raw_score}]; the company is scored when omitted.
        thesis: Optional thesis override used when scoring.
    """
    if action not in VALID_ACTIONS:
        return {"error": f"Unknown action {action!r}; expected one of {', '.join(VALID_ACTIONS)}"}
    comp, err = _company_or_error(company)
    if err:
        return err
    th, err = _thesis_or_error(thesis)
    if err:
        return err
    scores = None
    if dimension_scores is not None:
        try:
            scores = [DimensionScoreIn.model_validate(d).to_domain() for d in dimension_scores]
        except ValidationError as exc:
            return {"error": f"Invalid dimension scores: {exc}"}
    with _session() as session:
        adjustments = services.record_decision(SqlStore(session), comp, action, th, scores)
        session.commit()
        return [services.adjustment_to_dict(a) for a in adjustments]


@mcp.tool()
def get_learning_stats() -> dict:
    """Learning event count, current weight adjustments, and the 10 most recent decisions."""
    with _session() as session:
        stats = WeightLearner(SqlStore(session)).stats()
        return {**stats, "recent_events": [services.event_to_dict(e) for e in stats["recent_events"]]}


@mcp.tool()
def get_learned_thesis(thesis: dict | None = None) -> dict:
    """The thesis with learned weight adjustments applied, renormalised to 100."""
    th, err = _thesis_or_error(thesis)
    if err:
        return err
    with _session() as session:
        return services.thesis_to_dict(services.learned_thesis(SqlStore(session), th))


def main():
    """Run the DealScout MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
