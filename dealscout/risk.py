"""Risk engine: additive risk factors, independent of the thesis score.

Each factor is computed on its own and contributes a fixed number of points;
the total is the capped sum, so evaluation order never changes the result.
"""
from __future__ import annotations

import logging

from dealscout.types import Company, EnrichmentPayload, RiskFactor, RiskResult
from dealscout.utils import days_since, utcnow

log = logging.getLogger(__name__)

MAX_RISK = 100

LATE_STAGES = ("Series A", "Series B", "Series C+")
TRACTION_CHECK_STAGES = ("Series A", "Series B")
SMALL_HEADCOUNTS = ("1-10", "11-50")


def _signal_sparsity(company: Company, now) -> RiskFactor | None:
    count = len(company.signals)
    if count == 0:
        return RiskFactor(
            "signal_sparsity", "Signal Sparsity", "high", 25,
            "No signals detected - limited visibility into company activity",
        )
    if count < 3:
        return RiskFactor(
            "signal_sparsity", "Signal Sparsity", "medium", 12,
            f"Only {count} signal(s) - limited coverage",
        )
    return None


def _funding_staleness(company: Company, now) -> RiskFactor | None:
    if company.last_funding_date is None:
        return RiskFactor("funding_unknown", "Unknown Funding", "medium", 15, "No funding data available")
    days = days_since(company.last_funding_date, now)
    months = round(days / 30)
    if days > 365:
        return RiskFactor(
            "funding_stale", "Stale Funding", "high", 20,
            f"Last funding was {months} months ago - runway concerns",
        )
    if days > 180:
        return RiskFactor(
            "funding_stale", "Aging Funding", "medium", 10,
            f"Last funding was {months} months ago",
        )
    return None


def _stage_traction_gap(company: Company, now) -> RiskFactor | None:
    if company.stage not in TRACTION_CHECK_STAGES:
        return None
    high_conf = sum(1 for s in company.signals if s.confidence == "high")
    if high_conf < 2:
        return RiskFactor(
            "stage_traction_mismatch", "Stage-Traction Gap", "medium", 15,
            f"{company.stage} stage but only {high_conf} high-confidence signal(s)",
        )
    return None


def _unknown_founders(company: Company, now) -> RiskFactor | None:
    names = [n.strip() for n in company.founder_names if n and n.strip()]
    if not names or (len(names) == 1 and names[0].lower() == "unknown"):
        return RiskFactor(
            "founder_unknown", "Unknown Founders", "high", 15,
            "No founder information available - no way to assess team quality",
        )
    return None


def _no_hiring(company: Company, now) -> RiskFactor | None:
    if any(s.type == "hiring" for s in company.signals):
        return None
    return RiskFactor(
        "no_hiring", "No Hiring Activity", "low", 8,
        "No hiring signals detected - may indicate slow growth",
    )


def _small_team_late_stage(company: Company, now) -> RiskFactor | None:
    if company.headcount in SMALL_HEADCOUNTS and company.stage in LATE_STAGES:
        return RiskFactor(
            "small_team_late_stage", "Team Size Concern", "medium", 10,
            f"Headcount {company.headcount} seems low for {company.stage}",
        )
    return None


_COMPANY_FACTORS = (
    _signal_sparsity,
    _funding_staleness,
    _stage_traction_gap,
    _unknown_founders,
    _no_hiring,
    _small_team_late_stage,
)


def risk_grade(total: int) -> str:
    if total >= 60:
        return "Very High Risk"
    if total >= 40:
        return "High Risk"
    if total >= 20:
        return "Moderate Risk"
    return "Low Risk"


def calculate_risk(
    company: Company,
    enrichment: EnrichmentPayload | None = None,
    now=None,
) -> RiskResult:
    """Compute the additive 0-100 risk score for a company."""
    now = now or utcnow()
    factors = [f for f in (check(company, now) for check in _COMPANY_FACTORS) if f is not None]
    if enrichment is None or not enrichment.succeeded:
        factors.append(RiskFactor(
            "no_enrichment", "Not Enriched", "low", 10,
            "Company has not been enriched - limited derived intelligence",
        ))

    total = min(MAX_RISK, sum(f.score for f in factors))
    grade = risk_grade(total)

    if total < 20:
        summary = f"{company.name} shows minimal risk indicators. Data coverage is adequate."
    else:
        high = [f.label for f in factors if f.severity == "high"]
        concerns = f"Key concerns: {', '.join(high)}. " if high else ""
        summary = (
            f"{company.name} has risk score {total}/100 ({grade}). "
            f"{concerns}{len(factors)} risk factor(s) identified."
        )

    log.debug("Risk for %s: %d (%s)", company.name, total, grade)
    return RiskResult(total_risk=total, grade=grade, factors=tuple(factors), summary=summary)
