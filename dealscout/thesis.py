"""Investment thesis defaults and the thesis configuration loader."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from dealscout.config import get_settings
from dealscout.schemas import ThesisIn
from dealscout.types import Dimension, DimensionCriteria, ThesisConfig

log = logging.getLogger(__name__)

# Seed-stage, AI-native B2B, US/EU focus.
DEFAULT_THESIS = ThesisConfig(
    fund_id="fund_apex_001",
    fund_name="Apex Ventures",
    version="1.0.0",
    description=(
        "Seed-stage fund investing in AI-native B2B software companies in the US and EU. "
        "We look for technical founders building in AI/ML, DevTools, Security, and SaaS "
        "with evidence of early traction and defensible data or workflow moats."
    ),
    minimum_score=40,
    dimensions=(
        Dimension(
            key="sector_fit",
            label="Sector Fit",
            weight=30,
            description=(
                "Company operates in AI/ML, DevTools, Security, SaaS, or Infrastructure. "
                "FinTech and HealthTech acceptable if AI-native."
            ),
            criteria=DimensionCriteria(
                sectors=("AI/ML", "DevTools", "Security", "SaaS", "Infrastructure"),
                keywords=(
                    "ai", "machine learning", "llm", "developer tools", "security", "saas",
                    "b2b", "infrastructure", "api", "automation", "workflow", "agentic", "ai-native",
                ),
            ),
        ),
        Dimension(
            key="stage_fit",
            label="Stage Fit",
            weight=25,
            description=(
                "Pre-Seed or Seed stage preferred. Series A acceptable if thesis is strong. "
                "Series B+ is outside mandate."
            ),
            criteria=DimensionCriteria(stages=("Pre-Seed", "Seed", "Series A")),
        ),
        Dimension(
            key="geography_fit",
            label="Geography Fit",
            weight=15,
            description="US or EU headquartered. Remote-first companies acceptable.",
            criteria=DimensionCriteria(
                geographies=("US", "UK", "Germany", "France", "Netherlands", "Sweden", "Israel", "Remote", "Europe"),
            ),
        ),
        Dimension(
            key="traction_signals",
            label="Traction Signals",
            weight=20,
            description=(
                "Evidence of momentum: recent funding, hiring activity, product launches, "
                "press coverage, or GitHub traction. Recency matters."
            ),
        ),
        Dimension(
            key="team_quality",
            label="Team & Founder Signal",
            weight=10,
            description=(
                "Technical founders preferred. Prior exits, research backgrounds, "
                "or top-tier employer backgrounds are positive signals."
            ),
            criteria=DimensionCriteria(
                keywords=("phd", "research", "mit", "stanford", "cmu", "google", "meta", "openai", "deepmind", "ex-"),
            ),
        ),
    ),
)


def thesis_from_dict(data: dict[str, Any]) -> ThesisConfig:
    """Validate a raw mapping and build a ThesisConfig. Raises ValueError if invalid."""
    try:
        thesis = ThesisIn.model_validate(data).to_domain()
    except ValidationError as exc:
        raise ValueError(f"Invalid thesis configuration: {exc}") from exc
    total = sum(d.weight for d in thesis.dimensions)
    if abs(total - 100) > 1e-6:
        log.warning("Thesis %r dimension weights sum to %g, not 100", thesis.fund_name, total)
    return thesis


def load_thesis(path: str | Path) -> ThesisConfig:
    """Load a thesis from a YAML or JSON file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Cannot read thesis file {path}: {exc}") from exc
    try:
        data = json.loads(text) if path.suffix.lower() == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Cannot parse thesis file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Thesis file {path} must contain a mapping")
    return thesis_from_dict(data)


def active_thesis() -> ThesisConfig:
    """The configured thesis file if set, else DEFAULT_THESIS."""
    path = get_settings().thesis_path
    if path is None:
        return DEFAULT_THESIS
    return load_thesis(path)
