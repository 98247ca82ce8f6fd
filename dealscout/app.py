from __future__ import annotations

import logging
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Generator

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from dealscout import services
from dealscout.config import get_settings
from dealscout.db import get_session, init_db
from dealscout.drift import DriftTracker
from dealscout.importer import import_xlsx
from dealscout.momentum import calculate_momentum
from dealscout.risk import calculate_risk
from dealscout.schemas import (
    BatchScoreRequest,
    CompanyRequest,
    DecisionIn,
    DriftOut,
    LearningStatsOut,
    MomentumOut,
    PortfolioRequest,
    RiskOut,
    ScoreOut,
    ScoreRequest,
    SimilarOut,
    SimilarRequest,
    SnapshotOut,
    ThesisIn,
    WeightAdjustmentOut,
)
from dealscout.similarity import find_similar_companies
from dealscout.store import SqlStore
from dealscout.thesis import DEFAULT_THESIS, active_thesis
from dealscout.types import ThesisConfig
from dealscout.weight_learner import WeightLearner

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="DealScout",
    version="0.1.0",
    description=(
        "Deal-sourcing intelligence API for venture investors. "
        "Score companies against an investment thesis, assess risk and momentum, "
        "track score drift, and learn thesis weights from pipeline decisions. "
        "All endpoints return JSON. No authentication required."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Thesis", "description": "Default and learned investment theses."},
        {"name": "Scoring", "description": "Thesis-fit scoring with per-dimension evidence."},
        {"name": "Analysis", "description": "Risk, momentum, similarity, and portfolio heatmap."},
        {"name": "Drift", "description": "Score history and week-over-week drift."},
        {"name": "Learning", "description": "Record pipeline decisions and inspect learned weights."},
        {"name": "Import", "description": "Bulk import companies from XLSX spreadsheets."},
        {"name": "Admin", "description": "Administrative operations."},
    ],
)

score_cache = services.ScoreCache()


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _thesis(body: ThesisIn | None) -> ThesisConfig:
    return body.to_domain() if body is not None else active_thesis()


# ---------------------------------------------------------------------------
# Routes: Thesis
# ---------------------------------------------------------------------------


@app.get("/api/thesis/default", tags=["Thesis"], summary="Get the default investment thesis")
async def get_default_thesis():
    return services.thesis_to_dict(DEFAULT_THESIS)


@app.post("/api/thesis/learned", tags=["Thesis"],
          summary="Apply learned weight adjustments to a thesis")
async def get_learned_thesis(body: ThesisIn | None = None, session: Session = Depends(db_session)):
    thesis = services.learned_thesis(SqlStore(session), _thesis(body))
    return services.thesis_to_dict(thesis)


# ---------------------------------------------------------------------------
# Routes: Scoring
# ---------------------------------------------------------------------------


@app.post("/api/score", response_model=ScoreOut,
          tags=["Scoring"], summary="Score a company against the thesis and record a drift snapshot")
async def score(body: ScoreRequest, session: Session = Depends(db_session)):
    company = body.company.to_domain()
    enrichment = body.enrichment.to_domain() if body.enrichment else None
    result = services.score_and_record(
        SqlStore(session), company, _thesis(body.thesis), enrichment,
        record=body.record, cache=score_cache,
    )
    session.commit()
    return services.score_to_dict(company.id, result)


class PortfolioResponse(BaseModel):
    items: list[dict]
    total: int


@app.post("/api/score/batch", response_model=PortfolioResponse,
          tags=["Scoring"], summary="Score, filter, and sort a batch of companies")
async def score_batch(
    body: BatchScoreRequest,
    sector: str | None = Query(None, description="Comma-separated sectors"),
    stage: str | None = Query(None, description="Comma-separated stages"),
    geography: str | None = Query(None, description="Comma-separated geography substrings"),
    tag: str | None = Query(None, description="Comma-separated tags"),
    search: str | None = Query(None, description="Free-text search over name, sector, and tags"),
    min_score: float | None = Query(None, ge=0, le=100),
    max_score: float | None = Query(None, ge=0, le=100),
    sort_by: str = Query("score", pattern="^(score|name|risk|momentum|signal_count)$"),
    sort_dir: str = Query("desc", pattern="^(asc|desc)$"),
):
    companies = [c.to_domain() for c in body.companies]
    items = services.score_portfolio(companies, _thesis(body.thesis))
    items = services.filter_and_sort(
        items, sector=sector, stage=stage, geography=geography, tag=tag, search=search,
        min_score=min_score, max_score=max_score, sort_by=sort_by, sort_dir=sort_dir,
    )
    return {"items": items, "total": len(items)}


# ---------------------------------------------------------------------------
# Routes: Analysis
# ---------------------------------------------------------------------------


@app.post("/api/risk", response_model=RiskOut, tags=["Analysis"], summary="Assess company risk")
async def risk(body: CompanyRequest):
    company = body.company.to_domain()
    enrichment = body.enrichment.to_domain() if body.enrichment else company.enrichment
    return services.risk_to_dict(company.id, calculate_risk(company, enrichment))


@app.post("/api/momentum", response_model=MomentumOut,
          tags=["Analysis"], summary="Signal momentum and trend")
async def momentum(body: CompanyRequest):
    company = body.company.to_domain()
    return services.momentum_to_dict(company.id, calculate_momentum(company))


@app.post("/api/similar", response_model=list[SimilarOut],
          tags=["Analysis"], summary="Find companies similar to a target")
async def similar(body: SimilarRequest):
    target = body.target.to_domain()
    pool = [c.to_domain() for c in body.pool]
    return [services.similar_to_dict(s) for s in find_similar_companies(target, pool, body.limit)]


@app.post("/api/heatmap", tags=["Analysis"], summary="Sector x stage signal heatmap")
async def heatmap(body: PortfolioRequest):
    return services.build_heatmap(c.to_domain() for c in body.companies)


# ---------------------------------------------------------------------------
# Routes: Drift
# ---------------------------------------------------------------------------


@app.get("/api/drift/{company_id}", response_model=DriftOut,
         tags=["Drift"], summary="Score drift against the snapshot nearest one week ago")
async def get_drift(company_id: str, session: Session = Depends(db_session)):
    drift = DriftTracker(SqlStore(session)).get_drift(company_id)
    if drift is None:
        raise HTTPException(404, "Not enough score history")
    return services.drift_to_dict(company_id, drift)


@app.get("/api/drift/{company_id}/timeline", response_model=list[SnapshotOut],
         tags=["Drift"], summary="Recent score snapshots, oldest first")
async def get_timeline(
    company_id: str,
    limit: int = Query(20, ge=1, le=50),
    session: Session = Depends(db_session),
):
    snaps = DriftTracker(SqlStore(session)).timeline(company_id, limit)
    return [services.snapshot_to_dict(s) for s in snaps]


# ---------------------------------------------------------------------------
# Routes: Learning
# ---------------------------------------------------------------------------


@app.post("/api/decisions", response_model=list[WeightAdjustmentOut],
          tags=["Learning"], summary="Record a pipeline decision and learn from it")
async def record_decision(body: DecisionIn, session: Session = Depends(db_session)):
    company = body.company.to_domain()
    dimension_scores = (
        [d.to_domain() for d in body.dimension_scores] if body.dimension_scores is not None else None
    )
    adjustments = services.record_decision(
        SqlStore(session), company, body.action, _thesis(body.thesis), dimension_scores,
    )
    session.commit()
    return [services.adjustment_to_dict(a) for a in adjustments]


@app.get("/api/learning/stats", response_model=LearningStatsOut,
         tags=["Learning"], summary="Learning event count, adjustments, and recent decisions")
async def learning_stats(
    recent: int = Query(10, ge=0, le=100),
    session: Session = Depends(db_session),
):
    stats = WeightLearner(SqlStore(session)).stats(recent)
    return {**stats, "recent_events": [services.event_to_dict(e) for e in stats["recent_events"]]}


# ---------------------------------------------------------------------------
# Routes: Import
# ---------------------------------------------------------------------------


@app.post("/api/import", response_model=PortfolioResponse,
          tags=["Import"], summary="Import companies from XLSX spreadsheet and score them")
async def import_file(file: UploadFile = File(...)):
    if not file.filename or not file.filename.endswith(".xlsx"):
        raise HTTPException(400, "Only .xlsx files are supported")
    content = await file.read()
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(suffix=".xlsx", delete=False) as f:
            tmp_path = Path(f.name)
            f.write(content)
        try:
            result = import_xlsx(tmp_path)
        except ValueError as exc:
            raise HTTPException(400, str(exc)) from exc
    finally:
        if tmp_path:
            tmp_path.unlink(missing_ok=True)
    items = services.score_portfolio(result.companies, active_thesis())
    return {"items": items, "total": len(items)}


# ---------------------------------------------------------------------------
# Routes: Admin
# ---------------------------------------------------------------------------


@app.delete("/api/reset", tags=["Admin"], summary="Delete all score history and learning state")
async def reset(session: Session = Depends(db_session)):
    deleted = SqlStore(session).clear()
    session.commit()
    score_cache.invalidate()
    log.info("Reset store (%d entries deleted)", deleted)
    return {"ok": True, "deleted": deleted}


def main():
    import uvicorn
    settings = get_settings()
    uvicorn.run("dealscout.app:app", host=settings.api_host, port=settings.api_port, reload=True)


if __name__ == "__main__":
    main()
