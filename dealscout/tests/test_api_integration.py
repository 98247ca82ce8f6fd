"""Integration tests for the FastAPI endpoints.

Uses TestClient against an in-memory database shared through StaticPool.
"""
from __future__ import annotations

import io
from datetime import UTC, datetime, timedelta

import openpyxl
import pytest
from fastapi.testclient import TestClient

from dealscout.config import get_settings


def _ts(days_ago: float) -> str:
    return (datetime.now(UTC) - timedelta(days=days_ago)).isoformat()


def _company(**overrides) -> dict:
    data = {
        "id": "acme",
        "name": "Acme AI",
        "sector": "AI/ML",
        "stage": "Pre-Seed",
        "geography": "San Francisco, US",
        "founder_names": ["Jane Doe"],
        "signals": [{"type": "funding", "title": "Pre-seed round", "timestamp": _ts(10),
                     "confidence": "high", "is_new": True}],
    }
    data.update(overrides)
    return data


@pytest.fixture()
def client(session_factory, tmp_path, monkeypatch):
    """FastAPI TestClient using the in-memory database."""
    monkeypatch.setenv("DEALSCOUT_DB", str(tmp_path / "lifespan.db"))
    monkeypatch.delenv("DEALSCOUT_THESIS", raising=False)
    get_settings.cache_clear()
    from dealscout.app import app, db_session, score_cache

    def override_db_session():
        session = session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    score_cache.invalidate()
    app.dependency_overrides[db_session] = override_db_session
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
    app.dependency_overrides.clear()
    get_settings.cache_clear()


class TestThesisEndpoints:
    def test_default_thesis(self, client):
        resp = client.get("/api/thesis/default")
        assert resp.status_code == 200
        data = resp.json()
        assert data["fund_name"] == "Apex Ventures"
        assert [d["weight"] for d in data["dimensions"]] == [30, 25, 15, 20, 10]

    def test_learned_thesis_without_decisions(self, client):
        resp = client.post("/api/thesis/learned")
        assert resp.status_code == 200
        assert sum(d["weight"] for d in resp.json()["dimensions"]) == 100


class TestScoringEndpoints:
    def test_score_company(self, client):
        resp = client.post("/api/score", json={"company": _company()})
        assert resp.status_code == 200
        data = resp.json()
        assert data["company_id"] == "acme"
        assert data["total"] == 67.0
        assert data["grade"] == "Good Match"
        dims = {d["key"]: d for d in data["dimensions"]}
        assert dims["traction_signals"]["raw_score"] == 30
        assert dims["traction_signals"]["evidence"][0].startswith('FUNDING: "Pre-seed round" (10d ago')

    def test_custom_thesis(self, client):
        thesis = {"fund_name": "Custom", "version": "9", "dimensions": [{"key": "stage_fit", "weight": 100, "criteria": {"stages": ["Seed"]}}]}
        resp = client.post("/api/score", json={"company": _company(stage="Series A"), "thesis": thesis, "record": False})
        assert resp.status_code == 200
        assert resp.json()["total"] == 40.0
        assert resp.json()["thesis_version"] == "9"

    def test_unversioned_thesis_does_not_reuse_cached_default_score(self, client):
        company = _company(id="x1", stage="Series C+", geography="Tokyo")
        default = client.post("/api/score", json={"company": company, "record": False}).json()
        assert [d["key"] for d in default["dimensions"]] == [
            "sector_fit", "stage_fit", "geography_fit", "traction_signals", "team_quality",
        ]
        thesis = {"dimensions": [{"key": "stage_fit", "weight": 100, "criteria": {"stages": ["Series C+"]}}]}
        custom = client.post("/api/score", json={"company": company, "thesis": thesis, "record": False}).json()
        assert custom["thesis_version"] == default["thesis_version"]
        assert [d["key"] for d in custom["dimensions"]] == ["stage_fit"]
        assert custom["total"] == 100.0
        assert default["total"] != custom["total"]

    def test_edited_company_is_rescored(self, client):
        first = client.post("/api/score", json={"company": _company(), "record": False}).json()
        edited = client.post("/api/score", json={"company": _company(stage="Series C+"), "record": False}).json()
        assert first["total"] == 67.0
        assert edited["total"] < first["total"]

    def test_future_signal_rejected(self, client):
        company = _company(signals=[{"type": "funding", "title": "x", "timestamp": _ts(-3)}])
        resp = client.post("/api/score", json={"company": company})
        assert resp.status_code == 422

    def test_unparseable_timestamp_rejected(self, client):
        company = _company(signals=[{"type": "funding", "title": "x", "timestamp": "last tuesday"}])
        assert client.post("/api/score", json={"company": company}).status_code == 422

    def test_weight_out_of_range_rejected(self, client):
        thesis = {"dimensions": [{"key": "sector_fit", "weight": 120}]}
        assert client.post("/api/score", json={"company": _company(), "thesis": thesis}).status_code == 422

    def test_batch_filter_and_sort(self, client):
        companies = [
            _company(id="a", name="Alpha"),
            _company(id="b", name="Beta", stage="Series C+", geography="Lagos", signals=[]),
            _company(id="c", name="Gamma", sector="Security"),
        ]
        resp = client.post("/api/score/batch", json={"companies": companies})
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 3
        assert [i["id"] for i in data["items"]] == ["a", "c", "b"]

        resp = client.post("/api/score/batch?sector=Security&sort_by=name&sort_dir=asc", json={"companies": companies})
        assert [i["id"] for i in resp.json()["items"]] == ["c"]

    def test_batch_rejects_unknown_sort(self, client):
        resp = client.post("/api/score/batch?sort_by=verdict", json={"companies": []})
        assert resp.status_code == 422


class TestAnalysisEndpoints:
    def test_risk(self, client):
        resp = client.post("/api/risk", json={"company": _company(founder_names=[])})
        assert resp.status_code == 200
        data = resp.json()
        keys = {f["key"] for f in data["factors"]}
        assert {"signal_sparsity", "funding_unknown", "founder_unknown", "no_enrichment", "no_hiring"} <= keys
        assert data["total_risk"] == 12 + 15 + 15 + 10 + 8

    def test_risk_with_enrichment(self, client):
        resp = client.post("/api/risk", json={"company": _company(), "enrichment": {"status": "success"}})
        assert "no_enrichment" not in {f["key"] for f in resp.json()["factors"]}

    def test_momentum(self, client):
        resp = client.post("/api/momentum", json={"company": _company()})
        assert resp.status_code == 200
        data = resp.json()
        assert data["score"] == 24
        assert data["level"] == "stale"
        assert data["trend"] == "accelerating"

    def test_similar(self, client):
        target = _company(id="t", tags=["llm"])
        pool = [target, _company(id="twin", tags=["llm"]), _company(id="far", sector="Consumer", stage="Series C+", geography="Lagos")]
        resp = client.post("/api/similar", json={"target": target, "pool": pool, "limit": 5})
        assert resp.status_code == 200
        assert [s["company_id"] for s in resp.json()] == ["twin"]
        assert resp.json()[0]["similarity_score"] == 100

    def test_heatmap(self, client):
        resp = client.post("/api/heatmap", json={"companies": [_company()]})
        assert resp.status_code == 200
        cell = next(c for c in resp.json() if c["sector"] == "AI/ML" and c["stage"] == "Pre-Seed")
        assert cell["signal_count"] == 1
        assert cell["intensity"] == 1.0


class TestDriftEndpoints:
    def test_drift_requires_history(self, client):
        client.post("/api/score", json={"company": _company()})
        assert client.get("/api/drift/acme").status_code == 404

    def test_drift_after_rescoring(self, client):
        client.post("/api/score", json={"company": _company()})
        client.post("/api/score", json={"company": _company(id="acme", stage="Series C+"),
                                        "enrichment": {"status": "partial"}})
        resp = client.get("/api/drift/acme")
        assert resp.status_code == 200
        data = resp.json()
        assert data["previous_score"] == 67.0
        assert data["current_score"] == 42.0
        assert data["direction"] == "down"
        assert "Stage Fit -100" in data["reasons"]

        timeline = client.get("/api/drift/acme/timeline").json()
        assert [s["score"] for s in timeline] == [67.0, 42.0]

    def test_unchanged_rescore_is_deduplicated(self, client):
        client.post("/api/score", json={"company": _company()})
        client.post("/api/score", json={"company": _company()})
        assert len(client.get("/api/drift/acme/timeline").json()) == 1


class TestLearningEndpoints:
    def test_record_decision_and_stats(self, client):
        resp = client.post("/api/decisions", json={"company": _company(), "action": "invested"})
        assert resp.status_code == 200
        assert sorted(a["dimension_key"] for a in resp.json()) == ["geography_fit", "stage_fit"]

        stats = client.get("/api/learning/stats").json()
        assert stats["total_events"] == 1
        assert stats["adjustments"] == {"stage_fit": 0.5, "geography_fit": 0.5}
        assert stats["recent_events"][0]["company_id"] == "acme"

        learned = client.post("/api/thesis/learned").json()
        assert sum(d["weight"] for d in learned["dimensions"]) == 100

    def test_explicit_dimension_scores(self, client):
        body = {
            "company": _company(), "action": "passed",
            "dimension_scores": [{"key": "sector_fit", "weight": 30, "raw_score": 10}],
        }
        resp = client.post("/api/decisions", json=body)
        assert resp.status_code == 200
        assert resp.json()[0]["delta"] == pytest.approx(0.15)

    def test_unknown_action_rejected(self, client):
        resp = client.post("/api/decisions", json={"company": _company(), "action": "maybe"})
        assert resp.status_code == 422


class TestImportEndpoint:
    def test_import_xlsx(self, client):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Companies"
        ws.append(["id", "name", "sector", "stage", "geography"])
        ws.append(["x1", "Xylo", "DevTools", "Seed", "Remote"])
        ws.append(["x2", "Yonder", "Climate", "Series B", "Oslo"])
        buf = io.BytesIO()
        wb.save(buf)
        resp = client.post(
            "/api/import",
            files={"file": ("deals.xlsx", buf.getvalue(),
                            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 2
        assert [i["id"] for i in data["items"]] == ["x1", "x2"]

    def test_import_rejects_other_types(self, client):
        resp = client.post("/api/import", files={"file": ("deals.csv", b"id,name\n", "text/csv")})
        assert resp.status_code == 400


def test_reset_clears_history(client):
    client.post("/api/score", json={"company": _company()})
    client.post("/api/decisions", json={"company": _company(), "action": "ic"})
    resp = client.delete("/api/reset")
    assert resp.status_code == 200
    assert resp.json()["deleted"] == 4
    assert client.get("/api/drift/acme/timeline").json() == []
    assert client.get("/api/learning/stats").json()["total_events"] == 0
