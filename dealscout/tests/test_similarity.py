from __future__ import annotations

import pytest

from conftest import make_company
from dealscout.similarity import find_similar_companies, jaccard_similarity, similarity, stage_proximity

TARGET = make_company(
    id="target", sector="AI/ML", stage="Seed", geography="San Francisco, US", tags=("llm", "devtools"),
)


def test_identical_profile_scores_100():
    twin = make_company(id="twin", sector="AI/ML", stage="Seed", geography="San Francisco, US", tags=("LLM", "devtools"))
    result = similarity(TARGET, twin)
    assert result.similarity_score == 100
    assert result.match_reasons == ("Same sector: AI/ML", "Tags: LLM, devtools", "Similar stage: Seed", "Same region")


def test_never_self_matches():
    pool = [TARGET, make_company(id="other", sector="AI/ML", stage="Seed")]
    results = find_similar_companies(TARGET, pool)
    assert [r.company.id for r in results] == ["other"]


def test_low_scores_are_dropped():
    unrelated = make_company(id="far", sector="Consumer", stage="Series C+", geography="Berlin")
    assert find_similar_companies(TARGET, [unrelated]) == []


def test_ranking_limit_and_stable_ties():
    partial = make_company(id="partial", sector="SaaS", stage="Seed", geography="San Francisco Bay", tags=("llm",))
    a = make_company(id="a", sector="AI/ML", stage="Seed", geography="Paris")
    b = make_company(id="b", sector="AI/ML", stage="Seed", geography="Paris")
    results = find_similar_companies(TARGET, [a, partial, b], limit=2)
    assert [r.company.id for r in results] == ["a", "b"]
    assert [r.similarity_score for r in results] == [55, 55]
    assert similarity(TARGET, partial).similarity_score == 45


def test_limit_applies_after_filtering():
    noise = [make_company(id=f"n{i}", sector="Consumer", stage="", geography="") for i in range(5)]
    match = make_company(id="m", sector="AI/ML", stage="", geography="")
    results = find_similar_companies(TARGET, [*noise, match], limit=1)
    assert [r.company.id for r in results] == ["m"]


def test_jaccard_is_case_insensitive():
    assert jaccard_similarity(["AI", "b2b"], ["ai", "saas"]) == pytest.approx(1 / 3)
    assert jaccard_similarity([], []) == 0


@pytest.mark.parametrize("a,b,expected", [
    ("Seed", "Seed", 1.0), ("Seed", "Series A", 0.7), ("Pre-Seed", "Series C+", 0.0), ("Seed", "", 0.0),
])
def test_stage_proximity(a, b, expected):
    assert stage_proximity(a, b) == pytest.approx(expected)


def test_half_point_total_rounds_up_past_the_cutoff():
    # Adjacent stage only: 0.7 x 15 = 10.5
    neighbour = make_company(id="n", sector="Consumer", stage="Series A", geography="Berlin")
    results = find_similar_companies(TARGET, [neighbour])
    assert [r.similarity_score for r in results] == [11]
