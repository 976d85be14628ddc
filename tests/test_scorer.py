"""Tests for batch relevance scoring, thresholding and ranking"""
import json

import pytest

from jdmatch.llm.mock_provider import MockInferenceClient
from jdmatch.llm.prompts import build_scoring_prompt, parse_candidate_blocks
from jdmatch.llm.provider_base import FailureKind, InferenceError
from jdmatch.llm.retry_logic import ResilientInvoker, RetryConfig
from jdmatch.matching.scorer import (
    Candidate,
    MatchResult,
    RelevanceScorer,
    coerce_score,
    rank_scores,
)
from jdmatch.observability import get_metrics_collector
from jdmatch.resume.models import CorpusRecord, TagSet


@pytest.fixture
def jd_tags():
    return TagSet(skills="AWS, Docker", programming_languages="Python", years_of_experience=5)


@pytest.fixture
def candidates():
    return [
        Candidate("a.pdf", "Skills: AWS, Docker\nProgramming Languages: Python\nYears of experience: 6\n"),
        Candidate("b.pdf", "Skills: React\nProgramming Languages: JavaScript\nYears of experience: 2\n"),
        Candidate("c.pdf", "Skills: AWS\nProgramming Languages: Go\nYears of experience: 4\n"),
    ]


def make_scorer(responses):
    client = MockInferenceClient(responses=responses)
    return client, RelevanceScorer(client, ResilientInvoker(RetryConfig(initial_delay_ms=0), sleep=lambda _: None))


def test_threshold_and_ordering(jd_tags, candidates):
    _, scorer = make_scorer(['{"a.pdf": 85, "b.pdf": 55, "c.pdf": 61}'])
    result = scorer.score(jd_tags, candidates, top_n=3, threshold=60)
    assert result.selected == ["a.pdf", "c.pdf"]
    assert result.scores == {"a.pdf": 85, "b.pdf": 55, "c.pdf": 61}


def test_top_n_limits_selection(jd_tags, candidates):
    _, scorer = make_scorer(['{"a.pdf": 70, "b.pdf": 95, "c.pdf": 88}'])
    result = scorer.score(jd_tags, candidates, top_n=2, threshold=60)
    assert result.selected == ["b.pdf", "c.pdf"]


def test_ties_break_by_filename(jd_tags, candidates):
    _, scorer = make_scorer(['{"c.pdf": 80, "a.pdf": 80, "b.pdf": 80}'])
    result = scorer.score(jd_tags, candidates, top_n=3, threshold=60)
    assert result.selected == ["a.pdf", "b.pdf", "c.pdf"]


def test_threshold_is_inclusive(jd_tags, candidates):
    _, scorer = make_scorer(['{"a.pdf": 60, "b.pdf": 59}'])
    result = scorer.score(jd_tags, candidates, threshold=60)
    assert result.selected == ["a.pdf"]


def test_hallucinated_filenames_are_dropped(jd_tags, candidates):
    _, scorer = make_scorer(['{"a.pdf": 90, "ghost.pdf": 99}'])
    result = scorer.score(jd_tags, candidates)
    assert result.selected == ["a.pdf"]
    assert "ghost.pdf" not in result.scores
    assert get_metrics_collector().total("scoring.hallucinated_filename") == 1


def test_non_numeric_scores_are_dropped(jd_tags, candidates):
    _, scorer = make_scorer(['{"a.pdf": "high", "b.pdf": "72", "c.pdf": 64.9}'])
    result = scorer.score(jd_tags, candidates)
    assert result.scores == {"b.pdf": 72, "c.pdf": 64}
    assert result.selected == ["b.pdf", "c.pdf"]


def test_malformed_output_gives_empty_result(jd_tags, candidates):
    _, scorer = make_scorer(["Candidate A looks great!"])
    result = scorer.score(jd_tags, candidates)
    assert result.selected == []
    assert result.scores == {}


def test_empty_candidates_make_no_call(jd_tags):
    client, scorer = make_scorer([])
    result = scorer.score(jd_tags, [])
    assert result == MatchResult.empty()
    assert client.call_count == 0


def test_single_call_for_all_candidates(jd_tags, candidates):
    client, scorer = make_scorer(['{"a.pdf": 85}'])
    scorer.score(jd_tags, candidates)
    assert client.call_count == 1
    blocks = parse_candidate_blocks(client.prompts[0])
    assert list(blocks) == ["a.pdf", "b.pdf", "c.pdf"]


def test_inference_errors_propagate(jd_tags, candidates):
    _, scorer = make_scorer([InferenceError("model not found", kind=FailureKind.OTHER)])
    with pytest.raises(InferenceError):
        scorer.score(jd_tags, candidates)


def test_score_records_uses_candidate_summaries(jd_tags):
    record = CorpusRecord.from_row({
        "resume_file_name": "x.pdf", "Skills": "AWS", "Programming Languages": "Python",
        "Years of experience": 3, "Achievements": "Led migration to Kubernetes",
    })
    client, scorer = make_scorer(['{"x.pdf": 75}'])
    result = scorer.score_records(jd_tags, [record])
    assert result.selected == ["x.pdf"]
    assert "Other: Led migration to Kubernetes" in client.prompts[0]


def test_generative_mock_prefers_overlapping_skills(jd_tags, candidates):
    scorer = RelevanceScorer(MockInferenceClient())
    result = scorer.score(jd_tags, candidates, top_n=3, threshold=60)
    assert result.selected[0] == "a.pdf"
    assert "b.pdf" not in result.selected


@pytest.mark.parametrize("value, expected", [
    (85, 85), (85.7, 85), ("90", 90), ("75%", 75), (150, 100), (-3, 0),
    (True, None), (None, None), ("n/a", None), (float("nan"), None),
])
def test_coerce_score(value, expected):
    assert coerce_score(value) == expected


def test_rank_scores_with_zero_top_n():
    assert rank_scores({"a.pdf": 90}, top_n=0, threshold=0) == []


def test_scoring_prompt_round_trips_candidate_blocks(jd_tags, candidates):
    prompt = build_scoring_prompt(jd_tags, [(c.filename, c.summary) for c in candidates])
    blocks = parse_candidate_blocks(prompt)
    assert blocks["c.pdf"].startswith("Skills: AWS")
    assert json.dumps({"resume.pdf": 85}) in prompt
