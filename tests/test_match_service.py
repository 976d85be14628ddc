"""Tests for the query path exposed by MatchService"""
from unittest.mock import Mock

import pytest

from jdmatch.llm.mock_provider import MockInferenceClient
from jdmatch.llm.retry_logic import ResilientInvoker, RetryConfig
from jdmatch.matching.scorer import RelevanceScorer
from jdmatch.matching.service import MatchService, RequestValidationError, no_match_message
from jdmatch.resume.tag_extractor import TagExtractor
from jdmatch.storage.corpus_store import CorpusStore
from jdmatch.storage.object_store import LocalObjectStore
from jdmatch.storage.tabular import InMemoryTabularStore

JD_TAGS = '{"Skills": "AWS, Docker", "Programming Languages": "Python", "Years of experience": 5}'


def make_service(responses, corpus_store, object_store=None, **kwargs):
    client = MockInferenceClient(responses=responses)
    invoker = ResilientInvoker(RetryConfig(initial_delay_ms=0), sleep=lambda _: None)
    service = MatchService(
        extractor=TagExtractor(client, invoker),
        scorer=RelevanceScorer(client, invoker),
        corpus_store=corpus_store,
        object_store=object_store,
        **kwargs,
    )
    return client, service


@pytest.mark.parametrize("jd_text", [None, "", "   \n\t"])
def test_empty_job_description_is_rejected_before_any_call(jd_text, corpus_store):
    client, service = make_service([], corpus_store)
    with pytest.raises(RequestValidationError) as exc_info:
        service.match_resumes(jd_text)
    assert exc_info.value.field_name == "jdText"
    assert client.call_count == 0


def test_extract_jd_tags_validates_input(corpus_store):
    client, service = make_service([], corpus_store)
    with pytest.raises(RequestValidationError):
        service.extract_jd_tags("  ")
    assert client.call_count == 0


def test_successful_match(corpus_store):
    client, service = make_service([JD_TAGS, '{"a.pdf": 85, "b.pdf": 55, "c.pdf": 61}'], corpus_store)
    response = service.match_resumes("Python engineer with AWS and Docker, 5 years")

    assert response.success is True
    assert response.matching_resumes == ["a.pdf", "c.pdf"]
    assert response.not_found == []
    assert response.jd_tags.skills == "AWS, Docker"
    assert response.message is None
    assert client.call_count == 2

    payload = response.to_payload()
    assert payload["matchingResumes"] == ["a.pdf", "c.pdf"]
    assert payload["jdTags"]["Skills"] == "AWS, Docker"
    assert "message" not in payload


def test_no_resume_above_threshold(corpus_store):
    _, service = make_service([JD_TAGS, '{"a.pdf": 40, "b.pdf": 10}'], corpus_store)
    response = service.match_resumes("Some job")
    assert response.success is False
    assert response.matching_resumes == []
    assert response.message == "No resumes with relevance >=60% were found for this JD"
    assert response.to_payload()["message"] == no_match_message(60)


def test_request_overrides_for_top_n_and_threshold(corpus_store):
    _, service = make_service([JD_TAGS, '{"a.pdf": 85, "b.pdf": 55, "c.pdf": 61}'], corpus_store)
    response = service.match_resumes("Some job", top_n=1, threshold=50)
    assert response.matching_resumes == ["a.pdf"]


def test_missing_corpus_sheet_is_reported_not_raised():
    client, service = make_service([], CorpusStore(InMemoryTabularStore()))
    response = service.match_resumes("Some job")
    assert response.success is False
    assert "Resume Tags" in response.message
    assert client.call_count == 0


def test_empty_corpus_is_reported():
    store = CorpusStore(InMemoryTabularStore({"Resume Tags": []}))
    _, service = make_service([], store)
    response = service.match_resumes("Some job")
    assert response.success is False
    assert response.message == "No resume data found in Resume Tags sheet"


def test_unusable_jd_tags(corpus_store):
    client, service = make_service(["no json here"], corpus_store)
    response = service.match_resumes("Some job")
    assert response.success is False
    assert response.jd_tags is None
    assert client.call_count == 1


def test_selected_documents_are_resolved_against_processed_partition(tmp_path, corpus_store):
    objects = LocalObjectStore(tmp_path)
    objects.put("resume_input_processed/a.pdf", b"%PDF")
    _, service = make_service([JD_TAGS, '{"a.pdf": 85, "c.pdf": 61}'], corpus_store, object_store=objects)

    response = service.match_resumes("Some job")
    assert response.matching_resumes == ["a.pdf"]
    assert response.not_found == ["c.pdf"]
    assert response.success is True


def test_find_best_resumes_delegates_to_scorer(corpus_store):
    scorer = Mock()
    service = MatchService(extractor=Mock(), scorer=scorer, corpus_store=corpus_store, top_n=2, threshold=70)
    records = corpus_store.read_all()
    service.find_best_resumes("tags", records)
    scorer.score_records.assert_called_once_with("tags", records, top_n=2, threshold=70)
