"""Tests for prompt construction and tag extraction"""
import pytest

from jdmatch.llm.mock_provider import MockInferenceClient
from jdmatch.llm.prompts import build_extraction_prompt
from jdmatch.llm.provider_base import FailureKind, InferenceError
from jdmatch.llm.retry_logic import ResilientInvoker, RetryConfig
from jdmatch.observability import get_metrics_collector
from jdmatch.resume.models import JD_FIELD_SPEC, RESUME_FIELD_SPEC
from jdmatch.resume.tag_extractor import TagExtractor


JD_TEXT = """Senior Backend Engineer
We need 5+ years of experience building services in Python and Go.
Experience with AWS, Docker and Kubernetes is required."""


def make_extractor(responses=None, sleeps=None, **kwargs):
    client = MockInferenceClient(responses=responses)
    invoker = ResilientInvoker(RetryConfig(max_retries=2, initial_delay_ms=10),
                               sleep=(sleeps.append if sleeps is not None else lambda _: None))
    return client, TagExtractor(client, invoker, **kwargs)


def test_jd_prompt_asks_for_three_fields_only():
    prompt = build_extraction_prompt(JD_TEXT, JD_FIELD_SPEC)
    assert prompt.startswith("From the JOB DESCRIPTION below, extract:")
    assert "'Skills', 'Programming Languages', 'Years of experience'" in prompt
    assert "Job title" not in prompt
    assert prompt.rstrip().endswith("Kubernetes is required.")


def test_resume_prompt_includes_job_title():
    prompt = build_extraction_prompt("Jane Doe", RESUME_FIELD_SPEC)
    assert "RESUME CONTEXT:" in prompt
    assert "'Job title'" in prompt


def test_fenced_output_is_parsed():
    client, extractor = make_extractor([
        '```json\n{"Skills": "AWS, Docker", "Programming Languages": "Python, Go", "Years of experience": 5}\n```'
    ])
    tags = extractor.extract_jd_tags(JD_TEXT)
    assert tags.skills == "AWS, Docker"
    assert tags.programming_languages == "Python, Go"
    assert tags.years_of_experience == 5
    assert client.call_count == 1


def test_list_values_are_joined_and_extra_keys_dropped():
    _, extractor = make_extractor([
        '{"Skills": ["AWS", "Terraform"], "Programming Languages": ["Python"], '
        '"Years of experience": "7", "Job title": "Devops Engineer", "Salary": "lots"}'
    ])
    tags = extractor.extract_resume_tags("resume text")
    assert tags.skills == "AWS, Terraform"
    assert tags.programming_languages == "Python"
    assert tags.years_of_experience == "7"
    assert tags.job_title == "Devops Engineer"
    assert "Salary" not in tags.model_dump(by_alias=True)


def test_job_title_ignored_for_job_descriptions():
    _, extractor = make_extractor(['{"Skills": "SQL", "Job title": "Analyst"}'])
    tags = extractor.extract_jd_tags("Analyst role, SQL")
    assert tags.job_title is None


def test_unparseable_output_returns_none():
    _, extractor = make_extractor(["I'm sorry, I can't help with that."])
    assert extractor.extract_jd_tags(JD_TEXT) is None


def test_json_array_output_returns_none():
    _, extractor = make_extractor(['["Python", "AWS"]'])
    assert extractor.extract_resume_tags("resume") is None


def test_context_is_truncated():
    client, extractor = make_extractor(['{"Skills": ""}'], max_context_chars=50)
    extractor.extract_resume_tags("x" * 500)
    body = client.prompts[0].split("RESUME CONTEXT:\n", 1)[1]
    assert body == "x" * 50


def test_throttling_is_retried_then_succeeds(sleeps):
    client, extractor = make_extractor([
        InferenceError("throttled", kind=FailureKind.RATE_LIMITED),
        '{"Skills": "Kafka", "Programming Languages": "Scala", "Years of experience": 3}',
    ], sleeps=sleeps)
    tags = extractor.extract_jd_tags("Kafka and Scala, 3 years")
    assert tags.skills == "Kafka"
    assert client.call_count == 2
    assert sleeps == [0.01]


def test_permanent_inference_error_propagates():
    client, extractor = make_extractor([InferenceError("invalid model", kind=FailureKind.OTHER)])
    with pytest.raises(InferenceError):
        extractor.extract_jd_tags(JD_TEXT)
    assert client.call_count == 1


def test_generative_mock_extracts_plausible_tags():
    extractor = TagExtractor(MockInferenceClient())
    tags = extractor.extract_jd_tags(JD_TEXT)
    assert "AWS" in tags.skills
    assert "Python" in tags.programming_languages
    assert tags.years_of_experience == 5


@pytest.mark.parametrize("reply", ['{}', '{"name": "Jane Doe", "email": "jane@example.com"}'])
def test_reply_without_requested_fields_returns_none(reply):
    _, extractor = make_extractor([reply, reply])
    assert extractor.extract_jd_tags(JD_TEXT) is None
    assert extractor.extract_resume_tags("resume text") is None
    assert get_metrics_collector().total("extraction.invalid_tags") == 2


def test_reply_keys_match_regardless_of_case_and_separators():
    _, extractor = make_extractor([
        '{"skills": "Python", "programming_languages": "Go", "YEARS OF EXPERIENCE": 5, "job-title": "Engineer"}'
    ])
    tags = extractor.extract_resume_tags("resume text")
    assert tags.skills == "Python"
    assert tags.programming_languages == "Go"
    assert tags.years_of_experience == 5
    assert tags.job_title == "Engineer"


def test_object_valued_field_returns_none():
    _, extractor = make_extractor(['{"Skills": {"cloud": "AWS"}, "Programming Languages": "Python"}'])
    assert extractor.extract_jd_tags(JD_TEXT) is None
