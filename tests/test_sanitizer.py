"""Tests for model output repair"""
import pytest

from jdmatch.llm.sanitizer import (
    ParseFailure,
    Parsed,
    first_balanced_object,
    sanitize,
    sanitize_object,
    strip_code_fences,
)
from jdmatch.observability import get_metrics_collector


def test_clean_json_is_not_marked_repaired():
    result = sanitize('{"Skills": "Python, AWS"}')
    assert isinstance(result, Parsed)
    assert result.value == {"Skills": "Python, AWS"}
    assert result.repaired is False


def test_code_fence_is_stripped():
    raw = '```json\n{\n  "Skills": "Docker",\n  "Years of experience": 5\n}\n```'
    result = sanitize(raw)
    assert result.ok
    assert result.value == {"Skills": "Docker", "Years of experience": 5}


@pytest.mark.parametrize("raw, expected", [
    ("{'Skills': 'Python',}", {"Skills": "Python"}),
    ('{Skills: "Go", Years: 3}', {"Skills": "Go", "Years": 3}),
    ('{"Skills": "Master\'s thesis, AWS", "Years of experience": 4,}',
     {"Skills": "Master\'s thesis, AWS", "Years of experience": 4}),
    ("{'Job title': \"Director's assistant\"}", {"Job title": "Director's assistant"}),
    ('Sure! Here is the JSON: {"a.pdf": 85, "b.pdf": 40} Let me know.', {"a.pdf": 85, "b.pdf": 40}),
])
def test_common_defects_are_repaired(raw, expected):
    result = sanitize(raw)
    assert result.ok
    assert result.value == expected
    assert result.repaired is True
    assert get_metrics_collector().total("llm.output.repaired") == 1


def test_unparseable_output_returns_failure_with_raw_text():
    result = sanitize("I could not find any resumes.")
    assert isinstance(result, ParseFailure)
    assert not result.ok
    assert result.raw == "I could not find any resumes."
    assert result.error
    assert get_metrics_collector().total("llm.output.unparseable") == 1


def test_non_text_input_never_raises():
    assert not sanitize(None).ok
    assert not sanitize(42).ok


def test_sanitize_object_rejects_arrays():
    assert sanitize('[1, 2, 3]').ok
    result = sanitize_object('[1, 2, 3]')
    assert not result.ok
    assert "object" in result.error


def test_balanced_object_ignores_braces_inside_strings():
    text = 'prefix {"note": "use {braces}", "n": 1} suffix {"other": 2}'
    assert first_balanced_object(text) == '{"note": "use {braces}", "n": 1}'


def test_strip_code_fences_without_language_tag():
    assert strip_code_fences('```\n{"a": 1}\n```').strip() == '{"a": 1}'
