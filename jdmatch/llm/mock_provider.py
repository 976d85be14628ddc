"""
Offline inference client for local development and tests.

Two modes:
- scripted: ``MockInferenceClient(responses=[...])`` replays the given strings
  in order (an Exception instance in the list is raised instead of returned);
- generative (default): produces plausible JSON from the prompt itself by
  keyword spotting, so the whole pipeline can run without network access.
"""

from __future__ import annotations
import json
import re
from typing import List, Optional, Sequence, Union

from jdmatch.resume.models import LANGUAGES_KEY, SKILLS_KEY, TITLE_KEY, YEARS_KEY

from .prompts import SCORING_SENTINEL, parse_candidate_blocks
from .provider_base import InferenceClient

_SKILLS = [
    "aws", "azure", "gcp", "kubernetes", "docker", "terraform", "react", "django",
    "flask", "fastapi", "spark", "kafka", "airflow", "postgresql", "mongodb",
    "redis", "machine learning", "tensorflow", "pytorch", "linux", "git",
]
_LANGUAGES = [
    "python", "java", "javascript", "typescript", "go", "rust", "c++", "c#",
    "ruby", "scala", "kotlin", "sql", "php", "swift",
]
_TITLES = [
    "data scientist", "data engineer", "devops engineer", "frontend developer",
    "backend developer", "software engineer", "machine learning engineer",
    "product manager", "qa engineer",
]
_YEARS_RE = re.compile(r"(\d{1,2})\s*\+?\s*(?:years|yrs)", re.IGNORECASE)

Scripted = Union[str, Exception]


def _spot(vocabulary: Sequence[str], text: str) -> List[str]:
    low = text.lower()
    found = []
    for term in vocabulary:
        pattern = r"(?<![\w+#])" + re.escape(term) + r"(?![\w+#])"
        if re.search(pattern, low):
            found.append(term)
    return found


def _display(term: str) -> str:
    if term in {"aws", "gcp", "sql", "php"}:
        return term.upper()
    return term.title() if term.isalpha() or " " in term else term.upper()


class MockInferenceClient(InferenceClient):
    """Mock inference client for tests/dev."""

    def __init__(self, responses: Optional[Sequence[Scripted]] = None, model: str = "mock-model"):
        self.model = model
        self._responses = list(responses) if responses is not None else None
        self.prompts: List[str] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    def complete(self, prompt: str, max_tokens: int = 4000) -> str:
        self.prompts.append(prompt)
        if self._responses is not None:
            if not self._responses:
                raise AssertionError("MockInferenceClient ran out of scripted responses")
            nxt = self._responses.pop(0)
            if isinstance(nxt, Exception):
                raise nxt
            return nxt
        if SCORING_SENTINEL in prompt:
            return self._score(prompt)
        return self._extract(prompt)

    def get_model_name(self) -> str:
        return self.model

    def _extract(self, prompt: str) -> str:
        # Only look at the document body, not the instructions
        body = prompt.split("\n\n", 1)[-1]
        years = [int(m) for m in _YEARS_RE.findall(body)]
        data = {
            SKILLS_KEY: ", ".join(_display(s) for s in _spot(_SKILLS, body)),
            LANGUAGES_KEY: ", ".join(_display(s) for s in _spot(_LANGUAGES, body)),
            YEARS_KEY: max(years) if years else 0,
        }
        if f"'{TITLE_KEY}'" in prompt:
            titles = _spot(_TITLES, body)
            data[TITLE_KEY] = titles[0].title() if titles else "Software Engineer"
        return json.dumps(data)

    def _score(self, prompt: str) -> str:
        head = prompt.split(SCORING_SENTINEL, 1)[0]
        wanted = set(_spot(_SKILLS, head)) | set(_spot(_LANGUAGES, head))
        scores = {}
        for filename, summary in parse_candidate_blocks(prompt).items():
            have = set(_spot(_SKILLS, summary)) | set(_spot(_LANGUAGES, summary))
            if not wanted:
                scores[filename] = 50
                continue
            scores[filename] = int(round(100 * len(wanted & have) / len(wanted)))
        return json.dumps(scores)
