"""Batch relevance scoring of corpus resumes against one job description.

All candidates go to the model in a single prompt; the model answers with a
``{filename: score}`` object. The answer is then checked against the
submitted candidates, thresholded and ranked here rather than trusted.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from jdmatch.llm.prompts import build_scoring_prompt, format_candidate_summary
from jdmatch.llm.provider_base import InferenceClient
from jdmatch.llm.retry_logic import ResilientInvoker
from jdmatch.llm.sanitizer import sanitize_object
from jdmatch.observability import counter, timer
from jdmatch.resume.models import CorpusRecord, TagSet

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 3
DEFAULT_THRESHOLD = 60


@dataclass
class Candidate:
    """A corpus resume as presented to the scoring prompt."""
    filename: str
    summary: str

    @classmethod
    def from_record(cls, record: CorpusRecord) -> "Candidate":
        return cls(filename=record.resume_file_name, summary=format_candidate_summary(record))


@dataclass
class MatchResult:
    """Ranked selection plus every validated score.

    ``selected`` is derived from ``scores``: entries at or above the
    threshold, best first, at most ``top_n`` of them.
    """
    selected: List[str] = field(default_factory=list)
    scores: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "MatchResult":
        return cls(selected=[], scores={})


def coerce_score(value: Any) -> Optional[int]:
    """Integer score in [0, 100] or None when ``value`` is not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return max(0, min(100, int(number)))


def rank_scores(scores: Dict[str, int], top_n: int, threshold: int) -> List[str]:
    """Filenames scoring >= threshold, by score descending then filename ascending."""
    qualifying = [(name, score) for name, score in scores.items() if score >= threshold]
    qualifying.sort(key=lambda item: (-item[1], item[0]))
    return [name for name, _ in qualifying[:max(0, top_n)]]


class RelevanceScorer:
    """Scores candidates with one model call and ranks the result."""

    def __init__(self, client: InferenceClient, invoker: Optional[ResilientInvoker] = None,
                 max_tokens: int = 4000):
        self.client = client
        self.invoker = invoker or ResilientInvoker()
        self.max_tokens = max_tokens

    def score(
        self,
        jd_tags: TagSet,
        candidates: Sequence[Candidate],
        top_n: int = DEFAULT_TOP_N,
        threshold: int = DEFAULT_THRESHOLD,
    ) -> MatchResult:
        """Score ``candidates`` against ``jd_tags``.

        Malformed model output gives an empty MatchResult. Inference errors
        propagate after the invoker's retries.
        """
        if not candidates:
            return MatchResult.empty()

        pairs: List[Tuple[str, str]] = [(c.filename, c.summary) for c in candidates]
        prompt = build_scoring_prompt(jd_tags, pairs)

        with timer("scoring.llm_call"):
            raw = self.invoker.invoke(
                lambda: self.client.complete(prompt, max_tokens=self.max_tokens),
                description="score_resumes",
            )

        result = sanitize_object(raw)
        if not result.ok:
            counter("scoring.malformed_output")
            logger.error("Could not parse scoring output (%s): %.300s", result.error, result.raw)
            return MatchResult.empty()

        scores = self.validate_scores(result.value, {c.filename for c in candidates})
        selected = rank_scores(scores, top_n, threshold)
        logger.info("Scored %d candidates, %d at or above %d", len(scores), len(selected), threshold)
        return MatchResult(selected=selected, scores=scores)

    @staticmethod
    def validate_scores(raw_scores: Dict[str, Any], known: set) -> Dict[str, int]:
        """Keep entries for submitted filenames whose score is numeric."""
        scores: Dict[str, int] = {}
        for filename, value in raw_scores.items():
            if filename not in known:
                counter("scoring.hallucinated_filename")
                logger.warning("Dropping score for unknown file %r", filename)
                continue
            score = coerce_score(value)
            if score is None:
                logger.warning("Dropping non-numeric score %r for %s", value, filename)
                continue
            scores[filename] = score
        return scores

    def score_records(self, jd_tags: TagSet, records: Sequence[CorpusRecord],
                      top_n: int = DEFAULT_TOP_N, threshold: int = DEFAULT_THRESHOLD) -> MatchResult:
        return self.score(jd_tags, [Candidate.from_record(r) for r in records], top_n, threshold)


def create_relevance_scorer(client: InferenceClient, invoker: Optional[ResilientInvoker] = None,
                            **kwargs) -> RelevanceScorer:
    """Factory function to create a relevance scorer"""
    return RelevanceScorer(client, invoker, **kwargs)
