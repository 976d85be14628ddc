"""Matching module for jdmatch

Scores the tagged resume corpus against a job description with a single
batched model call, then thresholds and ranks the result.
"""

from .scorer import (
    Candidate,
    MatchResult,
    RelevanceScorer,
    create_relevance_scorer
)
from .service import (
    MatchResponse,
    MatchService,
    RequestValidationError,
    create_match_service
)

__all__ = [
    'Candidate',
    'MatchResult',
    'RelevanceScorer',
    'create_relevance_scorer',
    'MatchResponse',
    'MatchService',
    'RequestValidationError',
    'create_match_service'
]
