"""Query path: job description in, ranked resumes out.

``MatchService`` is the surface an HTTP layer would call. It never raises for
"nothing matched" or "no corpus yet"; those come back as a normal
``MatchResponse`` with ``success=False`` and a message. Only request
validation and genuine infrastructure failures raise.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from jdmatch.observability import counter, get_logger, timer
from jdmatch.resume.models import CorpusRecord, TagSet
from jdmatch.resume.tag_extractor import TagExtractor
from jdmatch.storage.corpus_store import CorpusStore
from jdmatch.storage.object_store import ObjectStore, processed_prefix_for
from jdmatch.storage.tabular import SheetNotFoundError

from .scorer import DEFAULT_THRESHOLD, DEFAULT_TOP_N, MatchResult, RelevanceScorer

logger = get_logger(__name__)


class RequestValidationError(ValueError):
    """A required request field is missing or empty"""

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(message)


class MatchResponse(BaseModel):
    """Payload returned for a match query (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    jd_tags: Optional[TagSet] = Field(None, alias="jdTags")
    matching_resumes: List[str] = Field(default_factory=list, alias="matchingResumes")
    not_found: List[str] = Field(default_factory=list, alias="notFound")
    scores: Dict[str, int] = Field(default_factory=dict)
    message: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {
            "success": self.success,
            "jdTags": self.jd_tags.model_dump(by_alias=True) if self.jd_tags else None,
            "matchingResumes": list(self.matching_resumes),
            "notFound": list(self.not_found),
            "scores": dict(self.scores),
        }
        if self.message is not None:
            payload["message"] = self.message
        return payload


def no_match_message(threshold: int) -> str:
    return f"No resumes with relevance >={threshold}% were found for this JD"


class MatchService:
    """Extract JD tags, score the corpus and resolve the selected documents."""

    def __init__(
        self,
        extractor: TagExtractor,
        scorer: RelevanceScorer,
        corpus_store: CorpusStore,
        object_store: Optional[ObjectStore] = None,
        processed_prefix: str = processed_prefix_for("resume_input/"),
        top_n: int = DEFAULT_TOP_N,
        threshold: int = DEFAULT_THRESHOLD,
    ):
        self.extractor = extractor
        self.scorer = scorer
        self.corpus_store = corpus_store
        self.object_store = object_store
        self.processed_prefix = processed_prefix
        self.top_n = top_n
        self.threshold = threshold

    def extract_jd_tags(self, text: Optional[str]) -> Optional[TagSet]:
        """Tags for a job description; None when the model output is unusable."""
        if text is None or not str(text).strip():
            raise RequestValidationError("jdText", "Job description is required")
        return self.extractor.extract_jd_tags(text)

    def find_best_resumes(
        self,
        jd_tags: TagSet,
        corpus_rows: Sequence[CorpusRecord],
        top_n: Optional[int] = None,
        threshold: Optional[int] = None,
    ) -> MatchResult:
        return self.scorer.score_records(
            jd_tags,
            corpus_rows,
            top_n=self.top_n if top_n is None else top_n,
            threshold=self.threshold if threshold is None else threshold,
        )

    def resolve_documents(self, filenames: Sequence[str]) -> Tuple[List[str], List[str]]:
        """Split ``filenames`` into those present in the processed partition and the rest."""
        if self.object_store is None:
            return list(filenames), []
        found, missing = [], []
        for name in filenames:
            key = self.processed_prefix + name
            (found if self.object_store.exists(key) else missing).append(name)
        return found, missing

    def match_resumes(self, jd_text: Optional[str], top_n: Optional[int] = None,
                      threshold: Optional[int] = None) -> MatchResponse:
        """Full query: validate, extract, score, resolve."""
        if jd_text is None or not str(jd_text).strip():
            raise RequestValidationError("jdText", "Job description is required")
        threshold = self.threshold if threshold is None else threshold

        with timer("matching.query"):
            try:
                corpus = self.corpus_store.read_all()
            except SheetNotFoundError as e:
                logger.warning("Corpus unavailable", error=str(e))
                return MatchResponse(success=False, message=f"{e}; run ingestion first")
            if not corpus:
                return MatchResponse(success=False, message="No resume data found in Resume Tags sheet")

            jd_tags = self.extract_jd_tags(jd_text)
            if jd_tags is None:
                counter("matching.jd_tags_unavailable")
                return MatchResponse(success=False, message="Could not extract tags from job description")
            logger.info("JD tags extracted", skills=jd_tags.skills, languages=jd_tags.programming_languages,
                        years=jd_tags.years_of_experience)

            result = self.find_best_resumes(jd_tags, corpus, top_n=top_n, threshold=threshold)
            found, missing = self.resolve_documents(result.selected)

        response = MatchResponse(
            success=bool(result.selected),
            jd_tags=jd_tags,
            matching_resumes=found,
            not_found=missing,
            scores=result.scores,
        )
        if not result.selected:
            response.message = no_match_message(threshold)
        counter("matching.queries")
        logger.info("Match query finished", selected=result.selected, not_found=missing,
                    candidates=len(corpus))
        return response


def create_match_service(extractor: TagExtractor, scorer: RelevanceScorer, corpus_store: CorpusStore,
                         **kwargs) -> MatchService:
    """Factory function to create the match service"""
    return MatchService(extractor, scorer, corpus_store, **kwargs)
