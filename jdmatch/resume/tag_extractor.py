"""Tag extraction: unstructured text -> TagSet via a prompted model call."""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from jdmatch.llm.prompts import build_extraction_prompt
from jdmatch.llm.provider_base import InferenceClient
from jdmatch.llm.retry_logic import ResilientInvoker
from jdmatch.llm.sanitizer import sanitize_object
from jdmatch.observability import counter, timer

from .models import JD_FIELD_SPEC, RESUME_FIELD_SPEC, FieldSpec, TagSet

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 12000
DEFAULT_MAX_TOKENS = 4000


def _normalize_key(key: Any) -> str:
    return "".join(ch for ch in str(key).lower() if ch not in " _-")


def match_requested_keys(reply: Dict[str, Any], field_spec: FieldSpec) -> Dict[str, Any]:
    """Values of the requested fields, keyed by their canonical names.

    Reply keys match regardless of case, spaces, underscores and hyphens, so
    ``programming_languages`` is read as ``Programming Languages``.
    """
    canonical = {_normalize_key(k): k for k in field_spec.keys}
    requested: Dict[str, Any] = {}
    for key, value in reply.items():
        name = canonical.get(_normalize_key(key))
        if name is not None and name not in requested:
            requested[name] = value
    return requested


class TagExtractor:
    """Builds an extraction prompt, calls the model and validates the answer.

    Malformed model output yields ``None``. Inference failures are not
    swallowed: throttling is retried by the invoker and anything else
    propagates to the caller.
    """

    def __init__(
        self,
        client: InferenceClient,
        invoker: Optional[ResilientInvoker] = None,
        max_context_chars: int = MAX_CONTEXT_CHARS,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self.client = client
        self.invoker = invoker or ResilientInvoker()
        self.max_context_chars = max_context_chars
        self.max_tokens = max_tokens

    def truncate(self, text: str) -> str:
        """Keep the first ``max_context_chars`` characters of ``text``."""
        if self.max_context_chars and len(text) > self.max_context_chars:
            logger.debug("Truncating context from %d to %d chars", len(text), self.max_context_chars)
            return text[:self.max_context_chars]
        return text

    def extract(self, document_text: str, field_spec: FieldSpec) -> Optional[TagSet]:
        """Extract the fields of ``field_spec`` from ``document_text``.

        Returns:
            TagSet, or None when the model output could not be turned into one.
        """
        prompt = build_extraction_prompt(self.truncate(document_text), field_spec)

        with timer("extraction.llm_call", tags={"mode": field_spec.name}):
            raw = self.invoker.invoke(
                lambda: self.client.complete(prompt, max_tokens=self.max_tokens),
                description=f"extract[{field_spec.name}]",
            )

        result = sanitize_object(raw)
        if not result.ok:
            counter("extraction.malformed_output", tags={"mode": field_spec.name})
            logger.warning("Tag extraction output unusable (%s): %.200s", result.error, result.raw)
            return None

        requested = match_requested_keys(result.value, field_spec)
        if not requested:
            counter("extraction.invalid_tags", tags={"mode": field_spec.name})
            logger.warning("Tag extraction output has none of the requested fields: %.200s", result.value)
            return None
        try:
            tags = TagSet.model_validate(requested)
        except ValidationError as e:
            counter("extraction.invalid_tags", tags={"mode": field_spec.name})
            logger.warning("Tag extraction output failed validation: %s", e)
            return None

        counter("extraction.success", tags={"mode": field_spec.name})
        return tags

    def extract_jd_tags(self, jd_text: str) -> Optional[TagSet]:
        return self.extract(jd_text, JD_FIELD_SPEC)

    def extract_resume_tags(self, resume_text: str) -> Optional[TagSet]:
        return self.extract(resume_text, RESUME_FIELD_SPEC)


def create_tag_extractor(client: InferenceClient, invoker: Optional[ResilientInvoker] = None, **kwargs) -> TagExtractor:
    """Factory function to create a tag extractor"""
    return TagExtractor(client, invoker, **kwargs)
