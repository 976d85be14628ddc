"""
Repair near-JSON model output into parsed JSON.

Models are told to answer with bare JSON but regularly wrap it in code fences,
use single quotes, leave trailing commas, forget to quote keys or add a line
of prose around the object. ``sanitize`` undoes those in a fixed order and
reports the outcome as a tagged result instead of raising:

    result = sanitize(text)
    if result.ok:
        use(result.value)
    else:
        log(result.error, result.raw)

Nothing in here lets an exception escape; arbitrary model text is untrusted.
"""

from __future__ import annotations
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union

from jdmatch.observability import counter

logger = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^\s*```[A-Za-z0-9_-]*")
_FENCE_CLOSE_RE = re.compile(r"```\s*$")
_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_BARE_KEY_RE = re.compile(r"([{,])\s*([A-Za-z_][A-Za-z0-9_]*)\s*:")
_OPENING_SINGLE_QUOTE_RE = re.compile(r"([{\[,:]\s*)'")
_CLOSING_SINGLE_QUOTE_RE = re.compile(r"'(\s*[:,}\]])")


@dataclass(frozen=True)
class Parsed:
    """Successful sanitization."""
    value: Any
    repaired: bool = False

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ParseFailure:
    """All repair attempts failed; ``raw`` is the untouched model text."""
    raw: str
    error: str

    @property
    def ok(self) -> bool:
        return False


SanitizeResult = Union[Parsed, ParseFailure]


def strip_code_fences(text: str) -> str:
    """Remove a leading/trailing ``` fence (with optional language tag) and stray backticks."""
    text = text.strip()
    text = _FENCE_OPEN_RE.sub("", text, count=1)
    text = _FENCE_CLOSE_RE.sub("", text, count=1)
    return text.replace("`", "")


def normalize_whitespace(text: str) -> str:
    """Collapse newlines and runs of whitespace into single spaces."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def first_balanced_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring, honouring quoted strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        quote: Optional[str] = None
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if quote:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == quote:
                    quote = None
                continue
            if ch in "\"'":
                quote = ch
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def swap_single_quotes(text: str) -> str:
    """Turn single-quoted JSON strings into double-quoted ones.

    Text without any double quote is swapped wholesale. Otherwise only quotes
    sitting next to JSON punctuation are swapped, so apostrophes inside
    double-quoted strings ("Master's degree") survive.
    """
    if '"' not in text:
        return text.replace("'", '"')
    text = _OPENING_SINGLE_QUOTE_RE.sub(r'\1"', text)
    return _CLOSING_SINGLE_QUOTE_RE.sub(r'"\1', text)


def repair_json_text(text: str) -> str:
    """Best-effort textual repair: quotes, trailing commas, bare keys."""
    text = swap_single_quotes(text)
    text = _TRAILING_COMMA_RE.sub(r"\1", text)
    text = _BARE_KEY_RE.sub(r'\1"\2":', text)
    return text


def _extract_then_repair(text: str) -> Optional[str]:
    obj = first_balanced_object(text)
    return repair_json_text(obj) if obj is not None else None


def _repair_then_extract(text: str) -> Optional[str]:
    return first_balanced_object(repair_json_text(text))


_REPAIRS: List[Callable[[str], Optional[str]]] = [
    first_balanced_object,
    repair_json_text,
    _extract_then_repair,
    _repair_then_extract,
]


def _try_load(candidate: Optional[str]) -> Optional[Parsed]:
    if not candidate:
        return None
    try:
        return Parsed(json.loads(candidate))
    except (ValueError, RecursionError):
        return None


def sanitize(raw: Any) -> SanitizeResult:
    """Parse model output into JSON, repairing common defects.

    Args:
        raw: Model response text.

    Returns:
        ``Parsed`` carrying the decoded value, or ``ParseFailure`` carrying the
        original text and the last decode error.
    """
    if not isinstance(raw, str):
        return ParseFailure(raw=repr(raw), error=f"expected text, got {type(raw).__name__}")

    cleaned = normalize_whitespace(strip_code_fences(raw))
    try:
        return Parsed(json.loads(cleaned))
    except (ValueError, RecursionError) as e:
        last_error = str(e)

    for repair in _REPAIRS:
        try:
            candidate = repair(cleaned)
        except (ValueError, RecursionError) as e:
            last_error = str(e)
            continue
        parsed = _try_load(candidate)
        if parsed is not None:
            counter("llm.output.repaired", tags={"repair": repair.__name__})
            logger.debug("Recovered model output with %s", repair.__name__)
            return Parsed(parsed.value, repaired=True)

    counter("llm.output.unparseable")
    logger.warning("Could not parse model output as JSON: %s", last_error)
    return ParseFailure(raw=raw, error=last_error)


def sanitize_object(raw: Any) -> SanitizeResult:
    """Like ``sanitize`` but only a JSON object counts as success."""
    result = sanitize(raw)
    if result.ok and not isinstance(result.value, dict):
        return ParseFailure(
            raw=raw if isinstance(raw, str) else repr(raw),
            error=f"expected a JSON object, got {type(result.value).__name__}",
        )
    return result
