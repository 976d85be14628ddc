"""
Prompt templates for tag extraction and batch relevance scoring.

Both prompts demand raw JSON with no markdown wrapping; the sanitizer still
copes when the model ignores that. The sentinel labels (``JOB DESCRIPTION:``,
``RESUME CONTEXT:``, ``RESUMES TO EVALUATE:``) are also what the mock client
keys on, so keep them stable.

Exports:
- build_extraction_prompt(text, field_spec) -> str
- build_scoring_prompt(jd_tags, candidates) -> str
- format_candidate_summary(record) -> str
"""

from __future__ import annotations
from typing import Iterable, Mapping, Sequence, Tuple

from jdmatch.resume.models import (
    ACHIEVEMENTS_KEY,
    LANGUAGES_KEY,
    SKILLS_KEY,
    YEARS_KEY,
    CorpusRecord,
    FieldSpec,
    TagSet,
)

SCORING_SENTINEL = "RESUMES TO EVALUATE:"
CANDIDATE_SEPARATOR = "\n---------------------------\n"

SCORING_RUBRIC = """Score Guidelines:
- 90-100: Perfect match across all criteria
- 75-89: Strong match with minor gaps
- 60-74: Good match with some gaps
- Below 60: Not recommended"""


def _quoted_keys(keys: Iterable[str]) -> str:
    return ", ".join(f"'{k}'" for k in keys)


def build_extraction_prompt(text: str, field_spec: FieldSpec) -> str:
    """Return the user prompt asking for exactly ``field_spec``'s fields."""
    lines = [f"From the {field_spec.context_label} below, extract:"]
    for key, instruction in field_spec.fields:
        lines.append(f"- {key} ({instruction})")
    lines.append(
        "STRICT INSTRUCTIONS: Respond ONLY with STRICT JSON using keys: "
        f"{_quoted_keys(field_spec.keys)}. "
        "DO NOT use markdown/code-block/extra explanation."
    )
    lines.append("")
    lines.append(f"{field_spec.context_label}:")
    lines.append(text.rstrip())
    return "\n".join(lines)


def format_candidate_summary(record: CorpusRecord) -> str:
    """Fixed-template summary of a corpus row used in the scoring prompt."""
    summary = (
        f"{SKILLS_KEY}: {record.skills or ''}\n"
        f"{LANGUAGES_KEY}: {record.programming_languages or ''}\n"
        f"{YEARS_KEY}: {record.years_of_experience}\n"
    )
    achievements = record.extras.get(ACHIEVEMENTS_KEY)
    if achievements:
        summary += f"Other: {achievements}"
    return summary


def _jd_block(jd_tags: TagSet) -> str:
    return (
        f"{SKILLS_KEY}: {jd_tags.skills}\n"
        f"{LANGUAGES_KEY}: {jd_tags.programming_languages}\n"
        f"{YEARS_KEY}: {jd_tags.years_of_experience}"
    )


def build_scoring_prompt(jd_tags: TagSet, candidates: Sequence[Tuple[str, str]]) -> str:
    """Return one prompt that scores every ``(filename, summary)`` pair at once."""
    resumes = CANDIDATE_SEPARATOR.join(f"{filename}:\n{summary}" for filename, summary in candidates)
    return f"""You are an expert recruitment specialist. You will evaluate resumes against a job description and provide match scores.

JOB DESCRIPTION:
{_jd_block(jd_tags)}

KEY REQUIREMENTS:
- Skills: {jd_tags.skills}
- Programming Languages: {jd_tags.programming_languages}
- Years of Experience: {jd_tags.years_of_experience}

EVALUATION INSTRUCTIONS:
Review each resume carefully and score based on:
1. Technical Skills Match (alignment with required skills)
2. Programming Languages Match
3. Years of Experience Match
4. Overall Role & Domain Fit

{SCORING_RUBRIC}

REQUIRED OUTPUT FORMAT: Strict JSON object with filename:score pairs, integer scores from 0 to 100. Example:
{{"resume.pdf": 85}}
Do NOT use markdown or add any explanation.

{SCORING_SENTINEL}
{resumes}"""


def parse_candidate_blocks(prompt: str) -> Mapping[str, str]:
    """Recover ``filename -> summary`` from a scoring prompt (used by the mock client)."""
    if SCORING_SENTINEL not in prompt:
        return {}
    body = prompt.split(SCORING_SENTINEL, 1)[1].strip("\n")
    blocks = {}
    for block in body.split(CANDIDATE_SEPARATOR):
        head, _, rest = block.partition(":\n")
        if head.strip():
            blocks[head.strip()] = rest
    return blocks
