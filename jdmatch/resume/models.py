from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Column / JSON key names shared by the model prompts and the corpus workbook
SKILLS_KEY = "Skills"
LANGUAGES_KEY = "Programming Languages"
YEARS_KEY = "Years of experience"
TITLE_KEY = "Job title"
FILENAME_KEY = "resume_file_name"
ACHIEVEMENTS_KEY = "Achievements"


def _join_phrases(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, dict):
        raise ValueError("expected text or a list of phrases, got an object")
    if isinstance(v, (list, tuple)):
        return ", ".join(str(item).strip() for item in v if str(item).strip())
    return str(v).strip()


class TagSet(BaseModel):
    """Structured tags extracted from a job description or a resume.

    ``skills`` and ``programming_languages`` are free-form comma-joined
    phrases. ``years_of_experience`` is best effort: a number when the model
    gave one, otherwise whatever text it produced (possibly empty).
    """
    model_config = ConfigDict(populate_by_name=True)

    skills: str = Field("", alias=SKILLS_KEY)
    programming_languages: str = Field("", alias=LANGUAGES_KEY)
    years_of_experience: Union[int, float, str] = Field("", alias=YEARS_KEY)
    job_title: Optional[str] = Field(None, alias=TITLE_KEY)

    @field_validator("skills", "programming_languages", mode="before")
    @classmethod
    def _v_phrases(cls, v):
        return _join_phrases(v)

    @field_validator("years_of_experience", mode="before")
    @classmethod
    def _v_years(cls, v):
        if v is None or isinstance(v, bool):
            return ""
        if isinstance(v, (int, float)):
            if isinstance(v, float) and not math.isfinite(v):
                return ""
            return int(v) if float(v).is_integer() else v
        if isinstance(v, (dict, list, tuple)):
            raise ValueError("years of experience must be a number or text")
        return str(v).strip()

    @field_validator("job_title", mode="before")
    @classmethod
    def _v_title(cls, v):
        if v is None:
            return None
        if isinstance(v, (dict, list)):
            raise ValueError("job title must be text")
        s = str(v).strip()
        return s or None

    def to_row(self) -> Dict[str, Any]:
        row = {
            SKILLS_KEY: self.skills,
            LANGUAGES_KEY: self.programming_languages,
            YEARS_KEY: self.years_of_experience,
        }
        if self.job_title is not None:
            row[TITLE_KEY] = self.job_title
        return row


class CorpusRecord(TagSet):
    """One tagged resume in the corpus, keyed by its file name.

    Unknown workbook columns (for example ``Achievements``) are kept as extra
    fields so a rewrite does not drop them.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    resume_file_name: str = Field(..., alias=FILENAME_KEY, min_length=1)

    @field_validator("resume_file_name", mode="before")
    @classmethod
    def _v_file_name(cls, v):
        # Spreadsheet cells holding a bare number come back as int or float
        if isinstance(v, float) and v.is_integer():
            v = int(v)
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v.strip() if isinstance(v, str) else v

    @classmethod
    def from_tags(cls, resume_file_name: str, tags: TagSet) -> "CorpusRecord":
        return cls(resume_file_name=resume_file_name, **tags.model_dump())

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CorpusRecord":
        return cls.model_validate(row)

    @property
    def extras(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def to_row(self) -> Dict[str, Any]:
        row = {FILENAME_KEY: self.resume_file_name}
        row.update(super().to_row())
        if TITLE_KEY not in row:
            row[TITLE_KEY] = ""
        row.update(self.extras)
        return row


@dataclass(frozen=True)
class FailureRecord:
    """A source document that failed ingestion in the latest run."""
    file: str

    def to_row(self) -> Dict[str, Any]:
        return {"file": self.file}


@dataclass(frozen=True)
class FieldSpec:
    """Which fields an extraction prompt requests, and how to describe them."""
    name: str
    context_label: str
    fields: Tuple[Tuple[str, str], ...]

    @property
    def keys(self) -> Tuple[str, ...]:
        return tuple(key for key, _ in self.fields)


JD_FIELD_SPEC = FieldSpec(
    name="job_description",
    context_label="JOB DESCRIPTION",
    fields=(
        (SKILLS_KEY, "comma-separated"),
        (LANGUAGES_KEY, "comma-separated"),
        (YEARS_KEY, "integer, use the highest if a range is provided, or estimate if not explicit"),
    ),
)

RESUME_FIELD_SPEC = FieldSpec(
    name="resume",
    context_label="RESUME CONTEXT",
    fields=(
        (SKILLS_KEY, "comma-separated"),
        (LANGUAGES_KEY, "comma-separated"),
        (YEARS_KEY, "integer only"),
        (TITLE_KEY, "give a generic name for that job title, don't add junior, senior etc"),
    ),
)
