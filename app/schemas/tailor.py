from __future__ import annotations

from typing import Any

from pydantic import Field

from app.features.diff_view import DiffReport
from app.features.keywords import KeywordGap
from app.features.obfuscation import FreeReveal
from app.features.relevancy import ResumeMetrics
from app.schemas.base import CamelModel


class TailorRequest(CamelModel):
    resume: str = Field(default="", max_length=50000)
    job_description: str = Field(default="", max_length=50000)
    session_id: str | None = Field(default=None, max_length=200)
    user_id: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    model_key: str | None = Field(default=None, max_length=120)
    job_title: str | None = Field(default=None, max_length=200)
    parent_resume_id: str | None = Field(default=None, max_length=200)
    keywords_to_weave: list[str] = Field(default_factory=list, max_length=30)
    custom_instructions: str | None = Field(default=None, max_length=2000)
    api_keys: dict[str, str] | None = None


class ImprovementMetrics(CamelModel):
    quantified_bullets_added: int = 0
    ats_keywords_matched: int = 0
    active_voice_conversions: int = 0
    sections_optimized: int = 0


class MatchScore(CamelModel):
    before: int
    after: int
    before_metrics: ResumeMetrics | None = None
    after_metrics: ResumeMetrics | None = None
    keyword_gap: KeywordGap | None = None


class TailorResponse(CamelModel):
    tailored_resume: str
    improvement_metrics: ImprovementMetrics
    match_score: MatchScore
    metrics: ResumeMetrics
    keyword_gap: KeywordGap
    content_map: dict[str, str]
    free_reveal: FreeReveal | None = None
    resume_id: str | None = None
    model_used: str
    is_unlocked: bool = False


class DiffRequest(CamelModel):
    original_resume: str = Field(default="", max_length=50000)
    tailored_resume: str = Field(default="", max_length=50000)
    explain: bool = False


class DiffResponse(DiffReport):
    explanations: list[str] = Field(default_factory=list)


class JobTitleRequest(CamelModel):
    job_description: str = Field(default="", max_length=50000)


class JobTitleResponse(CamelModel):
    job_title: str
    confidence: int = Field(ge=1, le=100)
    source: str = "llm"


def sse_payload(model: CamelModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")
