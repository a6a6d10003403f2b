from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from app.features.keywords import KeywordDensity, KeywordGroups
from app.features.relevancy import ResumeMetrics
from app.schemas.base import CamelModel

ExperienceLevel = Literal["entry", "mid", "senior", "executive"]
KeywordSource = Literal["llm", "frequency"]


class KeywordAnalyzerRequest(CamelModel):
    job_description: str = Field(default="", max_length=50000)
    industry: str | None = Field(default=None, max_length=120)
    resume: str | None = Field(default=None, max_length=50000)


class KeywordRecommendation(CamelModel):
    keyword: str
    reason: str = ""
    suggestion: str = ""


class KeywordAnalyzerResponse(CamelModel):
    keywords: KeywordGroups
    critical_keywords: list[str]
    keyword_density: KeywordDensity
    found_in_resume: list[str] = Field(default_factory=list)
    missing_from_resume: list[str] = Field(default_factory=list)
    recommendations: list[KeywordRecommendation] = Field(default_factory=list)
    industry: str
    experience_level: ExperienceLevel = "mid"
    source: KeywordSource
    timestamp: datetime


class SkillsGapRequest(CamelModel):
    resume: str = Field(default="", max_length=50000)
    job_description: str = Field(default="", max_length=50000)


class SkillsBreakdown(CamelModel):
    matched: list[dict[str, Any]] = Field(default_factory=list)
    missing: list[dict[str, Any]] = Field(default_factory=list)
    extra: list[dict[str, Any]] = Field(default_factory=list)


class SkillsGapResponse(CamelModel):
    match_score: int = Field(ge=0, le=100)
    skills: SkillsBreakdown = Field(default_factory=SkillsBreakdown)
    experience: dict[str, Any] = Field(default_factory=dict)
    education: dict[str, Any] = Field(default_factory=dict)
    certifications: dict[str, Any] = Field(default_factory=dict)
    action_plan: list[dict[str, Any]] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    timestamp: datetime


class AtsSimulatorRequest(CamelModel):
    resume: str = Field(default="", max_length=50000)


class ContactInfo(CamelModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    location: str | None = None


class ParsedResumeData(CamelModel):
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    skills: list[str] = Field(default_factory=list)
    experience: list[dict[str, Any]] = Field(default_factory=list)
    education: list[dict[str, Any]] = Field(default_factory=list)
    sections: list[str] = Field(default_factory=list)


class AtsIssue(CamelModel):
    type: str = "formatting"
    severity: Literal["low", "medium", "high"] = "medium"
    description: str
    recommendation: str = ""


class AtsSimulatorResponse(CamelModel):
    ats_score: int = Field(ge=0, le=100)
    parsed_data: ParsedResumeData = Field(default_factory=ParsedResumeData)
    issues: list[AtsIssue] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    timestamp: datetime


class InterviewPrepRequest(CamelModel):
    job_description: str = Field(default="", max_length=50000)
    resume: str | None = Field(default=None, max_length=50000)


class InterviewPrepResponse(CamelModel):
    behavioral: list[dict[str, Any]] = Field(default_factory=list)
    technical: list[dict[str, Any]] = Field(default_factory=list)
    situational: list[dict[str, Any]] = Field(default_factory=list)
    questions_to_ask: list[dict[str, Any]] = Field(default_factory=list)
    talking_points: list[dict[str, Any]] = Field(default_factory=list)
    red_flags: list[dict[str, Any]] = Field(default_factory=list)
    interview_tips: list[str] = Field(default_factory=list)
    timestamp: datetime


ValidationFlagType = Literal["hallucination", "fabrication", "metric", "technology", "company"]
Severity = Literal["low", "medium", "high"]


class ResumeValidationRequest(CamelModel):
    original_resume: str = Field(default="", max_length=50000)
    tailored_resume: str = Field(default="", max_length=50000)


class ValidationFlag(CamelModel):
    type: ValidationFlagType
    description: str
    location: str = ""
    severity: Severity = "medium"


class ResumeValidationResponse(CamelModel):
    is_valid: bool
    flagged_items: list[ValidationFlag] = Field(default_factory=list)
    summary: str
    source: Literal["llm", "rules"]
    timestamp: datetime


class RelevancyRequest(CamelModel):
    original_resume: str = Field(default="", max_length=50000)
    tailored_resume: str | None = Field(default=None, max_length=50000)
    job_description: str = Field(default="", max_length=50000)
    explain: bool = False


class RelevancyResponse(CamelModel):
    before: int
    after: int
    improvement: str
    before_metrics: ResumeMetrics
    after_metrics: ResumeMetrics
    commentary: list[str] = Field(default_factory=list)
