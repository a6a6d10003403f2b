from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from app.features.obfuscation import FreeReveal
from app.schemas.base import CamelModel

MAX_FEEDBACK_COMMENT_CHARS = 500
# UUIDs and client session tokens; keeps ids safe to use in store filters.
IDENTIFIER_PATTERN = r"^[A-Za-z0-9_-]+$"


class SaveResumeRequest(CamelModel):
    original_resume: str | None = Field(default=None, max_length=50000)
    tailored_resume: str | None = Field(default=None, max_length=50000)
    job_description: str | None = Field(default=None, max_length=50000)
    match_score: float | dict[str, Any] | None = None
    improvement_metrics: dict[str, Any] | None = None
    session_id: str | None = Field(default=None, max_length=200)
    user_id: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)


class SaveResumeResponse(CamelModel):
    success: bool = True
    resume_id: str


class RetrieveResumeRequest(CamelModel):
    resume_id: str | None = Field(default=None, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    session_id: str | None = Field(default=None, max_length=200)
    user_id: str | None = Field(default=None, max_length=200)


class AccessInfo(CamelModel):
    has_access: bool
    tier: str | None = None
    tier_label: str | None = None
    expires_at: str | None = None
    remaining_time: int | None = None
    remaining_label: str = "Expired"
    is_expired: bool = True


class RetrieveResumeResponse(CamelModel):
    success: bool = True
    resume_id: str
    original_resume: str
    tailored_resume: str
    obfuscated_resume: str | None = None
    content_map: dict[str, str] = Field(default_factory=dict)
    job_description: str | None = None
    match_score: dict[str, Any] | None = None
    metrics: dict[str, Any] | None = None
    improvement_metrics: dict[str, Any] | None = None
    keyword_gap: dict[str, Any] | None = None
    free_reveal: FreeReveal | None = None
    is_unlocked: bool = False
    access_info: AccessInfo | None = None
    version_number: int = 1
    root_resume_id: str | None = None


class LinkResumeRequest(CamelModel):
    session_id: str | None = Field(default=None, max_length=200, pattern=IDENTIFIER_PATTERN)
    resume_id: str | None = Field(default=None, max_length=200, pattern=IDENTIFIER_PATTERN)
    user_id: str | None = Field(default=None, max_length=200)


class LinkResumeResponse(CamelModel):
    success: bool = True
    linked_count: int
    resume_ids: list[str] = Field(default_factory=list)


class FeedbackRequest(CamelModel):
    resume_id: str | None = Field(default=None, max_length=200)
    applied: bool | None = None
    comment: str | None = None
    user_id: str | None = Field(default=None, max_length=200)
    session_id: str | None = Field(default=None, max_length=200)


class FeedbackResponse(CamelModel):
    success: bool = True


class ResumeVersion(CamelModel):
    id: str
    version_number: int
    parent_resume_id: str | None = None
    match_score: dict[str, Any] | None = None
    created_at: datetime | str | None = None


class ResumeVersionsResponse(CamelModel):
    root_resume_id: str
    versions: list[ResumeVersion]


class ResumeListItem(CamelModel):
    id: str
    created_at: datetime | str | None = None
    job_title: str
    match_score: dict[str, Any] = Field(default_factory=lambda: {"before": 0, "after": 0})
    improvement_metrics: dict[str, Any] = Field(default_factory=dict)
    version_number: int = 1
    is_unlocked: bool = False


class ResumeListResponse(CamelModel):
    resumes: list[ResumeListItem]
