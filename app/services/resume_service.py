from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any

from fastapi import status

from app.core.errors import ApiError, forbidden, invalid_input, not_found, unauthorized
from app.core.resume_store import ResumeStore, get_resume_store, utc_now_iso
from app.features.obfuscation import FreeReveal, locked_preview, obfuscate_resume, reveal_content
from app.normalize.jd_cleaner import clean_job_description
from app.schemas.resume import (
    MAX_FEEDBACK_COMMENT_CHARS,
    AccessInfo,
    FeedbackRequest,
    FeedbackResponse,
    LinkResumeRequest,
    LinkResumeResponse,
    ResumeListItem,
    ResumeListResponse,
    ResumeVersion,
    ResumeVersionsResponse,
    RetrieveResumeRequest,
    RetrieveResumeResponse,
    SaveResumeRequest,
    SaveResumeResponse,
)
from app.services.access import free_resume_ids, get_access_info, parse_timestamp, resolve_resume_access

logger = logging.getLogger(__name__)

LIST_LIMIT = 50
MAX_TITLE_CHARS = 80
_TITLE_PREFIX_RE = re.compile(r"^(?:job title|title|position|role)\s*:\s*", re.IGNORECASE)


def normalize_match_score(value: Any) -> dict[str, Any] | None:
    """Older clients post a bare number; store it as ``{"after": n}``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return {"after": int(round(value))}
    if isinstance(value, dict):
        return value
    return None


def save_resume(payload: SaveResumeRequest, store: ResumeStore | None = None) -> SaveResumeResponse:
    original = (payload.original_resume or "").strip()
    tailored = (payload.tailored_resume or "").strip()
    if not original or not tailored:
        raise invalid_input("Missing required fields: originalResume and tailoredResume")

    obfuscation = obfuscate_resume(original, tailored)
    record: dict[str, Any] = {
        "original_content": original,
        "tailored_content": tailored,
        "obfuscated_content": obfuscation.obfuscated_resume,
        "content_map": obfuscation.content_map,
        "free_reveal": obfuscation.free_reveal.model_dump(by_alias=True) if obfuscation.free_reveal else None,
        "job_description": clean_job_description(payload.job_description) or None,
        "match_score": normalize_match_score(payload.match_score),
        "improvement_metrics": payload.improvement_metrics,
        "session_id": payload.session_id,
        "user_id": payload.user_id,
        "email": payload.email,
    }

    store = store or get_resume_store()
    try:
        existing = store.get_resume_by_session(payload.session_id) if payload.session_id else None
        if existing is not None:
            record["updated_at"] = utc_now_iso()
            row = store.update_resume(existing["id"], record) or existing
        else:
            row = store.insert_resume(record)
    except Exception as exc:  # noqa: BLE001 - surfaced to the client as a 500
        logger.error("resume_save_failed session=%s: %s", payload.session_id, exc)
        raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to save resume", str(exc)) from exc

    logger.info("resume_saved id=%s session=%s updated=%s", row["id"], payload.session_id, existing is not None)
    return SaveResumeResponse(resume_id=row["id"])


def _find_resume(payload: RetrieveResumeRequest, store: ResumeStore) -> dict[str, Any] | None:
    if payload.resume_id:
        return store.get_resume(payload.resume_id)
    if payload.email and payload.session_id:
        found = store.find_resume_by_email(payload.email, payload.session_id)
        if found is not None:
            return found
    return store.find_resume_by_email(payload.email or "")


def retrieve_resume(
    payload: RetrieveResumeRequest,
    authenticated_user_id: str | None = None,
    store: ResumeStore | None = None,
) -> RetrieveResumeResponse:
    """Look a resume up and unlock it only for a paying or free-tier owner.

    ``authenticated_user_id`` must already be verified against the bearer
    token; anonymous callers always get the locked preview.
    """
    if not payload.resume_id and not payload.email:
        raise invalid_input("Please provide a resumeId or email")

    store = store or get_resume_store()
    resume = _find_resume(payload, store)
    if resume is None:
        raise not_found("Resume not found")

    owner = resume.get("user_id")
    unlocked = False
    access = None
    if authenticated_user_id and (owner is None or owner == authenticated_user_id):
        unlocked, access = resolve_resume_access(resume, authenticated_user_id, store)

    content_map = resume.get("content_map") or {}
    obfuscated = resume.get("obfuscated_content") or ""
    tailored = resume.get("tailored_content") or ""
    if unlocked:
        tailored_view = tailored or reveal_content(obfuscated, content_map)
    elif obfuscated:
        tailored_view = locked_preview(obfuscated, content_map)
    else:
        # Rows saved before obfuscation existed still must not leak content.
        tailored_view = locked_preview(*_relock(resume))

    match_score = resume.get("match_score")
    free_reveal = resume.get("free_reveal")
    return RetrieveResumeResponse(
        resume_id=resume["id"],
        original_resume=resume.get("original_content") or "",
        tailored_resume=tailored_view,
        obfuscated_resume=obfuscated or None,
        content_map=content_map if unlocked else {},
        job_description=resume.get("job_description"),
        match_score=match_score,
        metrics=(match_score or {}).get("afterMetrics"),
        improvement_metrics=resume.get("improvement_metrics"),
        keyword_gap=resume.get("keyword_gap"),
        free_reveal=FreeReveal.model_validate(free_reveal) if free_reveal else None,
        is_unlocked=unlocked,
        access_info=AccessInfo.model_validate(access) if access else None,
        version_number=int(resume.get("version_number") or 1),
        root_resume_id=resume.get("root_resume_id"),
    )


def _relock(resume: dict[str, Any]) -> tuple[str, dict[str, str]]:
    result = obfuscate_resume(resume.get("original_content") or "", resume.get("tailored_content") or "")
    return result.obfuscated_resume, result.content_map


def link_resumes(payload: LinkResumeRequest, store: ResumeStore | None = None) -> LinkResumeResponse:
    if not payload.user_id:
        raise unauthorized("User ID is required")
    if not payload.session_id and not payload.resume_id:
        raise invalid_input("sessionId or resumeId is required")

    store = store or get_resume_store()
    linked = store.link_resumes(payload.user_id, resume_id=payload.resume_id, session_id=payload.session_id)
    logger.info(
        "resumes_linked user=%s resume=%s session=%s count=%s",
        payload.user_id,
        payload.resume_id,
        payload.session_id,
        len(linked),
    )
    return LinkResumeResponse(linked_count=len(linked), resume_ids=linked)


def record_feedback(
    payload: FeedbackRequest,
    authenticated_user_id: str | None = None,
    store: ResumeStore | None = None,
) -> FeedbackResponse:
    if not payload.resume_id or payload.applied is None:
        raise invalid_input("resumeId and a boolean applied value are required")
    if not authenticated_user_id and not payload.session_id:
        raise unauthorized("Sign in or provide a sessionId to leave feedback")

    store = store or get_resume_store()
    resume = store.get_resume(payload.resume_id)
    if resume is None:
        raise not_found("Resume not found")
    if authenticated_user_id:
        if resume.get("user_id") != authenticated_user_id:
            raise forbidden("You can only leave feedback on your own resumes")
    elif resume.get("session_id") != payload.session_id:
        raise forbidden("You can only leave feedback on your own resumes")

    comment = (payload.comment or "").strip()[:MAX_FEEDBACK_COMMENT_CHARS] or None
    store.update_resume(
        payload.resume_id,
        {
            "applied_with_resume": payload.applied,
            "feedback_comment": comment,
            "updated_at": utc_now_iso(),
        },
    )
    return FeedbackResponse()


def list_resume_versions(
    resume_id: str,
    authenticated_user_id: str,
    store: ResumeStore | None = None,
) -> ResumeVersionsResponse:
    store = store or get_resume_store()
    resume = store.get_resume(resume_id)
    if resume is None:
        raise not_found("Resume not found")
    if resume.get("user_id") != authenticated_user_id:
        raise forbidden("You can only view versions of your own resumes")

    root_id = resume.get("root_resume_id") or resume["id"]
    versions = [
        ResumeVersion(
            id=row["id"],
            version_number=int(row.get("version_number") or 1),
            parent_resume_id=row.get("parent_resume_id"),
            match_score=row.get("match_score"),
            created_at=row.get("created_at"),
        )
        for row in store.list_versions(root_id)
        if row.get("user_id") == authenticated_user_id
    ]
    return ResumeVersionsResponse(root_resume_id=root_id, versions=versions)


def display_title(job_description: str | None, created_at: Any) -> str:
    """``"<job title> - Mon YYYY"`` from the first short line of the posting."""
    stamp = parse_timestamp(created_at) or datetime.now(timezone.utc)
    month = stamp.strftime("%b %Y")
    for line in (job_description or "").splitlines()[:10]:
        title = _TITLE_PREFIX_RE.sub("", line.strip().lstrip("#*").strip())
        if title and "http" not in title and len(title) < MAX_TITLE_CHARS:
            return f"{title} - {month}"
    return f"Resume - {month}"


def list_resumes(
    *,
    user_id: str | None = None,
    session_id: str | None = None,
    store: ResumeStore | None = None,
) -> ResumeListResponse:
    """Dashboard listing for a signed-in user, or for an anonymous session."""
    if not user_id and not session_id:
        raise invalid_input("userId or sessionId is required")

    store = store or get_resume_store()
    rows = store.list_resumes(user_id=user_id, session_id=None if user_id else session_id, limit=LIST_LIMIT)
    has_grant = False
    unlocked_ids: set[str] = set()
    if user_id:
        has_grant = bool(get_access_info(user_id, store)["hasAccess"])
        unlocked_ids = set(free_resume_ids(user_id, store))

    resumes = [
        ResumeListItem(
            id=row["id"],
            created_at=row.get("created_at"),
            job_title=display_title(row.get("job_description"), row.get("created_at")),
            match_score=row.get("match_score") or {"before": 0, "after": 0},
            improvement_metrics=row.get("improvement_metrics") or {},
            version_number=int(row.get("version_number") or 1),
            is_unlocked=has_grant or row["id"] in unlocked_ids,
        )
        for row in rows
    ]
    logger.info("resumes_listed user=%s session=%s count=%s", user_id, session_id, len(resumes))
    return ResumeListResponse(resumes=resumes)
