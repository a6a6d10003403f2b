from __future__ import annotations

import logging
import re
from typing import Any, Callable

from fastapi import status

from app.ai.types import ModelOptions, is_rate_limit_error
from app.core.errors import ApiError, invalid_input
from app.core.resume_store import get_resume_store
from app.features.diff_view import build_diff_report
from app.features.keywords import KeywordResult, compute_keyword_gap, prioritized_missing_keywords
from app.features.obfuscation import locked_preview, obfuscate_resume
from app.features.relevancy import ResumeMetrics, compute_composite_score, compute_resume_metrics, extract_requirements
from app.normalize.ats_sanitizer import sanitize_resume_for_ats
from app.normalize.jd_cleaner import clean_job_description, trim_job_description_to_role_content
from app.parsing.json_extract import extract_tailored_resume_from_text, parse_json_from_text
from app.schemas.tailor import (
    DiffRequest,
    DiffResponse,
    ImprovementMetrics,
    JobTitleRequest,
    JobTitleResponse,
    MatchScore,
    TailorRequest,
    TailorResponse,
)
from app.services import prompts
from app.services.access import resolve_resume_access
from app.services.tools_llm import json_completion, text_completion
from app.services.tools_service import MIN_JOB_DESCRIPTION_CHARS, extract_job_keywords

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, dict[str, Any]], None]

KEYWORD_JD_CHARS = 12000
PROMPT_JD_CHARS = 8000
MIN_RESUME_CHARS = 100
MISSING_KEYWORD_LIMIT = 20
KEYWORD_CONTEXT_LIMIT = 15
MAX_EXPLAINED_CHANGES = 20

_SECTION_SPLIT_RE = re.compile(r"\n(?=#|\n)")
_TITLE_LINE_RE = re.compile(r"^\s*(?:job\s+)?title\s*[:\-]\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)


def _noop(_event: str, _payload: dict[str, Any]) -> None:
    return None


def _status(progress: ProgressCallback, stage: str, message: str, percent: int) -> None:
    progress("status", {"stage": stage, "message": message, "progress": percent})


def target_score(baseline: int) -> int:
    gap = 100 - baseline
    improvement = 20 if gap > 20 else 15
    return min(100, baseline + improvement)


def _score(resume: str, job_description: str, keywords: KeywordResult, requirements: list[str]) -> tuple[ResumeMetrics, int]:
    metrics = compute_resume_metrics(
        resume,
        job_description,
        critical_keywords=keywords.critical_keywords,
        technical_terms=[item.term for item in keywords.keywords.technical],
        requirements=requirements,
    )
    return metrics, compute_composite_score(metrics)


def parse_tailored_output(text: str, original_resume: str) -> tuple[str, dict[str, Any]]:
    """Pull the resume and reported metrics out of a model reply.

    Falls back to regex recovery for broken JSON, then to the original
    resume when the reply is only a metrics payload, then to the raw text.
    """
    parsed = parse_json_from_text(text)
    if isinstance(parsed, dict) and isinstance(parsed.get("tailoredResume"), str) and parsed["tailoredResume"].strip():
        metrics = parsed.get("improvementMetrics")
        return parsed["tailoredResume"], metrics if isinstance(metrics, dict) else {}

    recovered = extract_tailored_resume_from_text(text)
    if recovered:
        logger.info("tailor_output_recovered_by_regex chars=%s", len(recovered))
        return recovered, {}
    if "improvementMetrics" in text:
        logger.warning("tailor_output_metrics_only; returning original resume")
        return original_resume, {}
    return text, {}


def _reported_metric(reported: dict[str, Any], key: str) -> int:
    try:
        return max(0, int(reported.get(key, 0)))
    except (TypeError, ValueError):
        return 0


def split_into_sections(resume: str) -> list[str]:
    return [part for part in _SECTION_SPLIT_RE.split(resume) if part.strip()]


def _section_name(content: str) -> str:
    first = content.strip().splitlines()[0] if content.strip() else ""
    return first.lstrip("#").strip() or "Section"


def _emit_sections(progress: ProgressCallback, resume: str) -> None:
    sections = split_into_sections(resume)
    for index, content in enumerate(sections):
        progress(
            "section",
            {"index": index, "total": len(sections), "content": content, "sectionName": _section_name(content)},
        )


class TailoringCancelled(Exception):
    """The caller went away before the pipeline reached ``stage``."""

    def __init__(self, stage: str):
        super().__init__(f"tailoring cancelled before {stage}")
        self.stage = stage


def _check_cancelled(should_stop: Callable[[], bool] | None, stage: str) -> None:
    if should_stop is not None and should_stop():
        raise TailoringCancelled(stage)


def _persist(
    payload: TailorRequest,
    *,
    tailored: str,
    obfuscated: str,
    content_map: dict[str, str],
    free_reveal: dict[str, Any] | None,
    job_description: str,
    match_score: MatchScore,
    improvement_metrics: ImprovementMetrics,
    model_used: str,
) -> str | None:
    store = get_resume_store()
    record: dict[str, Any] = {
        "user_id": payload.user_id,
        "session_id": payload.session_id,
        "email": payload.email,
        "original_content": payload.resume,
        "tailored_content": tailored,
        "obfuscated_content": obfuscated,
        "content_map": content_map,
        "free_reveal": free_reveal,
        "job_description": job_description,
        "match_score": match_score.model_dump(by_alias=True, mode="json"),
        "improvement_metrics": improvement_metrics.model_dump(by_alias=True),
        "keyword_gap": match_score.keyword_gap.model_dump(by_alias=True) if match_score.keyword_gap else None,
        "model_used": model_used,
    }
    try:
        if payload.parent_resume_id:
            parent = store.get_resume(payload.parent_resume_id)
            if parent is not None:
                record.update(
                    {
                        "parent_resume_id": parent["id"],
                        "root_resume_id": parent.get("root_resume_id") or parent["id"],
                        "version_number": int(parent.get("version_number") or 1) + 1,
                        "original_content": parent.get("original_content") or payload.resume,
                        "job_description": parent.get("job_description") or job_description,
                    }
                )
            else:
                logger.info("tailor_parent_missing parent=%s", payload.parent_resume_id)
        row = store.insert_resume(record)
    except Exception as exc:  # noqa: BLE001 - a store outage must not lose the tailored result
        logger.error("tailor_persist_failed user=%s: %s", payload.user_id, exc)
        return None
    return row["id"]


def run_tailoring(
    payload: TailorRequest,
    progress_callback: ProgressCallback | None = None,
    should_stop: Callable[[], bool] | None = None,
) -> TailorResponse:
    """Tailor ``payload.resume`` to the job description and store the result.

    ``progress_callback(event, data)`` receives ``status`` and ``section``
    events while the pipeline runs. Section events carry the same text as the
    response, so callers without access only ever see the locked preview.
    ``should_stop`` is polled before the model call and before persisting;
    when it returns true :class:`TailoringCancelled` is raised.
    """
    progress = progress_callback or _noop
    resume = payload.resume.strip()
    if len(resume) < MIN_RESUME_CHARS:
        raise invalid_input("Please provide a resume with at least 100 characters")
    if len(payload.job_description.strip()) < MIN_JOB_DESCRIPTION_CHARS:
        raise invalid_input("Please provide a job description with at least 100 characters")

    _status(progress, "preprocessing", "Analyzing job description...", 10)
    keyword_jd = trim_job_description_to_role_content(clean_job_description(payload.job_description, KEYWORD_JD_CHARS))
    prompt_jd = clean_job_description(payload.job_description, PROMPT_JD_CHARS)

    _status(progress, "preprocessing", "Extracting keywords...", 20)
    keywords, _ = extract_job_keywords(keyword_jd, preferred_model=payload.model_key, api_keys=payload.api_keys)
    # Requirement lines need the original line breaks, which cleaning collapses.
    requirements = extract_requirements(trim_job_description_to_role_content(payload.job_description))

    _status(progress, "baseline", "Scoring your current resume...", 35)
    before_metrics, before = _score(resume, keyword_jd, keywords, requirements)
    missing = prioritized_missing_keywords(keywords, resume, MISSING_KEYWORD_LIMIT)
    context = [term for term in keywords.critical_keywords if term not in missing][:KEYWORD_CONTEXT_LIMIT]

    prompt = prompts.tailoring_prompt(
        resume=resume,
        job_description=prompt_jd,
        baseline_score=before,
        target_score=target_score(before),
        missing_keywords=missing,
        keyword_context=", ".join(context),
        job_title=payload.job_title,
        custom_instructions=payload.custom_instructions,
        requested_keywords=payload.keywords_to_weave,
    )

    _check_cancelled(should_stop, "generate")
    _status(progress, "generating", "Tailoring your resume...", 40)
    try:
        result = text_completion(
            prompt,
            tool_slug="tailor",
            options=ModelOptions(
                temperature=0.4,
                max_tokens=8000,
                system_prompt=prompts.JSON_ONLY_SYSTEM_PROMPT,
                json_mode=True,
            ),
            preferred_model=payload.model_key,
            api_keys=payload.api_keys,
        )
    except Exception as exc:
        logger.error("tailor_generation_failed model=%s: %s", payload.model_key or "default", exc)
        if is_rate_limit_error(exc):
            raise ApiError(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "Rate limit exceeded",
                "All AI models are busy right now. Please try again in a minute.",
                headers={"Retry-After": "60"},
            ) from exc
        raise ApiError(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "Service Unavailable",
            "The AI service is unavailable. Please try again later.",
        ) from exc
    _status(progress, "generating", "Polishing the draft...", 60)

    _status(progress, "processing", "Formatting for applicant tracking systems...", 80)
    tailored, reported = parse_tailored_output(result.text, resume)
    tailored = sanitize_resume_for_ats(tailored)
    keyword_gap = compute_keyword_gap(keywords, tailored)

    _status(progress, "scoring", "Calculating your new match score...", 90)
    after_metrics, after = _score(tailored, keyword_jd, keywords, requirements)
    improvement_metrics = ImprovementMetrics(
        quantified_bullets_added=max(0, after_metrics.concrete_evidence.with_evidence - before_metrics.concrete_evidence.with_evidence),
        ats_keywords_matched=max(0, after_metrics.critical_keywords.matched - before_metrics.critical_keywords.matched),
        active_voice_conversions=_reported_metric(reported, "activeVoiceConversions"),
        sections_optimized=_reported_metric(reported, "sectionsOptimized") or len(split_into_sections(tailored)),
    )
    match_score = MatchScore(
        before=before,
        after=after,
        before_metrics=before_metrics,
        after_metrics=after_metrics,
        keyword_gap=keyword_gap,
    )

    _check_cancelled(should_stop, "persist")
    obfuscation = obfuscate_resume(resume, tailored)
    free_reveal = obfuscation.free_reveal.model_dump(by_alias=True) if obfuscation.free_reveal else None
    resume_id = _persist(
        payload,
        tailored=tailored,
        obfuscated=obfuscation.obfuscated_resume,
        content_map=obfuscation.content_map,
        free_reveal=free_reveal,
        job_description=prompt_jd,
        match_score=match_score,
        improvement_metrics=improvement_metrics,
        model_used=result.model_key,
    )

    unlocked = False
    if resume_id:
        unlocked, _ = resolve_resume_access({"id": resume_id}, payload.user_id)
    visible = tailored if unlocked else locked_preview(obfuscation.obfuscated_resume, obfuscation.content_map)
    _emit_sections(progress, visible)
    logger.info(
        "tailor_completed model=%s before=%s after=%s resume_id=%s unlocked=%s",
        result.model_key,
        before,
        after,
        resume_id,
        unlocked,
    )
    return TailorResponse(
        tailored_resume=visible,
        improvement_metrics=improvement_metrics,
        match_score=match_score,
        metrics=after_metrics,
        keyword_gap=keyword_gap,
        content_map=obfuscation.content_map if unlocked else {},
        free_reveal=obfuscation.free_reveal,
        resume_id=resume_id,
        model_used=result.model_key,
        is_unlocked=unlocked,
    )


def _fallback_job_title(job_description: str) -> str:
    match = _TITLE_LINE_RE.search(job_description)
    if match:
        return match.group(1)[:120]
    for line in job_description.splitlines():
        if line.strip():
            return line.strip().lstrip("#").strip()[:120]
    return "Unknown"


def extract_job_title(payload: JobTitleRequest) -> JobTitleResponse:
    job_description = payload.job_description.strip()
    if len(job_description) < MIN_JOB_DESCRIPTION_CHARS:
        raise invalid_input("Please provide a more detailed job description")

    raw = json_completion(
        prompts.job_title_prompt(clean_job_description(job_description, PROMPT_JD_CHARS)),
        system_prompt=prompts.JSON_ONLY_SYSTEM_PROMPT,
        temperature=0.1,
        max_output_tokens=200,
        tool_slug="job-title",
    )
    title = str((raw or {}).get("jobTitle") or "").strip()
    if not title:
        return JobTitleResponse(job_title=_fallback_job_title(job_description), confidence=40, source="regex")
    try:
        confidence = int(float((raw or {}).get("confidence", 80)))
    except (TypeError, ValueError):
        confidence = 80
    return JobTitleResponse(job_title=title, confidence=max(1, min(100, confidence)), source="llm")


def build_diff(payload: DiffRequest) -> DiffResponse:
    if not payload.original_resume.strip() or not payload.tailored_resume.strip():
        raise invalid_input("Both originalResume and tailoredResume are required")

    report = build_diff_report(payload.original_resume, payload.tailored_resume)
    explanations: list[str] = []
    if payload.explain and report.changes:
        changes = [
            {"section": change.section, "type": change.type, "text": change.new_text or change.text}
            for change in report.changes[:MAX_EXPLAINED_CHANGES]
        ]
        raw = json_completion(
            prompts.diff_explanation_prompt(changes),
            system_prompt=prompts.JSON_ONLY_SYSTEM_PROMPT,
            tool_slug="diff-explain",
        )
        items = (raw or {}).get("explanations")
        if isinstance(items, list):
            explanations = [str(item) for item in items[: len(changes)]]
    return DiffResponse(**report.model_dump(), explanations=explanations)


def stream_error_payload(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, ApiError):
        return {"error": exc.message or exc.error, "canRetry": exc.status_code == 429, "status": exc.status_code}
    return {"error": "Failed to tailor resume. Please try again.", "canRetry": False, "status": 500}
