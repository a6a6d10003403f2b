from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from app.core.errors import invalid_input
from app.core.ttl_cache import cache_key, get_cache
from app.features.keywords import (
    KeywordResult,
    compute_keyword_gap,
    extract_keywords_frequency_based,
    frequency_terms,
    normalize_keyword_response,
)
from app.features.relevancy import compute_composite_score, compute_resume_metrics
from app.normalize.utils import EMAIL_RE, PHONE_RE, SECTION_DISPLAY_NAMES, split_sections
from app.schemas.tools import (
    AtsIssue,
    AtsSimulatorRequest,
    AtsSimulatorResponse,
    ContactInfo,
    InterviewPrepRequest,
    InterviewPrepResponse,
    KeywordAnalyzerRequest,
    KeywordAnalyzerResponse,
    KeywordRecommendation,
    ParsedResumeData,
    RelevancyRequest,
    RelevancyResponse,
    ResumeValidationRequest,
    ResumeValidationResponse,
    SkillsBreakdown,
    SkillsGapRequest,
    SkillsGapResponse,
    ValidationFlag,
)
from app.services import prompts
from app.services.tools_llm import json_completion

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_JOB_DESCRIPTION_CHARS = 100
MIN_RESUME_CHARS = 100

SKILLS_GAP_FALLBACK_SCORE = 50
ATS_FALLBACK_SCORE = 70
DEFAULT_INTERVIEW_TIPS = [
    "Prepare examples using the STAR method",
    "Research the company thoroughly",
]
_EXPERIENCE_LEVELS = {"entry", "mid", "senior", "executive"}
_REQUIRED_SECTIONS = ("experience", "education", "skills")
_FLAG_TYPES = {"hallucination", "fabrication", "metric", "technology", "company"}
# Percentages, currency and k/M/B magnitudes; bare numbers are mostly dates.
_METRIC_RE = re.compile(r"\$\d[\d,.]*[kKmMbB]?|\d[\d,.]*\s?%|\b\d[\d,.]*[kKmMbB]\b|\b\d+x\b")
_SKILL_SPLIT_RE = re.compile(r"[,;\n|]")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clamp_score(value: Any, default: int) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    return max(0, min(100, score))


def _dict_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _cached(prefix: str, payload: Any, compute: Callable[[], T]) -> T:
    key = cache_key(prefix, payload)
    cache = get_cache()
    hit = cache.get(key)
    if hit is not None:
        logger.debug("tools_cache_hit prefix=%s", prefix)
        return hit
    value = compute()
    cache.set(key, value)
    return value


def extract_job_keywords(
    job_description: str,
    *,
    industry: str | None = None,
    preferred_model: str | None = None,
    api_keys: dict[str, str] | None = None,
) -> tuple[KeywordResult, dict[str, Any] | None]:
    """LLM keyword extraction with a frequency-count fallback.

    Returns the normalised keywords plus the raw model payload, which is
    ``None`` whenever the fallback produced the result.
    """

    def compute() -> tuple[KeywordResult, dict[str, Any] | None]:
        raw = json_completion(
            prompts.keyword_extraction_prompt(job_description, industry),
            system_prompt=prompts.JSON_ONLY_SYSTEM_PROMPT,
            tool_slug="keyword-extractor",
            preferred_model=preferred_model,
            api_keys=api_keys,
        )
        if raw is not None:
            result = normalize_keyword_response(raw)
            if result.keywords.technical or result.critical_keywords:
                return result, raw
            logger.info("keyword_extraction_empty_llm_result; using frequency fallback")
        return extract_keywords_frequency_based(job_description), None

    return _cached("keywords", {"jd": job_description, "industry": industry}, compute)


def run_keyword_analyzer(payload: KeywordAnalyzerRequest) -> KeywordAnalyzerResponse:
    job_description = payload.job_description.strip()
    if len(job_description) < MIN_JOB_DESCRIPTION_CHARS:
        raise invalid_input("Please provide a job description with at least 100 characters")

    def compute() -> KeywordAnalyzerResponse:
        keywords, raw = extract_job_keywords(job_description, industry=payload.industry)
        gap = compute_keyword_gap(keywords, payload.resume) if payload.resume else None
        raw = raw or {}
        recommendations = [
            KeywordRecommendation(
                keyword=str(item.get("keyword", "")).strip(),
                reason=str(item.get("reason", "")),
                suggestion=str(item.get("suggestion", "")),
            )
            for item in _dict_list(raw.get("recommendations"))
            if str(item.get("keyword", "")).strip()
        ]
        if gap and not recommendations:
            recommendations = [
                KeywordRecommendation(
                    keyword=term,
                    reason="Appears in the job description but not in your resume.",
                    suggestion=f"Mention {term} in a bullet that describes work where you used it.",
                )
                for term in gap.missing_keywords[:5]
            ]
        level = str(raw.get("experienceLevel", "mid")).strip().lower()
        return KeywordAnalyzerResponse(
            keywords=keywords.keywords,
            critical_keywords=keywords.critical_keywords,
            keyword_density=keywords.keyword_density,
            found_in_resume=gap.found_in_resume if gap else [],
            missing_from_resume=gap.missing_keywords if gap else [],
            recommendations=recommendations,
            industry=str(raw.get("industry") or payload.industry or "Technology"),
            experience_level=level if level in _EXPERIENCE_LEVELS else "mid",
            source="llm" if raw else "frequency",
            timestamp=_now(),
        )

    return _cached("tool:keyword-analyzer", payload.model_dump(), compute)


def run_skills_gap(payload: SkillsGapRequest) -> SkillsGapResponse:
    if not payload.resume.strip() or not payload.job_description.strip():
        raise invalid_input("Both resume and job description are required")

    def compute() -> SkillsGapResponse:
        raw = json_completion(
            prompts.skills_gap_prompt(payload.resume, payload.job_description),
            system_prompt=prompts.JSON_ONLY_SYSTEM_PROMPT,
            tool_slug="skills-gap",
        )
        if raw is None:
            return SkillsGapResponse(match_score=SKILLS_GAP_FALLBACK_SCORE, timestamp=_now())
        skills = _dict(raw.get("skills"))
        return SkillsGapResponse(
            match_score=_clamp_score(raw.get("matchScore"), 0),
            skills=SkillsBreakdown(
                matched=_dict_list(skills.get("matched")),
                missing=_dict_list(skills.get("missing")),
                extra=_dict_list(skills.get("extra")),
            ),
            experience=_dict(raw.get("experience")),
            education=_dict(raw.get("education")),
            certifications=_dict(raw.get("certifications")),
            action_plan=_dict_list(raw.get("actionPlan")),
            strengths=_str_list(raw.get("strengths")),
            weaknesses=_str_list(raw.get("weaknesses")),
            timestamp=_now(),
        )

    return _cached("tool:skills-gap", payload.model_dump(), compute)


def _detected_sections(resume: str) -> list[str]:
    return [section.name for section in split_sections(resume).sections]


def _structural_issues(resume: str) -> list[AtsIssue]:
    issues: list[AtsIssue] = []
    keys = {section.key for section in split_sections(resume).sections}
    for key in _REQUIRED_SECTIONS:
        if key not in keys:
            name = SECTION_DISPLAY_NAMES.get(key, key.title())
            issues.append(
                AtsIssue(
                    type="missing",
                    severity="high" if key == "experience" else "medium",
                    description=f"No {name} section header was found.",
                    recommendation=f'Add an explicit "{name}" heading so parsers can locate this content.',
                )
            )
    head = resume.splitlines()[:10]
    if any("|" in line for line in head):
        issues.append(
            AtsIssue(
                type="formatting",
                severity="medium",
                description="Contact details are separated by pipes.",
                recommendation="Put each contact detail on its own line.",
            )
        )
    if any(glyph in resume for glyph in "●○•◦▪▸"):
        issues.append(
            AtsIssue(
                type="formatting",
                severity="low",
                description="Decorative bullet characters may not survive parsing.",
                recommendation='Use "-" for bullet points.',
            )
        )
    return issues


def _fallback_contact(resume: str) -> ContactInfo:
    email = EMAIL_RE.search(resume)
    phone = PHONE_RE.search(resume)
    return ContactInfo(
        email=email.group(0) if email else None,
        phone=phone.group(0).strip() if phone else None,
    )


def run_ats_simulator(payload: AtsSimulatorRequest) -> AtsSimulatorResponse:
    resume = payload.resume
    if len(resume.strip()) < MIN_RESUME_CHARS:
        raise invalid_input("Please provide a resume with at least 100 characters")

    def compute() -> AtsSimulatorResponse:
        sections = _detected_sections(resume)
        raw = json_completion(
            prompts.ats_simulator_prompt(resume),
            system_prompt=prompts.JSON_ONLY_SYSTEM_PROMPT,
            tool_slug="ats-simulator",
        )
        if raw is None:
            return AtsSimulatorResponse(
                ats_score=ATS_FALLBACK_SCORE,
                parsed_data=ParsedResumeData(contact_info=_fallback_contact(resume), sections=sections),
                issues=_structural_issues(resume),
                recommendations=["Enable full parsing by using structured format"],
                timestamp=_now(),
            )

        parsed = _dict(raw.get("parsedData"))
        contact = _dict(parsed.get("contactInfo"))
        issues = []
        for item in _dict_list(raw.get("issues")):
            severity = str(item.get("severity", "medium")).lower()
            description = str(item.get("description", "")).strip()
            if not description:
                continue
            issues.append(
                AtsIssue(
                    type=str(item.get("type", "formatting")),
                    severity=severity if severity in {"low", "medium", "high"} else "medium",
                    description=description,
                    recommendation=str(item.get("recommendation", "")),
                )
            )
        return AtsSimulatorResponse(
            ats_score=_clamp_score(raw.get("atsScore"), 0),
            parsed_data=ParsedResumeData(
                contact_info=ContactInfo(
                    **{
                        field: (str(contact[field]) if contact.get(field) else None)
                        for field in ("name", "email", "phone", "location")
                    }
                ),
                skills=_str_list(parsed.get("skills")),
                experience=_dict_list(parsed.get("experience")),
                education=_dict_list(parsed.get("education")),
                sections=sections,
            ),
            issues=issues,
            keywords=_str_list(raw.get("keywords")),
            recommendations=_str_list(raw.get("recommendations")),
            timestamp=_now(),
        )

    return _cached("tool:ats-simulator", payload.model_dump(), compute)


def _fallback_interview_prep(job_description: str) -> InterviewPrepResponse:
    terms = [term for term, _ in frequency_terms(job_description)[:3]]
    technical = [
        {
            "question": f"Walk me through a project where you used {term}. What trade-offs did you make?",
            "category": term,
            "difficulty": "medium",
            "answer": "Describe the context, your decisions and a measurable outcome.",
            "resources": [],
        }
        for term in terms
    ]
    return InterviewPrepResponse(
        behavioral=[
            {
                "question": "Tell me about a time you delivered under a tight deadline.",
                "why": "Assesses prioritisation and judgement under pressure.",
                "starFramework": {"situation": "", "task": "", "action": "", "result": ""},
                "tips": ["Quantify the result"],
            }
        ],
        technical=technical,
        questions_to_ask=[
            {
                "question": "What does success look like in the first 90 days?",
                "category": "role",
                "why": "Shows you are focused on delivering impact early.",
            }
        ],
        interview_tips=list(DEFAULT_INTERVIEW_TIPS),
        timestamp=_now(),
    )


def run_interview_prep(payload: InterviewPrepRequest) -> InterviewPrepResponse:
    job_description = payload.job_description.strip()
    if len(job_description) < MIN_JOB_DESCRIPTION_CHARS:
        raise invalid_input("Job description is required")

    def compute() -> InterviewPrepResponse:
        raw = json_completion(
            prompts.interview_prep_prompt(job_description, payload.resume),
            system_prompt=prompts.JSON_ONLY_SYSTEM_PROMPT,
            temperature=0.5,
            max_output_tokens=3000,
            tool_slug="interview-prep",
        )
        if raw is None:
            return _fallback_interview_prep(job_description)
        return InterviewPrepResponse(
            behavioral=_dict_list(raw.get("behavioral")),
            technical=_dict_list(raw.get("technical")),
            situational=_dict_list(raw.get("situational")),
            questions_to_ask=_dict_list(raw.get("questionsToAsk")),
            talking_points=_dict_list(raw.get("talkingPoints")),
            red_flags=_dict_list(raw.get("redFlags")),
            interview_tips=_str_list(raw.get("interviewTips")) or list(DEFAULT_INTERVIEW_TIPS),
            timestamp=_now(),
        )

    return _cached("tool:interview-prep", payload.model_dump(), compute)


def score_improvement(before: int, after: int) -> str:
    sign = "+" if after >= before else "-"
    return f"{sign}{abs(after - before)}%"


def run_relevancy(payload: RelevancyRequest) -> RelevancyResponse:
    original = payload.original_resume.strip()
    job_description = payload.job_description.strip()
    if not original or not job_description:
        raise invalid_input("Both resume and job description are required")
    tailored = (payload.tailored_resume or "").strip() or original

    def compute() -> RelevancyResponse:
        keywords = extract_keywords_frequency_based(job_description)
        technical_terms = [item.term for item in keywords.keywords.technical]
        before_metrics = compute_resume_metrics(
            original,
            job_description,
            critical_keywords=keywords.critical_keywords,
            technical_terms=technical_terms,
        )
        after_metrics = compute_resume_metrics(
            tailored,
            job_description,
            critical_keywords=keywords.critical_keywords,
            technical_terms=technical_terms,
        )
        before = compute_composite_score(before_metrics)
        after = compute_composite_score(after_metrics)

        commentary: list[str] = []
        if payload.explain:
            raw = json_completion(
                prompts.relevancy_commentary_prompt(tailored, job_description, before, after),
                system_prompt=prompts.JSON_ONLY_SYSTEM_PROMPT,
                tool_slug="relevancy",
            )
            commentary = _str_list((raw or {}).get("commentary"))[:5]

        return RelevancyResponse(
            before=before,
            after=after,
            improvement=score_improvement(before, after),
            before_metrics=before_metrics,
            after_metrics=after_metrics,
            commentary=commentary,
        )

    return _cached("tool:relevancy", payload.model_dump(), compute)


def _metric_tokens(text: str) -> set[str]:
    return {match.replace(" ", "").rstrip(".,").lower() for match in _METRIC_RE.findall(text)}


def _skill_entries(text: str) -> list[str]:
    skills = split_sections(text).find("skills")
    if skills is None:
        return []
    entries = (entry.strip().lstrip("-*").strip() for entry in _SKILL_SPLIT_RE.split(skills.body))
    return [entry for entry in entries if entry and len(entry) <= 40]


def _rule_based_flags(original: str, tailored: str) -> list[ValidationFlag]:
    flags: list[ValidationFlag] = []
    known_metrics = _metric_tokens(original)
    seen: set[str] = set()
    for section in split_sections(tailored).sections:
        for line in section.body.splitlines():
            for metric in sorted(_metric_tokens(line) - known_metrics - seen):
                seen.add(metric)
                flags.append(
                    ValidationFlag(
                        type="metric",
                        severity="high",
                        description=f'The figure "{metric}" does not appear in your original resume.',
                        location=section.name,
                    )
                )

    original_lower = original.lower()
    for entry in _skill_entries(tailored):
        if entry.lower() not in original_lower:
            flags.append(
                ValidationFlag(
                    type="technology",
                    severity="medium",
                    description=f'"{entry}" is listed as a skill but is not mentioned in your original resume.',
                    location="Skills",
                )
            )
    return flags


def _validation_summary(flags: list[ValidationFlag]) -> str:
    if not flags:
        return "No unsupported claims were found."
    return f"{len(flags)} item(s) need a check against your original resume before you apply."


def run_resume_validation(payload: ResumeValidationRequest) -> ResumeValidationResponse:
    """Flag claims in a tailored resume that the original does not back up."""
    original = payload.original_resume.strip()
    tailored = payload.tailored_resume.strip()
    if not original or not tailored:
        raise invalid_input("Both original and tailored resumes are required")

    def compute() -> ResumeValidationResponse:
        raw = json_completion(
            prompts.resume_validation_prompt(original, tailored),
            system_prompt=prompts.JSON_ONLY_SYSTEM_PROMPT,
            temperature=0.1,
            tool_slug="validate-resume",
        )
        if raw is None:
            flags = _rule_based_flags(original, tailored)
            return ResumeValidationResponse(
                is_valid=not any(flag.severity == "high" for flag in flags),
                flagged_items=flags,
                summary=_validation_summary(flags),
                source="rules",
                timestamp=_now(),
            )

        flags = []
        for item in _dict_list(raw.get("flaggedItems")):
            description = str(item.get("description", "")).strip()
            if not description:
                continue
            flag_type = str(item.get("type", "fabrication")).lower()
            severity = str(item.get("severity", "medium")).lower()
            flags.append(
                ValidationFlag(
                    type=flag_type if flag_type in _FLAG_TYPES else "fabrication",
                    severity=severity if severity in {"low", "medium", "high"} else "medium",
                    description=description,
                    location=str(item.get("location", "")),
                )
            )
        is_valid = raw.get("isValid")
        return ResumeValidationResponse(
            is_valid=is_valid if isinstance(is_valid, bool) else not any(flag.severity == "high" for flag in flags),
            flagged_items=flags,
            summary=str(raw.get("summary") or _validation_summary(flags)),
            source="llm",
            timestamp=_now(),
        )

    return _cached("tool:validate-resume", payload.model_dump(), compute)
