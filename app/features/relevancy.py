"""Rule-based resume relevancy metrics.

Nothing here calls a model: every number can be traced back to a regular
expression or a substring check, which keeps the before/after scores shown to
users stable between runs.
"""
from __future__ import annotations

import re

from pydantic import Field

from app.features.keywords import frequency_terms
from app.schemas.base import CamelModel

_RESUME_BULLET_RE = re.compile(r"^\s*[-*•]\s+")
_JD_BULLET_RE = re.compile(r"^\s*[-*•]\s*(.+?)\s*$", re.MULTILINE)
_JD_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s*(.+?)\s*$", re.MULTILINE)
_JD_REQUIREMENT_BLOCK_RE = re.compile(
    r"(?:required|must have|qualifications?|qualified candidates)\s*[:-]\s*\n?([\s\S]*?)(?=\n\n|$)",
    re.IGNORECASE,
)
_EVIDENCE_METRIC_RE = re.compile(r"\d+%|\d+gb|\d+mb|\$\d+|\d+\s*years?|\d+k|\d+m", re.IGNORECASE)
_SKIM_METRIC_RE = re.compile(r"\d+%|\d+gb|\d+mb|\$\d+", re.IGNORECASE)
_PLATFORM_RE = re.compile(
    r"\b(sdk|cli|portal|internal platform|shared infrastructure|enablement|enable other teams)\b",
    re.IGNORECASE,
)

MIN_BULLET_CHARS = 15


class CoverageMetric(CamelModel):
    addressed: int = 0
    total: int = 0
    percentage: int = 0


class KeywordPresenceMetric(CamelModel):
    matched: int = 0
    total: int = 0


class EvidenceMetric(CamelModel):
    with_evidence: int = 0
    total: int = 0
    percentage: int = 0


class SkimMetric(CamelModel):
    score: int = 0
    total: int = 0
    percentage: int = 0


class ResumeMetrics(CamelModel):
    jd_coverage: CoverageMetric = Field(default_factory=CoverageMetric)
    critical_keywords: KeywordPresenceMetric = Field(default_factory=KeywordPresenceMetric)
    concrete_evidence: EvidenceMetric = Field(default_factory=EvidenceMetric)
    platform_ownership: int = 0
    skim_success: SkimMetric = Field(default_factory=SkimMetric)


def _percentage(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def parse_bullets(resume: str) -> list[str]:
    bullets = [
        _RESUME_BULLET_RE.sub("", line).strip()
        for line in (resume or "").split("\n")
        if _RESUME_BULLET_RE.match(line)
    ]
    return [bullet for bullet in bullets if len(bullet) >= MIN_BULLET_CHARS]


def extract_requirements(job_description: str) -> list[str]:
    """Pull requirement-looking lines out of a job description, deduplicated."""
    text = job_description or ""
    requirements: list[str] = []
    for pattern in (_JD_BULLET_RE, _JD_NUMBERED_RE):
        for match in pattern.finditer(text):
            item = match.group(1).strip()
            if 10 < len(item) < 200:
                requirements.append(item)
    for match in _JD_REQUIREMENT_BLOCK_RE.finditer(text):
        for line in match.group(1).split("\n"):
            item = re.sub(r"^[-*•\d.)]\s*", "", line).strip()
            if len(item) > 15:
                requirements.append(item)

    unique: dict[str, str] = {}
    for item in requirements:
        unique.setdefault(item.lower()[:80], item)
    return list(unique.values())


def jd_coverage_score(resume: str, requirements: list[str]) -> CoverageMetric:
    if not requirements:
        return CoverageMetric()
    haystack = (resume or "").lower()
    addressed = 0
    for requirement in requirements:
        words = [word for word in requirement.lower().split() if len(word) > 3][:5]
        if len(words) >= 2 and any(word in haystack for word in words):
            addressed += 1
    return CoverageMetric(
        addressed=addressed,
        total=len(requirements),
        percentage=_percentage(addressed, len(requirements)),
    )


def extract_critical_keywords(job_description: str) -> list[str]:
    return [term for term, _ in frequency_terms(job_description)]


def critical_keyword_presence(resume: str, critical_keywords: list[str]) -> KeywordPresenceMetric:
    """Count keywords used inside bullet points, not just listed somewhere."""
    if not critical_keywords:
        return KeywordPresenceMetric()
    in_bullets = " ".join(parse_bullets(resume)).lower()
    matched = sum(1 for keyword in critical_keywords if keyword.lower() in in_bullets)
    return KeywordPresenceMetric(matched=matched, total=len(critical_keywords))


def concrete_evidence_ratio(resume: str, technical_terms: list[str] | None = None) -> EvidenceMetric:
    bullets = [bullet.lower() for bullet in parse_bullets(resume)]
    if not bullets:
        return EvidenceMetric()
    terms = {term.lower() for term in technical_terms or []}
    with_evidence = sum(
        1
        for bullet in bullets
        if _EVIDENCE_METRIC_RE.search(bullet) or any(term in bullet for term in terms)
    )
    return EvidenceMetric(
        with_evidence=with_evidence,
        total=len(bullets),
        percentage=_percentage(with_evidence, len(bullets)),
    )


def platform_ownership_signals(resume: str) -> int:
    return sum(1 for bullet in parse_bullets(resume) if _PLATFORM_RE.search(bullet))


def skim_success_score(resume: str, technical_terms: list[str] | None = None) -> SkimMetric:
    """Share of bullets that lead with a tool or number, or show a metric."""
    bullets = [bullet.lower() for bullet in parse_bullets(resume)]
    if not bullets:
        return SkimMetric()
    terms = {term.lower() for term in technical_terms or []}
    score = 0
    for bullet in bullets:
        opening = " ".join(bullet.split()[:5])
        if (
            _SKIM_METRIC_RE.search(bullet)
            or any(term in opening for term in terms)
            or bullet.strip()[:1].isdigit()
        ):
            score += 1
    return SkimMetric(score=score, total=len(bullets), percentage=_percentage(score, len(bullets)))


def compute_resume_metrics(
    resume: str,
    job_description: str,
    *,
    critical_keywords: list[str] | None = None,
    technical_terms: list[str] | None = None,
    requirements: list[str] | None = None,
) -> ResumeMetrics:
    if requirements is None:
        requirements = extract_requirements(job_description)
    if critical_keywords is None:
        critical_keywords = extract_critical_keywords(job_description)
    if technical_terms is None:
        technical_terms = extract_critical_keywords(job_description)

    return ResumeMetrics(
        jd_coverage=jd_coverage_score(resume, requirements),
        critical_keywords=critical_keyword_presence(resume, critical_keywords),
        concrete_evidence=concrete_evidence_ratio(resume, technical_terms),
        platform_ownership=platform_ownership_signals(resume),
        skim_success=skim_success_score(resume, technical_terms),
    )


def compute_composite_score(metrics: ResumeMetrics) -> int:
    """Weighted 0-100 score used for the before/after match snapshot."""
    keyword_pct = (
        metrics.critical_keywords.matched / metrics.critical_keywords.total * 100
        if metrics.critical_keywords.total
        else 50
    )
    platform_pct = min(100, metrics.platform_ownership * 15)
    score = (
        metrics.jd_coverage.percentage * 0.35
        + keyword_pct * 0.25
        + metrics.concrete_evidence.percentage * 0.2
        + platform_pct * 0.1
        + metrics.skim_success.percentage * 0.1
    )
    return int(round(score))
