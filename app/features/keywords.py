from __future__ import annotations

import re
from collections import Counter
from typing import Any, Literal

from pydantic import Field

from app.schemas.base import CamelModel

Importance = Literal["critical", "high", "medium", "low"]

_IMPORTANCE_ORDER = {"critical": 4, "high": 3, "medium": 2, "low": 1}
_DEFAULT_SECTIONS = ["Skills", "Experience", "Projects"]
_WORD_RE = re.compile(r"\b\w{4,}\b")

FREQUENCY_TERM_LIMIT = 50
HIGH_IMPORTANCE_TERMS = 10
CRITICAL_KEYWORD_LIMIT = 15
FOUND_KEYWORDS_CAP = 20
MISSING_KEYWORDS_CAP = 20
MISSING_KEYWORD_MIN_LENGTH = 5

STOPWORDS = frozenset(
    {
        "the", "and", "or", "but", "for", "with", "from", "that", "this", "these", "those",
        "have", "has", "had", "will", "would", "could", "should", "may", "might", "must",
        "can", "been", "being", "into", "through", "during", "before", "after", "above",
        "below", "between", "under", "again", "further", "then", "once", "here", "there",
        "when", "where", "why", "how", "all", "each", "every", "both", "few", "more",
        "most", "other", "some", "such", "only", "own", "same", "than", "too", "very",
        "just", "also", "now", "about", "what", "which", "who", "whom", "their", "them",
        "remote", "people", "opportunity", "benefits", "life",
        "your", "select", "role", "roles", "form", "required", "requires", "self", "duty",
        "external", "internal", "applicant", "candidate", "employment", "equal", "veteran",
        "veterans", "military", "disability", "disorder", "health", "compensation", "confidential",
        "voluntary", "identification", "protected", "government", "federal", "industries",
        "environments", "clearance", "defense", "technology", "innovative", "transform",
        "changing", "bring", "allied", "capabilities", "mission", "industry", "advanced",
    }
)

# Never suggested as missing: application-form, EEO and mission-statement vocabulary.
MISSING_KEYWORDS_BLOCKLIST = frozenset(
    {
        "your", "select", "military", "veteran", "disability", "clearance", "disorder",
        "compensation", "duty", "roles", "form", "self", "requires", "external", "voluntary",
        "identification", "protected", "federal", "government", "role", "applicant", "candidate",
        "employment", "equal", "veterans", "confidential", "industries", "environments", "health",
        "defense technology", "advanced technology", "defense industry", "military systems",
        "innovative", "transform", "bring", "changing", "defense", "technology", "mission",
        "capabilities", "allied", "cutting-edge", "cutting edge",
    }
)


class KeywordTerm(CamelModel):
    term: str
    importance: Importance = "medium"
    importance_score: float = 70
    frequency: float = 1
    synonyms: list[str] = Field(default_factory=list)
    recommended_sections: list[str] = Field(default_factory=lambda: list(_DEFAULT_SECTIONS))


class SimpleTerm(CamelModel):
    term: str
    frequency: float = 1


class KeywordGroups(CamelModel):
    technical: list[KeywordTerm] = Field(default_factory=list)
    soft: list[KeywordTerm] = Field(default_factory=list)
    industry: list[KeywordTerm] = Field(default_factory=list)
    certifications: list[KeywordTerm] = Field(default_factory=list)
    action_verbs: list[SimpleTerm] = Field(default_factory=list)
    power_words: list[SimpleTerm] = Field(default_factory=list)


class KeywordCount(CamelModel):
    keyword: str
    count: float


class KeywordDensity(CamelModel):
    total_keywords: float = 0
    critical_keywords: float = 0
    average_frequency: float = 0
    most_frequent: list[KeywordCount] = Field(default_factory=list)


class KeywordResult(CamelModel):
    critical_keywords: list[str] = Field(default_factory=list)
    keywords: KeywordGroups = Field(default_factory=KeywordGroups)
    keyword_density: KeywordDensity = Field(default_factory=KeywordDensity)


class KeywordGap(CamelModel):
    found_in_resume: list[str] = Field(default_factory=list)
    missing_keywords: list[str] = Field(default_factory=list)


def _ensure_importance(value: Any) -> Importance:
    lowered = str(value or "medium").strip().lower()
    return lowered if lowered in _IMPORTANCE_ORDER else "medium"  # type: ignore[return-value]


def _ensure_number(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:
        return default
    return max(0.0, number)


def _ensure_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _string_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [str(item).strip() for item in value if str(item).strip()]


def _term_of(item: dict[str, Any]) -> str:
    return _ensure_string(item.get("term")) or _ensure_string(item.get("keyword"))


def _normalize_terms(raw: Any, default_score: float) -> list[KeywordTerm]:
    if not isinstance(raw, list):
        return []
    terms: list[KeywordTerm] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        term = _term_of(item)
        if not term:
            continue
        sections = _string_list(item.get("recommendedSections"))
        terms.append(
            KeywordTerm(
                term=term,
                importance=_ensure_importance(item.get("importance")),
                importance_score=_ensure_number(item.get("importanceScore"), default_score),
                frequency=_ensure_number(item.get("frequency"), 1),
                synonyms=_string_list(item.get("synonyms")) or [],
                recommended_sections=sections if sections is not None else list(_DEFAULT_SECTIONS),
            )
        )
    return terms


def _normalize_simple(raw: Any) -> list[SimpleTerm]:
    if not isinstance(raw, list):
        return []
    terms = [
        SimpleTerm(term=_term_of(item), frequency=_ensure_number(item.get("frequency"), 1))
        for item in raw
        if isinstance(item, dict)
    ]
    return [item for item in terms if item.term]


def normalize_keyword_response(raw: Any) -> KeywordResult:
    """Coerce loosely shaped model output into a :class:`KeywordResult`."""
    if not isinstance(raw, dict):
        return KeywordResult()

    groups_raw = raw.get("keywords") if isinstance(raw.get("keywords"), dict) else {}
    density_raw = raw.get("keywordDensity") if isinstance(raw.get("keywordDensity"), dict) else {}

    groups = KeywordGroups(
        technical=_normalize_terms(groups_raw.get("technical"), 70),
        soft=_normalize_terms(groups_raw.get("soft"), 60),
        industry=_normalize_terms(groups_raw.get("industry"), 60),
        certifications=_normalize_terms(groups_raw.get("certifications"), 60),
        action_verbs=_normalize_simple(groups_raw.get("actionVerbs")),
        power_words=_normalize_simple(groups_raw.get("powerWords")),
    )
    all_terms = groups.technical + groups.soft + groups.industry + groups.certifications

    critical = _string_list(raw.get("criticalKeywords")) or []
    if not critical:
        ranked = [
            item.term
            for item in groups.technical + groups.industry
            if item.importance in {"critical", "high"}
        ]
        critical = list(dict.fromkeys(ranked))

    most_frequent_raw = density_raw.get("mostFrequent")
    if isinstance(most_frequent_raw, list):
        most_frequent = [
            KeywordCount(
                keyword=_ensure_string(item.get("keyword")) or _ensure_string(item.get("term")),
                count=_ensure_number(item.get("count"), _ensure_number(item.get("frequency"), 1)),
            )
            for item in most_frequent_raw
            if isinstance(item, dict)
        ]
        most_frequent = [item for item in most_frequent if item.keyword][:10]
    else:
        by_frequency = sorted(all_terms, key=lambda item: item.frequency, reverse=True)[:10]
        most_frequent = [KeywordCount(keyword=item.term, count=item.frequency) for item in by_frequency]

    total_frequency = sum(item.frequency for item in all_terms)
    density = KeywordDensity(
        total_keywords=_ensure_number(density_raw.get("totalKeywords"), len(all_terms)),
        critical_keywords=_ensure_number(
            density_raw.get("criticalKeywords"),
            sum(1 for item in all_terms if item.importance in {"critical", "high"}),
        ),
        average_frequency=total_frequency / len(all_terms) if all_terms else 0,
        most_frequent=most_frequent,
    )
    return KeywordResult(critical_keywords=critical, keywords=groups, keyword_density=density)


def frequency_terms(text: str) -> list[tuple[str, int]]:
    """Words of four or more letters seen at least twice, most frequent first."""
    counts = Counter(_WORD_RE.findall((text or "").lower()))
    terms = [(word, count) for word, count in counts.items() if count >= 2 and word not in STOPWORDS]
    return sorted(terms, key=lambda item: item[1], reverse=True)


def extract_keywords_frequency_based(job_description: str) -> KeywordResult:
    terms = frequency_terms(job_description)[:FREQUENCY_TERM_LIMIT]
    technical = [
        KeywordTerm(
            term=term,
            importance="high" if index < HIGH_IMPORTANCE_TERMS else "medium",
            importance_score=80 if index < HIGH_IMPORTANCE_TERMS else 60,
            frequency=count,
        )
        for index, (term, count) in enumerate(terms)
    ]
    total_frequency = sum(item.frequency for item in technical)
    return KeywordResult(
        critical_keywords=[term for term, _ in terms[:CRITICAL_KEYWORD_LIMIT]],
        keywords=KeywordGroups(technical=technical),
        keyword_density=KeywordDensity(
            total_keywords=len(technical),
            critical_keywords=min(CRITICAL_KEYWORD_LIMIT, len(technical)),
            average_frequency=total_frequency / len(technical) if technical else 0,
            most_frequent=[KeywordCount(keyword=item.term, count=item.frequency) for item in technical[:10]],
        ),
    )


def _variations(term: str) -> list[str]:
    lowered = term.lower()
    return [
        lowered,
        re.sub(r"\s+", "", lowered),
        re.sub(r"\s+", "-", lowered),
        re.sub(r"\s+", "_", lowered),
    ]


def compute_keyword_gap(keywords: KeywordResult, resume_text: str) -> KeywordGap:
    """Split job keywords into those the resume already covers and those it lacks."""
    haystack = (resume_text or "").lower()

    def appears(term: str) -> bool:
        return any(len(variant) >= 3 and variant in haystack for variant in _variations(term))

    ranked = sorted(
        keywords.keywords.technical + keywords.keywords.industry,
        key=lambda item: (_IMPORTANCE_ORDER.get(item.importance, 2), item.frequency),
        reverse=True,
    )
    candidates = list(keywords.critical_keywords) + [item.term for item in ranked]

    found: list[str] = []
    missing: list[str] = []
    seen: set[str] = set()
    for raw_term in candidates:
        term = raw_term.strip()
        if len(term) < 3 or term.lower() in seen:
            continue
        seen.add(term.lower())
        (found if appears(term) else missing).append(term)

    missing = [
        term
        for term in missing
        if len(term) >= MISSING_KEYWORD_MIN_LENGTH and term.lower() not in MISSING_KEYWORDS_BLOCKLIST
    ]
    return KeywordGap(found_in_resume=found[:FOUND_KEYWORDS_CAP], missing_keywords=missing[:MISSING_KEYWORDS_CAP])


def prioritized_missing_keywords(keywords: KeywordResult, resume_text: str, limit: int = 20) -> list[str]:
    """Job keywords absent from the resume: critical ones first, then by importance and frequency."""
    haystack = (resume_text or "").lower()

    def missing(term: str) -> bool:
        return len(term) > 2 and not any(variant in haystack for variant in _variations(term))

    ordered = [term for term in keywords.critical_keywords if missing(term.strip())]
    seen = {term.lower() for term in ordered}
    ranked = sorted(
        keywords.keywords.technical + keywords.keywords.industry,
        key=lambda item: (_IMPORTANCE_ORDER.get(item.importance, 2), item.frequency),
        reverse=True,
    )
    for item in ranked:
        term = item.term.strip()
        if term.lower() in seen or not missing(term):
            continue
        seen.add(term.lower())
        ordered.append(term)
    return ordered[:limit]
