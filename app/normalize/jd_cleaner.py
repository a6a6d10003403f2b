from __future__ import annotations

import re
import string

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)

DEFAULT_MAX_LENGTH = 4000

# Matched as written, upper-cased and capitalised ("About The Role"), so
# ordinary prose such as "benefits of the role" does not trigger a cut.
ROLE_START_SENTINELS: tuple[str, ...] = (
    "ABOUT THE ROLE",
    "ABOUT THIS ROLE",
    "ABOUT THE JOB",
    "ROLE OVERVIEW",
    "ROLE DESCRIPTION",
    "YOUR ROLE",
    "WHAT YOU'LL DO",
    "WHAT YOU WILL DO",
    "RESPONSIBILITIES",
)

ROLE_END_SENTINELS: tuple[str, ...] = (
    "Equal Employment Opportunity",
    "Equal Opportunity Employer",
    "EEO Statement",
    "Salary Range",
    "Pay Range",
    "Pay Transparency",
    "Compensation Range",
    "Perks and Benefits",
    "Benefits and Perks",
    "What We Offer",
    "Privacy Notice",
)


def clean_job_description(text: str | None, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Strip markup from a pasted job description and bound its length.

    Tags are removed before and after entity decoding so escaped markup such
    as ``&lt;b&gt;`` cannot reintroduce angle brackets.
    """
    if not text:
        return ""

    cleaned = _TAG_RE.sub(" ", text)
    for entity, replacement in _ENTITIES:
        cleaned = cleaned.replace(entity, replacement)
    cleaned = _TAG_RE.sub(" ", cleaned)
    cleaned = cleaned.replace("<", " ").replace(">", " ")
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()

    if max_length > 0 and len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + "..."
    return cleaned


def _variants(sentinel: str) -> set[str]:
    return {sentinel, sentinel.upper(), string.capwords(sentinel.lower())}


def _earliest(haystack: str, sentinels: tuple[str, ...], start: int = 0) -> int:
    positions = [
        haystack.find(variant, start)
        for sentinel in sentinels
        for variant in _variants(sentinel)
    ]
    found = [pos for pos in positions if pos >= 0]
    return min(found) if found else -1


def trim_job_description_to_role_content(text: str | None) -> str:
    """Keep only the part of a posting that describes the role itself."""
    if not text:
        return ""

    start = _earliest(text, ROLE_START_SENTINELS)
    trimmed = text[start:] if start >= 0 else text

    # Search past the first character so a start sentinel never ends itself.
    end = _earliest(trimmed, ROLE_END_SENTINELS, 1)
    if end > 0:
        trimmed = trimmed[:end]

    if start < 0 and end <= 0:
        return text
    return trimmed.rstrip()
