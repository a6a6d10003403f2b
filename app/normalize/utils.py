from __future__ import annotations

import re
from dataclasses import dataclass

_BULLET_CHARS = "•◦▪▫●○■□◆◇▶►▸-–—*·"
_BULLET_PATTERN = re.compile(rf"^\s*(?:[{re.escape(_BULLET_CHARS)}]|(?:\d+[\.\)]))\s+")
EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_RE = re.compile(r"\+?\d[\d\s().-]{7,}\d")
_URL_RE = re.compile(r"(?:https?://|www\.|linkedin\.com|github\.com)", re.IGNORECASE)
_MARKDOWN_HEADING_RE = re.compile(r"^\s*#{1,6}\s+(.+?)\s*$")
_METRIC_RE = re.compile(r"\d|%|[$€£]")

SECTION_ALIASES: dict[str, tuple[str, ...]] = {
    "summary": (
        "summary",
        "professional summary",
        "career summary",
        "profile",
        "professional profile",
        "objective",
        "about me",
    ),
    "experience": (
        "experience",
        "work experience",
        "professional experience",
        "relevant experience",
        "employment history",
        "work history",
        "employment",
    ),
    "education": (
        "education",
        "academic background",
        "academics",
        "education and training",
    ),
    "skills": (
        "skills",
        "technical skills",
        "core competencies",
        "key skills",
        "competencies",
        "skills and tools",
    ),
    "projects": ("projects", "personal projects", "key projects", "selected projects"),
    "certifications": (
        "certifications",
        "certificates",
        "licenses",
        "licenses and certifications",
        "licenses & certifications",
    ),
    "awards": ("awards", "honors", "achievements", "awards and honors", "honors & awards"),
}

SECTION_DISPLAY_NAMES: dict[str, str] = {
    "summary": "Summary",
    "experience": "Experience",
    "education": "Education",
    "skills": "Skills",
    "projects": "Projects",
    "certifications": "Certifications",
    "awards": "Awards",
}

_ALIAS_LOOKUP = {alias: key for key, aliases in SECTION_ALIASES.items() for alias in aliases}


@dataclass(frozen=True)
class Section:
    key: str
    name: str
    header: str
    body: str

    @property
    def text(self) -> str:
        return self.header + self.body


@dataclass(frozen=True)
class SectionedText:
    preamble: str
    sections: tuple[Section, ...]

    def find(self, key: str) -> Section | None:
        for section in self.sections:
            if section.key == key:
                return section
        return None


def normalize_line(line: str) -> str:
    return re.sub(r"\s+", " ", line).strip()


def is_bullet_like(line: str) -> bool:
    return bool(_BULLET_PATTERN.match(line))


def strip_bullet_prefix(line: str) -> str:
    return _BULLET_PATTERN.sub("", line).strip()


def has_metric(line: str) -> bool:
    return bool(_METRIC_RE.search(line))


def is_contact_or_url(line: str) -> bool:
    stripped = normalize_line(line)
    if not stripped:
        return False
    return bool(EMAIL_RE.search(stripped) or PHONE_RE.search(stripped) or _URL_RE.search(stripped))


def _heading_title(line: str) -> str:
    stripped = normalize_line(line)
    markdown = _MARKDOWN_HEADING_RE.match(stripped)
    if markdown:
        stripped = markdown.group(1)
    return stripped.strip("*_ ").rstrip(":").strip()


def canonical_section_key(title: str) -> str:
    """Map a heading such as ``PROFESSIONAL EXPERIENCE:`` to ``experience``."""
    lowered = _heading_title(title).lower()
    if lowered in _ALIAS_LOOKUP:
        return _ALIAS_LOOKUP[lowered]
    for alias, key in _ALIAS_LOOKUP.items():
        if re.search(rf"\b{re.escape(alias)}\b", lowered):
            return key
    return re.sub(r"[^a-z0-9]+", "_", lowered).strip("_") or "general"


def section_heading(line: str) -> str | None:
    """Return the heading title when ``line`` opens a resume section."""
    stripped = normalize_line(line)
    if not stripped or len(stripped) > 60:
        return None
    if _MARKDOWN_HEADING_RE.match(stripped):
        return _heading_title(stripped) or None
    title = _heading_title(stripped)
    if title.lower() in _ALIAS_LOOKUP:
        return title
    return None


def is_section_heading(line: str) -> bool:
    return section_heading(line) is not None


def split_sections(text: str) -> SectionedText:
    """Partition resume text into a preamble and titled sections.

    The split is lossless: ``preamble`` followed by every section's
    ``header + body`` reproduces ``text`` exactly.
    """
    preamble: list[str] = []
    sections: list[Section] = []
    current_title: str | None = None
    current_header = ""
    current_body: list[str] = []

    def flush() -> None:
        if current_title is None:
            return
        key = canonical_section_key(current_title)
        sections.append(
            Section(
                key=key,
                name=SECTION_DISPLAY_NAMES.get(key, current_title),
                header=current_header,
                body="".join(current_body),
            )
        )

    for line in text.splitlines(keepends=True):
        title = section_heading(line)
        if title is not None:
            flush()
            current_title = title
            current_header = line
            current_body = []
            continue
        if current_title is None:
            preamble.append(line)
        else:
            current_body.append(line)
    flush()

    return SectionedText(preamble="".join(preamble), sections=tuple(sections))


def contact_block_length(lines: list[str], limit: int = 10) -> int:
    """Number of leading lines that form the contact block."""
    count = 0
    for line in lines[:limit]:
        if not line.strip() or is_section_heading(line):
            break
        count += 1
    return count
