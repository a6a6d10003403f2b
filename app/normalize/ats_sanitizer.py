from __future__ import annotations

import re

from app.normalize.utils import contact_block_length

_UNICODE_BULLETS_RE = re.compile(r"[●○•◦▪▸]")
_DASHES_RE = re.compile(r"[—–]")

_CONTACT_SCAN_LINES = 10
_HEADER_SCAN_LINES = 50

_EXPERIENCE_RE = re.compile(r"\b(experience|work experience|professional experience)\b")
_EDUCATION_RE = re.compile(r"\b(education|academic)\b")
_SKILLS_RE = re.compile(r"\b(skills|technical skills|core competencies)\b")

# Insertion order when headers are missing.
_REQUIRED_HEADERS = (
    (_EXPERIENCE_RE, "## Experience"),
    (_SKILLS_RE, "## Skills"),
    (_EDUCATION_RE, "## Education"),
)


def light_sanitize(resume: str) -> str:
    """Normalise bullet glyphs and dashes without touching structure."""
    if not resume:
        return ""
    return _DASHES_RE.sub("-", _UNICODE_BULLETS_RE.sub("-", resume))


def _split_contact_lines(lines: list[str]) -> list[str]:
    head: list[str] = []
    for line in lines[:_CONTACT_SCAN_LINES]:
        if "|" in line:
            head.extend(part.strip() for part in line.split("|") if part.strip())
        else:
            head.append(line)
    return head


def sanitize_resume_for_ats(resume: str) -> str:
    """Apply the deterministic fixes ATS parsers need on generated resumes.

    Bullets and dashes become ``-``, pipe-joined contact details are put on
    their own lines and any missing Experience, Skills or Education header is
    added right after the contact block.
    """
    if not resume:
        return ""

    lines = light_sanitize(resume).split("\n")
    head = _split_contact_lines(lines)
    lines = head + lines[_CONTACT_SCAN_LINES:]

    scan = "\n".join(lines[:_HEADER_SCAN_LINES]).lower()
    missing = [header for pattern, header in _REQUIRED_HEADERS if not pattern.search(scan)]
    if not missing:
        return "\n".join(lines)

    insert_at = min(contact_block_length(lines, limit=len(head)), len(lines))
    lines = lines[:insert_at] + [""] + missing + [""] + lines[insert_at:]
    return "\n".join(lines)
