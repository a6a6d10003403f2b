from __future__ import annotations

import hashlib

from pydantic import Field

from app.normalize.utils import Section, SectionedText, contact_block_length, split_sections
from app.schemas.base import CamelModel

LOCKED_LABEL = "🔒 AI-optimized content locked - unlock to reveal"
MAX_FREE_REVEAL_CHARS = 2000
MIN_SUBSTANTIAL_SECTION_CHARS = 40
PREFERRED_REVEAL_SECTION = "experience"

_LEAK_MARKERS = ("improvementMetrics", '"atsKeywordsMatched"')


class FreeReveal(CamelModel):
    section: str
    original_text: str
    improved_text: str


class ObfuscationResult(CamelModel):
    obfuscated_resume: str
    content_map: dict[str, str] = Field(default_factory=dict)
    free_reveal: FreeReveal | None = None


def _looks_like_leaked_payload(body: str) -> bool:
    return len(body) > MAX_FREE_REVEAL_CHARS or any(marker in body for marker in _LEAK_MARKERS)


def _select_free_reveal(tailored: SectionedText, original: SectionedText) -> Section | None:
    candidates = [
        section
        for section in tailored.sections
        if section.body.strip()
        and original.find(section.key) is not None
        and not _looks_like_leaked_payload(section.body.strip())
    ]
    if not candidates:
        return None
    for section in candidates:
        if section.key == PREFERRED_REVEAL_SECTION:
            return section
    for section in candidates:
        if len(section.body.strip()) >= MIN_SUBSTANTIAL_SECTION_CHARS:
            return section
    return candidates[0]


class _TokenAllocator:
    def __init__(self, source: str):
        self._source = source
        self._issued: set[str] = set()
        self._counter = 0

    def issue(self, text: str) -> str:
        salt = 0
        while True:
            self._counter += 1
            digest = hashlib.sha256(f"{self._counter}:{salt}:{text}".encode("utf-8")).hexdigest()[:8]
            token = f"[[LOCKED:{self._counter}:{digest}]]"
            if token not in self._source and token not in self._issued:
                self._issued.add(token)
                return token
            salt += 1


def _lock(text: str, tokens: _TokenAllocator, content_map: dict[str, str]) -> str:
    core = text.strip()
    if not core:
        return text
    lead = text[: len(text) - len(text.lstrip())]
    tail = text[len(text.rstrip()) :]
    token = tokens.issue(core)
    content_map[token] = core
    return f"{lead}{token}{tail}"


def _split_preamble(preamble: str) -> tuple[str, str]:
    lines = preamble.splitlines(keepends=True)
    keep = contact_block_length(lines)
    return "".join(lines[:keep]), "".join(lines[keep:])


def obfuscate_resume(original: str, tailored: str) -> ObfuscationResult:
    """Lock a tailored resume behind placeholder tokens, keeping one section free.

    Section headers and the contact block stay readable. Each locked body is
    swapped for a unique token recorded in ``content_map``, so
    :func:`reveal_content` restores the tailored text exactly.
    """
    tailored = tailored or ""
    if not (original or "").strip() or not tailored.strip():
        return ObfuscationResult(obfuscated_resume=tailored)

    tailored_sections = split_sections(tailored)
    original_sections = split_sections(original)
    revealed = _select_free_reveal(tailored_sections, original_sections)

    tokens = _TokenAllocator(tailored)
    content_map: dict[str, str] = {}
    contact, intro = _split_preamble(tailored_sections.preamble)
    parts = [contact, _lock(intro, tokens, content_map)]

    for section in tailored_sections.sections:
        parts.append(section.header)
        if section is revealed:
            parts.append(section.body)
        else:
            parts.append(_lock(section.body, tokens, content_map))

    free_reveal = None
    if revealed is not None:
        before = original_sections.find(revealed.key)
        free_reveal = FreeReveal(
            section=revealed.name,
            original_text=before.body.strip() if before else "",
            improved_text=revealed.body.strip(),
        )

    return ObfuscationResult(
        obfuscated_resume="".join(parts),
        content_map=content_map,
        free_reveal=free_reveal,
    )


def reveal_content(obfuscated: str, content_map: dict[str, str]) -> str:
    revealed = obfuscated
    for token, text in content_map.items():
        revealed = revealed.replace(token, text)
    return revealed


def locked_preview(obfuscated: str, content_map: dict[str, str]) -> str:
    """Render locked tokens with the user-facing unlock label."""
    preview = obfuscated
    for token in content_map:
        preview = preview.replace(token, LOCKED_LABEL)
    return preview
