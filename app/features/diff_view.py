from __future__ import annotations

import bisect
import re
from difflib import SequenceMatcher
from typing import Literal

from pydantic import Field

from app.normalize.utils import SECTION_DISPLAY_NAMES, canonical_section_key, section_heading
from app.schemas.base import CamelModel

SegmentType = Literal["equal", "insert", "delete"]
ChangeType = Literal["added", "removed", "modified"]

HEADER_SECTION = "Header/Contact"
GENERAL_SECTION = "General"

_TOKEN_RE = re.compile(r"\s+|\S+")
# Equal runs this short between two edits are folded into the edit.
_SEMANTIC_CLEANUP_MAX_CHARS = 2


class DiffSegment(CamelModel):
    type: SegmentType
    text: str


class DiffChange(CamelModel):
    type: ChangeType
    section: str
    text: str = ""
    original_text: str | None = None
    new_text: str | None = None


class DiffSummary(CamelModel):
    added: int = 0
    removed: int = 0
    modified: int = 0
    total: int = 0
    sections_changed: list[str] = Field(default_factory=list)


class DiffReport(CamelModel):
    segments: list[DiffSegment]
    changes: list[DiffChange]
    grouped_changes: dict[str, list[DiffChange]]
    summary: DiffSummary


def _raw_segments(original: str, tailored: str) -> list[tuple[str, str]]:
    before = _TOKEN_RE.findall(original)
    after = _TOKEN_RE.findall(tailored)
    matcher = SequenceMatcher(None, before, after, autojunk=False)
    raw: list[tuple[str, str]] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            raw.append(("equal", "".join(before[i1:i2])))
            continue
        if tag in {"delete", "replace"}:
            raw.append(("delete", "".join(before[i1:i2])))
        if tag in {"insert", "replace"}:
            raw.append(("insert", "".join(after[j1:j2])))
    return raw


def diff_texts(original: str, tailored: str) -> list[DiffSegment]:
    """Word-level diff of two texts with small-fragment cleanup.

    Joining ``equal`` and ``delete`` segments yields ``original``; joining
    ``equal`` and ``insert`` segments yields ``tailored``.
    """
    raw = _raw_segments(original or "", tailored or "")
    segments: list[DiffSegment] = []
    deleted: list[str] = []
    inserted: list[str] = []

    def flush() -> None:
        if deleted:
            segments.append(DiffSegment(type="delete", text="".join(deleted)))
            deleted.clear()
        if inserted:
            segments.append(DiffSegment(type="insert", text="".join(inserted)))
            inserted.clear()

    for index, (kind, text) in enumerate(raw):
        if kind == "delete":
            deleted.append(text)
        elif kind == "insert":
            inserted.append(text)
        else:
            pending_edit = bool(deleted or inserted)
            next_is_edit = index + 1 < len(raw) and raw[index + 1][0] != "equal"
            if pending_edit and next_is_edit and len(text.strip()) <= _SEMANTIC_CLEANUP_MAX_CHARS:
                deleted.append(text)
                inserted.append(text)
                continue
            flush()
            segments.append(DiffSegment(type="equal", text=text))
    flush()
    return segments


class _SectionIndex:
    def __init__(self, text: str):
        self._offsets: list[int] = []
        self._names: list[str] = []
        offset = 0
        for line in text.splitlines(keepends=True):
            title = section_heading(line)
            if title is not None:
                key = canonical_section_key(title)
                self._offsets.append(offset)
                self._names.append(SECTION_DISPLAY_NAMES.get(key, GENERAL_SECTION))
            offset += len(line)

    def section_at(self, position: int) -> str:
        index = bisect.bisect_right(self._offsets, position) - 1
        if index < 0:
            return HEADER_SECTION
        return self._names[index]


def _changes_from_segments(segments: list[DiffSegment], original: str, tailored: str) -> list[DiffChange]:
    before_index = _SectionIndex(original)
    after_index = _SectionIndex(tailored)
    changes: list[DiffChange] = []
    before_pos = 0
    after_pos = 0
    previous_type: str | None = None

    for segment in segments:
        follows_delete = previous_type == "delete"
        previous_type = segment.type
        if segment.type == "equal":
            before_pos += len(segment.text)
            after_pos += len(segment.text)
            continue
        text = segment.text.strip()
        if segment.type == "delete":
            section = before_index.section_at(before_pos)
            before_pos += len(segment.text)
            if not text:
                previous_type = None
                continue
            changes.append(DiffChange(type="removed", section=section, text=text))
            continue

        section = after_index.section_at(after_pos)
        after_pos += len(segment.text)
        if not text:
            continue
        previous = changes[-1] if changes and follows_delete else None
        if previous is not None and previous.type == "removed" and previous.section == section:
            changes[-1] = DiffChange(
                type="modified",
                section=section,
                text=text,
                original_text=previous.text,
                new_text=text,
            )
            continue
        changes.append(DiffChange(type="added", section=section, text=text))
    return changes


def build_diff_report(original: str, tailored: str) -> DiffReport:
    segments = diff_texts(original, tailored)
    changes = _changes_from_segments(segments, original or "", tailored or "")

    grouped: dict[str, list[DiffChange]] = {}
    for change in changes:
        grouped.setdefault(change.section, []).append(change)

    summary = DiffSummary(
        added=sum(1 for change in changes if change.type == "added"),
        removed=sum(1 for change in changes if change.type == "removed"),
        modified=sum(1 for change in changes if change.type == "modified"),
        total=len(changes),
        sections_changed=list(grouped),
    )
    return DiffReport(segments=segments, changes=changes, grouped_changes=grouped, summary=summary)
