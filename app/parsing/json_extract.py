from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger(__name__)

_FENCED_OBJECT_RE = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")
_BARE_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_BARE_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_TAILORED_RESUME_RE = re.compile(r'"tailoredResume"\s*:\s*"((?:[^"\\]|\\.)*)"')

_NUMBER_WORDS = {
    "zero": "0",
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
    "ten": "10",
    "eleven": "11",
    "twelve": "12",
    "thirteen": "13",
    "fourteen": "14",
    "fifteen": "15",
    "twenty": "20",
    "thirty": "30",
    "forty": "40",
    "fifty": "50",
    "sixty": "60",
    "seventy": "70",
    "eighty": "80",
    "ninety": "90",
    "hundred": "100",
}
_NUMBER_WORD_FIELD_RE = re.compile(
    r'"atsKeywordsMatched"\s*:\s*(' + "|".join(sorted(_NUMBER_WORDS, key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)
_UNESCAPES = (
    ("\\n", "\n"),
    ("\\r", "\r"),
    ("\\t", "\t"),
    ('\\"', '"'),
    ("\\\\", "\\"),
)

MIN_RECOVERED_RESUME_CHARS = 50


@dataclass(frozen=True)
class Parsed:
    value: Any

    ok = True

    def value_or(self, default: Any) -> Any:
        return self.value


@dataclass(frozen=True)
class ParseFailure:
    reason: str

    ok = False

    def value_or(self, default: Any) -> Any:
        return default


ParseResult = Union[Parsed, ParseFailure]


def _is_json(candidate: str) -> bool:
    try:
        json.loads(candidate)
    except ValueError:
        return False
    return True


def extract_json_from_text(text: str | None) -> str | None:
    """Locate a JSON document inside free-form model output.

    Candidates are tried in order: a fenced ``json`` block (returned without
    validation), a bare object span, a bare array span and finally the text
    between the first ``{`` and the last ``}``.
    """
    if not text:
        return None

    fenced = _FENCED_OBJECT_RE.search(text)
    if fenced:
        return fenced.group(1).strip()

    for pattern in (_BARE_OBJECT_RE, _BARE_ARRAY_RE):
        match = pattern.search(text)
        if match and _is_json(match.group(0)):
            return match.group(0)

    first = text.find("{")
    last = text.rfind("}")
    if first != -1 and last > first:
        candidate = text[first : last + 1]
        if _is_json(candidate):
            return candidate
    return None


def fix_common_json_errors(json_string: str) -> str:
    """Replace spelled-out numbers models sometimes emit for keyword counts."""

    def _replace(match: re.Match[str]) -> str:
        digits = _NUMBER_WORDS.get(match.group(1).lower(), "0")
        return f'"atsKeywordsMatched": {digits}'

    return _NUMBER_WORD_FIELD_RE.sub(_replace, json_string)


def parse_json_result(text: str | None) -> ParseResult:
    candidate = extract_json_from_text(text)
    if candidate is None and text:
        candidate = extract_json_from_text(fix_common_json_errors(text))
    if candidate is None:
        return ParseFailure("no_json_found")

    try:
        return Parsed(json.loads(candidate))
    except ValueError:
        pass
    try:
        return Parsed(json.loads(fix_common_json_errors(candidate)))
    except ValueError as exc:
        logger.debug("json_extract_parse_failed len=%s: %s", len(candidate), exc)
        return ParseFailure("invalid_json")


def parse_json_from_text(text: str | None) -> Any | None:
    return parse_json_result(text).value_or(None)


def extract_tailored_resume_from_text(text: str | None) -> str | None:
    """Recover the ``tailoredResume`` string from truncated or broken JSON."""
    if not text or len(text) < MIN_RECOVERED_RESUME_CHARS:
        return None
    match = _TAILORED_RESUME_RE.search(text)
    if not match:
        return None
    value = match.group(1)
    for escaped, plain in _UNESCAPES:
        value = value.replace(escaped, plain)
    return value
