"""Heuristics deciding which values are worth sending to the translator."""

from __future__ import annotations

import re

MIN_TEXT_LENGTH = 2

_DATE_PATTERNS = [
    re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$"),
    re.compile(r"^\d{2}-\d{2}-\d{4}$"),
    re.compile(r"^\d{2}/\d{2}/\d{4}$"),
    re.compile(r"^\d{4}/\d{2}/\d{2}$"),
    re.compile(r"^\d{2}\.\d{2}\.\d{4}$"),
]
_URL_RE = re.compile(r"^(https?://|www\.)\S+$", re.IGNORECASE)
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_DIGITS_RE = re.compile(r"^\d+$")
_CODE_RE = re.compile(r"^[{\[<].*[}\]>]$", re.DOTALL)
_WHITESPACE_RE = re.compile(r"\s+")


def is_numeric(value: str) -> bool:
    text = value.strip().replace(",", "")
    if not text:
        return False
    try:
        float(text)
    except ValueError:
        return False
    return True


def is_date(value: str) -> bool:
    text = value.strip()
    return any(pattern.match(text) for pattern in _DATE_PATTERNS)


def should_skip(value: str) -> bool:
    """True for strings that look like dates, URLs, emails, identifiers or code."""
    text = value.strip()
    if not text:
        return True
    return bool(
        is_date(text)
        or _URL_RE.match(text)
        or _EMAIL_RE.match(text)
        or _DIGITS_RE.match(text)
        or _UUID_RE.match(text)
        or _CODE_RE.match(text)
    )


def is_free_text(value: object, min_length: int = MIN_TEXT_LENGTH) -> bool:
    if not isinstance(value, str):
        return False
    text = value.strip()
    if len(text) < min_length:
        return False
    if text.startswith("="):
        # spreadsheet formula
        return False
    return not (is_numeric(text) or is_date(text))


def normalize_text(value: str) -> str:
    """Dedup key for cell content: trimmed, whitespace collapsed, case-folded."""
    return _WHITESPACE_RE.sub(" ", value.strip()).casefold()
