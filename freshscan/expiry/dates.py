"""Normalize printed date text to ``YYYY-MM-DD``."""

from __future__ import annotations

import calendar
import json
import re
from datetime import date

# Month abbreviations seen on labels (English / Spanish / French / German).
_MONTHS: dict[str, int] = {
    "jan": 1, "ene": 1, "janv": 1,
    "feb": 2, "fev": 2, "fév": 2, "févr": 2,
    "mar": 3, "mär": 3, "mars": 3,
    "apr": 4, "abr": 4, "avr": 4,
    "may": 5, "mai": 5,
    "jun": 6, "juin": 6,
    "jul": 7, "juil": 7,
    "aug": 8, "ago": 8, "aoû": 8, "aou": 8,
    "sep": 9, "sept": 9, "set": 9,
    "oct": 10, "okt": 10,
    "nov": 11,
    "dec": 12, "dic": 12, "déc": 12, "dez": 12,
}

_SEP = r"[-/.]"
_YMD = re.compile(rf"\b(\d{{4}}){_SEP}(\d{{1,2}}){_SEP}(\d{{1,2}})\b")
_DMY = re.compile(rf"\b(\d{{1,2}}){_SEP}(\d{{1,2}}){_SEP}(\d{{4}}|\d{{2}})\b")
_D_MON_Y = re.compile(
    r"\b(\d{1,2})[-/.\s]*([A-Za-zÀ-ÿ]{3,9})\.?[-/.\s]*(\d{4}|\d{2})\b"
)
_MY = re.compile(r"\b(\d{1,2})[-/.](\d{4})\b")
_YM = re.compile(r"\b(\d{4})[-/.](\d{1,2})\b")


def _year(text: str) -> int:
    y = int(text)
    return 2000 + y if y < 100 else y


def _make(y: int, m: int, d: int) -> date | None:
    try:
        return date(y, m, d)
    except ValueError:
        return None


def _end_of_month(y: int, m: int) -> date | None:
    if not 1 <= m <= 12:
        return None
    return date(y, m, calendar.monthrange(y, m)[1])


def find_dates(text: str) -> list[date]:
    """Return every calendar date recognizable in ``text``, in order found.

    Day-first is assumed for ``NN/NN/YYYY`` unless only the month-first
    reading is valid. Month-only dates (``MM/YYYY``) resolve to the last
    day of the month.
    """
    found: list[tuple[int, date]] = []
    taken: list[tuple[int, int]] = []

    def add(match: re.Match, value: date | None) -> None:
        # An invalid full match still claims its span, so "31/02/2025"
        # is not re-read as the month-only "02/2025".
        span = match.span()
        if any(s < span[1] and span[0] < e for s, e in taken):
            return
        taken.append(span)
        if value is not None:
            found.append((span[0], value))

    for m in _YMD.finditer(text):
        add(m, _make(int(m[1]), int(m[2]), int(m[3])))

    for m in _DMY.finditer(text):
        a, b, y = int(m[1]), int(m[2]), _year(m[3])
        add(m, _make(y, b, a) or _make(y, a, b))

    for m in _D_MON_Y.finditer(text):
        month = _MONTHS.get(m[2].lower()) or _MONTHS.get(m[2].lower()[:3])
        if month is not None:
            add(m, _make(_year(m[3]), month, int(m[1])))

    for m in _MY.finditer(text):
        add(m, _end_of_month(int(m[2]), int(m[1])))

    for m in _YM.finditer(text):
        add(m, _end_of_month(int(m[1]), int(m[2])))

    found.sort(key=lambda item: item[0])
    return [d for _, d in found]


def normalize_date(text: str | None) -> str | None:
    """Return the first date in ``text`` as ``YYYY-MM-DD``, or None."""
    if not text:
        return None
    cleaned = text.strip()
    if cleaned.lower() in ("null", "none", "n/a", ""):
        return None
    dates = find_dates(cleaned)
    return dates[0].isoformat() if dates else None


def parse_iso_date(text: str | None) -> date | None:
    """Parse strict ``YYYY-MM-DD`` text, or return None."""
    if not text or len(text) != 10:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def parse_model_response(text: str) -> str | None:
    """Pull the date out of a vision model's JSON answer.

    Accepts ``{"expiryDate": "..."}`` optionally wrapped in markdown fences,
    and falls back to scanning the raw text.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)

    try:
        payload = json.loads(cleaned)
    except ValueError:
        return normalize_date(cleaned)

    if isinstance(payload, dict):
        value = payload.get("expiryDate", payload.get("expiry_date"))
        return normalize_date(value) if isinstance(value, str) else None
    if isinstance(payload, str):
        return normalize_date(payload)
    return None
