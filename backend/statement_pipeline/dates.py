"""Year inference, date normalization and statement period detection."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Iterable, Optional, Sequence, Tuple

from .constants import (
    AS_OF_CONTEXT_WORDS,
    AS_OF_DATE_RX,
    DATE_RANGE_RX,
    DELIMITED_DATE_FORMATS,
    LABELED_DATE_RANGE_RX,
    MONTH_NAME,
    MONTH_NUMBERS,
    PAGE_BREAK,
    RANGE_SEPARATOR,
    SINGLE_DATE_LABEL_RX,
    STATEMENT_DATE_FORMATS,
    YEAR_RX,
)
from .models import StatementPeriod

logger = logging.getLogger(__name__)

_ISO_RX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_NUMERIC_RX = re.compile(r"^(\d{1,2})/(\d{1,2})(?:/(\d{2}|\d{4}))?$")
_NAMED_RX = re.compile(r"^([A-Za-z]{3,9})\.?\s+(\d{1,2})(?:,?\s*(\d{4}))?$")
_MONTH_YEAR_RANGE_RX = re.compile(
    r"\b(" + MONTH_NAME + r")\s+(\d{4})\s*" + RANGE_SEPARATOR + r"\s*(" + MONTH_NAME + r")\s+(\d{4})\b",
    re.IGNORECASE,
)
CANONICAL_DATE_FORMAT = "%m/%d/%Y"

DateParts = Tuple[int, int, Optional[int]]


def _month_number(name: str) -> int | None:
    return MONTH_NUMBERS.get(name.strip(".").lower()[:3])


def split_date_token(raw: str) -> DateParts | None:
    """Return ``(month, day, year or None)`` for a date token, or None."""
    token = " ".join((raw or "").split()).rstrip(".,")
    m = _ISO_RX.match(token)
    if m:
        year, month, day = (int(g) for g in m.groups())
    else:
        m = _NUMERIC_RX.match(token)
        if m:
            month, day = int(m.group(1)), int(m.group(2))
            year = int(m.group(3)) if m.group(3) else None
            if year is not None and year < 100:
                year += 2000
        else:
            m = _NAMED_RX.match(token)
            if not m:
                return None
            month = _month_number(m.group(1))
            if month is None:
                return None
            day = int(m.group(2))
            year = int(m.group(3)) if m.group(3) else None
    if not (1 <= month <= 12 and 1 <= day <= 31):
        return None
    return month, day, year


def infer_year(lines: Iterable[str], today: date | None = None) -> int | None:
    """Most plausible statement year: closest to the current year, first wins ties."""
    current = (today or date.today()).year
    best: int | None = None
    best_distance = 0
    for line in lines:
        for m in YEAR_RX.finditer(line):
            year = int(m.group(1))
            if not (1990 <= year <= current + 1):
                continue
            distance = abs(current - year)
            if best is None or distance < best_distance:
                best, best_distance = year, distance
    return best


def normalize_date(
    raw: str, period: StatementPeriod | None = None, inferred_year: int | None = None
) -> str:
    """Format ``raw`` as MM/DD/YYYY, resolving a missing year; unresolvable text is returned as-is."""
    parts = split_date_token(raw)
    if parts is None:
        parsed = parse_statement_date(raw)
        return parsed.strftime(CANONICAL_DATE_FORMAT) if parsed else raw
    month, day, year = parts
    if year is None:
        if period is not None:
            year = period.year_for_month(month)
        elif inferred_year is not None:
            year = inferred_year
        else:
            return raw
    try:
        resolved = date(year, month, day)
    except ValueError:
        return raw
    return resolved.strftime(CANONICAL_DATE_FORMAT)


def parse_statement_date(raw: str) -> date | None:
    text = " ".join((raw or "").split()).replace("Sept", "Sep")
    for fmt in STATEMENT_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_canonical_date(raw: str) -> date | None:
    try:
        return datetime.strptime((raw or "").strip(), CANONICAL_DATE_FORMAT).date()
    except ValueError:
        return None


def parse_flexible_date(raw: str, fmt: str | None = None) -> date | None:
    """Parse a delimited-export date, trying ``fmt`` first then the known formats."""
    text = (raw or "").strip()
    if not text:
        return None
    formats: Sequence[str] = ((fmt,) if fmt else ()) + DELIMITED_DATE_FORMATS
    for candidate in formats:
        try:
            return datetime.strptime(text, candidate).date()
        except ValueError:
            continue
    return parse_statement_date(text)


def _period_from_tokens(
    start_raw: str, end_raw: str, inferred_year: int | None
) -> StatementPeriod | None:
    start, end = split_date_token(start_raw), split_date_token(end_raw)
    if start is None or end is None:
        return None
    sm, sd, sy = start
    em, ed, ey = end
    if sy is None and ey is None:
        if inferred_year is None:
            return None
        ey = inferred_year
    if ey is None:
        ey = sy if em >= sm else sy + 1
    if sy is None:
        sy = ey if sm <= em else ey - 1
    try:
        period = StatementPeriod(sm, sy, sd, em, ey, ed)
        period.start_date()
        period.end_date()
    except ValueError:
        return None
    return period


def detect_statement_period(
    lines: Sequence[str], inferred_year: int | None = None
) -> StatementPeriod | None:
    """Find the statement's date range, else a single labeled statement date."""
    for line in lines:
        if line == PAGE_BREAK:
            continue
        m = DATE_RANGE_RX.match(line) or LABELED_DATE_RANGE_RX.search(line)
        if m:
            period = _period_from_tokens(m.group(1), m.group(2), inferred_year)
            if period is not None:
                logger.debug("Statement period from %r: %s", line, period)
                return period
        m = _MONTH_YEAR_RANGE_RX.search(line)
        if m:
            sm, em = _month_number(m.group(1)), _month_number(m.group(3))
            if sm and em:
                return StatementPeriod(sm, int(m.group(2)), None, em, int(m.group(4)), None)

    for line in lines:
        if line == PAGE_BREAK:
            continue
        m = SINGLE_DATE_LABEL_RX.search(line)
        if m is None:
            m = AS_OF_DATE_RX.search(line)
            if m is None or not any(w in line.lower() for w in AS_OF_CONTEXT_WORDS):
                continue
        parts = split_date_token(m.group(1))
        if parts is None:
            continue
        month, day, year = parts
        year = year or inferred_year
        if year is None:
            continue
        try:
            date(year, month, day)
        except ValueError:
            continue
        logger.debug("Single statement date from %r", line)
        return StatementPeriod(month, year, day, month, year, day, is_range=False)
    return None


__all__ = [
    "split_date_token",
    "infer_year",
    "normalize_date",
    "parse_statement_date",
    "parse_canonical_date",
    "parse_flexible_date",
    "detect_statement_period",
]
