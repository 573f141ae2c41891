"""Small shared helpers used by the extraction and parser modules."""

from __future__ import annotations

import hashlib
import re
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Iterable, List, Sequence

import pandas as pd

from .constants import CANONICAL_HEADERS, FLEX_SPACE, SPACE_VARIANTS

_SPACE_TABLE = {ord(ch): " " for ch in SPACE_VARIANTS + "\t"}
_MULTI_SPACE_RX = re.compile(r" {2,}")
_POSITIVE_MARKER_RX = re.compile(r"(?<![A-Z])(CR|CREDIT)(?![A-Z])")
_NEGATIVE_MARKER_RX = re.compile(r"(?<![A-Z])(DR|DEBIT)(?![A-Z])")
_ANY_MARKER_RX = re.compile(r"(?<![A-Za-z])(CREDIT|DEBIT|CR|DR)(?![A-Za-z])", re.IGNORECASE)
_LETTER_RX = re.compile(r"[A-Za-z]")
DESCRIPTION_LIMIT = 120


def normalize_space(text: str) -> str:
    """Rewrite PDF space variants to a plain blank and collapse runs."""
    if not text:
        return ""
    return _MULTI_SPACE_RX.sub(" ", text.translate(_SPACE_TABLE)).strip()


def has_letters(text: str) -> bool:
    return bool(_LETTER_RX.search(text or ""))


def clean_description(text: str) -> str:
    cleaned = normalize_space(text).strip(" -:|")
    return cleaned[:DESCRIPTION_LIMIT].rstrip()


def normalize_amount(raw: str | None) -> str:
    """Canonicalize an amount token into a signed decimal string.

    - ``$``, thousands separators and blanks are removed
    - parentheses, a trailing or leading minus and DR/DEBIT mark it negative
    - CR/CREDIT marks it positive and wins over every negative hint

    Already-normalized input comes back unchanged.
    """
    if raw is None:
        return ""
    token = normalize_space(str(raw))
    if not token:
        return ""
    upper = token.upper()
    positive = bool(_POSITIVE_MARKER_RX.search(upper))
    negative = bool(_NEGATIVE_MARKER_RX.search(upper))
    token = _ANY_MARKER_RX.sub("", token).replace("−", "-").strip()
    if "(" in token or ")" in token:
        negative = True
        token = token.replace("(", "").replace(")", "")
    token = token.replace("$", "").replace(",", "").replace(" ", "")
    if token.endswith("-"):
        negative = True
        token = token.rstrip("-")
    if token.startswith("-"):
        negative = True
        token = token.lstrip("-")
    if token.startswith("+"):
        token = token[1:]
    if negative and not positive and token:
        return "-" + token
    return token


def apply_flow_sign(amount: str, flow) -> str:
    """Force the sign of an already-normalized amount from the section flow."""
    if not amount:
        return amount
    magnitude = amount.lstrip("-")
    if flow == "withdrawal":
        return amount if amount.startswith("-") or _is_zero(magnitude) else "-" + magnitude
    if flow == "deposit":
        return magnitude
    return amount


def _is_zero(magnitude: str) -> bool:
    value = to_decimal(magnitude)
    return value is not None and value == 0


def to_decimal(raw: str | None) -> Decimal | None:
    normalized = normalize_amount(raw)
    if not normalized:
        return None
    try:
        value = Decimal(normalized)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


@lru_cache(maxsize=256)
def label_regex(phrase: str) -> re.Pattern:
    """Case-insensitive regex for ``phrase`` tolerating any run of blanks between words."""
    words = [re.escape(w) for w in phrase.split()]
    return re.compile(r"\b" + FLEX_SPACE.join(words) + r"\b", re.IGNORECASE)


def find_label(text: str, phrases: Iterable[str]) -> re.Match | None:
    """Return the first match among ``phrases`` (callers order longest first)."""
    for phrase in phrases:
        m = label_regex(phrase).search(text)
        if m:
            return m
    return None


def hash_key(date_value, amount, payee: str, memo=None, symbol=None, quantity=None) -> str:
    """Stable dedup key: SHA-256 over the identifying fields joined with ``|``."""
    iso = date_value.isoformat() if hasattr(date_value, "isoformat") else str(date_value)
    parts = [
        iso,
        str(amount),
        (payee or "").strip(),
        (memo or "").strip(),
        (symbol or "").strip().upper(),
        "" if quantity is None else str(quantity),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def rows_to_frame(rows: Sequence[Sequence[str]], headers: List[str] | None = None) -> pd.DataFrame:
    """Canonical rows as a DataFrame with numeric ``amount``/``balance`` columns."""
    cols = list(headers or CANONICAL_HEADERS)
    df = pd.DataFrame([list(r) for r in rows], columns=cols)
    for col in ("amount", "balance"):
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def df_to_records(df: pd.DataFrame) -> List[dict]:
    """Convert a DataFrame to JSON-serializable records.

    - Converts pandas NA to None
    - Converts date/datetime objects to ISO strings
    """
    if df is None or df.empty:
        return []
    out = df.to_dict(orient="records")
    for rec in out:
        for k, v in list(rec.items()):
            if pd.isna(v):
                rec[k] = None
            elif hasattr(v, "isoformat"):
                rec[k] = v.isoformat()
    return out


__all__ = [
    "normalize_space",
    "has_letters",
    "clean_description",
    "normalize_amount",
    "apply_flow_sign",
    "to_decimal",
    "label_regex",
    "find_label",
    "hash_key",
    "rows_to_frame",
    "df_to_records",
]
