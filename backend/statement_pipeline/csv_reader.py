"""Delimited-text reader: bytes in, ``(headers, rows)`` of plain strings out."""

from __future__ import annotations

import io
import logging
from typing import List, Tuple

import pandas as pd

from .errors import InvalidDelimitedError

logger = logging.getLogger(__name__)

ENCODINGS = ("utf-8-sig", "utf-16", "utf-8", "cp1252", "latin-1")
DELIMITERS = (",", ";", "\t", "|")


def decode_bytes(data: bytes) -> str:
    """First encoding that decodes cleanly; ASCII with errors dropped as a last resort."""
    if isinstance(data, str):
        return data
    for encoding in ENCODINGS:
        if encoding == "utf-16" and not data.startswith((b"\xff\xfe", b"\xfe\xff")):
            continue
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        logger.debug("Decoded delimited input as %s", encoding)
        return text
    return data.decode("ascii", errors="ignore")


def sniff_delimiter(text: str) -> str:
    """Most frequent candidate delimiter on the first non-blank line."""
    header = next((ln for ln in text.splitlines() if ln.strip()), "")
    counts = {d: header.count(d) for d in DELIMITERS}
    best = max(DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] else ","


def _is_blank(values) -> bool:
    return all(not str(v).strip() for v in values)


def read_delimited(data: bytes | str) -> Tuple[List[str], List[List[str]]]:
    """Parse delimited text; the first non-blank row is the header, blank rows are dropped."""
    text = decode_bytes(data)
    if not text.strip():
        raise InvalidDelimitedError("The file is empty.")
    sep = sniff_delimiter(text)
    # Ragged rows are padded to the widest line, then all-empty trailing columns dropped.
    width = max(ln.count(sep) for ln in text.splitlines() if ln.strip()) + 1
    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=sep,
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
        )
    except (pd.errors.ParserError, ValueError) as exc:
        raise InvalidDelimitedError(f"Could not read delimited file: {exc}") from exc
    df = df.fillna("")
    while len(df.columns) > 1 and (df[df.columns[-1]].str.strip() == "").all():
        df = df.drop(columns=df.columns[-1])
    records = [[str(v) for v in row] for row in df.itertuples(index=False, name=None)]
    records = [r for r in records if not _is_blank(r)]
    if not records:
        raise InvalidDelimitedError("No header row found.")
    headers = [h.strip() for h in records[0]]
    rows = records[1:]
    logger.info("Delimited input: %d columns, %d rows (sep=%r)", len(headers), len(rows), sep)
    return headers, rows


__all__ = ["decode_bytes", "sniff_delimiter", "read_delimited"]
