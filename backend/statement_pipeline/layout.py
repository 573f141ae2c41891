"""Row reconstruction from positioned words when the text layer is not enough.

Tokens come from a :class:`TokenSource` (pdfplumber words, or tesseract OCR
when ``STATEMENT_OCR`` is enabled) with coordinates normalized to ``[0, 1]``
per page. Rows are clustered on vertical centre and column bands are inferred
across all pages.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Sequence, Union

import numpy as np
import pdfplumber

from .constants import DATE_TOKEN, MONEY_ONLY_RX, MONTH_NAME, PAGE_BREAK
from .rows import RawRow

logger = logging.getLogger(__name__)

ROW_TOLERANCE = 0.006
WIDE_MONEY_SPREAD = 0.25
MIN_BAND_GAP = 0.05
DATE_BAND_TOLERANCE = 0.08
MONEY_BAND_TOLERANCE = 0.12
DESCRIPTION_SLACK = 0.005
OCR_RESOLUTION = 200
OCR_MIN_CONFIDENCE = 30

_DATE_CELL_RX = re.compile(r"^" + DATE_TOKEN + r"$", re.IGNORECASE)
_MONTH_RX = re.compile(r"^" + MONTH_NAME + r"$", re.IGNORECASE)
_DAY_RX = re.compile(r"^\d{1,2},?$")
_YEAR_RX = re.compile(r"^\d{4}$")
_MARKER_RX = re.compile(r"^(?:CR|DR|CREDIT|DEBIT)$", re.IGNORECASE)


@dataclass(frozen=True)
class PositionedToken:
    text: str
    x0: float
    x1: float
    top: float
    bottom: float
    page: int = 0

    @property
    def cx(self) -> float:
        return (self.x0 + self.x1) / 2

    @property
    def cy(self) -> float:
        return (self.top + self.bottom) / 2


LayoutItem = Union[RawRow, str]


@dataclass
class ColumnBands:
    date_center: float
    date_right: float
    amount_center: float
    balance_center: Optional[float] = None

    @property
    def description_span(self) -> tuple[float, float]:
        """``(left, right)`` range for description words: past the date, short of the amount centre."""
        return self.date_right - DESCRIPTION_SLACK, self.amount_center


@dataclass
class LayoutResult:
    """Reconstructed rows interleaved with the non-row text and page breaks."""

    items: List[LayoutItem] = field(default_factory=list)
    confidence: float = 0.0
    source: str = ""

    @property
    def rows(self) -> List[RawRow]:
        return [i for i in self.items if isinstance(i, RawRow)]


class TokenSource(Protocol):
    name: str

    def tokens(self, pdf_file) -> List[PositionedToken]:
        ...


def _rewind(pdf_file) -> None:
    if hasattr(pdf_file, "seek"):
        pdf_file.seek(0)


class PdfplumberWordSource:
    """Words from the PDF text layer."""

    name = "pdfplumber"

    def tokens(self, pdf_file) -> List[PositionedToken]:
        _rewind(pdf_file)
        out: List[PositionedToken] = []
        with pdfplumber.open(pdf_file) as pdf:
            for p_idx, page in enumerate(pdf.pages):
                width, height = float(page.width), float(page.height)
                for w in page.extract_words() or []:
                    text = (w.get("text") or "").strip()
                    if not text:
                        continue
                    out.append(
                        PositionedToken(
                            text,
                            w["x0"] / width,
                            w["x1"] / width,
                            w["top"] / height,
                            w["bottom"] / height,
                            p_idx,
                        )
                    )
        return out


class TesseractSource:
    """OCR words from page renders; needs the ``ocr`` extra and a tesseract binary."""

    name = "tesseract"

    def __init__(self, resolution: int = OCR_RESOLUTION, min_confidence: int = OCR_MIN_CONFIDENCE):
        self.resolution = resolution
        self.min_confidence = min_confidence

    def tokens(self, pdf_file) -> List[PositionedToken]:
        import pytesseract

        _rewind(pdf_file)
        out: List[PositionedToken] = []
        with pdfplumber.open(pdf_file) as pdf:
            for p_idx, page in enumerate(pdf.pages):
                image = page.to_image(resolution=self.resolution).original
                iw, ih = image.size
                data = pytesseract.image_to_data(image, output_type=pytesseract.Output.DICT)
                for i, raw in enumerate(data["text"]):
                    text = (raw or "").strip()
                    if not text or float(data["conf"][i]) < self.min_confidence:
                        continue
                    x, y, w, h = data["left"][i], data["top"][i], data["width"][i], data["height"][i]
                    out.append(PositionedToken(text, x / iw, (x + w) / iw, y / ih, (y + h) / ih, p_idx))
        logger.info("OCR produced %d tokens", len(out))
        return out


def ocr_enabled() -> bool:
    return os.environ.get("STATEMENT_OCR", "").lower() in {"1", "true", "yes", "on"}


def default_sources() -> List[TokenSource]:
    sources: List[TokenSource] = [PdfplumberWordSource()]
    if ocr_enabled():
        sources.append(TesseractSource())
    return sources


def group_rows(
    tokens: Iterable[PositionedToken], tolerance: float = ROW_TOLERANCE
) -> List[List[PositionedToken]]:
    """Cluster tokens into visual rows per page, each sorted left to right."""
    rows: List[List[PositionedToken]] = []
    ordered = sorted(tokens, key=lambda t: (t.page, t.cy, t.x0))
    current: List[PositionedToken] = []
    for tok in ordered:
        if current:
            mean_cy = sum(t.cy for t in current) / len(current)
            if tok.page == current[0].page and abs(tok.cy - mean_cy) <= tolerance:
                current.append(tok)
                continue
            rows.append(sorted(current, key=lambda t: t.x0))
        current = [tok]
    if current:
        rows.append(sorted(current, key=lambda t: t.x0))
    return rows


def _join(a: PositionedToken, b: PositionedToken, sep: str = " ") -> PositionedToken:
    return PositionedToken(
        a.text + sep + b.text,
        min(a.x0, b.x0),
        max(a.x1, b.x1),
        min(a.top, b.top),
        max(a.bottom, b.bottom),
        a.page,
    )


def merge_cells(row: Sequence[PositionedToken]) -> List[PositionedToken]:
    """Glue split dates ("Jan" "05" "2026") and money ("$" "12.00" "CR") back together."""
    cells: List[PositionedToken] = []
    for tok in row:
        if cells:
            prev = cells[-1]
            if _MONTH_RX.match(prev.text) and _DAY_RX.match(tok.text):
                cells[-1] = _join(prev, tok)
                continue
            if (
                _YEAR_RX.match(tok.text)
                and _DATE_CELL_RX.match(prev.text.rstrip(","))
                and re.search(r"[A-Za-z]", prev.text)
                and not re.search(r"\d{4}", prev.text)
            ):
                cells[-1] = _join(prev, tok)
                continue
            if prev.text in ("$", "-", "(", "-$") and MONEY_ONLY_RX.match(prev.text + tok.text):
                cells[-1] = _join(prev, tok, sep="")
                continue
            if _MARKER_RX.match(tok.text) and MONEY_ONLY_RX.match(prev.text):
                cells[-1] = _join(prev, tok)
                continue
        cells.append(tok)
    return cells


def is_date_cell(tok: PositionedToken) -> bool:
    return bool(_DATE_CELL_RX.match(tok.text.rstrip(",")))


def is_money_cell(tok: PositionedToken) -> bool:
    return bool(MONEY_ONLY_RX.match(tok.text))


def infer_bands(rows: Sequence[Sequence[PositionedToken]]) -> Optional[ColumnBands]:
    """Date, amount and balance column centres inferred across every row."""
    date_cells = []
    money_centres = []
    for row in rows:
        cells = merge_cells(row)
        if cells and is_date_cell(cells[0]):
            date_cells.append(cells[0])
        money_centres.extend(c.cx for c in cells if is_money_cell(c))
    if not date_cells or not money_centres:
        return None
    date_center = float(np.median([c.cx for c in date_cells]))
    date_right = float(np.median([c.x1 for c in date_cells]))
    centres = np.sort(np.asarray(money_centres))
    if centres[-1] - centres[0] > WIDE_MONEY_SPREAD and len(centres) > 1:
        gaps = np.diff(centres)
        split = int(np.argmax(gaps))
        if gaps[split] >= MIN_BAND_GAP:
            return ColumnBands(
                date_center,
                date_right,
                float(np.median(centres[: split + 1])),
                float(np.median(centres[split + 1 :])),
            )
    return ColumnBands(date_center, date_right, float(np.median(centres)))


def _row_text(cells: Sequence[PositionedToken]) -> str:
    return " ".join(c.text for c in cells)


def row_from_cells(cells: Sequence[PositionedToken], bands: ColumnBands) -> Optional[RawRow]:
    date_cell = next(
        (c for c in cells if is_date_cell(c) and abs(c.cx - bands.date_center) <= DATE_BAND_TOLERANCE),
        None,
    )
    if date_cell is None:
        return None
    left, right = bands.description_span
    amount = balance = None
    description = []
    for cell in cells:
        if cell is date_cell:
            continue
        if is_money_cell(cell):
            to_amount = abs(cell.cx - bands.amount_center)
            to_balance = (
                abs(cell.cx - bands.balance_center) if bands.balance_center is not None else None
            )
            if to_balance is not None and to_balance < to_amount and to_balance <= MONEY_BAND_TOLERANCE:
                balance = cell.text
                continue
            if to_amount <= MONEY_BAND_TOLERANCE and amount is None:
                amount = cell.text
                continue
        if cell.x0 >= left and cell.cx < right:
            description.append(cell.text)
    if amount is None:
        return None
    return RawRow(date_cell.text.rstrip(","), " ".join(description), amount, balance or "")


def reconstruct(tokens: Iterable[PositionedToken], tolerance: float = ROW_TOLERANCE) -> LayoutResult:
    """Rows in reading order; confidence is recovered rows over candidate row groups.

    A candidate row group is one carrying at least one date or money cell.
    """
    grouped = group_rows(tokens, tolerance)
    bands = infer_bands(grouped)
    result = LayoutResult()
    if bands is None:
        return result
    candidates = recovered = 0
    page = grouped[0][0].page if grouped else 0
    for row in grouped:
        if row[0].page != page:
            result.items.append(PAGE_BREAK)
            page = row[0].page
        cells = merge_cells(row)
        if any(is_date_cell(c) or is_money_cell(c) for c in cells):
            candidates += 1
        raw = row_from_cells(cells, bands)
        if raw is not None:
            recovered += 1
            result.items.append(raw)
        else:
            result.items.append(_row_text(cells))
    result.confidence = recovered / candidates if candidates else 0.0
    logger.debug(
        "Layout reconstruction: %d/%d candidate rows (confidence %.2f)",
        recovered,
        candidates,
        result.confidence,
    )
    return result


def reconstruct_document(pdf_file, sources: Sequence[TokenSource] | None = None) -> List[LayoutResult]:
    """One :class:`LayoutResult` per token source that produced tokens."""
    results = []
    for source in sources if sources is not None else default_sources():
        tokens = source.tokens(pdf_file)
        if not tokens:
            continue
        result = reconstruct(tokens)
        result.source = source.name
        results.append(result)
    return results


__all__ = [
    "PositionedToken",
    "LayoutResult",
    "ColumnBands",
    "TokenSource",
    "PdfplumberWordSource",
    "TesseractSource",
    "ocr_enabled",
    "default_sources",
    "group_rows",
    "merge_cells",
    "infer_bands",
    "row_from_cells",
    "reconstruct",
    "reconstruct_document",
]
