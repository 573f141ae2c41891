"""PDF statement extraction: text lines in, canonical rows out.

The scan walks lines top to bottom keeping an explicit :class:`ScanState`
(account, flow, section, recent context). Only lines starting with a date can
become rows; every other line is context. Each date line is tried against the
reconstruction strategies in order and the first one that produces a row wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
import pdfplumber

from .classify import (
    DocumentSignals,
    account_from_meta,
    classify_line,
    context_account,
    detect_flow,
    detect_section,
    is_account_meta_line,
    page_defaults,
)
from .constants import (
    BLANK_PAGE_RX,
    CANONICAL_HEADERS,
    DATE_ANYWHERE_RX,
    DATE_DESC_RX,
    DATE_RANGE_RX,
    DATE_START_RX,
    MONEY_ANYWHERE_RX,
    MONEY_ONLY_RX,
    PAGE_BREAK,
    PAGE_LINE_RX,
    ROW_RX,
    SUMMARY_BEGIN_DESCRIPTION,
    SUMMARY_FAILURE_MESSAGE,
    SYNTHETIC_DESCRIPTIONS,
    TOTALS_PHRASES,
    TRANSACTIONS_FAILURE_MESSAGE,
)
from .dates import detect_statement_period, infer_year
from .errors import ParseFailure, UnreadableDocumentError
from .layout import LayoutResult, reconstruct_document
from .models import (
    AccountKind,
    AccountLabel,
    CanonicalRow,
    ExtractionOptions,
    ExtractionResult,
    FlowKind,
    ScanState,
    StatementPeriod,
)
from .rows import RawRow, build_row
from .summary import apply_summary_mode, is_synthetic, synthesize_summary
from .utils import has_letters, normalize_space

logger = logging.getLogger(__name__)

MAX_CONTINUATION_LINES = 4
_STATEMENT_PERIOD_WORDS = ("statement period", "statement from", "billing period", "billing cycle")


# ---------------- Line normalization ---------------- #
def normalize_lines(text: str) -> List[str]:
    """Split ``text`` into trimmed non-blank lines with PDF space variants rewritten."""
    out = []
    for raw in (text or "").splitlines():
        line = normalize_space(raw)
        if line:
            out.append(line)
    return out


def extract_raw_lines(pdf_file) -> List[str]:
    """Text lines of every page, pages separated by the ``PAGE_BREAK`` sentinel."""
    pages: List[str] = []
    try:
        if hasattr(pdf_file, "seek"):
            pdf_file.seek(0)
        with pdfplumber.open(pdf_file) as pdf:
            for page in pdf.pages:
                pages.append(page.extract_text() or "")
    except Exception as exc:
        logger.warning("PDF text extraction failed: %s", exc)
        return []
    logger.info("PDF pages: %d", len(pages))
    lines = normalize_lines(("\n" + PAGE_BREAK + "\n").join(pages))
    # Drop leading/trailing/duplicated sentinels left by empty pages.
    cleaned: List[str] = []
    for line in lines:
        if line == PAGE_BREAK and (not cleaned or cleaned[-1] == PAGE_BREAK):
            continue
        cleaned.append(line)
    while cleaned and cleaned[-1] == PAGE_BREAK:
        cleaned.pop()
    return cleaned


# ---------------- Line predicates ---------------- #
def is_date_start(line: str) -> bool:
    return bool(DATE_START_RX.match(line))


def has_money_token(line: str) -> bool:
    return bool(MONEY_ANYWHERE_RX.search(line))


def is_amount_only(line: str) -> bool:
    return bool(MONEY_ONLY_RX.match(line))


def is_noise_line(line: str) -> bool:
    """Page counters, blank-page notices, bare ``Heading:`` lines and footnotes."""
    stripped = line.strip()
    if PAGE_LINE_RX.match(stripped) or BLANK_PAGE_RX.search(stripped):
        return True
    if stripped.endswith(":") and not re.search(r"\d", stripped) and "$" not in stripped:
        return True
    return stripped.startswith("*")


def is_date_range_line(line: str) -> bool:
    return not has_money_token(line) and bool(DATE_RANGE_RX.match(line))


def is_statement_period_line(line: str) -> bool:
    if has_money_token(line):
        return False
    lower = line.lower()
    if any(w in lower for w in _STATEMENT_PERIOD_WORDS):
        return True
    return "through" in lower and is_date_start(line) and len(DATE_ANYWHERE_RX.findall(line)) >= 2


def is_through_continuation(line: str) -> bool:
    return "$" not in line and line.strip().lower().startswith("through ")


def is_totals_or_section_line(line: str) -> bool:
    lower = line.strip().lower()
    if lower.startswith("total ") or any(p in lower for p in TOTALS_PHRASES):
        return True
    return detect_flow(line) is not None


def is_row_boundary(line: str) -> bool:
    """Lines a wrapped description must never absorb."""
    return (
        is_totals_or_section_line(line)
        or is_statement_period_line(line)
        or is_through_continuation(line)
        or is_account_meta_line(line)
    )


# ---------------- Reconstruction strategies ---------------- #
Reconstruction = Tuple[RawRow, int]


def reconstruct_multiline(lines: Sequence[str], start: int) -> Optional[Reconstruction]:
    """Date + description wrapped over following lines, ending on the amount."""
    m = DATE_DESC_RX.match(lines[start])
    if not m or has_money_token(m.group(3)):
        return None
    parts = [m.group(3)]
    amount = balance = None
    j = start + 1
    while j < len(lines) and j - start <= MAX_CONTINUATION_LINES:
        ln = lines[j]
        if ln == PAGE_BREAK or is_date_start(ln) or is_row_boundary(ln):
            break
        if is_amount_only(ln):
            amount = ln
            j += 1
            break
        tokens = list(MONEY_ANYWHERE_RX.finditer(ln))
        if tokens:
            before = ln[: tokens[0].start()]
            if has_letters(before) or "total" in before.lower():
                break
            amount = tokens[0].group(0)
            if len(tokens) > 1:
                balance = tokens[-1].group(0)
            j += 1
            break
        if not is_noise_line(ln):
            parts.append(ln)
        j += 1
    if amount is None:
        return None
    raw = RawRow(m.group(1), " ".join(parts), amount, balance or "", m.group(2))
    return raw, j - start


def match_single_line(lines: Sequence[str], start: int) -> Optional[Reconstruction]:
    """``date [postDate] description amount [balance]`` on one line."""
    m = ROW_RX.match(lines[start])
    if not m:
        return None
    return RawRow(m.group(1), m.group(3), m.group(4), m.group(5) or "", m.group(2)), 1


def match_two_line(lines: Sequence[str], start: int) -> Optional[Reconstruction]:
    """Date + description line followed by an amount-only line."""
    if start + 1 >= len(lines) or not is_amount_only(lines[start + 1]):
        return None
    m = DATE_DESC_RX.match(lines[start])
    if not m:
        return None
    return RawRow(m.group(1), m.group(3), lines[start + 1], "", m.group(2)), 2


def match_money_anywhere(lines: Sequence[str], start: int) -> Optional[Reconstruction]:
    """Relaxed: date + description with a money token somewhere on the same line."""
    m = DATE_DESC_RX.match(lines[start])
    if not m:
        return None
    token = MONEY_ANYWHERE_RX.search(m.group(3))
    if token is None:
        return None
    rest = m.group(3)
    description = (rest[: token.start()] + " " + rest[token.end() :]).strip()
    return RawRow(m.group(1), description, token.group(0), "", m.group(2)), 1


Strategy = Callable[[Sequence[str], int], Optional[Reconstruction]]
PRIMARY_STRATEGIES: Tuple[Strategy, ...] = (reconstruct_multiline, match_single_line, match_two_line)
PERMISSIVE_STRATEGIES: Tuple[Strategy, ...] = (match_single_line, match_money_anywhere, match_two_line)


# ---------------- Scanner ---------------- #
@dataclass
class DocumentContext:
    """Per-document facts shared by every pass."""

    lines: List[str]
    inferred_year: Optional[int]
    period: Optional[StatementPeriod]
    signals: DocumentSignals
    override: Optional[AccountKind]

    @classmethod
    def build(cls, lines: Sequence[str], options: ExtractionOptions) -> "DocumentContext":
        lines = list(lines)
        year = infer_year(lines, options.today or date.today())
        period = detect_statement_period(lines, year)
        signals = DocumentSignals.scan(lines)
        logger.debug("Inferred year=%s period=%s", year, period)
        return cls(lines, year, period, signals, options.override_kind)


class StatementScanner:
    """Line-by-line context state machine producing canonical rows."""

    def __init__(self, doc: DocumentContext, strategies: Sequence[Strategy] = PRIMARY_STRATEGIES):
        self.doc = doc
        self.strategies = tuple(strategies)
        self.state = ScanState.initial(doc.override)
        self.page_defaults = page_defaults(doc.lines, doc.signals)
        self.skipped = 0

    def observe(self, line: str) -> None:
        """Feed a non-date line: context buffer plus section/account/flow signals."""
        if is_noise_line(line):
            return
        state = self.state
        state.context.append(line)
        section = detect_section(line)
        if section is not None and section is not state.section:
            logger.debug("Section %s at %r", section.value, line)
            state.section = section
        kind = classify_line(line, self.doc.signals) or account_from_meta(line)
        if kind is not None and kind is not state.account and state.override is None:
            logger.debug("Account %s at %r", kind.value, line)
            state.set_account(kind)
            state.flow = FlowKind.NONE
        flow = detect_flow(line)
        if flow is not None and flow is not state.flow:
            logger.debug("Flow %s at %r", flow.value, line)
            state.flow = flow

    def page_break(self) -> None:
        self.state = self.state.reset()
        logger.debug("Page break: context reset (page %d)", self.state.page_index)

    def resolve_account(self) -> None:
        if self.state.account is AccountKind.UNKNOWN and self.state.override is None:
            kind = context_account(self.state.context, self.doc.signals)
            if kind is not None:
                logger.debug("Account %s inferred from recent context", kind.value)
                self.state.set_account(kind)

    def label(self) -> AccountLabel:
        kind = self.state.account
        if kind is AccountKind.UNKNOWN:
            kind = self.page_defaults.get(self.state.page_index, AccountKind.UNKNOWN)
        return kind.label

    def emit(self, raw: RawRow) -> CanonicalRow:
        return build_row(raw, self.state.flow, self.label(), self.doc.period, self.doc.inferred_year)

    def reconstruct_at(self, index: int) -> Optional[Tuple[Reconstruction, str]]:
        for strategy in self.strategies:
            found = strategy(self.doc.lines, index)
            if found is not None:
                return found, strategy.__name__
        return None

    def scan(self) -> List[CanonicalRow]:
        lines = self.doc.lines
        rows: List[CanonicalRow] = []
        i = 0
        while i < len(lines):
            line = lines[i]
            if line == PAGE_BREAK:
                self.page_break()
                i += 1
                continue
            if not is_date_start(line):
                self.observe(line)
                i += 1
                continue
            if is_date_range_line(line) or is_statement_period_line(line) or is_account_meta_line(line):
                i += 1
                continue
            self.resolve_account()
            found = self.reconstruct_at(i)
            if found is None:
                self.skipped += 1
                i += 1
                continue
            (raw, consumed), strategy = found
            rows.append(self.emit(raw))
            logger.debug("Row via %s at line %d (%d lines)", strategy, i, consumed)
            i += consumed
        logger.debug("Scan produced %d rows, skipped %d date lines", len(rows), self.skipped)
        return rows

    def scan_items(self, items: Iterable) -> List[CanonicalRow]:
        """Same state machine over layout output (raw rows mixed with text lines)."""
        rows: List[CanonicalRow] = []
        for item in items:
            if isinstance(item, RawRow):
                self.resolve_account()
                rows.append(self.emit(item))
            elif item == PAGE_BREAK:
                self.page_break()
            else:
                self.observe(item)
        return rows


# ---------------- Extraction ---------------- #
LayoutProvider = Callable[[], Iterable[LayoutResult]]


def scan_text_rows(doc: DocumentContext) -> List[CanonicalRow]:
    rows = StatementScanner(doc).scan()
    if not rows:
        logger.info("Primary pass found 0 rows; running permissive pass")
        rows = StatementScanner(doc, PERMISSIVE_STRATEGIES).scan()
    return rows


def choose_layout_rows(
    doc: DocumentContext,
    rows: List[CanonicalRow],
    layouts: Iterable[LayoutResult],
    options: ExtractionOptions,
) -> Tuple[List[CanonicalRow], bool]:
    """Swap in layout rows when they beat a thin textual result."""
    best_rows, used = rows, False
    for layout in layouts:
        if layout.confidence < options.min_confidence:
            logger.info(
                "Layout (%s) confidence %.2f below %.2f; ignored",
                layout.source,
                layout.confidence,
                options.min_confidence,
            )
            continue
        candidate = StatementScanner(doc).scan_items(layout.items)
        if len(candidate) > len(best_rows):
            logger.info("Layout (%s) recovered %d rows; replacing %d", layout.source, len(candidate), len(best_rows))
            best_rows, used = candidate, True
    return best_rows, used


def coerce_account_labels(doc: DocumentContext, rows: List[CanonicalRow]) -> List[CanonicalRow]:
    """Late pass: an override labels every row; card/loan documents claim unknown rows."""
    if doc.override is not None:
        label = doc.override.label.value
        return [r._replace(account=label) for r in rows]
    dominant = doc.signals.dominant_kind()
    if dominant not in (AccountKind.CREDIT_CARD, AccountKind.LOAN):
        return rows
    label = dominant.label.value
    return [r._replace(account=label) if r.account == AccountLabel.UNKNOWN.value else r for r in rows]


def extract_rows_from_lines(
    lines: Sequence[str],
    options: ExtractionOptions | None = None,
    layout_provider: LayoutProvider | None = None,
) -> ExtractionResult:
    """Run every pass over normalized lines and return canonical rows + headers."""
    options = options or ExtractionOptions()
    doc = DocumentContext.build(lines, options)
    rows = scan_text_rows(doc)
    used_layout = False
    if options.layout_fallback and layout_provider is not None and len(rows) < options.min_rows:
        logger.info("Only %d textual rows (< %d); trying layout reconstruction", len(rows), options.min_rows)
        rows, used_layout = choose_layout_rows(doc, rows, layout_provider(), options)
    rows = coerce_account_labels(doc, rows)
    summary = synthesize_summary(doc.lines, rows, doc.period, doc.signals, doc.override)
    rows = apply_summary_mode(rows, summary.rows, options.summary_only)
    dominant = doc.override or doc.signals.dominant_kind()
    logger.info(
        "Extracted %d rows (%d synthetic, layout=%s)",
        len(rows),
        sum(1 for r in rows if is_synthetic(r)),
        used_layout,
    )
    return ExtractionResult(
        headers=list(CANONICAL_HEADERS),
        rows=rows,
        lines=doc.lines,
        period=doc.period,
        dominant_account=dominant.label if dominant else None,
        used_layout=used_layout,
    )


def extract_statement(pdf_file, options: ExtractionOptions | None = None, sources=None) -> ExtractionResult:
    """Extract canonical rows from a PDF file path or binary file object."""
    options = options or ExtractionOptions()
    lines = extract_raw_lines(pdf_file)
    if not lines:
        raise UnreadableDocumentError()
    result = extract_rows_from_lines(
        lines, options, layout_provider=lambda: reconstruct_document(pdf_file, sources)
    )
    if not result.rows:
        raise ParseFailure(
            SUMMARY_FAILURE_MESSAGE if options.summary_only else TRANSACTIONS_FAILURE_MESSAGE
        )
    return result


def compute_balance_mismatches(df: pd.DataFrame, tolerance: float = 0.01) -> list[dict]:
    """Rows whose running balance differs from the previous balance plus the amount.

    Synthetic summary rows are not checked; a statement beginning balance only
    seeds the running balance of its account.
    """
    mismatches: list[dict] = []
    if df is None or df.empty or not {"amount", "balance"}.issubset(df.columns):
        return mismatches
    for acct, g in df.groupby("account", dropna=False, sort=False):
        synthetic = g["description"].isin(SYNTHETIC_DESCRIPTIONS) if "description" in g else None
        last_balance = None
        if synthetic is not None:
            opening = g.loc[g["description"] == SUMMARY_BEGIN_DESCRIPTION, "balance"].dropna()
            if not opening.empty:
                last_balance = float(opening.iloc[0])
            g = g[~synthetic]
        for idx, row in g.iterrows():
            amount, bal = row.get("amount"), row.get("balance")
            if pd.notna(amount) and pd.notna(bal) and last_balance is not None:
                expected = round(last_balance + amount, 2)
                provided = round(bal, 2)
                if abs(expected - provided) > tolerance:
                    mismatches.append(
                        {
                            "index": int(idx),
                            "account": acct,
                            "date": row.get("date"),
                            "description": row.get("description"),
                            "amount": float(amount),
                            "prev_balance": float(last_balance),
                            "expected_balance": float(expected),
                            "provided_balance": float(provided),
                            "delta": round(float(provided - expected), 2),
                        }
                    )
            if pd.notna(bal):
                last_balance = float(bal)
    return mismatches


__all__ = [
    "normalize_lines",
    "extract_raw_lines",
    "is_date_start",
    "is_noise_line",
    "is_date_range_line",
    "is_statement_period_line",
    "is_totals_or_section_line",
    "reconstruct_multiline",
    "match_single_line",
    "match_two_line",
    "match_money_anywhere",
    "DocumentContext",
    "StatementScanner",
    "scan_text_rows",
    "choose_layout_rows",
    "coerce_account_labels",
    "extract_rows_from_lines",
    "extract_statement",
    "compute_balance_mismatches",
]
