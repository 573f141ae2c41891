"""Synthesize statement beginning/ending balance rows from summary labels."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from .classify import DocumentSignals, HeaderSignal, account_anchor_at
from .constants import (
    BEGIN_BALANCE_LABELS,
    END_BALANCE_LABELS,
    LOAN_PAYMENT_DESCRIPTION,
    LOAN_PAYMENT_LABELS,
    MONEY_ANYWHERE_RX,
    MONEY_ONLY_RX,
    PAGE_BREAK,
    PERIOD_TABLE_RX,
    SUMMARY_BEGIN_DESCRIPTION,
    SUMMARY_END_DESCRIPTION,
    SYNTHETIC_DESCRIPTIONS,
)
from .dates import CANONICAL_DATE_FORMAT, parse_canonical_date
from .models import AccountKind, AccountLabel, CanonicalRow, StatementPeriod
from .utils import label_regex, normalize_amount

logger = logging.getLogger(__name__)

PERIOD_TABLE_LOOKBACK = 6
_SKIP_WORDS = ("daily", "average")

BEGIN = "begin"
END = "end"
PAYMENT = "payment"
_FAMILIES = (
    (BEGIN, BEGIN_BALANCE_LABELS),
    (END, END_BALANCE_LABELS),
    (PAYMENT, LOAN_PAYMENT_LABELS),
)


@dataclass
class BalanceHit:
    family: str
    amount: str
    line_index: int
    account: AccountKind
    anchor: HeaderSignal = HeaderSignal.NONE


@dataclass
class AccountBalances:
    begin: Optional[str] = None
    end: Optional[str] = None
    payment: Optional[str] = None
    first_index: int = 0
    # Some hit sat under a summary-style heading for this account.
    anchored: bool = False

    def merge(self, other: "AccountBalances") -> None:
        self.begin = self.begin or other.begin
        self.end = self.end or other.end
        self.payment = self.payment or other.payment
        self.first_index = min(self.first_index, other.first_index)
        self.anchored = self.anchored or other.anchored


@dataclass
class SummaryResult:
    rows: List[CanonicalRow] = field(default_factory=list)
    balances: Dict[AccountKind, AccountBalances] = field(default_factory=dict)


def is_synthetic(row: CanonicalRow) -> bool:
    return row.description in SYNTHETIC_DESCRIPTIONS


def in_period_table(lines: Sequence[str], index: int) -> bool:
    """A "This Period / Year-to-Date" column heading sits just above ``index``."""
    for i in range(index, max(-1, index - PERIOD_TABLE_LOOKBACK - 1), -1):
        if lines[i] == PAGE_BREAK:
            return False
        if PERIOD_TABLE_RX.search(lines[i]):
            return True
    return False


def _pick(tokens: list, leftmost: bool) -> Optional[str]:
    if not tokens:
        return None
    return (tokens[0] if leftmost else tokens[-1]).group(0)


def _label_starts(line: str) -> List[int]:
    starts = []
    for _, labels in _FAMILIES:
        for phrase in labels:
            starts.extend(m.start() for m in label_regex(phrase).finditer(line))
    return starts


def amount_near(lines: Sequence[str], index: int, label_end: int, leftmost: bool) -> Optional[str]:
    """Money token for a label on ``lines[index]`` ending at column ``label_end``."""
    line = lines[index]
    stop = min([s for s in _label_starts(line) if s >= label_end] or [len(line)])
    token = _pick(list(MONEY_ANYWHERE_RX.finditer(line[label_end:stop])), leftmost)
    if token is None:
        token = _pick(list(MONEY_ANYWHERE_RX.finditer(line)), leftmost)
    if token is None and index + 1 < len(lines) and lines[index + 1] != PAGE_BREAK:
        nxt = lines[index + 1]
        if MONEY_ONLY_RX.match(nxt):
            token = nxt
        else:
            token = _pick(list(MONEY_ANYWHERE_RX.finditer(nxt)), leftmost)
    return normalize_amount(token) if token else None


def find_balance_hits(
    lines: Sequence[str],
    signals: DocumentSignals | None = None,
    override: AccountKind | None = None,
) -> List[BalanceHit]:
    hits: List[BalanceHit] = []
    for idx, line in enumerate(lines):
        if line == PAGE_BREAK:
            continue
        lower = line.lower()
        if any(w in lower for w in _SKIP_WORDS):
            continue
        for family, labels in _FAMILIES:
            match = None
            for phrase in labels:
                match = label_regex(phrase).search(line)
                if match:
                    break
            if match is None:
                continue
            amount = amount_near(lines, idx, match.end(), in_period_table(lines, idx))
            if not amount:
                continue
            account, anchor = account_anchor_at(lines, idx, signals, override)
            logger.debug(
                "Summary %s balance %s for %s (%s) at line %d",
                family,
                amount,
                account.value,
                anchor.value,
                idx,
            )
            hits.append(BalanceHit(family, amount, idx, account, anchor))
    return hits


def group_hits(
    hits: Sequence[BalanceHit],
    signals: DocumentSignals | None = None,
    override: AccountKind | None = None,
) -> Dict[AccountKind, AccountBalances]:
    """First hit per account per family, with document-level coercion applied."""
    buckets: Dict[AccountKind, AccountBalances] = {}
    for hit in hits:
        bucket = buckets.setdefault(hit.account, AccountBalances(first_index=hit.line_index))
        if getattr(bucket, hit.family) is None:
            setattr(bucket, hit.family, hit.amount)
        if hit.anchor is HeaderSignal.STRONG:
            bucket.anchored = True
    if override is not None or signals is None:
        return buckets
    dominant = signals.dominant_kind()
    if dominant in (AccountKind.CREDIT_CARD, AccountKind.LOAN):
        unknown = buckets.pop(AccountKind.UNKNOWN, None)
        if unknown is not None:
            if dominant in buckets:
                buckets[dominant].merge(unknown)
            else:
                buckets[dominant] = unknown
    if dominant is AccountKind.CREDIT_CARD:
        # Buckets anchored by their own summary heading survive.
        for noise in (AccountKind.SAVINGS, AccountKind.CHECKING, AccountKind.INVESTMENT):
            bucket = buckets.get(noise)
            if bucket is not None and not bucket.anchored:
                del buckets[noise]
                logger.debug("Discarded %s balances in a credit card statement", noise.value)
    return buckets


def liability_sign(amount: str, label: AccountLabel) -> str:
    if not label.is_liability or not amount:
        return amount
    magnitude = amount.lstrip("-")
    if magnitude.strip("0.") == "":
        return magnitude
    return "-" + magnitude


def _row_dates(rows: Sequence[CanonicalRow]) -> List[date]:
    out = []
    for row in rows:
        if is_synthetic(row):
            continue
        parsed = parse_canonical_date(row.date)
        if parsed is not None:
            out.append(parsed)
    return out


def summary_dates(
    rows: Sequence[CanonicalRow], period: StatementPeriod | None
) -> Optional[tuple[date, date]]:
    """(beginning date, ending date) for synthetic rows, or None when nothing dates them."""
    dated = _row_dates(rows)
    if period is not None and period.is_range:
        return period.start_date(), period.end_date()
    if dated:
        begin = min(dated) - timedelta(days=1)
        end = period.end_date() if period is not None else max(dated)
        return begin, end
    if period is not None:
        return period.start_date(), period.end_date()
    return None


def synthesize_summary(
    lines: Sequence[str],
    rows: Sequence[CanonicalRow],
    period: StatementPeriod | None = None,
    signals: DocumentSignals | None = None,
    override: AccountKind | None = None,
) -> SummaryResult:
    """Beginning/ending balance rows (plus a loan payment row) per account."""
    dates = summary_dates(rows, period)
    if dates is None:
        logger.debug("Summary synthesis skipped: no period and no dated rows")
        return SummaryResult()
    begin_date, end_date = (d.strftime(CANONICAL_DATE_FORMAT) for d in dates)
    buckets = group_hits(find_balance_hits(lines, signals, override), signals, override)
    is_loan_doc = signals is not None and signals.is_loan
    result = SummaryResult(balances=buckets)
    for kind, bucket in sorted(buckets.items(), key=lambda kv: kv[1].first_index):
        label = kind.label
        if bucket.begin is not None:
            result.rows.append(
                CanonicalRow(
                    begin_date,
                    SUMMARY_BEGIN_DESCRIPTION,
                    "0",
                    liability_sign(bucket.begin, label),
                    label.value,
                )
            )
        if bucket.end is not None:
            result.rows.append(
                CanonicalRow(
                    end_date,
                    SUMMARY_END_DESCRIPTION,
                    "0",
                    liability_sign(bucket.end, label),
                    label.value,
                )
            )
        if bucket.payment is not None and (kind is AccountKind.LOAN or is_loan_doc):
            result.rows.append(
                CanonicalRow(
                    end_date,
                    LOAN_PAYMENT_DESCRIPTION,
                    bucket.payment.lstrip("-"),
                    "",
                    AccountLabel.LOAN.value,
                )
            )
    logger.info("Synthesized %d summary rows for %d accounts", len(result.rows), len(buckets))
    return result


def apply_summary_mode(
    rows: List[CanonicalRow], synthesized: Sequence[CanonicalRow], summary_only: bool
) -> List[CanonicalRow]:
    """Append synthetic rows; summary-only output keeps just those when any exist."""
    combined = list(rows) + list(synthesized)
    if not summary_only:
        return combined
    if synthesized:
        return list(synthesized)
    return [r if is_synthetic(r) else r._replace(balance="") for r in combined]


__all__ = [
    "BalanceHit",
    "AccountBalances",
    "SummaryResult",
    "is_synthetic",
    "in_period_table",
    "amount_near",
    "find_balance_hits",
    "group_hits",
    "liability_sign",
    "summary_dates",
    "synthesize_summary",
    "apply_summary_mode",
]
