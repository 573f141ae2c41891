"""Format parsers: canonical rows (or delimited rows) in, a :class:`StagedImport` out.

Every parser exposes ``parser_id``, a cheap header-only ``can_parse`` check and
``parse(rows, headers)``. A parse that yields zero usable records raises
:class:`ParseFailure` with a message meant for the end user.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Sequence

from .classify import DocumentSignals
from .constants import (
    BEGIN_BALANCE_LABELS,
    DELIMITED_FAILURE_MESSAGE,
    END_BALANCE_LABELS,
    LOAN_PAYMENT_DESCRIPTION,
    SUMMARY_BEGIN_DESCRIPTION,
    SUMMARY_END_DESCRIPTION,
    SUMMARY_FAILURE_MESSAGE,
    SYNTHETIC_DESCRIPTIONS,
    TRANSACTIONS_FAILURE_MESSAGE,
)
from .dates import parse_canonical_date, parse_flexible_date
from .errors import MissingMappingError, ParseFailure
from .models import (
    AccountLabel,
    StagedBalance,
    StagedHolding,
    StagedImport,
    StagedTransaction,
    TransactionKind,
)
from .rates import RateQuote, extract_rate, most_frequent_rate, purchases_rate
from .utils import find_label, normalize_space, to_decimal

logger = logging.getLogger(__name__)

SIGN_EPSILON = Decimal("0.01")


class StatementParser(Protocol):
    parser_id: str

    def can_parse(self, headers: Sequence[str]) -> bool:
        ...

    def parse(self, rows: Sequence[Sequence[str]], headers: Sequence[str]) -> StagedImport:
        ...


def _key(header: str) -> str:
    return normalize_space(header or "").lower()


def header_index(headers: Sequence[str]) -> Dict[str, int]:
    return {_key(h): idx for idx, h in enumerate(headers)}


def cell(row: Sequence[str], index: Dict[str, int], name: str | None, contains: bool = False) -> Optional[str]:
    """Trimmed value of column ``name`` (case-insensitive) or None when absent/blank."""
    if not name:
        return None
    key = _key(name)
    idx = index.get(key)
    if idx is None and contains:
        idx = next((i for k, i in index.items() if key in k), None)
    if idx is None or idx >= len(row):
        return None
    value = normalize_space(str(row[idx]))
    return value or None


# ---------------- Delimited ---------------- #
# Auto-mapping keywords per field, most specific first.
AUTO_MAP_KEYWORDS = {
    "date": ("transaction date", "posted date", "post date", "posting date", "trade date", "date"),
    "debit": ("debit", "withdrawal", "money out"),
    "credit": ("credit", "deposit", "money in"),
    "amount": ("transaction amount", "amount", "amt"),
    "balance": ("running balance", "ending balance", "balance"),
    "apr": ("apr", "interest rate"),
    "symbol": ("symbol", "ticker"),
    "quantity": ("quantity", "shares", "qty"),
    "price": ("price",),
    "market_value": ("market value", "ending value", "value"),
    "account": ("account name", "account type", "account"),
    "memo": ("memo", "notes", "note"),
    "kind": ("transaction type", "type", "kind", "action"),
    "description": ("description", "payee", "merchant", "details", "narrative", "name"),
}


@dataclass
class ColumnMapping:
    """Column names for each staged field; unset fields are simply not read."""

    date: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[str] = None
    balance: Optional[str] = None
    account: Optional[str] = None
    memo: Optional[str] = None
    kind: Optional[str] = None
    symbol: Optional[str] = None
    quantity: Optional[str] = None
    price: Optional[str] = None
    market_value: Optional[str] = None
    debit: Optional[str] = None
    credit: Optional[str] = None
    apr: Optional[str] = None
    date_format: Optional[str] = None

    def columns(self) -> Dict[str, str]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "date_format" and getattr(self, f.name)
        }

    def matches(self, headers: Sequence[str]) -> bool:
        present = {_key(h) for h in headers}
        return all(_key(col) in present for col in self.columns().values())

    @property
    def has_transactions(self) -> bool:
        return bool(self.date and (self.amount or self.debit or self.credit))

    @property
    def has_holdings(self) -> bool:
        return bool(self.symbol)

    @property
    def has_balances(self) -> bool:
        return bool(self.balance and self.date)

    def require(self) -> None:
        """Raise :class:`MissingMappingError` naming the first unresolved required column."""
        if self.has_holdings:
            return
        if not self.date:
            raise MissingMappingError("date")
        if not (self.amount or self.debit or self.credit or self.balance):
            raise MissingMappingError("amount")
        if (self.amount or self.debit or self.credit) and not self.description:
            raise MissingMappingError("description")

    @classmethod
    def auto(cls, headers: Sequence[str]) -> "ColumnMapping":
        """Fuzzy keyword mapping; each header is claimed by at most one field."""
        claimed: set[int] = set()
        found: Dict[str, str] = {}
        keys = [_key(h) for h in headers]
        for name, keywords in AUTO_MAP_KEYWORDS.items():
            for keyword in keywords:
                rx = re.compile(r"\b" + re.escape(keyword) + r"\b")
                idx = next(
                    (i for i, k in enumerate(keys) if i not in claimed and (k == keyword or rx.search(k))),
                    None,
                )
                if idx is not None:
                    claimed.add(idx)
                    found[name] = headers[idx]
                    break
        mapping = cls(**found)
        mapping.require()
        logger.debug("Auto-mapped columns: %s", mapping.columns())
        return mapping


def parse_kind(raw: str | None) -> TransactionKind:
    value = (raw or "").strip().lower()
    try:
        return TransactionKind(value)
    except ValueError:
        return TransactionKind.BANK


def parse_rate_cell(raw: str | None) -> Optional[RateQuote]:
    """``24.99%``, ``24.99`` or ``0.2499``; zero counts as absent."""
    text = (raw or "").replace("%", "").strip()
    value = to_decimal(text)
    if value is None or value == 0:
        return None
    scale = len(text.split(".", 1)[1]) if "." in text else 0
    if value > 1:
        value = value / 100
    return RateQuote(value, scale)


class DelimitedParser:
    """Generic CSV/TSV parser driven by an explicit or auto-detected :class:`ColumnMapping`."""

    parser_id = "csv.generic"

    def __init__(self, mapping: ColumnMapping | None = None, source_file_name: str = "", today: date | None = None):
        self.mapping = mapping
        self.source_file_name = source_file_name
        self.today = today

    def resolve_mapping(self, headers: Sequence[str]) -> ColumnMapping:
        if self.mapping is not None:
            missing = [c for c in self.mapping.columns().values() if _key(c) not in header_index(headers)]
            if missing:
                raise MissingMappingError(missing[0])
            self.mapping.require()
            return self.mapping
        return ColumnMapping.auto(headers)

    def can_parse(self, headers: Sequence[str]) -> bool:
        if self.mapping is not None:
            return self.mapping.matches(headers)
        try:
            ColumnMapping.auto(headers)
        except MissingMappingError:
            return False
        return True

    def _amount(self, row, index, mapping: ColumnMapping) -> Optional[Decimal]:
        if mapping.amount:
            return to_decimal(cell(row, index, mapping.amount))
        debit = to_decimal(cell(row, index, mapping.debit))
        credit = to_decimal(cell(row, index, mapping.credit))
        if debit is None and credit is None:
            return None
        return abs(credit or Decimal(0)) - abs(debit or Decimal(0))

    def parse(self, rows: Sequence[Sequence[str]], headers: Sequence[str]) -> StagedImport:
        mapping = self.resolve_mapping(headers)
        index = header_index(headers)
        fmt = mapping.date_format
        transactions: List[StagedTransaction] = []
        holdings: List[StagedHolding] = []
        balances: List[StagedBalance] = []
        skipped = 0

        for row in rows:
            when = parse_flexible_date(cell(row, index, mapping.date) or "", fmt)
            account = cell(row, index, mapping.account)
            if mapping.has_transactions:
                amount = self._amount(row, index, mapping)
                if when is not None and amount is not None:
                    transactions.append(
                        StagedTransaction(
                            date_posted=when,
                            amount=amount,
                            payee=cell(row, index, mapping.description) or "",
                            memo=cell(row, index, mapping.memo),
                            kind=parse_kind(cell(row, index, mapping.kind)),
                            source_account_label=account,
                        )
                    )
                else:
                    skipped += 1
            if mapping.has_holdings:
                symbol = cell(row, index, mapping.symbol)
                if symbol and "symbol" not in symbol.lower() and not symbol.lower().startswith("subtotal"):
                    qty = to_decimal(cell(row, index, mapping.quantity)) or Decimal(0)
                    price = to_decimal(cell(row, index, mapping.price))
                    mv = to_decimal(cell(row, index, mapping.market_value))
                    if mv is None and price is not None:
                        mv = price * qty
                    holdings.append(
                        StagedHolding(
                            as_of_date=when or self.today or date.today(),
                            symbol=symbol,
                            quantity=qty,
                            market_value=mv,
                        )
                    )
            if mapping.has_balances:
                bal = to_decimal(cell(row, index, mapping.balance))
                if bal is not None and when is not None:
                    balances.append(
                        StagedBalance(as_of_date=when, balance=bal, source_account_label=account)
                    )

        if mapping.apr:
            quote = next(
                (q for q in (parse_rate_cell(cell(r, index, mapping.apr)) for r in rows) if q is not None),
                None,
            )
            if quote is not None:
                for bal in balances:
                    if bal.interest_rate_apr is None:
                        bal.interest_rate_apr = quote.value
                        bal.interest_rate_scale = quote.scale

        logger.info(
            "Delimited parse: %d transactions, %d holdings, %d balances (%d rows skipped)",
            len(transactions),
            len(holdings),
            len(balances),
            skipped,
        )
        staged = StagedImport(
            parser_id=self.parser_id,
            source_file_name=self.source_file_name,
            transactions=transactions,
            holdings=holdings,
            balances=balances,
        )
        if staged.is_empty:
            raise ParseFailure(DELIMITED_FAILURE_MESSAGE)
        return staged


# ---------------- PDF (canonical rows) ---------------- #
def has_canonical_columns(headers: Sequence[str]) -> bool:
    keys = {_key(h) for h in headers}
    return {"date", "description", "amount"}.issubset(keys)


def suggested_account_type(labels: Sequence[Optional[str]]) -> Optional[AccountLabel]:
    distinct = {AccountLabel.parse(label) for label in labels if label}
    if distinct == {AccountLabel.CHECKING}:
        return AccountLabel.CHECKING
    if distinct == {AccountLabel.SAVINGS}:
        return AccountLabel.SAVINGS
    return None


class PDFSummaryParser:
    """Balance snapshots from synthesized statement summary rows."""

    parser_id = "pdf.summary"

    def __init__(self, source_lines: Sequence[str] | None = None, source_file_name: str = ""):
        self.source_lines = list(source_lines or [])
        self.source_file_name = source_file_name

    def can_parse(self, headers: Sequence[str]) -> bool:
        return has_canonical_columns(headers) and any("balance" in _key(h) for h in headers)

    @staticmethod
    def is_summary_description(description: str) -> bool:
        if description in (SUMMARY_BEGIN_DESCRIPTION, SUMMARY_END_DESCRIPTION):
            return True
        return find_label(description, BEGIN_BALANCE_LABELS + END_BALANCE_LABELS) is not None

    def document_rate(self, descriptions: Sequence[str]) -> Optional[RateQuote]:
        """Interest Charges table first, then the most frequent per-row rate, then the scorer."""
        if self.source_lines:
            quote = purchases_rate(self.source_lines)
            if quote is not None:
                return quote
        quote = most_frequent_rate(descriptions)
        if quote is not None:
            return quote
        return extract_rate(self.source_lines) if self.source_lines else None

    def parse(self, rows: Sequence[Sequence[str]], headers: Sequence[str]) -> StagedImport:
        index = header_index(headers)
        descriptions = [cell(r, index, "description") or "" for r in rows]
        signals = DocumentSignals.scan(self.source_lines or descriptions)
        rate = self.document_rate(descriptions)
        if rate is not None:
            logger.info("Document APR %s (scale %d)", rate.value, rate.scale)

        balances: List[StagedBalance] = []
        payments: Dict[date, Decimal] = {}
        for row, description in zip(rows, descriptions):
            when = parse_canonical_date(cell(row, index, "date") or "")
            if when is None:
                continue
            if description == LOAN_PAYMENT_DESCRIPTION:
                payment = to_decimal(cell(row, index, "amount"))
                if payment is not None:
                    payments[when] = abs(payment)
                continue
            if not self.is_summary_description(description):
                continue
            value = to_decimal(cell(row, index, "balance", contains=True))
            if value is None:
                value = to_decimal(cell(row, index, "amount"))
            if value is None:
                continue
            label = AccountLabel.parse(cell(row, index, "account"))
            if signals.is_credit_card and label is AccountLabel.UNKNOWN:
                label = AccountLabel.CREDIT_CARD
            snapshot = StagedBalance(as_of_date=when, balance=value, source_account_label=label.value)
            if rate is not None and (label.is_liability or label is AccountLabel.UNKNOWN):
                snapshot.interest_rate_apr = rate.value
                snapshot.interest_rate_scale = rate.scale
            balances.append(snapshot)

        balances = dedupe_balances(balances)
        for snapshot in balances:
            if snapshot.source_account_label == AccountLabel.LOAN.value and snapshot.as_of_date in payments:
                snapshot.scheduled_payment = payments[snapshot.as_of_date]

        logger.info("PDF summary parse: %d balance snapshots", len(balances))
        if not balances:
            raise ParseFailure(SUMMARY_FAILURE_MESSAGE)
        labels = {b.source_account_label for b in balances}
        suggested = AccountLabel.parse(labels.pop()) if len(labels) == 1 else None
        return StagedImport(
            parser_id=self.parser_id,
            source_file_name=self.source_file_name,
            suggested_account_type=suggested if suggested is not AccountLabel.UNKNOWN else None,
            balances=balances,
        )


def dedupe_balances(balances: Sequence[StagedBalance]) -> List[StagedBalance]:
    """One snapshot per (label, day), a non-zero value replacing a zero one."""
    chosen: Dict[tuple, StagedBalance] = {}
    for snapshot in balances:
        key = ((snapshot.source_account_label or "default").lower(), snapshot.as_of_date)
        existing = chosen.get(key)
        if existing is None:
            chosen[key] = snapshot
        elif existing.balance == 0 and snapshot.balance != 0:
            logger.debug("Dedup: replacing zero balance for %s", key)
            chosen[key] = snapshot
    return list(chosen.values())


# Section headings and column rows that sometimes get captured as rows.
HEADER_ROW_PHRASES = (
    "deposits and additions",
    "deposits additions",
    "electronic withdrawals",
    "electronic withdrawal",
    "electronic deposits",
    "electronic credits",
    "electronic debits",
    "other withdrawals",
    "daily ending balance",
    "daily balance",
    "ending balance",
    "beginning balance",
    "opening balance",
    "closing balance",
)
HEADER_ROW_WORDS = ("deposits", "withdrawals", "checks", "fees", "interest")
_TOTAL_SUBJECT_WORDS = ("deposit", "withdrawal", "check", "fee", "addition", "electronic")
_NON_LETTERS_RX = re.compile(r"[^a-z]+")


def is_header_or_total(text: str) -> bool:
    """Section headers, section totals, repeated column rows and page furniture."""
    lower = (text or "").strip().lower()
    if not lower:
        return True
    letters = _NON_LETTERS_RX.sub(" ", lower).strip()
    if letters in HEADER_ROW_WORDS or lower in HEADER_ROW_WORDS:
        return True
    if any(p in lower or p in letters for p in HEADER_ROW_PHRASES):
        return True
    if (lower.startswith("total ") or " total " in lower) and any(w in lower for w in _TOTAL_SUBJECT_WORDS):
        return True
    if "date" in lower and "description" in lower and ("amount" in lower or "balance" in lower):
        return True
    if "page " in lower and " of " in lower:
        return True
    if "statement" in lower and ("date" in lower or "period" in lower):
        return True
    return "account number" in lower or "account ending" in lower


@dataclass
class _TxItem:
    when: date
    description: str
    amount: Decimal
    balance: Optional[Decimal]
    account: Optional[str]


def infer_signs(items: Sequence[_TxItem]) -> List[Decimal]:
    """Use running-balance deltas for the sign when at least two rows carry a balance."""
    signed = [it.amount for it in items]
    if sum(1 for it in items if it.balance is not None) < 2:
        return signed
    prev_balance: Optional[Decimal] = None
    for i, it in enumerate(items):
        if it.balance is not None and prev_balance is not None:
            delta = it.balance - prev_balance
            if abs(abs(delta) - abs(it.amount)) <= SIGN_EPSILON:
                signed[i] = delta
        if it.balance is not None:
            prev_balance = it.balance
    return signed


class PDFTransactionsParser:
    """Staged transactions from canonical rows; excluded by default pending review."""

    parser_id = "pdf.transactions"

    def __init__(self, source_lines: Sequence[str] | None = None, source_file_name: str = ""):
        self.source_lines = list(source_lines or [])
        self.source_file_name = source_file_name

    def can_parse(self, headers: Sequence[str]) -> bool:
        return has_canonical_columns(headers)

    def parse(self, rows: Sequence[Sequence[str]], headers: Sequence[str]) -> StagedImport:
        index = header_index(headers)
        items: List[_TxItem] = []
        for row_index, row in enumerate(rows):
            description = cell(row, index, "description") or ""
            if description in SYNTHETIC_DESCRIPTIONS:
                continue
            when = parse_canonical_date(cell(row, index, "date") or "")
            if when is None:
                logger.debug("Row %d skipped: unparsed date %r", row_index, cell(row, index, "date"))
                continue
            joined = " ".join(v for v in (description, cell(row, index, "amount"), cell(row, index, "balance")) if v)
            if is_header_or_total(description) or is_header_or_total(joined):
                logger.debug("Row %d skipped: header/total %r", row_index, description)
                continue
            amount = to_decimal(cell(row, index, "amount"))
            if amount is None:
                logger.debug("Row %d skipped: unparsed amount", row_index)
                continue
            items.append(
                _TxItem(
                    when,
                    description,
                    amount,
                    to_decimal(cell(row, index, "balance", contains=True)),
                    cell(row, index, "account"),
                )
            )

        transactions = [
            StagedTransaction(
                date_posted=it.when,
                amount=amount,
                payee=it.description,
                source_account_label=it.account,
                include=False,
            )
            for it, amount in zip(items, infer_signs(items))
        ]
        logger.info("PDF transactions parse: %d of %d rows staged", len(transactions), len(rows))
        if not transactions:
            raise ParseFailure(TRANSACTIONS_FAILURE_MESSAGE)
        return StagedImport(
            parser_id=self.parser_id,
            source_file_name=self.source_file_name,
            suggested_account_type=suggested_account_type([it.account for it in items]),
            transactions=transactions,
        )


__all__ = [
    "StatementParser",
    "ColumnMapping",
    "DelimitedParser",
    "PDFSummaryParser",
    "PDFTransactionsParser",
    "is_header_or_total",
    "infer_signs",
    "dedupe_balances",
    "parse_rate_cell",
]
