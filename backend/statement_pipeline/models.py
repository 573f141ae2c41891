"""Value types shared by extraction, parsers and the HTTP layer."""

from __future__ import annotations

import calendar
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, Field

from .utils import hash_key


class AccountLabel(str, Enum):
    """Account label carried in the fifth column of a canonical row."""

    CHECKING = "checking"
    SAVINGS = "savings"
    BROKERAGE = "brokerage"
    LOAN = "loan"
    CREDIT_CARD = "creditCard"
    UNKNOWN = "unknown"

    @property
    def is_liability(self) -> bool:
        return self in (AccountLabel.LOAN, AccountLabel.CREDIT_CARD)

    @classmethod
    def parse(cls, raw: str | None) -> "AccountLabel":
        if not raw:
            return cls.UNKNOWN
        key = raw.strip().replace("_", "").replace(" ", "").lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        aliases = {
            "investment": cls.BROKERAGE,
            "ira": cls.BROKERAGE,
            "mortgage": cls.LOAN,
            "creditcard": cls.CREDIT_CARD,
            "card": cls.CREDIT_CARD,
            "cc": cls.CREDIT_CARD,
        }
        return aliases.get(key, cls.UNKNOWN)


class AccountKind(str, Enum):
    """Account kind tracked by the scanner."""

    UNKNOWN = "unknown"
    CHECKING = "checking"
    SAVINGS = "savings"
    INVESTMENT = "investment"
    LOAN = "loan"
    CREDIT_CARD = "credit_card"

    @property
    def label(self) -> AccountLabel:
        return _KIND_TO_LABEL[self]

    @classmethod
    def from_label(cls, label: AccountLabel) -> "AccountKind":
        for kind, lbl in _KIND_TO_LABEL.items():
            if lbl is label:
                return kind
        return cls.UNKNOWN


_KIND_TO_LABEL = {
    AccountKind.UNKNOWN: AccountLabel.UNKNOWN,
    AccountKind.CHECKING: AccountLabel.CHECKING,
    AccountKind.SAVINGS: AccountLabel.SAVINGS,
    AccountKind.INVESTMENT: AccountLabel.BROKERAGE,
    AccountKind.LOAN: AccountLabel.LOAN,
    AccountKind.CREDIT_CARD: AccountLabel.CREDIT_CARD,
}


class FlowKind(str, Enum):
    NONE = "none"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class SectionKind(str, Enum):
    UNKNOWN = "unknown"
    ACCOUNT_SUMMARY = "account_summary"
    CASH_FLOW = "cash_flow"
    HOLDINGS = "holdings"
    ACTIVITY = "activity"


class ExtractionMode(str, Enum):
    SUMMARY = "summary"
    TRANSACTIONS = "transactions"


class CanonicalRow(NamedTuple):
    date: str
    description: str
    amount: str
    balance: str
    account: str


CONTEXT_CAPACITY = 12


@dataclass
class ScanState:
    """Scanner-local context, replaced wholesale at every page boundary."""

    account: AccountKind = AccountKind.UNKNOWN
    flow: FlowKind = FlowKind.NONE
    # Logged and snapshotted only; no scanning decision reads it.
    section: SectionKind = SectionKind.UNKNOWN
    context: deque = field(default_factory=lambda: deque(maxlen=CONTEXT_CAPACITY))
    page_index: int = 0
    override: Optional[AccountKind] = None

    @classmethod
    def initial(cls, override: AccountKind | None = None) -> "ScanState":
        return cls(account=override or AccountKind.UNKNOWN, override=override)

    def reset(self) -> "ScanState":
        fresh = ScanState.initial(self.override)
        fresh.page_index = self.page_index + 1
        return fresh

    def set_account(self, kind: AccountKind) -> None:
        if self.override is None:
            self.account = kind

    def snapshot(self) -> tuple:
        """Comparable view of the signal-carrying fields."""
        return (self.account, self.flow, self.section, tuple(self.context))


@dataclass(frozen=True)
class StatementPeriod:
    start_month: int
    start_year: int
    start_day: Optional[int]
    end_month: int
    end_year: int
    end_day: Optional[int]
    is_range: bool = True

    def start_date(self) -> date:
        return date(self.start_year, self.start_month, self.start_day or 1)

    def end_date(self) -> date:
        day = self.end_day or calendar.monthrange(self.end_year, self.end_month)[1]
        return date(self.end_year, self.end_month, day)

    def year_for_month(self, month: int) -> int:
        if self.start_year == self.end_year:
            return self.start_year
        return self.start_year if month >= self.start_month else self.end_year


class TransactionKind(str, Enum):
    BANK = "bank"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    FEE = "fee"
    INTEREST = "interest"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class StagedTransaction(BaseModel):
    date_posted: date
    amount: Decimal
    payee: str
    memo: Optional[str] = None
    external_id: Optional[str] = None
    symbol: Optional[str] = None
    quantity: Optional[Decimal] = None
    price: Optional[Decimal] = None
    fees: Optional[Decimal] = None
    kind: TransactionKind = TransactionKind.BANK
    hash_key: str = ""
    source_account_label: Optional[str] = None
    include: bool = True

    def model_post_init(self, __context) -> None:
        if not self.hash_key:
            self.hash_key = hash_key(
                self.date_posted,
                self.amount,
                self.payee,
                self.memo,
                self.symbol,
                self.quantity,
            )


class StagedHolding(BaseModel):
    as_of_date: date
    symbol: str
    quantity: Decimal
    market_value: Optional[Decimal] = None
    include: bool = True


class StagedBalance(BaseModel):
    as_of_date: date
    balance: Decimal
    interest_rate_apr: Optional[Decimal] = None
    interest_rate_scale: Optional[int] = None
    # Loan statements quote the next scheduled payment next to the balance.
    scheduled_payment: Optional[Decimal] = None
    source_account_label: Optional[str] = None
    include: bool = True


class StagedImport(BaseModel):
    parser_id: str
    source_file_name: str = ""
    inferred_institution: Optional[str] = None
    suggested_account_type: Optional[AccountLabel] = None
    transactions: List[StagedTransaction] = Field(default_factory=list)
    holdings: List[StagedHolding] = Field(default_factory=list)
    balances: List[StagedBalance] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.transactions or self.holdings or self.balances)


@dataclass
class ExtractionOptions:
    mode: ExtractionMode = ExtractionMode.TRANSACTIONS
    account_override: Optional[AccountLabel] = None
    layout_fallback: bool = True
    min_rows: int = 5
    min_confidence: float = 0.3
    today: Optional[date] = None

    @property
    def summary_only(self) -> bool:
        return self.mode is ExtractionMode.SUMMARY

    @property
    def override_kind(self) -> Optional[AccountKind]:
        if self.account_override is None or self.account_override is AccountLabel.UNKNOWN:
            return None
        return AccountKind.from_label(self.account_override)


@dataclass
class ExtractionResult:
    """Canonical rows plus what the post-passes learned about the document."""

    headers: List[str]
    rows: List[CanonicalRow]
    lines: List[str] = field(default_factory=list)
    period: Optional[StatementPeriod] = None
    dominant_account: Optional[AccountLabel] = None
    used_layout: bool = False
