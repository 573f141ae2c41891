"""Account, section and flow classification for statement lines.

Each header predicate returns a :class:`HeaderSignal` so callers can tell a
summary-style heading ("Savings Summary") from a bare keyword ("SAVINGS").
Bare keywords are only trusted on heading-like lines and only when the
document as a whole does not say otherwise.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Sequence, Set, Tuple

from .constants import (
    ACCOUNT_META_PHRASES,
    DATE_START_RX,
    DEPOSIT_HEADER_RX,
    DOCUMENT_SIGNAL_RX,
    FALSE_POSITIVE_IDIOMS,
    MONEY_ANYWHERE_RX,
    PAGE_BREAK,
    SECTION_PATTERNS,
    STRONG_HEADER_PHRASES,
    WEAK_HEADER_RX,
    WITHDRAWAL_HEADER_RX,
)
from .models import AccountKind, FlowKind, SectionKind

logger = logging.getLogger(__name__)

ACCOUNT_WINDOW = 20
HEADING_MAX_CHARS = 24
SECTION_LINE_MAX_CHARS = 60
STRONG_PROSE_MAX_CHARS = 40
_DIGIT_RX = re.compile(r"\d")
_LOWER_RX = re.compile(r"[a-z]")

# More specific kinds veto a weak mention of a less specific one.
_SPECIFICITY = {
    AccountKind.SAVINGS: ("investment", "loan", "credit_card"),
    AccountKind.CHECKING: ("investment", "loan", "credit_card"),
    AccountKind.INVESTMENT: ("loan", "credit_card"),
    AccountKind.LOAN: ("credit_card",),
    AccountKind.CREDIT_CARD: (),
}
_KIND_KEYS = {
    AccountKind.SAVINGS: "savings",
    AccountKind.CHECKING: "checking",
    AccountKind.INVESTMENT: "investment",
    AccountKind.LOAN: "loan",
    AccountKind.CREDIT_CARD: "credit_card",
}
_DOCUMENT_KINDS = (AccountKind.INVESTMENT, AccountKind.LOAN, AccountKind.CREDIT_CARD)
# Most specific first.
_CLASSIFY_ORDER = (
    AccountKind.CREDIT_CARD,
    AccountKind.LOAN,
    AccountKind.INVESTMENT,
    AccountKind.SAVINGS,
    AccountKind.CHECKING,
)


class HeaderSignal(str, Enum):
    NONE = "none"
    WEAK = "weak"
    STRONG = "strong"


def is_false_positive(line: str) -> bool:
    """Incidental mention of another account ("transfer from checking")."""
    lower = line.lower()
    return any(idiom in lower for idiom in FALSE_POSITIVE_IDIOMS)


def is_heading_like(line: str) -> bool:
    raw = line.strip()
    if _DIGIT_RX.search(raw):
        return False
    return not _LOWER_RX.search(raw) or len(raw) <= HEADING_MAX_CHARS


def _mentions(line: str, key: str) -> bool:
    lower = line.lower()
    if any(phrase in lower for phrase in STRONG_HEADER_PHRASES[key]):
        return True
    return bool(WEAK_HEADER_RX[key].search(line))


def _header_signal(line: str, kind: AccountKind) -> HeaderSignal:
    raw = line.strip()
    if not raw or raw == PAGE_BREAK or is_false_positive(raw):
        return HeaderSignal.NONE
    key = _KIND_KEYS[kind]
    lower = raw.lower()
    if any(phrase in lower for phrase in STRONG_HEADER_PHRASES[key]):
        return HeaderSignal.STRONG
    if WEAK_HEADER_RX[key].search(raw) and is_heading_like(raw):
        return HeaderSignal.WEAK
    return HeaderSignal.NONE


def is_savings_header(line: str) -> HeaderSignal:
    signal = _header_signal(line, AccountKind.SAVINGS)
    if signal is HeaderSignal.WEAK and "checking" in line.lower():
        return HeaderSignal.NONE
    return signal


def is_checking_header(line: str) -> HeaderSignal:
    signal = _header_signal(line, AccountKind.CHECKING)
    if signal is HeaderSignal.WEAK and "savings" in line.lower():
        return HeaderSignal.NONE
    return signal


def is_investment_header(line: str) -> HeaderSignal:
    return _header_signal(line, AccountKind.INVESTMENT)


def is_loan_header(line: str) -> HeaderSignal:
    return _header_signal(line, AccountKind.LOAN)


def is_credit_card_header(line: str) -> HeaderSignal:
    return _header_signal(line, AccountKind.CREDIT_CARD)


HEADER_PREDICATES = {
    AccountKind.CREDIT_CARD: is_credit_card_header,
    AccountKind.LOAN: is_loan_header,
    AccountKind.INVESTMENT: is_investment_header,
    AccountKind.SAVINGS: is_savings_header,
    AccountKind.CHECKING: is_checking_header,
}


@dataclass
class DocumentSignals:
    """Distinct strong-keyword hits per account kind across a whole document."""

    hits: Dict[str, Set[int]] = field(default_factory=dict)
    threshold: int = 2

    @classmethod
    def scan(cls, lines: Iterable[str]) -> "DocumentSignals":
        hits: Dict[str, Set[int]] = {key: set() for key in DOCUMENT_SIGNAL_RX}
        for line in lines:
            # Transaction rows ("03/05 VISA DEBIT PURCHASE") say nothing about the account.
            if line == PAGE_BREAK or DATE_START_RX.match(line.strip()):
                continue
            for key, patterns in DOCUMENT_SIGNAL_RX.items():
                for idx, rx in enumerate(patterns):
                    if idx not in hits[key] and rx.search(line):
                        hits[key].add(idx)
        signals = cls(hits=hits)
        logger.debug(
            "Document signals: %s",
            {k: len(v) for k, v in hits.items() if v},
        )
        return signals

    def count(self, key: str) -> int:
        return len(self.hits.get(key, ()))

    @property
    def is_credit_card(self) -> bool:
        return self.count("credit_card") >= self.threshold

    @property
    def is_loan(self) -> bool:
        return self.count("loan") >= self.threshold and not self.is_credit_card

    @property
    def is_investment(self) -> bool:
        return (
            self.count("investment") >= self.threshold
            and not self.is_credit_card
            and not self.is_loan
        )

    def dominant_kind(self) -> Optional[AccountKind]:
        if self.is_credit_card:
            return AccountKind.CREDIT_CARD
        if self.is_loan:
            return AccountKind.LOAN
        if self.is_investment:
            return AccountKind.INVESTMENT
        return None


def accepts(signal: HeaderSignal, kind: AccountKind, line: str, signals: DocumentSignals | None) -> bool:
    """Whether a header verdict for ``kind`` may change the account context."""
    if signal is HeaderSignal.STRONG:
        if kind in _DOCUMENT_KINDS and len(line.strip()) > STRONG_PROSE_MAX_CHARS and signals is not None:
            # Long prose ("apply for a credit card today") only counts in a matching document.
            return signals.dominant_kind() is kind
        return True
    if signal is not HeaderSignal.WEAK:
        return False
    if signals is not None and (signals.is_credit_card or signals.is_loan):
        return False
    return not any(_mentions(line, key) for key in _SPECIFICITY[kind])


def classify_line(line: str, signals: DocumentSignals | None = None) -> Optional[AccountKind]:
    """Account kind a single line announces, strong verdicts before weak ones."""
    verdicts = [(kind, HEADER_PREDICATES[kind](line)) for kind in _CLASSIFY_ORDER]
    for wanted in (HeaderSignal.STRONG, HeaderSignal.WEAK):
        for kind, signal in verdicts:
            if signal is wanted and accepts(signal, kind, line, signals):
                return kind
    return None


def is_account_meta_line(line: str) -> bool:
    lower = line.lower()
    return any(phrase in lower for phrase in ACCOUNT_META_PHRASES)


def account_from_meta(line: str) -> Optional[AccountKind]:
    """``Primary Account: 0000 Savings`` style lines name the account kind."""
    if not is_account_meta_line(line):
        return None
    lower = line.lower()
    if "savings" in lower:
        return AccountKind.SAVINGS
    if "checking" in lower:
        return AccountKind.CHECKING
    return None


def context_account(context: Sequence[str], signals: DocumentSignals | None = None) -> Optional[AccountKind]:
    """Soft inference from the rolling buffer of recent non-date lines."""
    lowered = [c.lower() for c in context]
    has_savings = any("savings" in c for c in lowered)
    has_checking = any("checking" in c for c in lowered)
    if has_savings and not has_checking:
        return AccountKind.SAVINGS
    for line in context:
        if accepts(is_checking_header(line), AccountKind.CHECKING, line, signals):
            return AccountKind.CHECKING
    return None


def _anchor(line: str, signals: DocumentSignals | None) -> Optional[Tuple[AccountKind, HeaderSignal]]:
    kind = classify_line(line, signals)
    if kind is not None:
        signal = HEADER_PREDICATES[kind](line)
        if signal is HeaderSignal.STRONG and len(line.strip()) > STRONG_PROSE_MAX_CHARS:
            signal = HeaderSignal.WEAK
        return kind, signal
    kind = account_from_meta(line)
    if kind is not None:
        return kind, HeaderSignal.WEAK
    return None


def account_anchor_at(
    lines: Sequence[str],
    index: int,
    signals: DocumentSignals | None = None,
    override: AccountKind | None = None,
    window: int = ACCOUNT_WINDOW,
) -> Tuple[AccountKind, HeaderSignal]:
    """Nearest account heading around ``lines[index]`` and how strongly it names the account.

    Only short summary-style headings ("Checking Summary") count as strong;
    account-number lines and long prose are weak.
    """
    if override is not None:
        return override, HeaderSignal.STRONG
    backward = range(index, max(-1, index - window - 1), -1)
    forward = range(index + 1, min(len(lines), index + window + 1))
    for span in (backward, forward):
        for i in span:
            if lines[i] == PAGE_BREAK:
                break
            found = _anchor(lines[i], signals)
            if found is not None:
                return found
    return AccountKind.UNKNOWN, HeaderSignal.NONE


def infer_account_at(
    lines: Sequence[str],
    index: int,
    signals: DocumentSignals | None = None,
    override: AccountKind | None = None,
    window: int = ACCOUNT_WINDOW,
) -> AccountKind:
    """Nearest account heading around ``lines[index]`` within one page."""
    return account_anchor_at(lines, index, signals, override, window)[0]


def page_defaults(lines: Sequence[str], signals: DocumentSignals | None = None) -> Dict[int, AccountKind]:
    """First account heading on each page, keyed by page index."""
    defaults: Dict[int, AccountKind] = {}
    page = 0
    for line in lines:
        if line == PAGE_BREAK:
            page += 1
            continue
        if page in defaults:
            continue
        kind = classify_line(line, signals)
        if kind is not None:
            defaults[page] = kind
    return defaults


def _is_section_candidate(line: str) -> bool:
    return len(line) <= SECTION_LINE_MAX_CHARS and not MONEY_ANYWHERE_RX.search(line)


def detect_flow(line: str) -> Optional[FlowKind]:
    """Deposits/withdrawals heading on a short money-free line."""
    if not _is_section_candidate(line) or line.lower().startswith("total"):
        return None
    if DEPOSIT_HEADER_RX.search(line):
        return FlowKind.DEPOSIT
    if WITHDRAWAL_HEADER_RX.search(line):
        return FlowKind.WITHDRAWAL
    return None


def detect_section(line: str) -> Optional[SectionKind]:
    if not _is_section_candidate(line):
        return None
    for name, rx in SECTION_PATTERNS:
        if rx.search(line):
            return SectionKind(name)
    return None


__all__ = [
    "HeaderSignal",
    "DocumentSignals",
    "is_false_positive",
    "is_heading_like",
    "is_savings_header",
    "is_checking_header",
    "is_investment_header",
    "is_loan_header",
    "is_credit_card_header",
    "accepts",
    "classify_line",
    "is_account_meta_line",
    "account_from_meta",
    "context_account",
    "account_anchor_at",
    "infer_account_at",
    "page_defaults",
    "detect_flow",
    "detect_section",
]
