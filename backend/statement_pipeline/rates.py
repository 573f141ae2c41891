"""Interest rate / APR extraction.

Statements quote many percentages (rewards tiers, penalty APRs, foreign
transaction fees, savings yields). Every percentage found is scored against
the lines around it and the best candidate wins; a targeted scan of the
"Interest Charges" table takes precedence when it finds a purchases rate.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence

from .constants import (
    BARE_PERCENT_RX,
    LABELED_RATE_RX,
    PAGE_BREAK,
    PERCENT_RANGE_RX,
    RATE_BANKING_WORDS,
    RATE_DEMOTE_WORDS,
    RATE_FEE_WORDS,
    RATE_FX_WORDS,
    RATE_HEADER_WORDS,
    RATE_LIABILITY_WORDS,
    RATE_PENALTY_WORDS,
    RATE_PRIOR_WORDS,
    RATE_PROMO_WORDS,
    RATE_PURCHASE_WORDS,
    RATE_REWARD_WORDS,
)

logger = logging.getLogger(__name__)

MIN_RATE = Decimal("0.005")
MAX_RATE = Decimal("0.60")
PENALTY_TIER = Decimal("0.28")
HEADER_LOOKBACK = 3
WIDE_RADIUS = 2
INTEREST_TABLE_WINDOW = 1800
PURCHASE_CONTEXT_CHARS = 220

_APR_TOKEN_RX = re.compile(r"\bapr\b|annual percentage rate")
_PURCHASE_RX = re.compile(r"purchases?")
_PERCENT_RX = re.compile(r"(\d{1,3}(?:\.\d{1,4})?)\s*%")
_GAP_VETO_WORDS = (
    ("penalty", "cash advance", "balance transfer", "no interest")
    + RATE_REWARD_WORDS
    + RATE_FX_WORDS
    + RATE_FEE_WORDS
)


@dataclass(frozen=True)
class RateQuote:
    """An APR as a fraction (``0.2499``) and the decimal places it was quoted with."""

    value: Decimal
    scale: int

    @property
    def percent(self) -> Decimal:
        return self.value * 100


@dataclass(frozen=True)
class RateFlags:
    header: bool = False
    purchase: bool = False
    reward: bool = False
    fx: bool = False
    fee: bool = False
    banking: bool = False
    liability: bool = False
    apr_token: bool = False
    penalty: bool = False
    prior: bool = False
    demote: bool = False
    no_interest: bool = False
    promo: bool = False
    is_range: bool = False
    is_upper: bool = False


@dataclass(frozen=True)
class RateCandidate:
    value: Decimal
    scale: int
    score: int
    is_range: bool
    source: str
    line_index: int


def _contains_any(text: str, words: Iterable[str]) -> bool:
    return any(w in text for w in words)


def _to_fraction(token: str) -> Optional[RateQuote]:
    try:
        value = Decimal(token)
    except InvalidOperation:
        return None
    scale = len(token.split(".", 1)[1]) if "." in token else 0
    return RateQuote(value=value / 100, scale=scale)


def _page_window(lines: Sequence[str], index: int, before: int, after: int) -> str:
    """Lower-cased text of ``lines[index-before:index+after+1]`` clipped at page breaks."""
    parts = [lines[index]]
    for i in range(index - 1, max(-1, index - before - 1), -1):
        if lines[i] == PAGE_BREAK:
            break
        parts.insert(0, lines[i])
    for i in range(index + 1, min(len(lines), index + after + 1)):
        if lines[i] == PAGE_BREAK:
            break
        parts.append(lines[i])
    return " ".join(parts).lower()


def range_position(line: str, value: Decimal) -> tuple[bool, bool]:
    """(is part of an ``X% - Y%`` range, is its upper bound)."""
    for m in PERCENT_RANGE_RX.finditer(line):
        low, high = Decimal(m.group(1)), Decimal(m.group(2))
        if value == low:
            return True, False
        if value == high:
            return True, True
    return False, False


def rate_flags(lines: Sequence[str], index: int, token: str) -> RateFlags:
    """Context flags for a percentage found on ``lines[index]``."""
    own = lines[index].lower()
    near = _page_window(lines, index, 1, 0)
    wide = _page_window(lines, index, WIDE_RADIUS, WIDE_RADIUS)
    header_zone = _page_window(lines, index, HEADER_LOOKBACK, 0)
    reward = _contains_any(near, RATE_REWARD_WORDS)
    is_range, is_upper = range_position(own, Decimal(token))
    return RateFlags(
        header=_contains_any(header_zone, RATE_HEADER_WORDS),
        purchase=not reward and _contains_any(wide, RATE_PURCHASE_WORDS),
        reward=reward,
        fx=_contains_any(near, RATE_FX_WORDS),
        fee=_contains_any(near, RATE_FEE_WORDS),
        banking=_contains_any(wide, RATE_BANKING_WORDS),
        liability=_contains_any(wide, RATE_LIABILITY_WORDS),
        apr_token=bool(_APR_TOKEN_RX.search(wide)),
        penalty=_contains_any(own, RATE_PENALTY_WORDS),
        prior=_contains_any(own, RATE_PRIOR_WORDS),
        demote=_contains_any(own, RATE_DEMOTE_WORDS),
        no_interest="no interest" in near,
        promo=_contains_any(wide, RATE_PROMO_WORDS),
        is_range=is_range,
        is_upper=is_upper,
    )


def score_candidate(flags: RateFlags, source: str) -> int:
    score = 0
    if flags.purchase:
        score += 7
    if flags.prior:
        score -= 3
    if flags.demote:
        score -= 3
    if flags.is_range:
        score -= 4
    if flags.is_upper:
        score -= 3
    if source == "label":
        score += 1
    if flags.header:
        score += 2
    return score


def rejection_reason(
    flags: RateFlags, quote: RateQuote, doc_penalty: bool
) -> Optional[str]:
    if flags.reward or flags.fx or flags.fee or flags.no_interest:
        return "reward/fx/fee context"
    if flags.banking and not (flags.purchase or flags.apr_token or flags.liability):
        return "banking context"
    if not (flags.header or flags.purchase or flags.liability):
        return "no rate context"
    if flags.penalty:
        return "penalty/minimum wording"
    if quote.value == 0:
        return None if flags.promo else "0% without promotional wording"
    if quote.value < MIN_RATE or quote.value > MAX_RATE:
        return "implausible magnitude"
    if doc_penalty and quote.value >= PENALTY_TIER and not flags.purchase:
        return "penalty tier without purchase context"
    return None


def _document_text(lines: Sequence[str]) -> str:
    return " ".join(l for l in lines if l != PAGE_BREAK).lower()


def collect_candidates(lines: Sequence[str]) -> List[RateCandidate]:
    doc = _document_text(lines)
    doc_penalty = "penalty" in doc or "late payment warning" in doc
    candidates: List[RateCandidate] = []
    for idx, line in enumerate(lines):
        if line == PAGE_BREAK or ("%" not in line and not LABELED_RATE_RX.search(line)):
            continue
        found = [(m.group(1), "label") for m in LABELED_RATE_RX.finditer(line)]
        found += [(m.group(1), "bare") for m in BARE_PERCENT_RX.finditer(line)]
        for token, source in found:
            quote = _to_fraction(token)
            if quote is None:
                continue
            flags = rate_flags(lines, idx, token)
            reason = rejection_reason(flags, quote, doc_penalty)
            if reason:
                logger.debug("APR candidate %s%% (%s) rejected: %s", token, source, reason)
                continue
            score = score_candidate(flags, source)
            logger.debug("APR candidate %s%% (%s) accepted score=%d", token, source, score)
            candidates.append(
                RateCandidate(quote.value, quote.scale, score, flags.is_range, source, idx)
            )
    return candidates


def best_candidate(candidates: Sequence[RateCandidate]) -> Optional[RateCandidate]:
    """Highest score, then non-range, then the lower rate."""
    if not candidates:
        return None
    return min(candidates, key=lambda c: (-c.score, c.is_range, c.value))


def purchases_rate(lines: Sequence[str]) -> Optional[RateQuote]:
    """First percentage after "purchases" inside the Interest Charges table."""
    doc = _document_text(lines)
    anchor = doc.find("interest charges")
    if anchor < 0:
        return None
    start = anchor + len("interest charges")
    window = doc[start : start + INTEREST_TABLE_WINDOW]
    best: Optional[tuple[int, RateQuote]] = None
    for pm in _PURCHASE_RX.finditer(window):
        ctx = window[pm.start() : pm.end() + PURCHASE_CONTEXT_CHARS]
        pct = _PERCENT_RX.search(ctx)
        if pct is None:
            continue
        gap = ctx[: pct.start()]
        if _contains_any(gap, _GAP_VETO_WORDS):
            logger.debug("Purchases APR: skipped %s%% across %r", pct.group(1), gap[:60])
            continue
        quote = _to_fraction(pct.group(1))
        if quote is None or not (MIN_RATE <= quote.value <= MAX_RATE):
            continue
        score = -2 if _contains_any(gap, ("prior", "previous")) else 3
        if best is None or (score, -quote.value) > (best[0], -best[1].value):
            best = (score, quote)
    if best is not None:
        logger.debug("Purchases APR from Interest Charges table: %s", best[1].value)
        return best[1]
    return None


def extract_rate(lines: Sequence[str]) -> Optional[RateQuote]:
    """Most plausible purchase/loan rate quoted in ``lines``."""
    targeted = purchases_rate(lines)
    if targeted is not None:
        return targeted
    best = best_candidate(collect_candidates(lines))
    if best is None:
        return None
    return RateQuote(best.value, best.scale)


def most_frequent_rate(texts: Iterable[str]) -> Optional[RateQuote]:
    """Per-text winners, most frequent first and the lower rate on ties."""
    winners: List[RateQuote] = []
    for text in texts:
        quote = extract_rate([text])
        if quote is not None:
            winners.append(quote)
    if not winners:
        return None
    counts = Counter(q.value for q in winners)
    value = min(counts, key=lambda v: (-counts[v], v))
    return next(q for q in winners if q.value == value)


__all__ = [
    "RateQuote",
    "RateFlags",
    "RateCandidate",
    "range_position",
    "rate_flags",
    "score_candidate",
    "rejection_reason",
    "collect_candidates",
    "best_candidate",
    "purchases_rate",
    "extract_rate",
    "most_frequent_rate",
]
