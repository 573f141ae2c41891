"""Row building shared by the text scanner and the positioned-token path."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .dates import normalize_date
from .models import AccountLabel, CanonicalRow, FlowKind, StatementPeriod
from .utils import apply_flow_sign, clean_description, normalize_amount


@dataclass(frozen=True)
class RawRow:
    """Un-normalized row pieces as they were found on the page."""

    date_raw: str
    description: str
    amount_raw: str
    balance_raw: str = ""
    post_date_raw: Optional[str] = None


def build_row(
    raw: RawRow,
    flow: FlowKind,
    label: AccountLabel,
    period: StatementPeriod | None,
    inferred_year: int | None,
) -> CanonicalRow:
    date_text = raw.post_date_raw or raw.date_raw
    return CanonicalRow(
        date=normalize_date(date_text, period, inferred_year),
        description=clean_description(raw.description),
        amount=apply_flow_sign(normalize_amount(raw.amount_raw), flow),
        balance=normalize_amount(raw.balance_raw),
        account=label.value,
    )


__all__ = ["RawRow", "build_row"]
