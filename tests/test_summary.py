import textwrap

from statement_pipeline.classify import DocumentSignals
from statement_pipeline.constants import PAGE_BREAK, SYNTHETIC_DESCRIPTIONS
from statement_pipeline.models import (
    AccountKind,
    AccountLabel,
    CanonicalRow,
    ExtractionMode,
    ExtractionOptions,
)
from statement_pipeline.pdf_parser import extract_rows_from_lines, normalize_lines
from statement_pipeline.summary import (
    apply_summary_mode,
    find_balance_hits,
    group_hits,
    liability_sign,
)
from statement_pipeline.utils import to_decimal


def _dedent(s: str) -> list[str]:
    return normalize_lines(textwrap.dedent(s))


SCENARIO_B = _dedent(
    """
    Beginning Balance ........ $500.00
    03/01/2026 Payroll Deposit 200.00
    03/15/2026 Grocery Store -150.00
    03/31/2026 Rent Payment -200.00
    Ending Balance ........ $350.00
    """
)


def test_scenario_b_dates_from_transaction_span(today):
    options = ExtractionOptions(mode=ExtractionMode.SUMMARY, today=today, layout_fallback=False)
    rows = extract_rows_from_lines(SCENARIO_B, options).rows
    assert rows == [
        CanonicalRow("02/28/2026", "Statement Beginning Balance", "0", "500.00", "unknown"),
        CanonicalRow("03/31/2026", "Statement Ending Balance", "0", "350.00", "unknown"),
    ]


def test_transactions_mode_keeps_rows_and_appends_summary(today):
    options = ExtractionOptions(today=today, layout_fallback=False)
    rows = extract_rows_from_lines(SCENARIO_B, options).rows
    assert len(rows) == 5
    assert [r.description for r in rows[-2:]] == [
        "Statement Beginning Balance",
        "Statement Ending Balance",
    ]


def test_summary_only_output_is_exclusive():
    rows = [CanonicalRow("03/02/2026", "Coffee", "-4.50", "495.50", "checking")]
    synthesized = [CanonicalRow("03/31/2026", "Statement Ending Balance", "0", "350.00", "checking")]
    out = apply_summary_mode(rows, synthesized, summary_only=True)
    assert out == synthesized
    assert all(r.description in SYNTHETIC_DESCRIPTIONS for r in out)


def test_liability_sign():
    assert liability_sign("1200.00", AccountLabel.LOAN) == "-1200.00"
    assert liability_sign("-35.10", AccountLabel.CREDIT_CARD) == "-35.10"
    assert liability_sign("0.00", AccountLabel.CREDIT_CARD) == "0.00"
    assert liability_sign("80.00", AccountLabel.SAVINGS) == "80.00"


def test_loan_statement_balances_are_negative_with_payment_row(today):
    lines = _dedent(
        """
        Mortgage Statement
        Loan Number 0012345
        Statement Date: 03/15/2026
        Principal Balance $150,000.00
        Escrow Balance $1,200.00
        Payment Amount $1,500.00
        """
    )
    options = ExtractionOptions(mode=ExtractionMode.SUMMARY, today=today, layout_fallback=False)
    rows = extract_rows_from_lines(lines, options).rows
    by_desc = {r.description: r for r in rows}
    assert by_desc["Statement Ending Balance"].balance == "-150000.00"
    assert by_desc["Statement Ending Balance"].date == "03/15/2026"
    assert by_desc["Loan Payment Due"].amount == "1500.00"
    for row in rows:
        if row.account in ("loan", "creditCard") and row.balance:
            assert to_decimal(row.balance) <= 0


def test_credit_card_document_drops_weakly_inferred_deposit_accounts():
    lines = _dedent(
        """
        Credit Card Account Summary
        Minimum Payment Due $35.00
        Credit Limit $5,000.00
        Previous Balance $500.00
        New Balance $350.00
        Primary Account: 0000 Savings
        Ending Balance $9,999.00
        """
    )
    signals = DocumentSignals.scan(lines)
    buckets = group_hits(find_balance_hits(lines, signals), signals)
    assert list(buckets) == [AccountKind.CREDIT_CARD]
    card = buckets[AccountKind.CREDIT_CARD]
    assert (card.begin, card.end) == ("500.00", "350.00")


def test_period_table_uses_leftmost_amount():
    lines = _dedent(
        """
        Checking Summary
        This Period Year-to-Date
        Beginning Balance $1,000.00 $900.00
        Ending Balance $1,200.00 $1,500.00
        """
    )
    hits = {h.family: h.amount for h in find_balance_hits(lines)}
    assert hits == {"begin": "1000.00", "end": "1200.00"}


def test_rightmost_amount_outside_tables():
    lines = ["Savings Summary", "Ending Balance as shown 2 accounts $12.00 $840.25"]
    hits = find_balance_hits(lines)
    assert [h.amount for h in hits] == ["840.25"]


def test_daily_balance_lines_are_not_summary_labels():
    lines = ["Daily Ending Balance $100.00", "Average Ending Balance $90.00"]
    assert find_balance_hits(lines) == []


CARD_PURCHASES_ON_CHECKING = _dedent(
    """
    Checking Summary
    Statement Period 03/01/2026 - 03/31/2026
    Beginning Balance $1,000.00
    Ending Balance $900.00
    Withdrawals
    03/05/2026 VISA DEBIT PURCHASE CARD ENDING 1234 COFFEE 4.50
    03/06/2026 MASTERCARD RECURRING NETFLIX 15.99
    """
)


def test_card_networks_in_transactions_do_not_make_a_credit_card_document():
    assert not DocumentSignals.scan(CARD_PURCHASES_ON_CHECKING).is_credit_card


def test_checking_statement_with_debit_card_purchases_keeps_balances(today):
    options = ExtractionOptions(mode=ExtractionMode.SUMMARY, today=today, layout_fallback=False)
    rows = extract_rows_from_lines(CARD_PURCHASES_ON_CHECKING, options).rows
    assert rows == [
        CanonicalRow("03/01/2026", "Statement Beginning Balance", "0", "1000.00", "checking"),
        CanonicalRow("03/31/2026", "Statement Ending Balance", "0", "900.00", "checking"),
    ]


def test_credit_card_document_keeps_deposit_account_under_its_own_heading():
    lines = _dedent(
        """
        Credit Card Account Summary
        Minimum Payment Due $35.00
        Credit Limit $5,000.00
        Previous Balance $500.00
        New Balance $350.00
        """
    ) + [PAGE_BREAK, "Checking Summary", "Ending Balance $1,250.00"]
    signals = DocumentSignals.scan(lines)
    assert signals.is_credit_card
    buckets = group_hits(find_balance_hits(lines, signals), signals)
    assert set(buckets) == {AccountKind.CREDIT_CARD, AccountKind.CHECKING}
    assert buckets[AccountKind.CHECKING].anchored
    assert buckets[AccountKind.CHECKING].end == "1250.00"
    assert buckets[AccountKind.CREDIT_CARD].end == "350.00"
