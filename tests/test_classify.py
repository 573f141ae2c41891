from statement_pipeline.classify import (
    DocumentSignals,
    HeaderSignal,
    classify_line,
    detect_flow,
    detect_section,
    infer_account_at,
    is_checking_header,
    is_savings_header,
    page_defaults,
)
from statement_pipeline.constants import PAGE_BREAK
from statement_pipeline.models import AccountKind, FlowKind, SectionKind

LOAN_DOC = ["Mortgage Statement", "Principal Balance $150,000.00", "Escrow Balance $1,200.00"]
CARD_DOC = ["Minimum Payment Due $35.00", "Credit Limit $5,000.00", "Available Credit $4,650.00"]


def test_header_signals():
    assert is_savings_header("Savings Summary") is HeaderSignal.STRONG
    assert is_savings_header("SAVINGS") is HeaderSignal.WEAK
    assert is_checking_header("Online transfer from checking") is HeaderSignal.NONE
    # A weak savings mention on a line that also names checking is not a savings header.
    assert is_savings_header("CHECKING AND SAVINGS") is HeaderSignal.NONE


def test_classify_line_prefers_specific_kinds():
    assert classify_line("Savings Summary") is AccountKind.SAVINGS
    assert classify_line("SAVINGS") is AccountKind.SAVINGS
    assert classify_line("Credit Card Account Summary") is AccountKind.CREDIT_CARD
    assert classify_line("Automatic transfer to savings") is None
    assert classify_line("Coffee shop on Main Street downtown location") is None


def test_weak_signals_ignored_in_loan_documents():
    signals = DocumentSignals.scan(LOAN_DOC)
    assert signals.is_loan
    assert classify_line("Options") is AccountKind.INVESTMENT
    assert classify_line("Options", signals) is None


def test_document_signals_dominant_kind():
    card = DocumentSignals.scan(CARD_DOC)
    assert card.is_credit_card
    assert not card.is_loan
    assert card.dominant_kind() is AccountKind.CREDIT_CARD
    assert DocumentSignals.scan(["Checking Summary"]).dominant_kind() is None


def test_infer_account_at_stops_at_page_break():
    lines = [
        "Savings Summary",
        "Beginning Balance $10.00",
        PAGE_BREAK,
        "Beginning Balance $20.00",
    ]
    assert infer_account_at(lines, 1) is AccountKind.SAVINGS
    assert infer_account_at(lines, 3) is AccountKind.UNKNOWN
    assert infer_account_at(lines, 3, override=AccountKind.LOAN) is AccountKind.LOAN


def test_infer_account_at_looks_forward():
    lines = ["Beginning Balance $10.00", "Checking Account Summary"]
    assert infer_account_at(lines, 0) is AccountKind.CHECKING


def test_page_defaults():
    lines = ["Checking Summary", "x", PAGE_BREAK, "nothing here", PAGE_BREAK, "SAVINGS"]
    assert page_defaults(lines) == {0: AccountKind.CHECKING, 2: AccountKind.SAVINGS}


def test_flow_and_section_headings():
    assert detect_flow("Deposits and Additions") is FlowKind.DEPOSIT
    assert detect_flow("Electronic Withdrawals") is FlowKind.WITHDRAWAL
    assert detect_flow("Total Deposits and Additions") is None
    assert detect_flow("Deposits $1,200.00") is None
    assert detect_section("Account Summary") is SectionKind.ACCOUNT_SUMMARY
    assert detect_section("Holdings") is SectionKind.HOLDINGS
    assert detect_section("Transaction Detail") is SectionKind.ACTIVITY
