from datetime import date
from decimal import Decimal

import pytest

from statement_pipeline.dates import (
    detect_statement_period,
    infer_year,
    normalize_date,
    parse_flexible_date,
)
from statement_pipeline.models import FlowKind, StatementPeriod
from statement_pipeline.utils import apply_flow_sign, normalize_amount, to_decimal

SAMPLES = [
    "$1,234.56",
    "(45.00)",
    "45.00-",
    "-45.00",
    "12.00 CR",
    "12.00 DR",
    "$ 9.99 DEBIT",
    "1,000,000.00",
    "0.00",
    "",
]


@pytest.mark.parametrize("raw", SAMPLES)
def test_normalize_amount_is_idempotent(raw):
    once = normalize_amount(raw)
    assert normalize_amount(once) == once


@pytest.mark.parametrize("token", ["4.50", "$1,234.56", "17", "0.99"])
def test_parentheses_mean_negative(token):
    assert normalize_amount(f"({token})") == "-" + normalize_amount(token)


def test_normalize_amount_markers():
    assert normalize_amount("$1,234.56") == "1234.56"
    assert normalize_amount("45.00-") == "-45.00"
    assert normalize_amount("12.00 CR") == "12.00"
    assert normalize_amount("12.00 DR") == "-12.00"
    # A credit marker overrides every negative hint.
    assert normalize_amount("(12.00) CR") == "12.00"
    assert normalize_amount(None) == ""


def test_flow_sign_is_applied_after_token_sign():
    assert apply_flow_sign("4.50", FlowKind.WITHDRAWAL) == "-4.50"
    assert apply_flow_sign("-4.50", FlowKind.WITHDRAWAL) == "-4.50"
    assert apply_flow_sign("-4.50", FlowKind.DEPOSIT) == "4.50"
    assert apply_flow_sign("4.50", FlowKind.NONE) == "4.50"
    assert apply_flow_sign("0.00", FlowKind.WITHDRAWAL) == "0.00"


def test_to_decimal():
    assert to_decimal("(1,200.50)") == Decimal("-1200.50")
    assert to_decimal("n/a") is None
    assert to_decimal("") is None


def test_year_resolution_across_year_boundary():
    period = StatementPeriod(12, 2025, None, 1, 2026, None)
    assert normalize_date("12/31", period) == "12/31/2025"
    assert normalize_date("1/15", period) == "01/15/2026"


def test_year_resolution_falls_back_to_inferred_year():
    assert normalize_date("Mar 3", None, 2026) == "03/03/2026"
    assert normalize_date("2026-03-03") == "03/03/2026"
    # Nothing justifies a year: the text is passed through untouched.
    assert normalize_date("3/3") == "3/3"
    assert normalize_date("Pending") == "Pending"


def test_infer_year_prefers_closest_to_current_year():
    today = date(2026, 10, 18)
    assert infer_year(["Member since 1999", "Statement 2026", "Copyright 2024"], today) == 2026
    # Equal distance: first occurrence wins.
    assert infer_year(["Opened 2025", "Valid thru 2027"], today) == 2025
    # Amounts and out-of-range numbers are not years.
    assert infer_year(["Balance $2,025.00", "Ref 3099"], today) is None


def test_detect_statement_period_range_and_label():
    period = detect_statement_period(["Statement Period: 12/01/2025 through 01/01/2026"])
    assert period == StatementPeriod(12, 2025, 1, 1, 2026, 1)

    bare = detect_statement_period(["12/01 to 12/31"], inferred_year=2025)
    assert bare.start_date() == date(2025, 12, 1)
    assert bare.end_date() == date(2025, 12, 31)


def test_detect_statement_period_single_labeled_date():
    period = detect_statement_period(["Statement Date: 03/15/2026"])
    assert period is not None
    assert not period.is_range
    assert period.end_date() == date(2026, 3, 15)


def test_parse_flexible_date_formats():
    assert parse_flexible_date("2026-01-05") == date(2026, 1, 5)
    assert parse_flexible_date("01/05/2026") == date(2026, 1, 5)
    assert parse_flexible_date("05.01.2026", "%d.%m.%Y") == date(2026, 1, 5)
    assert parse_flexible_date("") is None
