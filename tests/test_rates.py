from decimal import Decimal

from statement_pipeline.rates import extract_rate, most_frequent_rate, purchases_rate


def test_purchase_apr_beats_penalty_apr():
    lines = [
        "Account Summary",
        "Purchases $120.00",
        "Interest Charges",
        "APR 24.99%",
        "Late Payment Warning: If we do not receive your minimum payment by the due date, "
        "your APR may be increased to the Penalty APR of 29.99%.",
    ]
    quote = extract_rate(lines)
    assert quote.value == Decimal("0.2499")
    assert quote.scale == 2
    assert quote.percent == Decimal("24.99")


def test_reward_and_banking_percentages_are_not_rates():
    assert extract_rate(["Rewards Summary", "Earn 3% cash back on dining"]) is None
    assert extract_rate(["Savings Summary", "Annual Percentage Yield Earned 0.50%"]) is None


def test_zero_rate_needs_promotional_wording():
    assert extract_rate(["Interest Charges", "Purchase APR 0.00%"]) is None


def test_penalty_tier_without_purchase_context_is_rejected():
    lines = ["Interest Charges", "Cash Advance APR 29.99%", "Penalty APR may apply"]
    assert extract_rate(lines) is None


def test_range_takes_lower_bound():
    quote = extract_rate(["Interest Charges", "Purchase APR 15.99% to 24.99%"])
    assert quote.value == Decimal("0.1599")


def test_interest_charges_table_purchases_row():
    lines = [
        "Interest Charges",
        "Balance Type Annual Percentage Rate (APR) Balance Subject to Interest Rate",
        "Purchases 19.99% (v) $1,234.56",
        "Cash Advances 29.99% (v) $0.00",
    ]
    assert purchases_rate(lines).value == Decimal("0.1999")
    assert purchases_rate(["Purchases 19.99%"]) is None


def test_most_frequent_rate():
    texts = ["APR 19.99% on purchases", "Purchase APR 19.99%", "APR 24.99% for purchases"]
    assert most_frequent_rate(texts).value == Decimal("0.1999")
    # Ties go to the lower rate.
    assert most_frequent_rate(["Purchase APR 24.99%", "Purchase APR 19.99%"]).value == Decimal(
        "0.1999"
    )
    assert most_frequent_rate(["Coffee", "Groceries"]) is None


def test_zero_rate_promotional_wording_must_be_nearby():
    quote = extract_rate(["Interest Charges", "Introductory Purchase APR 0.00%"])
    assert quote.value == Decimal("0")
    lines = [
        "Special offer: ask about our travel rewards card",
        "Account Summary",
        "Payment Information",
        "Minimum Payment Due $35.00",
        "Interest Charges",
        "Purchase APR 0.00%",
    ]
    assert extract_rate(lines) is None
