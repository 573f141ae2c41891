"""Shared pattern registry and keyword tables for statement extraction.

Everything here is compiled once at import time and treated as read-only, so
the objects can be shared between concurrent parses.
"""

import re

PAGE_BREAK = "<<<PAGE_BREAK>>>"

CANONICAL_HEADERS = ["date", "description", "amount", "balance", "account"]

# Space variants that PDF text layers emit in place of an ordinary blank.
SPACE_VARIANTS = "       "
FLEX_SPACE = r"[\s" + SPACE_VARIANTS + r"]+"

MONTH_NAME = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?"
    r"|Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\.?"
)
MONTH_NUMBERS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# A 4-digit year after a month-name date must not be the head of an amount.
_NAMED_YEAR = r"(?:,?\s*\d{4}(?![\d.,]))"
DATE_TOKEN = (
    r"(?:\d{1,2}/\d{1,2}(?:/\d{2,4})?"
    r"|\d{4}-\d{2}-\d{2}"
    r"|" + MONTH_NAME + r"\s+\d{1,2}(?!\d)" + _NAMED_YEAR + r"?)"
)

_NUMBER = r"(?:\d{1,3}(?:,\d{3})+|\d+)"
MONEY_CORE = r"(?:\$\s?" + _NUMBER + r"(?:\.\d{2})?|" + _NUMBER + r"\.\d{2})"
MONEY_TOKEN = (
    r"(?<![\w,/$])(?<!\d\.)\(?[-−]?\s?"
    + MONEY_CORE
    + r"(?![\d%])-?\)?(?:\s?(?:CR|DR|CREDIT|DEBIT)\b)?"
)

DATE_START_RX = re.compile(r"^" + DATE_TOKEN + r"(?=\s|$)", re.IGNORECASE)
DATE_ANYWHERE_RX = re.compile(DATE_TOKEN, re.IGNORECASE)
MONEY_ANYWHERE_RX = re.compile(MONEY_TOKEN, re.IGNORECASE)
MONEY_ONLY_RX = re.compile(r"^" + MONEY_TOKEN + r"$", re.IGNORECASE)

# Date [PostDate] Description Amount [Balance]
ROW_RX = re.compile(
    r"^(" + DATE_TOKEN + r")(?:\s+(" + DATE_TOKEN + r"))?\s+(.*?)\s+("
    + MONEY_TOKEN + r")(?:\s+(" + MONEY_TOKEN + r"))?$",
    re.IGNORECASE,
)
# Date [PostDate] Description, no trailing amount requirement.
DATE_DESC_RX = re.compile(
    r"^(" + DATE_TOKEN + r")(?:\s+(" + DATE_TOKEN + r"))?\s+(.*)$",
    re.IGNORECASE,
)

RANGE_SEPARATOR = r"(?:through|thru|to|–|—|-)"
DATE_RANGE_RX = re.compile(
    r"^\s*(" + DATE_TOKEN + r")\s*" + RANGE_SEPARATOR + r"\s*(" + DATE_TOKEN + r")\s*$",
    re.IGNORECASE,
)
LABELED_DATE_RANGE_RX = re.compile(
    r"\b(?:statement\s+period|billing\s+period|billing\s+cycle|period|statement\s+from|for)\b"
    r"\s*:?\s*(?:from\s+)?(" + DATE_TOKEN + r")\s*" + RANGE_SEPARATOR + r"\s*(" + DATE_TOKEN + r")",
    re.IGNORECASE,
)
SINGLE_DATE_LABEL_RX = re.compile(
    r"\b(?:statement\s+(?:closing\s+)?date|closing\s+date|billing\s+date|statement\s+ending)"
    r"\s*:?\s*(" + DATE_TOKEN + r")",
    re.IGNORECASE,
)
AS_OF_DATE_RX = re.compile(r"\bas\s+of\s*:?\s*(" + DATE_TOKEN + r")", re.IGNORECASE)
AS_OF_CONTEXT_WORDS = ("balance", "principal", "loan", "mortgage", "payoff")

YEAR_RX = re.compile(r"(?<![\d$.,])((?:19|20)\d{2})(?![\d]|[.,]\d)")

# Noise: page counters, blank-page notices, bare colon headings, footnotes.
PAGE_LINE_RX = re.compile(r"^\s*page\s+\d+(?:\s+of\s+\d+)?\s*$", re.IGNORECASE)
BLANK_PAGE_RX = re.compile(r"intentionally\s+left\s+blank", re.IGNORECASE)

ACCOUNT_META_PHRASES = (
    "account number",
    "account ending",
    "account #",
    "primary account",
    "primary accountant",
)

TOTALS_PHRASES = (
    "total deposits",
    "total withdrawals",
    "total electronic withdrawals",
    "total checks",
    "total fees",
    "total additions",
    "total subtractions",
)

DEPOSIT_HEADER_RX = re.compile(
    r"\b(deposits\s+and\s+additions|deposits|additions|credits)\b", re.IGNORECASE
)
WITHDRAWAL_HEADER_RX = re.compile(
    r"\b(electronic\s+withdrawals|withdrawals|checks\s+paid|checks|fees|debits|subtractions"
    r"|purchases|charges|interest\s+charged)\b",
    re.IGNORECASE,
)

SECTION_PATTERNS = (
    ("account_summary", re.compile(r"\b(account\s+summary|summary)\b", re.IGNORECASE)),
    ("cash_flow", re.compile(r"\bcash\s+flow\b", re.IGNORECASE)),
    (
        "holdings",
        re.compile(r"\b(holdings|positions|portfolio\s+detail)\b", re.IGNORECASE),
    ),
    (
        "activity",
        re.compile(r"\b(activity|transaction\s+detail|transactions)\b", re.IGNORECASE),
    ),
)

# Account classifier keyword tables. Strong phrases carry account-summary
# terminology; weak keywords are bare mentions.
FALSE_POSITIVE_IDIOMS = (
    "from a checking",
    "from checking",
    "to checking",
    "from a savings",
    "from savings",
    "to savings",
    "transfer",
    "automatic",
)

STRONG_HEADER_PHRASES = {
    "savings": (
        "savings summary",
        "savings account",
        "savings statement",
        "money market account",
        "money market summary",
    ),
    "checking": (
        "checking summary",
        "checking account",
        "checking statement",
        "share draft",
    ),
    "investment": (
        "brokerage account",
        "brokerage summary",
        "brokerage statement",
        "investment account",
        "investment summary",
        "retirement account",
        "portfolio summary",
        "account holdings",
        "roth ira",
        "traditional ira",
        "rollover ira",
    ),
    "loan": (
        "loan number",
        "loan summary",
        "loan account",
        "loan statement",
        "mortgage statement",
        "mortgage account",
        "home equity",
    ),
    "credit_card": (
        "credit card",
        "card ending",
        "card account",
        "card summary",
    ),
}
WEAK_HEADER_RX = {
    "savings": re.compile(r"\b(savings|money\s+market)\b", re.IGNORECASE),
    "checking": re.compile(r"\bchecking\b", re.IGNORECASE),
    "investment": re.compile(
        r"\b(brokerage|investments?|ira|401\(?k\)?|portfolio|options)\b",
        re.IGNORECASE,
    ),
    "loan": re.compile(r"\b(loan|mortgage)\b", re.IGNORECASE),
    "credit_card": re.compile(r"\b(visa|mastercard|american\s+express)\b", re.IGNORECASE),
}

# Document-wide signal sets; each entry counts once per document.
DOCUMENT_SIGNAL_RX = {
    "credit_card": tuple(
        re.compile(p, re.IGNORECASE)
        for p in (
            r"minimum\s+payment",
            r"credit\s+limit",
            r"available\s+credit",
            r"payment\s+due\s+date",
            r"card\s+ending",
            r"\bvisa\b",
            r"mastercard",
            r"american\s+express",
            r"\bdiscover\s+card\b",
            r"credit\s+card\s+statement",
        )
    ),
    "loan": tuple(
        re.compile(p, re.IGNORECASE)
        for p in (
            r"principal\s+balance",
            r"outstanding\s+principal",
            r"unpaid\s+principal",
            r"\bmortgage\b",
            r"loan\s+number",
            r"\bescrow\b",
            r"maturity\s+date",
            r"payoff\s+amount",
        )
    ),
    "investment": tuple(
        re.compile(p, re.IGNORECASE)
        for p in (
            r"\bbrokerage\b",
            r"\bira\b",
            r"\broth\b",
            r"\b401\(?k\)?",
            r"\bfidelity\b",
            r"\bvanguard\b",
            r"\bschwab\b",
            r"\be\*trade\b",
            r"\bholdings\b",
            r"\bmarket\s+value\b",
            r"\bsecurities\b",
        )
    ),
    "savings": (
        re.compile(r"\bsavings\b", re.IGNORECASE),
        re.compile(r"money\s+market", re.IGNORECASE),
        re.compile(r"annual\s+percentage\s+yield|\bapy\b", re.IGNORECASE),
    ),
    "checking": (
        re.compile(r"\bchecking\b", re.IGNORECASE),
        re.compile(r"checks\s+paid", re.IGNORECASE),
        re.compile(r"debit\s+card", re.IGNORECASE),
    ),
}

# Summary balance label families.
BEGIN_BALANCE_LABELS = (
    "beginning balance",
    "opening balance",
    "previous balance",
    "prior balance",
    "starting balance",
)
END_BALANCE_LABELS = (
    "unpaid principal balance",
    "outstanding principal balance",
    "outstanding principal",
    "principal balance",
    "outstanding balance",
    "unpaid balance",
    "remaining balance",
    "ending balance",
    "closing balance",
    "current balance",
    "new balance",
    "balance as of",
    "upb",
)
LOAN_PAYMENT_LABELS = (
    "regular monthly payment",
    "current payment due",
    "total amount due",
    "payment amount",
    "amount due",
)
PERIOD_TABLE_RX = re.compile(
    r"\b(this\s+period|this\s+statement|year[-\s]to[-\s]date|ytd)\b", re.IGNORECASE
)

SUMMARY_BEGIN_DESCRIPTION = "Statement Beginning Balance"
SUMMARY_END_DESCRIPTION = "Statement Ending Balance"
LOAN_PAYMENT_DESCRIPTION = "Loan Payment Due"
SYNTHETIC_DESCRIPTIONS = (
    SUMMARY_BEGIN_DESCRIPTION,
    SUMMARY_END_DESCRIPTION,
    LOAN_PAYMENT_DESCRIPTION,
)

# Interest rate extraction.
LABELED_RATE_RX = re.compile(
    r"(?:interest\s*rate|\bapr\b)[^0-9%\n]{0,64}?(\d{1,3}(?:\.\d{1,4})?)\s*%?",
    re.IGNORECASE,
)
BARE_PERCENT_RX = re.compile(r"(?<![\d.])(\d{1,3}(?:\.\d{1,4})?)\s*%")
PERCENT_RANGE_RX = re.compile(
    r"(\d{1,3}(?:\.\d{1,4})?)\s*%?\s*(?:–|—|-|to)\s*(\d{1,3}(?:\.\d{1,4})?)\s*%",
    re.IGNORECASE,
)
RATE_HEADER_WORDS = (
    "annual percentage rate",
    "interest charges",
    "balance type",
    "interest rate",
    "annual interest rate",
)
RATE_PURCHASE_WORDS = ("purchase",)
RATE_REWARD_WORDS = (
    "cash back",
    "cashback",
    "rewards",
    "points",
    "miles",
    "bonus",
    "category",
    "dining",
    "drugstore",
    "groceries",
    "gas stations",
    "travel",
)
RATE_FX_WORDS = (
    "foreign transaction",
    "foreign exchange",
    "international transaction",
    "currency conversion",
    "conversion fee",
)
RATE_FEE_WORDS = ("transaction fee", "monthly fee", "fee-based", "pay over time")
RATE_BANKING_WORDS = (
    "savings",
    "checking",
    "annual percentage yield",
    "apy",
    "money market",
    "certificate of deposit",
)
RATE_LIABILITY_WORDS = (
    "loan",
    "mortgage",
    "home equity",
    "principal balance",
    "outstanding principal",
    "amount due",
    "payment due",
)
RATE_PENALTY_WORDS = (
    "penalty",
    "late payment",
    "late fee",
    "minimum",
    "overlimit",
    "fee",
)
RATE_PRIOR_WORDS = ("prior to", "previous", "prior")
RATE_DEMOTE_WORDS = ("cash advance", "balance transfer")
RATE_PROMO_WORDS = ("promo", "promotional", "intro", "introductory", "offer")

KNOWN_INSTITUTIONS = (
    "Chase",
    "Bank of America",
    "Wells Fargo",
    "Citibank",
    "Capital One",
    "American Express",
    "Discover",
    "U.S. Bank",
    "PNC",
    "Ally",
    "Fidelity",
    "Vanguard",
    "Charles Schwab",
    "E*TRADE",
    "Navy Federal",
    "USAA",
    "Rocket Mortgage",
    "Mr. Cooper",
)

DELIMITED_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%Y%m%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d-%b-%Y",
    "%b %d, %Y",
)
STATEMENT_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m-%d-%Y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%d %b %Y",
    "%d %b %y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%b %d, %y",
    "%B %d, %y",
)

# User-facing failure messages.
SUMMARY_FAILURE_MESSAGE = (
    "We couldn't detect statement balances in this PDF. Try Transactions mode to "
    "import activity, or export a CSV for best results."
)
TRANSACTIONS_FAILURE_MESSAGE = (
    "We couldn't find any transactions in this PDF. Try Summary mode to import "
    "balances, or export a CSV for best results."
)
DELIMITED_FAILURE_MESSAGE = (
    "No transactions, holdings or balances could be read from this file. "
    "Check the column mapping and date format."
)
