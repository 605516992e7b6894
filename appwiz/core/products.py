# Deposit and loan product catalogue (static business rules)

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from appwiz.remote.contract import InterestRate, LoanProduct

# Deposit categories -> deposit types offered in that category
DEPOSIT_CATEGORIES = {
    "regular": ("term-deposit", "double-money", "triple-money", "earn-fast"),
    "money-builder": ("monthly-scheme", "millionaire-scheme"),
}

# Lump-sum schemes: amount and term are fixed by the product and read-only.
# double-money is the 5-year scheme.
FIXED_TERM_PRODUCTS = {
    "double-money": (100000, 60),
    "triple-money": (100000, 120),
}

EARN_FAST = "earn-fast"
EARN_FAST_AMOUNT = 100000
EARN_FAST_TERMS = (12, 24, 36, 48, 60, 72, 84)
# term in whole years -> monthly installment (BDT); only for terms above 24 months
EARN_FAST_INSTALLMENTS = {
    2: 39959,
    3: 23242,
    4: 16435,
    5: 12390,
    6: 9727,
    7: 7852,
}

MONTHLY_SCHEME = "monthly-scheme"
MONTHLY_SCHEME_AMOUNTS = (1000, 2000, 3000, 5000, 10000, 15000, 20000)
MONTHLY_SCHEME_TERMS = (12, 24, 36, 60, 120)

LOAN_TYPES = ("Personal", "Auto", "Home")
LOAN_TENOR_MIN = 6
LOAN_TENOR_MAX = 84

_CENTS = Decimal("0.01")


def _money(x: Decimal) -> float:
    return float(x.quantize(_CENTS, rounding=ROUND_HALF_UP))


def earn_fast_installment(term_months: int) -> Optional[int]:
    if term_months <= 24 or term_months % 12 != 0:
        return None
    return EARN_FAST_INSTALLMENTS.get(term_months // 12)


def rate_for_term(rates: Iterable[InterestRate], term_months: int) -> Optional[float]:
    for r in rates:
        if r.termMonths == term_months:
            return r.ratePercent
    return None


def maturity_value(amount: float, term_months: int, rate_percent: float) -> float:
    """Simple interest: amount + amount * rate/100 * term/12."""
    a = Decimal(str(amount))
    interest = a * Decimal(str(rate_percent)) / 100 * Decimal(term_months) / 12
    return _money(a + interest)


def loan_product_for(products: Iterable[LoanProduct], loan_type: str) -> Optional[LoanProduct]:
    wanted = (loan_type or "").lower()
    for p in products:
        if p.id.lower() == wanted:
            return p
    return None


def emi(principal: float, annual_rate_percent: float, months: int) -> float:
    """Equated monthly installment: P*r*(1+r)^n / ((1+r)^n - 1), r = rate/12/100."""
    if months <= 0:
        return 0.0
    if annual_rate_percent <= 0:
        return _money(Decimal(str(principal)) / months)
    r = annual_rate_percent / 12 / 100
    factor = (1 + r) ** months
    return _money(Decimal(str(principal * r * factor / (factor - 1))))
