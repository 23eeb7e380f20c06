"""
Loan Accounting Engine

Pure, stateless simple-interest calculations. No I/O and no rounding of
monetary values: every amount is an exact Decimal and only display
formatting rounds.

    interest      = principal * years * (rate / 100)
    total_amount  = principal + interest
    monthly_emi   = total_amount / (years * 12)
    balance       = max(0, total_amount - amount_paid)
    emis_left     = ceil(balance / monthly_emi)
"""

from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_EVEN, getcontext
from dataclasses import dataclass
from typing import Union

from .exceptions import InvalidLoanParameters, InvalidLoanState

# High precision for financial calculations
getcontext().prec = 28

Numeric = Union[Decimal, int, str]

ZERO = Decimal('0')
MONTHS_PER_YEAR = 12

# A non-terminating EMI (e.g. 1000 / 36) is stored to 28 significant digits,
# so balance / emi can land a hair above a whole number. The installment
# count is settled at this many places before taking the ceiling.
INSTALLMENT_COUNT_PLACES = Decimal('1e-12')
# quantize() needs the whole part plus 12 places to fit in the context precision
SETTLE_BELOW_MAGNITUDE = 15
# Amounts at or above this cannot be carried exactly through pricing and
# display at the context precision
MAX_AMOUNT = Decimal('1e18')


@dataclass(frozen=True)
class LoanQuote:
    """Total payable and monthly installment for a set of loan terms"""
    total_amount: Decimal
    monthly_emi: Decimal


@dataclass(frozen=True)
class BalanceState:
    """Point-in-time balance of a loan"""
    amount_paid: Decimal
    balance_amount: Decimal
    emis_left: int


def to_decimal(value: Numeric) -> Decimal:
    """Convert int/str/Decimal to Decimal; raises ValueError for anything else"""
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Expected a decimal string, int or Decimal, got {type(value).__name__}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")


def _positive_decimal(name: str, value: Numeric) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise InvalidLoanParameters(f"{name}: {e}")
    if not amount.is_finite() or amount <= ZERO:
        raise InvalidLoanParameters(f"{name} must be a positive number, got {value}")
    return amount


def _positive_years(value: Numeric) -> int:
    years = _positive_decimal("Loan period", value)
    if years != years.to_integral_value():
        raise InvalidLoanParameters(f"Loan period must be a whole number of years, got {value}")
    return int(years)


def quote_loan(principal: Numeric, period_years: Numeric, annual_rate_percent: Numeric) -> LoanQuote:
    """
    Price a simple-interest loan.

    Args:
        principal: Amount lent, > 0
        period_years: Term in whole years, > 0
        annual_rate_percent: Yearly interest rate in percent (10 means 10%), > 0

    Returns:
        LoanQuote with the exact total payable and monthly EMI

    Raises:
        InvalidLoanParameters: If any input is non-positive or not a number,
            or the total payable reaches MAX_AMOUNT
    """
    principal = _positive_decimal("Principal", principal)
    years = _positive_years(period_years)
    rate = _positive_decimal("Interest rate", annual_rate_percent)

    interest = principal * years * (rate / Decimal('100'))
    total_amount = principal + interest
    if total_amount >= MAX_AMOUNT:
        raise InvalidLoanParameters(f"Total amount payable must be below {MAX_AMOUNT:f}, got {total_amount}")
    monthly_emi = total_amount / (years * MONTHS_PER_YEAR)

    return LoanQuote(total_amount=total_amount, monthly_emi=monthly_emi)


def derive_balance(total_amount: Decimal, monthly_emi: Decimal, payments_sum: Decimal) -> BalanceState:
    """
    Derive amount paid, outstanding balance and EMIs left.

    Over-payment is absorbed: the balance floors at zero and no credit is
    tracked. A trailing partial installment still counts as one EMI.

    Raises:
        InvalidLoanState: If monthly_emi is not positive
    """
    if monthly_emi <= ZERO:
        raise InvalidLoanState(f"Monthly EMI must be positive, got {monthly_emi}")

    amount_paid = payments_sum
    balance_amount = max(ZERO, total_amount - amount_paid)

    if balance_amount == ZERO:
        emis_left = 0
    else:
        ratio = balance_amount / monthly_emi
        if ratio.adjusted() < SETTLE_BELOW_MAGNITUDE:
            ratio = ratio.quantize(INSTALLMENT_COUNT_PLACES, rounding=ROUND_HALF_EVEN)
        # a positive balance always has at least one installment left
        emis_left = max(1, int(ratio.to_integral_value(rounding=ROUND_CEILING)))

    return BalanceState(amount_paid=amount_paid, balance_amount=balance_amount, emis_left=emis_left)


def is_paid_off(balance_amount: Decimal) -> bool:
    """True once nothing is outstanding"""
    return balance_amount <= ZERO
