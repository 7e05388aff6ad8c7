"""
Interest and payoff projections.

Pure functions of an account's outstanding balance, minimum due and
estimated APR. Nothing here parses messages.

Payoff horizon for balance B, payment P and monthly rate r:

    months = ceil(-ln(1 - B*r/P) / ln(1 + r))

A payment of B*r or less never amortizes; such scenarios are reported with
``converges=False`` and ``months=None`` instead of looping or raising.
"""

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Optional, Union

from debttrack.parsers.sms.models import CreditCardRecord

CENT = Decimal("0.01")
MONTHS_PER_YEAR = 12
RECOMMENDED_FRACTION = Decimal("0.10")

Number = Union[Decimal, int, float, str]


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class InterestProjection:
    """Interest accrued on a balance if nothing is paid."""
    monthly: Decimal
    quarterly: Decimal
    yearly: Decimal

    def to_dict(self) -> dict:
        return {"monthly": str(self.monthly), "quarterly": str(self.quarterly), "yearly": str(self.yearly)}


@dataclass
class PaymentScenario:
    """Payoff horizon at a fixed monthly payment."""
    payment_amount: Decimal
    months: Optional[int]
    total_interest: Optional[Decimal]
    savings_vs_minimum: Optional[Decimal] = None
    converges: bool = True

    def to_dict(self) -> dict:
        return {
            "payment_amount": str(self.payment_amount),
            "months": self.months,
            "total_interest": str(self.total_interest) if self.total_interest is not None else None,
            "savings_vs_minimum": str(self.savings_vs_minimum) if self.savings_vs_minimum is not None else None,
            "converges": self.converges,
        }


@dataclass
class ProjectionSet:
    """Minimum, double-minimum and recommended (10% of balance) scenarios."""
    balance: Decimal
    annual_rate_percent: Decimal
    interest: InterestProjection
    min_payment: PaymentScenario
    double_payment: PaymentScenario
    recommended_payment: PaymentScenario

    def to_dict(self) -> dict:
        return {
            "balance": str(self.balance),
            "annual_rate_percent": str(self.annual_rate_percent),
            "interest": self.interest.to_dict(),
            "min_payment": self.min_payment.to_dict(),
            "double_payment": self.double_payment.to_dict(),
            "recommended_payment": self.recommended_payment.to_dict(),
        }


@dataclass
class MinimumPaymentWarning:
    """What paying only the minimum due costs."""
    remaining_balance: Decimal
    monthly_interest: Decimal
    months_to_payoff: Optional[int]
    total_interest: Optional[Decimal]
    recommended_payment: Decimal


def monthly_rate(annual_rate_percent: Number) -> Decimal:
    """Monthly rate as a fraction, e.g. 36% APR -> 0.03."""
    return Decimal(str(annual_rate_percent)) / Decimal(100) / Decimal(MONTHS_PER_YEAR)


def interest_projection(balance: Number, annual_rate_percent: Number) -> InterestProjection:
    """Monthly, quarterly (3 months compounded) and yearly (12 months) interest."""
    balance = Decimal(str(balance))
    rate = monthly_rate(annual_rate_percent)
    growth = Decimal(1) + rate
    return InterestProjection(
        monthly=_money(balance * rate),
        quarterly=_money(balance * (growth ** 3 - 1)),
        yearly=_money(balance * (growth ** 12 - 1)),
    )


def payoff_months(balance: Number, payment: Number, rate: Decimal) -> Optional[int]:
    """
    Months to clear a balance at a fixed payment.

    Returns:
        Number of months, 0 for a zero balance, or None when the payment
        never amortizes the balance
    """
    balance = Decimal(str(balance))
    payment = Decimal(str(payment))
    if balance <= 0:
        return 0
    if payment <= 0:
        return None
    if rate == 0:
        return int((balance / payment).to_integral_value(rounding=ROUND_CEILING))
    if payment <= balance * rate:
        return None

    months = -(Decimal(1) - balance * rate / payment).ln() / (Decimal(1) + rate).ln()
    return int(months.to_integral_value(rounding=ROUND_CEILING))


def payoff_scenario(balance: Number, payment: Number, rate: Decimal) -> PaymentScenario:
    """Scenario for one payment level; total interest = payment x months - balance."""
    balance = Decimal(str(balance))
    payment = _money(Decimal(str(payment)))
    months = payoff_months(balance, payment, rate)
    if months is None:
        return PaymentScenario(payment_amount=payment, months=None, total_interest=None, converges=False)
    total_interest = max(_money(payment * months - balance), Decimal("0.00"))
    return PaymentScenario(payment_amount=payment, months=months, total_interest=total_interest)


def _savings(baseline: PaymentScenario, scenario: PaymentScenario) -> Optional[Decimal]:
    if baseline.total_interest is None or scenario.total_interest is None:
        return None
    return baseline.total_interest - scenario.total_interest


def compute_projections(account: CreditCardRecord) -> Optional[ProjectionSet]:
    """
    Projections for one account.

    Balance is total due, else current balance. Returns None when the
    balance or the minimum due is unknown.
    """
    balance = account.outstanding
    minimum = account.minimum_due
    if balance is None or minimum is None or minimum <= 0:
        return None

    rate = monthly_rate(account.estimated_apr)
    min_scenario = payoff_scenario(balance, minimum, rate)
    double_scenario = payoff_scenario(balance, minimum * 2, rate)
    recommended = max(balance * RECOMMENDED_FRACTION, minimum)
    recommended_scenario = payoff_scenario(balance, recommended, rate)

    min_scenario.savings_vs_minimum = Decimal("0.00") if min_scenario.converges else None
    double_scenario.savings_vs_minimum = _savings(min_scenario, double_scenario)
    recommended_scenario.savings_vs_minimum = _savings(min_scenario, recommended_scenario)

    return ProjectionSet(
        balance=balance,
        annual_rate_percent=account.estimated_apr,
        interest=interest_projection(balance, account.estimated_apr),
        min_payment=min_scenario,
        double_payment=double_scenario,
        recommended_payment=recommended_scenario,
    )


def minimum_payment_warning(account: CreditCardRecord) -> Optional[MinimumPaymentWarning]:
    """Cost of paying only the minimum due on the current total due."""
    balance = account.outstanding
    minimum = account.minimum_due
    if balance is None or minimum is None or minimum <= 0:
        return None

    rate = monthly_rate(account.estimated_apr)
    remaining = max(balance - minimum, Decimal(0))
    scenario = payoff_scenario(balance, minimum, rate)
    return MinimumPaymentWarning(
        remaining_balance=_money(remaining),
        monthly_interest=_money(remaining * rate),
        months_to_payoff=scenario.months,
        total_interest=scenario.total_interest,
        recommended_payment=_money(balance * RECOMMENDED_FRACTION),
    )
