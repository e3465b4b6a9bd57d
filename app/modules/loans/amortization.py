"""
Fixed-payment amortization.

monthly_rate = annual_rate / 100 / 12
payment = principal * r * (1 + r)^n / ((1 + r)^n - 1)

Figures are rounded to cents (ROUND_HALF_UP) as each entry is created. The
last installment takes whatever principal is left so the principals add up to
the loan amount exactly and the balance ends at zero.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Union

from dateutil.relativedelta import relativedelta

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def monthly_rate(annual_rate: Number) -> Decimal:
    return Decimal(str(annual_rate)) / Decimal(100) / Decimal(12)


@dataclass
class ScheduleEntry:
    installment_number: int
    due_date: datetime
    amount: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal


def calculate_monthly_payment(principal: Number, annual_rate: Number, term_months: int) -> Decimal:
    if term_months < 1:
        raise ValueError("term_months must be at least 1")

    principal = Decimal(str(principal))
    rate = monthly_rate(annual_rate)
    if rate == 0:
        return to_money(principal / term_months)

    factor = (1 + rate) ** term_months
    return to_money(principal * rate * factor / (factor - 1))


def generate_repayment_schedule(
    principal: Number,
    annual_rate: Number,
    term_months: int,
    start_date: datetime
) -> List[ScheduleEntry]:
    amount = to_money(principal)
    rate = monthly_rate(annual_rate)
    payment = calculate_monthly_payment(amount, annual_rate, term_months)

    schedule: List[ScheduleEntry] = []
    balance = amount

    for number in range(1, term_months + 1):
        interest = to_money(balance * rate)
        if number == term_months:
            principal_portion = balance
        else:
            principal_portion = min(payment - interest, balance)
        balance = balance - principal_portion

        schedule.append(ScheduleEntry(
            installment_number=number,
            due_date=start_date + relativedelta(months=number),
            amount=principal_portion + interest,
            principal=principal_portion,
            interest=interest,
            remaining_balance=balance,
        ))

    return schedule


def total_interest(principal: Number, annual_rate: Number, term_months: int) -> Decimal:
    """Interest paid over the life of the loan, following the schedule"""
    schedule = generate_repayment_schedule(principal, annual_rate, term_months, datetime.utcnow())
    return sum((entry.interest for entry in schedule), ZERO)
