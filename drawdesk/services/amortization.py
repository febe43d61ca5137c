"""Interest accrual schedule, payoff and loan income calculations.

Interest is simple daily accrual on the outstanding principal,
``balance * annual_rate / 365 * days``, chained period by period. Interest is
never capitalised, so the running balance is always the sum of the draws.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from drawdesk.schemas.amortization import (
    AmortizationRow,
    AmortizationSummary,
    DrawEntry,
    InterestProjection,
    LoanIncome,
    PayoffBreakdown,
    ProjectionPoint,
    RowType,
)
from drawdesk.schemas.terms import DEFAULT_LOAN_TERMS, LoanTerms
from drawdesk.services.loan_terms import (
    fee_rate_at_month,
    format_rate_pct,
    month_number,
    month_start_date,
)
from drawdesk.utils.time import days_between, today

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
DAYS_PER_YEAR = Decimal("365")
PROJECTION_DAYS_PER_MONTH = 30


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _accrue(balance: Decimal, annual_rate: Decimal, days: int) -> Decimal:
    if balance <= 0 or annual_rate <= 0 or days <= 0:
        return Decimal("0.00")
    return _money(balance * annual_rate / DAYS_PER_YEAR * days)


def _fee_rate_on(loan_start: date, on: date, terms: LoanTerms) -> Decimal:
    return fee_rate_at_month(month_number(loan_start, on), terms)


def per_diem(balance: Decimal, annual_rate: Decimal) -> Decimal:
    """Daily interest on ``balance``; zero for non-positive inputs."""

    if balance <= 0 or annual_rate <= 0:
        return Decimal("0.00")
    return _money(balance * annual_rate / DAYS_PER_YEAR)


def build_schedule(
    draws: Sequence[DrawEntry],
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
    payoff_date: date | None = None,
    *,
    as_of: date | None = None,
) -> list[AmortizationRow]:
    """Build the draw-by-draw accrual schedule.

    Draws are sorted by date. Each draw row carries the interest accrued on
    the prior balance since the previous row. A closing row runs from the
    last draw to ``payoff_date`` (type ``payoff``) or to ``as_of``/today
    (type ``interest``). Returns an empty schedule when there are no draws or
    the loan has no start date.
    """

    loan_start = terms.loan_start_date
    if loan_start is None or not draws:
        return []

    annual_rate = terms.interest_rate_annual
    ordered = sorted(draws, key=lambda entry: entry.date)

    rows: list[AmortizationRow] = []
    balance = Decimal("0")
    cumulative = Decimal("0.00")
    previous = loan_start

    for entry in ordered:
        days = days_between(previous, entry.date)
        interest = _accrue(balance, annual_rate, days)
        cumulative += interest
        balance += entry.amount
        rows.append(
            AmortizationRow(
                date=entry.date,
                draw_number=entry.draw_number,
                type=RowType.DRAW,
                description=f"Draw #{entry.draw_number}" if entry.draw_number else "Draw",
                amount=entry.amount,
                days=days,
                interest=interest,
                fee_rate=_fee_rate_on(loan_start, entry.date, terms),
                balance=balance,
                cumulative_interest=cumulative,
            )
        )
        previous = entry.date

    end = payoff_date or as_of or today()
    final_days = days_between(previous, end)
    final_interest = _accrue(balance, annual_rate, final_days)
    cumulative += final_interest
    rows.append(
        AmortizationRow(
            date=end,
            draw_number=None,
            type=RowType.PAYOFF if payoff_date else RowType.INTEREST,
            description="Payoff" if payoff_date else "Current",
            amount=Decimal("0"),
            days=final_days,
            interest=final_interest,
            fee_rate=_fee_rate_on(loan_start, end, terms),
            balance=balance,
            cumulative_interest=cumulative,
        )
    )
    return rows


def project_interest_at_date(
    schedule: Sequence[AmortizationRow],
    target: date,
    annual_rate: Decimal,
) -> InterestProjection:
    """Extrapolate accrued interest from the last schedule row to ``target``."""

    if not schedule:
        zero = Decimal("0.00")
        return InterestProjection(interest=zero, total=zero, days_diff=0, per_diem=zero)

    last = schedule[-1]
    days = days_between(last.date, target)
    interest = last.cumulative_interest + _accrue(last.balance, annual_rate, days)
    return InterestProjection(
        interest=interest,
        total=last.balance + interest,
        days_diff=days,
        per_diem=per_diem(last.balance, annual_rate),
    )


def simulate_next_draw(
    schedule: Sequence[AmortizationRow],
    amount: Decimal,
    draw_date: date,
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
    *,
    as_of: date | None = None,
) -> list[AmortizationRow]:
    """Return a copy of ``schedule`` with a hypothetical draw appended.

    A trailing non-draw row is replaced; a new closing ``Current
    (Simulated)`` row accrues from the simulated draw to ``as_of``/today.
    """

    if not schedule:
        return build_schedule([DrawEntry(amount=amount, date=draw_date)], terms, as_of=as_of)

    loan_start = terms.loan_start_date or draw_date
    annual_rate = terms.interest_rate_annual
    rows = list(schedule)
    last = rows[-1]

    # Interest is measured from the last row, even when it is the closing one.
    days = days_between(last.date, draw_date)
    interest = _accrue(last.balance, annual_rate, days)
    cumulative = last.cumulative_interest + interest
    balance = last.balance + amount

    if last.type != RowType.DRAW:
        rows.pop()

    rows.append(
        AmortizationRow(
            date=draw_date,
            draw_number=None,
            type=RowType.DRAW,
            description="Simulated Draw",
            amount=amount,
            days=days,
            interest=interest,
            fee_rate=_fee_rate_on(loan_start, draw_date, terms),
            balance=balance,
            cumulative_interest=cumulative,
        )
    )

    end = as_of or today()
    trailing_days = days_between(draw_date, end)
    trailing_interest = _accrue(balance, annual_rate, trailing_days)
    rows.append(
        AmortizationRow(
            date=end,
            draw_number=None,
            type=RowType.INTEREST,
            description="Current (Simulated)",
            amount=Decimal("0"),
            days=trailing_days,
            interest=trailing_interest,
            fee_rate=_fee_rate_on(loan_start, end, terms),
            balance=balance,
            cumulative_interest=cumulative + trailing_interest,
        )
    )
    return rows


def amortization_summary(schedule: Sequence[AmortizationRow]) -> AmortizationSummary:
    if not schedule:
        return AmortizationSummary()

    last = schedule[-1]
    total_days = sum(row.days for row in schedule)
    return AmortizationSummary(
        total_draws=sum(1 for row in schedule if row.type == RowType.DRAW),
        max_principal=max(row.balance for row in schedule),
        current_principal=last.balance,
        total_interest=last.cumulative_interest,
        total_days=total_days,
        avg_daily_interest=_money(last.cumulative_interest / total_days) if total_days else Decimal("0.00"),
    )


def total_payoff(
    principal: Decimal,
    interest: Decimal,
    document_fee: Decimal = Decimal("1000"),
    finance_fee: Decimal = Decimal("0"),
    credits: Decimal = Decimal("0"),
) -> Decimal:
    return principal + interest + document_fee + finance_fee - credits


def payoff_breakdown(
    draws: Sequence[DrawEntry],
    payoff_date: date,
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
) -> PayoffBreakdown:
    """Payoff figure good through ``payoff_date``.

    The finance fee is the loan amount times the fee rate of the payoff month.
    """

    schedule = build_schedule(draws, terms, payoff_date)
    summary = amortization_summary(schedule)
    loan_start = terms.loan_start_date or payoff_date
    month = month_number(loan_start, payoff_date)
    rate = fee_rate_at_month(month, terms)
    finance_fee = _money((terms.loan_amount or Decimal("0")) * rate)
    credits = Decimal("0")

    return PayoffBreakdown(
        principal_balance=summary.current_principal,
        accrued_interest=summary.total_interest,
        days_of_interest=summary.total_days,
        per_diem=per_diem(summary.current_principal, terms.interest_rate_annual),
        finance_fee=finance_fee,
        fee_rate=rate,
        fee_rate_pct=format_rate_pct(rate),
        document_fee=terms.document_fee,
        credits=credits,
        total_payoff=total_payoff(
            summary.current_principal,
            summary.total_interest,
            terms.document_fee,
            finance_fee,
            credits,
        ),
        good_through_date=payoff_date,
        is_extension=month >= terms.extension_fee_month,
        month_number=month,
    )


def project_payoff_at_date(
    breakdown: PayoffBreakdown,
    future_date: date,
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
) -> PayoffBreakdown:
    """Roll ``breakdown`` forward to ``future_date`` at its per diem."""

    days = days_between(breakdown.good_through_date, future_date)
    accrued = breakdown.accrued_interest + breakdown.per_diem * days
    loan_start = terms.loan_start_date or breakdown.good_through_date
    month = month_number(loan_start, future_date)
    rate = fee_rate_at_month(month, terms)
    fee_base = terms.loan_amount if terms.loan_amount is not None else breakdown.principal_balance
    finance_fee = _money(fee_base * rate)

    return breakdown.model_copy(
        update={
            "accrued_interest": accrued,
            "days_of_interest": breakdown.days_of_interest + days,
            "finance_fee": finance_fee,
            "fee_rate": rate,
            "fee_rate_pct": format_rate_pct(rate),
            "total_payoff": total_payoff(
                breakdown.principal_balance,
                accrued,
                breakdown.document_fee,
                finance_fee,
                breakdown.credits,
            ),
            "good_through_date": future_date,
            "is_extension": month >= terms.extension_fee_month,
            "month_number": month,
        }
    )


def loan_income(
    loan_amount: Decimal | None,
    fee_pct: Decimal | None,
    annual_rate: Decimal | None,
    funded_draws: Sequence[DrawEntry],
    payoff_date: date | None = None,
    *,
    as_of: date | None = None,
) -> LoanIncome:
    """Origination fee plus simple interest on each funded draw until payoff."""

    fee = (loan_amount or Decimal("0")) * (fee_pct or Decimal("0"))
    end = payoff_date or as_of or today()
    rate = annual_rate or Decimal("0")
    interest = Decimal("0")
    for entry in funded_draws:
        days = days_between(entry.date, end)
        interest += entry.amount * rate / DAYS_PER_YEAR * days
    return LoanIncome(fee=_money(fee), interest=_money(interest), total=_money(fee + interest))


def calculate_irr(
    funded_draws: Sequence[DrawEntry],
    payoff_amount: Decimal | None,
    payoff_date: date | None,
    *,
    initial_rate: float = 0.1,
    max_iterations: int = 100,
    tolerance: float = 1e-4,
) -> float | None:
    """Annualised IRR of draws out and payoff in, by Newton-Raphson.

    Returns ``None`` without a payoff or funded draws, or when the iteration
    does not settle on a plausible rate.
    """

    if not payoff_amount or payoff_date is None or not funded_draws:
        return None

    flows = [(entry.date, -float(entry.amount)) for entry in funded_draws]
    flows.append((payoff_date, float(payoff_amount)))
    flows.sort(key=lambda flow: flow[0])
    first = flows[0][0]
    timed = [((when - first).days / 365.0, amount) for when, amount in flows]

    rate = initial_rate
    for _ in range(max_iterations):
        npv = 0.0
        derivative = 0.0
        for years, amount in timed:
            npv += amount / (1 + rate) ** years
            derivative -= years * amount / (1 + rate) ** (years + 1)

        if abs(npv) < tolerance:
            return round(rate, 4)
        if abs(derivative) < 1e-10:
            break

        candidate = rate - npv / derivative
        if candidate < -0.99:
            rate = -0.5
        elif candidate > 10:
            rate = 5.0
        else:
            rate = candidate

    if -0.99 < rate < 5:
        return round(rate, 4)
    logger.info("IRR did not converge", extra={"last_rate": rate})
    return None


def generate_projection(
    draws: Sequence[DrawEntry],
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
    through_month: int = 18,
    *,
    as_of: date | None = None,
) -> list[ProjectionPoint]:
    """Monthly fee and interest projection using 30-day months."""

    loan_start = terms.loan_start_date
    if loan_start is None:
        return []

    current_month = month_number(loan_start, as_of or today())
    loan_amount = terms.loan_amount or Decimal("0")

    draws_by_month: dict[int, Decimal] = {}
    for entry in draws:
        month = month_number(loan_start, entry.date)
        draws_by_month[month] = draws_by_month.get(month, Decimal("0")) + entry.amount

    points: list[ProjectionPoint] = []
    balance = Decimal("0")
    cumulative_interest = Decimal("0.00")
    for month in range(1, through_month + 1):
        balance += draws_by_month.get(month, Decimal("0"))
        cumulative_interest += _accrue(balance, terms.interest_rate_annual, PROJECTION_DAYS_PER_MONTH)
        rate = fee_rate_at_month(month, terms)
        cumulative_fee = _money(loan_amount * rate + terms.document_fee)
        points.append(
            ProjectionPoint(
                month=month,
                date=month_start_date(loan_start, month),
                fee_rate=rate,
                fee_rate_pct=rate * 100,
                cumulative_fee=cumulative_fee,
                cumulative_interest=cumulative_interest,
                total_payoff=balance + cumulative_interest + cumulative_fee,
                principal_balance=balance,
                is_actual=month <= current_month,
                is_current_month=month == current_month,
                is_extension_month=month == terms.extension_fee_month,
            )
        )
    return points


__all__ = [
    "amortization_summary",
    "build_schedule",
    "calculate_irr",
    "generate_projection",
    "loan_income",
    "payoff_breakdown",
    "per_diem",
    "project_interest_at_date",
    "project_payoff_at_date",
    "simulate_next_draw",
    "total_payoff",
]
