"""Loan term resolution and fee escalation schedule."""
from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from pydantic import ValidationError

from drawdesk.schemas.amortization import (
    CurrentFeeRate,
    EscalationType,
    FeeChange,
    FeeScheduleRow,
    NextFeeIncrease,
)
from drawdesk.schemas.terms import DEFAULT_LOAN_TERMS, LoanTerms

logger = logging.getLogger(__name__)

# Project columns that override a LoanTerms field.
_PROJECT_TERM_FIELDS = {
    "interest_rate_annual": "interest_rate_annual",
    "origination_fee_pct": "base_fee",
    "loan_term_months": "loan_term_months",
    "loan_start_date": "loan_start_date",
    "loan_amount": "loan_amount",
}


def resolve_effective_terms(
    project: Any | None = None,
    lender_overrides: Mapping[str, Any] | None = None,
    *,
    defaults: LoanTerms = DEFAULT_LOAN_TERMS,
) -> LoanTerms:
    """Resolve loan terms with precedence project > lender > system default."""

    values: dict[str, Any] = defaults.model_dump()
    if lender_overrides:
        known = {key: value for key, value in lender_overrides.items() if key in LoanTerms.model_fields}
        ignored = sorted(set(lender_overrides) - set(known))
        if ignored:
            logger.warning("Ignoring unknown lender term overrides", extra={"keys": ignored})
        values.update({key: value for key, value in known.items() if value is not None})

    if project is not None:
        for attr, field in _PROJECT_TERM_FIELDS.items():
            value = getattr(project, attr, None)
            if value is not None:
                values[field] = value

    try:
        return LoanTerms.model_validate(values)
    except ValidationError:
        logger.exception("Invalid loan terms; falling back to system defaults")
        return defaults


def fee_rate_at_month(month: int, terms: LoanTerms = DEFAULT_LOAN_TERMS) -> Decimal:
    """Fee rate for a 1-indexed loan month.

    Months up to ``fee_escalation_after_months`` pay the base fee; the
    following months escalate linearly from ``fee_rate_at_month_7`` until the
    extension month, which jumps to ``extension_fee_rate``; every later month
    adds ``post_extension_escalation``.
    """

    if month < 1:
        raise ValueError(f"month must be >= 1, got {month}")

    if month <= terms.fee_escalation_after_months:
        return terms.base_fee

    if month < terms.extension_fee_month:
        anchor_month = terms.fee_escalation_after_months + 1
        return terms.fee_rate_at_month_7 + (month - anchor_month) * terms.fee_escalation_pct

    if month == terms.extension_fee_month:
        return terms.extension_fee_rate

    return terms.extension_fee_rate + (month - terms.extension_fee_month) * terms.post_extension_escalation


def month_number(loan_start: date, target: date) -> int:
    """1-indexed loan month containing ``target``; partial months round down."""

    months = (target.year - loan_start.year) * 12 + (target.month - loan_start.month)
    if target.day < loan_start.day:
        months -= 1
    return max(1, months + 1)


def add_months(value: date, months: int) -> date:
    """Shift ``value`` by whole months, clamping the day to the month length."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_start_date(loan_start: date, month: int) -> date:
    """Calendar date on which loan month ``month`` begins."""

    return add_months(loan_start, month - 1)


def format_rate_pct(rate: Decimal) -> str:
    return f"{rate * 100:.2f}%"


def escalation_type(month: int, terms: LoanTerms = DEFAULT_LOAN_TERMS) -> EscalationType:
    if month <= terms.fee_escalation_after_months:
        return EscalationType.BASE
    if month < terms.extension_fee_month:
        return EscalationType.STANDARD
    if month == terms.extension_fee_month:
        return EscalationType.EXTENSION
    return EscalationType.POST_EXTENSION


def next_fee_increase(
    loan_start: date,
    current: date,
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
) -> NextFeeIncrease:
    """Next month boundary at which the fee rate steps up."""

    current_month = month_number(loan_start, current)
    current_rate = fee_rate_at_month(current_month, terms)

    if current_month <= terms.fee_escalation_after_months:
        # Base period: the first increase is the first escalation month.
        next_month = terms.fee_escalation_after_months + 1
    else:
        # Escalation and post-extension periods step up every month.
        next_month = current_month + 1

    next_date = month_start_date(loan_start, next_month)
    return NextFeeIncrease(
        date=next_date,
        current_rate=current_rate,
        new_rate=fee_rate_at_month(next_month, terms),
        days_until=(next_date - current).days,
    )


def days_until_next_fee_increase(
    loan_start: date | None,
    current: date,
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
) -> int | None:
    if loan_start is None:
        return None
    return next_fee_increase(loan_start, current, terms).days_until


def generate_fee_schedule(
    loan_start: date,
    through_month: int = 18,
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
) -> list[FeeScheduleRow]:
    """One row per loan month from month 1 through ``through_month``."""

    rows: list[FeeScheduleRow] = []
    for month in range(1, through_month + 1):
        rate = fee_rate_at_month(month, terms)
        rows.append(
            FeeScheduleRow(
                month=month,
                date=month_start_date(loan_start, month),
                fee_rate=rate,
                fee_rate_pct=format_rate_pct(rate),
                is_extension_month=month == terms.extension_fee_month,
                escalation_type=escalation_type(month, terms),
            )
        )
    return rows


def fee_escalation_schedule(
    loan_start: date,
    end_date: date,
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
) -> list[FeeChange]:
    """Months in which the fee rate changes, through at least month 18."""

    end_month = max(month_number(loan_start, end_date), 18)
    changes: list[FeeChange] = []
    for month in range(max(terms.fee_escalation_after_months + 1, 2), end_month + 1):
        previous_rate = fee_rate_at_month(month - 1, terms)
        new_rate = fee_rate_at_month(month, terms)
        if abs(new_rate - previous_rate) > Decimal("0.0001"):
            changes.append(
                FeeChange(
                    month_number=month,
                    date=month_start_date(loan_start, month),
                    previous_rate=previous_rate,
                    new_rate=new_rate,
                )
            )
    return changes


def current_fee_rate(
    loan_start: date,
    current: date,
    terms: LoanTerms = DEFAULT_LOAN_TERMS,
) -> CurrentFeeRate:
    months_active = month_number(loan_start, current)
    if months_active >= terms.fee_escalation_after_months:
        next_increase = add_months(loan_start, months_active)
    else:
        next_increase = add_months(loan_start, terms.fee_escalation_after_months)
    return CurrentFeeRate(
        rate=fee_rate_at_month(months_active, terms),
        months_active=months_active,
        next_increase=next_increase,
        is_extension=months_active >= terms.extension_fee_month,
    )


def maturity_date(terms: LoanTerms) -> date | None:
    if terms.loan_start_date is None:
        return None
    return add_months(terms.loan_start_date, terms.loan_term_months)


def days_to_maturity(maturity: date | None, current: date) -> int | None:
    if maturity is None:
        return None
    return (maturity - current).days


def urgency_level(days: int) -> str:
    if days < 0:
        return "critical"
    if days <= 14:
        return "urgent"
    if days <= 30:
        return "warning"
    if days <= 60:
        return "caution"
    return "normal"


__all__ = [
    "add_months",
    "current_fee_rate",
    "days_to_maturity",
    "days_until_next_fee_increase",
    "escalation_type",
    "fee_escalation_schedule",
    "fee_rate_at_month",
    "format_rate_pct",
    "generate_fee_schedule",
    "maturity_date",
    "month_number",
    "month_start_date",
    "next_fee_increase",
    "resolve_effective_terms",
    "urgency_level",
]
