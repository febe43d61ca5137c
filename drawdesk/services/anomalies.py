"""Budget anomaly detection.

Pure functions over budget, draw and draw-line snapshots. Every rule is
evaluated independently and the result is ordered critical, warning, info.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from drawdesk.schemas.anomaly import Anomaly, AnomalySeverity, AnomalyType
from drawdesk.schemas.ledger import BudgetSnapshot, DrawLineSnapshot, DrawSnapshot, ProjectSnapshot
from drawdesk.schemas.terms import DEFAULT_ANOMALY_THRESHOLDS, AnomalyThresholds
from drawdesk.utils.time import today

ZERO = Decimal("0")


def _usd(amount: Decimal | float) -> str:
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return f"${value:,.0f}"
    return f"${value:,.2f}"


def _pct(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


def detect(
    budgets: Sequence[BudgetSnapshot],
    draws: Sequence[DrawSnapshot],
    draw_lines: Sequence[DrawLineSnapshot],
    project: ProjectSnapshot,
    thresholds: AnomalyThresholds = DEFAULT_ANOMALY_THRESHOLDS,
    *,
    as_of: date | None = None,
) -> list[Anomaly]:
    """Detect budget and spending anomalies for a project."""

    as_of = as_of or today()
    anomalies: list[Anomaly] = []

    budgets_by_id = {budget.id: budget for budget in budgets}
    draws_by_id = {draw.id: draw for draw in draws}
    lines_by_budget: dict[int, list[DrawLineSnapshot]] = defaultdict(list)
    for line in draw_lines:
        if line.budget_id is not None:
            lines_by_budget[line.budget_id].append(line)

    total_budget = sum((budget.current_amount or ZERO for budget in budgets), ZERO)
    total_spent = sum((budget.spent_amount or ZERO for budget in budgets), ZERO)
    days_since_start = (as_of - project.loan_start_date).days if project.loan_start_date else None

    for budget in budgets:
        current = budget.current_amount or ZERO
        spent = budget.spent_amount or ZERO
        if current == 0 and spent == 0:
            continue

        if current > 0 and spent > current:
            anomalies.append(_over_budget(budget, current, spent, thresholds))
        elif current > 0:
            near = _near_budget(budget, current, spent, thresholds)
            if near is not None:
                anomalies.append(near)

        for line in lines_by_budget.get(budget.id, ()):
            spike = _spending_spike(budget, current, line, draws_by_id, thresholds)
            if spike is not None:
                anomalies.append(spike)

        if current > 0 and spent == 0 and days_since_start is not None and days_since_start > thresholds.dormant_days:
            anomalies.append(
                Anomaly(
                    type=AnomalyType.DORMANT_CATEGORY,
                    severity=AnomalySeverity.INFO,
                    budget_id=budget.id,
                    category=budget.category,
                    message=(
                        f"{budget.category} has {_usd(current)} allocated but no draws after "
                        f"{days_since_start} days"
                    ),
                    suggestion="Verify this category is still needed or if work has been delayed.",
                    data={"budget_amount": current, "days_since_loan_start": days_since_start},
                )
            )

        if total_spent > 0 and float(spent / total_spent) > thresholds.concentration_pct:
            concentration = float(spent / total_spent)
            anomalies.append(
                Anomaly(
                    type=AnomalyType.CONCENTRATION_RISK,
                    severity=AnomalySeverity.INFO,
                    budget_id=budget.id,
                    category=budget.category,
                    message=f"{budget.category} represents {_pct(concentration)} of total spend",
                    suggestion=(
                        "High concentration in a single category - verify this aligns with project progress."
                    ),
                    data={
                        "category_spent": spent,
                        "total_spent": total_spent,
                        "concentration": _pct(concentration),
                    },
                )
            )

    for line in draw_lines:
        variance = _large_variance(line, budgets_by_id, thresholds)
        if variance is not None:
            anomalies.append(variance)

    anomalies.extend(_velocity(project, total_budget, total_spent, days_since_start, thresholds))

    # sorted() is stable, so rule order is kept within a severity.
    return sorted(anomalies, key=lambda anomaly: anomaly.severity.rank)


def _over_budget(
    budget: BudgetSnapshot, current: Decimal, spent: Decimal, thresholds: AnomalyThresholds
) -> Anomaly:
    overage = spent - current
    overage_pct = (float(spent / current) - 1) * 100
    severity = AnomalySeverity.CRITICAL if overage_pct > thresholds.critical_overage_pct else AnomalySeverity.WARNING
    return Anomaly(
        type=AnomalyType.OVER_BUDGET,
        severity=severity,
        budget_id=budget.id,
        category=budget.category,
        message=f"{budget.category} is {overage_pct:.1f}% over budget ({_usd(overage)} overage)",
        suggestion="Review if a change order is needed to increase the budget allocation.",
        data={
            "budget_amount": current,
            "spent_amount": spent,
            "overage_amount": overage,
            "overage_percentage": f"{overage_pct:.1f}%",
        },
    )


def _near_budget(
    budget: BudgetSnapshot, current: Decimal, spent: Decimal, thresholds: AnomalyThresholds
) -> Anomaly | None:
    utilization = float(spent / current)
    if not thresholds.near_budget_ratio <= utilization < thresholds.over_budget_ratio:
        return None
    remaining = current - spent
    return Anomaly(
        type=AnomalyType.NEAR_BUDGET,
        severity=AnomalySeverity.INFO,
        budget_id=budget.id,
        category=budget.category,
        message=f"{budget.category} is at {_pct(utilization)} utilization",
        suggestion=f"Monitor closely - only {_usd(remaining)} remaining.",
        data={"utilization": _pct(utilization), "remaining": remaining},
    )


def _spending_spike(
    budget: BudgetSnapshot,
    current: Decimal,
    line: DrawLineSnapshot,
    draws_by_id: dict[int, DrawSnapshot],
    thresholds: AnomalyThresholds,
) -> Anomaly | None:
    amount = line.amount_to_record
    if current <= 0 or float(amount) <= float(current) * thresholds.spike_pct:
        return None
    share = float(amount / current)
    draw = draws_by_id.get(line.draw_request_id)
    return Anomaly(
        type=AnomalyType.SPENDING_SPIKE,
        severity=AnomalySeverity.WARNING,
        budget_id=budget.id,
        draw_id=line.draw_request_id,
        line_id=line.id,
        category=budget.category,
        message=f"Large draw in {budget.category}: {_usd(amount)} ({_pct(share)} of budget)",
        suggestion="Verify this is expected for this category and review supporting documentation.",
        data={
            "draw_number": draw.draw_number if draw else "Unknown",
            "line_amount": amount,
            "budget_amount": current,
            "percentage": _pct(share),
        },
    )


def _large_variance(
    line: DrawLineSnapshot,
    budgets_by_id: dict[int, BudgetSnapshot],
    thresholds: AnomalyThresholds,
) -> Anomaly | None:
    requested = line.amount_requested or ZERO
    invoice_amount = line.matched_invoice_amount
    if not invoice_amount or requested <= 0:
        return None
    variance = float(abs(requested - invoice_amount) / requested)
    if variance <= thresholds.variance_pct:
        return None
    budget = budgets_by_id.get(line.budget_id) if line.budget_id is not None else None
    return Anomaly(
        type=AnomalyType.LARGE_VARIANCE,
        severity=AnomalySeverity.WARNING if variance > thresholds.variance_warning_pct else AnomalySeverity.INFO,
        budget_id=line.budget_id,
        draw_id=line.draw_request_id,
        line_id=line.id,
        category=budget.category if budget else None,
        message=(
            f"Variance of {_pct(variance)} between requested ({_usd(requested)}) "
            f"and invoice ({_usd(invoice_amount)})"
        ),
        suggestion="Review the invoice and draw request amounts to ensure they align.",
        data={
            "requested_amount": requested,
            "invoice_amount": invoice_amount,
            "variance_percentage": _pct(variance),
        },
    )


def _velocity(
    project: ProjectSnapshot,
    total_budget: Decimal,
    total_spent: Decimal,
    days_since_start: int | None,
    thresholds: AnomalyThresholds,
) -> list[Anomaly]:
    if days_since_start is None or not project.loan_term_months or total_budget <= 0:
        return []

    months_elapsed = days_since_start / thresholds.days_per_month
    expected = months_elapsed / project.loan_term_months
    actual = float(total_spent / total_budget)
    data = {
        "months_elapsed": f"{months_elapsed:.1f}",
        "expected_progress": _pct(expected),
        "actual_progress": _pct(actual),
    }

    found: list[Anomaly] = []
    if actual > expected * thresholds.velocity_high_ratio and months_elapsed > thresholds.velocity_high_min_months:
        found.append(
            Anomaly(
                type=AnomalyType.VELOCITY_HIGH,
                severity=AnomalySeverity.WARNING,
                message=(
                    f"Project is spending faster than expected: {_pct(actual)} spent after "
                    f"{_pct(expected)} of term"
                ),
                suggestion="Review if construction is ahead of schedule or if there are cost overruns.",
                data=dict(data),
            )
        )
    if actual < expected * thresholds.velocity_low_ratio and months_elapsed > thresholds.velocity_low_min_months:
        found.append(
            Anomaly(
                type=AnomalyType.VELOCITY_LOW,
                severity=AnomalySeverity.INFO,
                message=(
                    f"Project spending is slower than expected: {_pct(actual)} spent after "
                    f"{_pct(expected)} of term"
                ),
                suggestion="Check if there are construction delays or if draws are being held.",
                data=dict(data),
            )
        )
    return found


def count_by_severity(anomalies: Sequence[Anomaly]) -> dict[AnomalySeverity, int]:
    counts = {severity: 0 for severity in AnomalySeverity}
    for anomaly in anomalies:
        counts[anomaly.severity] += 1
    return counts


def budget_anomalies(budget_id: int, anomalies: Sequence[Anomaly]) -> list[Anomaly]:
    return [anomaly for anomaly in anomalies if anomaly.budget_id == budget_id]


def budget_severity(budget_id: int, anomalies: Sequence[Anomaly]) -> AnomalySeverity | None:
    """Highest severity raised against a budget, if any."""

    found = budget_anomalies(budget_id, anomalies)
    if not found:
        return None
    return min((anomaly.severity for anomaly in found), key=lambda severity: severity.rank)


__all__ = ["budget_anomalies", "budget_severity", "count_by_severity", "detect"]
