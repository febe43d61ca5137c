"""Project-level loan reports: anomalies, amortization, fees and payoff."""
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from drawdesk.models.budget import Budget
from drawdesk.models.draw import DrawRequest, DrawRequestLine
from drawdesk.models.enums import DrawStatus
from drawdesk.models.project import Project
from drawdesk.schemas.amortization import (
    AmortizationResponse,
    DrawEntry,
    FeeScheduleResponse,
    LoanIncome,
    PayoffBreakdown,
    ProjectionPoint,
    SimulateDrawRequest,
)
from drawdesk.schemas.anomaly import AnomalyReport
from drawdesk.schemas.ledger import BudgetSnapshot, DrawLineSnapshot, DrawSnapshot, ProjectSnapshot
from drawdesk.schemas.terms import LoanTerms
from drawdesk.services import amortization, anomalies, loan_terms
from drawdesk.utils.errors import not_found
from drawdesk.utils.time import today


def get_project(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise not_found("PROJECT_NOT_FOUND", "Project not found.")
    return project


def effective_terms(project: Project) -> LoanTerms:
    overrides = project.lender.term_overrides if project.lender is not None else None
    return loan_terms.resolve_effective_terms(project, overrides)


def funded_draw_entries(project: Project) -> list[DrawEntry]:
    """Funded draws as dated amounts; draws without any date are left out."""

    entries = []
    for draw in project.draws:
        if draw.status != DrawStatus.FUNDED:
            continue
        when = draw.funded_at.date() if draw.funded_at else draw.request_date
        if when is None:
            continue
        amount = sum((line.amount_to_record for line in draw.lines), Decimal("0"))
        entries.append(DrawEntry(amount=amount or draw.total_amount, date=when, draw_number=draw.draw_number))
    return entries


def anomaly_report(db: Session, project_id: int, *, as_of: date | None = None) -> AnomalyReport:
    project = get_project(db, project_id)
    budgets = db.execute(select(Budget).where(Budget.project_id == project.id)).scalars().all()
    draws = db.execute(select(DrawRequest).where(DrawRequest.project_id == project.id)).scalars().all()
    lines = db.execute(
        select(DrawRequestLine)
        .join(DrawRequest, DrawRequest.id == DrawRequestLine.draw_request_id)
        .where(DrawRequest.project_id == project.id)
        .order_by(DrawRequestLine.id.asc())
    ).scalars().all()

    found = anomalies.detect(
        [BudgetSnapshot.model_validate(budget) for budget in budgets],
        [DrawSnapshot.model_validate(draw) for draw in draws],
        [DrawLineSnapshot.model_validate(line) for line in lines],
        ProjectSnapshot.model_validate(project),
        as_of=as_of,
    )
    return AnomalyReport(project_id=project.id, counts=anomalies.count_by_severity(found), anomalies=found)


def amortization_report(
    db: Session,
    project_id: int,
    payoff_date: date | None = None,
    *,
    as_of: date | None = None,
) -> AmortizationResponse:
    project = get_project(db, project_id)
    schedule = amortization.build_schedule(
        funded_draw_entries(project), effective_terms(project), payoff_date, as_of=as_of
    )
    return AmortizationResponse(
        project_id=project.id,
        schedule=schedule,
        summary=amortization.amortization_summary(schedule),
    )


def simulate_draw(
    db: Session,
    project_id: int,
    payload: SimulateDrawRequest,
    *,
    as_of: date | None = None,
) -> AmortizationResponse:
    """What-if schedule with one extra draw; nothing is persisted."""

    project = get_project(db, project_id)
    terms = effective_terms(project)
    schedule = amortization.build_schedule(funded_draw_entries(project), terms, payload.payoff_date, as_of=as_of)
    simulated = amortization.simulate_next_draw(schedule, payload.amount, payload.date, terms, as_of=as_of)
    return AmortizationResponse(
        project_id=project.id,
        schedule=simulated,
        summary=amortization.amortization_summary(simulated),
    )


def fee_schedule_report(db: Session, project_id: int, *, as_of: date | None = None) -> FeeScheduleResponse:
    project = get_project(db, project_id)
    terms = effective_terms(project)
    loan_start = terms.loan_start_date
    if loan_start is None:
        return FeeScheduleResponse(project_id=project.id)

    current = as_of or today()
    remaining = loan_terms.days_to_maturity(loan_terms.maturity_date(terms), current)
    return FeeScheduleResponse(
        project_id=project.id,
        current=loan_terms.current_fee_rate(loan_start, current, terms),
        next_increase=loan_terms.next_fee_increase(loan_start, current, terms),
        schedule=loan_terms.generate_fee_schedule(loan_start, 18, terms),
        changes=loan_terms.fee_escalation_schedule(loan_start, project.payoff_date or current, terms),
        days_to_maturity=remaining,
        urgency=loan_terms.urgency_level(remaining) if remaining is not None else None,
    )


def payoff_report(db: Session, project_id: int, payoff_date: date | None = None) -> PayoffBreakdown:
    project = get_project(db, project_id)
    good_through = payoff_date or project.payoff_date or today()
    return amortization.payoff_breakdown(funded_draw_entries(project), good_through, effective_terms(project))


def loan_income_report(db: Session, project_id: int, *, as_of: date | None = None) -> LoanIncome:
    project = get_project(db, project_id)
    terms = effective_terms(project)
    draws = funded_draw_entries(project)
    income = amortization.loan_income(
        terms.loan_amount,
        terms.base_fee,
        terms.interest_rate_annual,
        draws,
        project.payoff_date,
        as_of=as_of,
    )
    income.irr = amortization.calculate_irr(draws, project.payoff_amount, project.payoff_date)
    return income


def projection_report(db: Session, project_id: int, *, as_of: date | None = None) -> list[ProjectionPoint]:
    project = get_project(db, project_id)
    return amortization.generate_projection(funded_draw_entries(project), effective_terms(project), as_of=as_of)


__all__ = [
    "amortization_report",
    "anomaly_report",
    "effective_terms",
    "fee_schedule_report",
    "funded_draw_entries",
    "get_project",
    "loan_income_report",
    "payoff_report",
    "projection_report",
    "simulate_draw",
]
