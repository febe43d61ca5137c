"""Project loan reports."""
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from drawdesk.db import get_db
from drawdesk.schemas.amortization import (
    AmortizationResponse,
    FeeScheduleResponse,
    LoanIncome,
    PayoffBreakdown,
    ProjectionPoint,
    SimulateDrawRequest,
)
from drawdesk.schemas.anomaly import AnomalyReport
from drawdesk.services import projects as projects_service

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("/{project_id}/anomalies", response_model=AnomalyReport)
def project_anomalies(project_id: int, db: Session = Depends(get_db)):
    return projects_service.anomaly_report(db, project_id)


@router.get("/{project_id}/amortization", response_model=AmortizationResponse)
def project_amortization(
    project_id: int,
    payoff_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return projects_service.amortization_report(db, project_id, payoff_date)


@router.post("/{project_id}/amortization/simulate", response_model=AmortizationResponse)
def simulate_draw(project_id: int, payload: SimulateDrawRequest, db: Session = Depends(get_db)):
    return projects_service.simulate_draw(db, project_id, payload)


@router.get("/{project_id}/fee-schedule", response_model=FeeScheduleResponse)
def fee_schedule(project_id: int, db: Session = Depends(get_db)):
    return projects_service.fee_schedule_report(db, project_id)


@router.get("/{project_id}/payoff", response_model=PayoffBreakdown)
def payoff(
    project_id: int,
    payoff_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return projects_service.payoff_report(db, project_id, payoff_date)


@router.get("/{project_id}/loan-income", response_model=LoanIncome)
def loan_income(project_id: int, db: Session = Depends(get_db)):
    return projects_service.loan_income_report(db, project_id)


@router.get("/{project_id}/projection", response_model=list[ProjectionPoint])
def projection(project_id: int, db: Session = Depends(get_db)):
    return projects_service.projection_report(db, project_id)
