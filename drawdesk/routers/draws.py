"""Draw request funding and budget reconciliation endpoints."""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from drawdesk.db import get_db
from drawdesk.schemas.ledger import BudgetLinkDiagnostics, FlagReconcileResult, FundDrawResult, SpendResult
from drawdesk.schemas.validation import DrawValidationResponse
from drawdesk.services import budget_spend
from drawdesk.services import draws as draws_service
from drawdesk.services import invoice_flags, validations

router = APIRouter(prefix="/draws", tags=["draws"])


@router.post("/{draw_id}/fund", response_model=FundDrawResult)
def fund_draw(
    draw_id: int,
    actor: str = Query("system", max_length=100),
    db: Session = Depends(get_db),
):
    return draws_service.fund_draw(db, draw_id, actor=actor)


@router.post("/{draw_id}/recalculate-budget", response_model=SpendResult)
def recalculate_budget(
    draw_id: int,
    actor: str = Query("system", max_length=100),
    db: Session = Depends(get_db),
):
    return budget_spend.recalculate_budget(db, draw_id, actor=actor)


@router.get("/{draw_id}/recalculate-budget", response_model=BudgetLinkDiagnostics)
def budget_diagnostics(draw_id: int, db: Session = Depends(get_db)):
    return budget_spend.budget_link_diagnostics(db, draw_id)


@router.post("/{draw_id}/reconcile-flags", response_model=FlagReconcileResult)
def reconcile_flags(draw_id: int, db: Session = Depends(get_db)):
    draws_service.get_draw(db, draw_id)
    return invoice_flags.reconcile_no_invoice_flags(db, draw_id)


@router.get("/{draw_id}/validation", response_model=DrawValidationResponse)
def validate_draw(draw_id: int, db: Session = Depends(get_db)):
    return validations.draw_validation_report(db, draw_id)
