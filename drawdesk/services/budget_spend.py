"""Budget spend reconciliation for funded draws."""
import logging
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from drawdesk.models.audit import AuditEvent
from drawdesk.models.budget import Budget
from drawdesk.models.draw import DrawRequest, DrawRequestLine
from drawdesk.models.enums import DrawStatus
from drawdesk.schemas.ledger import BudgetLink, BudgetLinkDiagnostics, SpendResult
from drawdesk.utils.audit import log_audit_event
from drawdesk.utils.errors import error_response, not_found

logger = logging.getLogger(__name__)

SPEND_RECORDED = "spend_recorded"
BUDGET_ENTITY = "budget"


def _get_draw(db: Session, draw_request_id: int) -> DrawRequest:
    draw = db.get(DrawRequest, draw_request_id)
    if draw is None:
        raise not_found("DRAW_NOT_FOUND", "Draw request not found.")
    return draw


def _already_recorded(db: Session, budget_id: int, draw_line_id: int) -> bool:
    stmt = (
        select(AuditEvent.id)
        .where(
            AuditEvent.entity_type == BUDGET_ENTITY,
            AuditEvent.entity_id == budget_id,
            AuditEvent.action == SPEND_RECORDED,
            AuditEvent.draw_line_id == draw_line_id,
        )
        .limit(1)
    )
    return db.execute(stmt).first() is not None


def _increment_budget_spent(db: Session, budget_id: int, amount: Decimal) -> tuple[Decimal, Decimal] | None:
    """Atomically add ``amount`` to the budget's spend and return the new (spent, remaining)."""

    stmt = (
        update(Budget)
        .where(Budget.id == budget_id)
        .values(
            spent_amount=Budget.spent_amount + amount,
            remaining_amount=Budget.current_amount - Budget.spent_amount - amount,
        )
        .execution_options(synchronize_session="fetch")
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        return None
    row = db.execute(
        select(Budget.spent_amount, Budget.remaining_amount).where(Budget.id == budget_id)
    ).one()
    return Decimal(str(row.spent_amount)), Decimal(str(row.remaining_amount))


def apply_spend(db: Session, draw_request_id: int, *, actor: str = "system") -> SpendResult:
    """Record each budget-linked line of a draw against its budget, at most once.

    The increment and its ``spend_recorded`` audit row are committed together,
    one line per transaction. A line that fails to store is rolled back and
    left for a later run.
    """

    _get_draw(db, draw_request_id)
    lines = db.execute(
        select(DrawRequestLine)
        .where(DrawRequestLine.draw_request_id == draw_request_id)
        .order_by(DrawRequestLine.id.asc())
    ).scalars().all()
    # Snapshot before the loop; a rollback expires the ORM instances.
    work = [(line.id, line.budget_id, line.amount_to_record) for line in lines]

    logger.info(
        "Applying draw spend to budgets",
        extra={"draw_request_id": draw_request_id, "line_count": len(work)},
    )

    updated = 0
    skipped = 0
    for line_id, budget_id, amount in work:
        if budget_id is None or amount <= 0:
            logger.info(
                "Skipping draw line without budget or amount",
                extra={"draw_request_id": draw_request_id, "draw_line_id": line_id},
            )
            skipped += 1
            continue

        if _already_recorded(db, budget_id, line_id):
            logger.info(
                "Draw line spend already recorded",
                extra={"draw_line_id": line_id, "budget_id": budget_id},
            )
            skipped += 1
            continue

        try:
            new_values = _increment_budget_spent(db, budget_id, amount)
            if new_values is None:
                db.rollback()
                logger.warning(
                    "Budget not found for draw line",
                    extra={"draw_line_id": line_id, "budget_id": budget_id},
                )
                skipped += 1
                continue
            new_spent, new_remaining = new_values
            previous_spent = new_spent - amount
            log_audit_event(
                db,
                entity_type=BUDGET_ENTITY,
                entity_id=budget_id,
                action=SPEND_RECORDED,
                actor=actor,
                old_data={
                    "spent_amount": previous_spent,
                    "remaining_amount": new_remaining + amount,
                },
                new_data={
                    "spent_amount": new_spent,
                    "remaining_amount": new_remaining,
                    "draw_request_id": draw_request_id,
                    "draw_line_id": line_id,
                    "amount": amount,
                },
                draw_line_id=line_id,
            )
            db.flush()
        except IntegrityError:
            # A concurrent run recorded this line first.
            db.rollback()
            logger.info(
                "Draw line spend recorded concurrently",
                extra={"draw_line_id": line_id, "budget_id": budget_id},
            )
            skipped += 1
            continue
        except SQLAlchemyError:
            db.rollback()
            logger.exception(
                "Failed to record draw line spend",
                extra={"draw_line_id": line_id, "budget_id": budget_id},
            )
            skipped += 1
            continue

        db.commit()
        updated += 1
        logger.info(
            "Budget spend recorded",
            extra={
                "budget_id": budget_id,
                "draw_line_id": line_id,
                "amount": str(amount),
                "spent_before": str(previous_spent),
                "spent_after": str(new_spent),
            },
        )

    logger.info(
        "Draw spend reconciliation completed",
        extra={"draw_request_id": draw_request_id, "updated": updated, "skipped": skipped},
    )
    return SpendResult(draw_request_id=draw_request_id, updated_count=updated, skipped_count=skipped)


def recalculate_budget(db: Session, draw_request_id: int, *, actor: str = "system") -> SpendResult:
    """Manual re-run of :func:`apply_spend`; only funded draws qualify."""

    draw = _get_draw(db, draw_request_id)
    if draw.status != DrawStatus.FUNDED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response(
                "DRAW_NOT_FUNDED",
                "Only funded draws can have budget spend recorded.",
                {"status": draw.status.value},
            ),
        )
    return apply_spend(db, draw_request_id, actor=actor)


def budget_link_diagnostics(db: Session, draw_request_id: int) -> BudgetLinkDiagnostics:
    """Describe how a draw's lines link to budgets without changing anything."""

    draw = _get_draw(db, draw_request_id)
    lines = list(draw.lines)
    line_ids = [line.id for line in lines]
    recorded: set[int] = set()
    if line_ids:
        recorded = set(
            db.execute(
                select(AuditEvent.draw_line_id).where(
                    AuditEvent.entity_type == BUDGET_ENTITY,
                    AuditEvent.action == SPEND_RECORDED,
                    AuditEvent.draw_line_id.in_(line_ids),
                )
            ).scalars()
        )

    links = []
    for line in lines:
        budget = line.budget
        category = None
        if budget is not None:
            category = budget.nahb_category or budget.builder_category_raw or budget.category
        links.append(
            BudgetLink(
                line_id=line.id,
                budget_id=line.budget_id,
                budget_category=category,
                amount_to_record=line.amount_to_record,
                already_recorded=line.id in recorded,
            )
        )

    with_budget = sum(1 for line in lines if line.budget_id is not None)
    return BudgetLinkDiagnostics(
        draw_request_id=draw.id,
        draw_number=draw.draw_number,
        status=draw.status,
        total_lines=len(lines),
        lines_with_budget=with_budget,
        lines_without_budget=len(lines) - with_budget,
        lines=links,
    )


__all__ = ["apply_spend", "budget_link_diagnostics", "recalculate_budget"]
