"""Draw request funding."""
import logging

from sqlalchemy.orm import Session

from drawdesk.models.draw import DrawRequest
from drawdesk.models.enums import DrawStatus
from drawdesk.schemas.ledger import DrawRequestRead, FundDrawResult
from drawdesk.services.budget_spend import apply_spend
from drawdesk.services.invoice_flags import reconcile_no_invoice_flags
from drawdesk.services.learning import capture_training_data_for_draw
from drawdesk.utils.audit import log_audit_event
from drawdesk.utils.errors import conflict, not_found
from drawdesk.utils.time import utcnow

logger = logging.getLogger(__name__)


def get_draw(db: Session, draw_request_id: int) -> DrawRequest:
    draw = db.get(DrawRequest, draw_request_id)
    if draw is None:
        raise not_found("DRAW_NOT_FOUND", "Draw request not found.")
    return draw


def fund_draw(db: Session, draw_request_id: int, *, actor: str = "system") -> FundDrawResult:
    """Mark a draw funded and record its spend against the budgets.

    Funding an already funded draw is allowed and only re-runs the idempotent
    spend reconciliation. Rejected draws cannot be funded.
    """

    draw = get_draw(db, draw_request_id)
    if draw.status == DrawStatus.REJECTED:
        raise conflict(
            "DRAW_REJECTED",
            "Rejected draws cannot be funded.",
            {"draw_request_id": draw.id},
        )

    newly_funded = draw.status != DrawStatus.FUNDED
    if newly_funded:
        previous_status = draw.status
        draw.status = DrawStatus.FUNDED
        draw.funded_at = utcnow()
        log_audit_event(
            db,
            entity_type="draw_request",
            entity_id=draw.id,
            action="funded",
            actor=actor,
            old_data={"status": previous_status},
            new_data={"status": DrawStatus.FUNDED, "funded_at": draw.funded_at.isoformat()},
        )
        db.commit()
        logger.info(
            "Draw funded",
            extra={"draw_request_id": draw.id, "previous_status": previous_status.value},
        )

    spend = apply_spend(db, draw.id, actor=actor)

    # Flag refresh and training capture must not undo the funding.
    try:
        reconcile_no_invoice_flags(db, draw.id)
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("Failed to reconcile draw flags after funding", extra={"draw_request_id": draw.id})
    try:
        capture_training_data_for_draw(db, draw.id)
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("Failed to capture training data after funding", extra={"draw_request_id": draw.id})

    db.refresh(draw)
    return FundDrawResult(
        draw=DrawRequestRead.model_validate(draw),
        spend=spend,
        newly_funded=newly_funded,
    )


__all__ = ["fund_draw", "get_draw"]
