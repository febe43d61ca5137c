"""Draw line flag reconciliation."""
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from drawdesk.models.draw import DrawRequestLine
from drawdesk.models.enums import DrawLineFlag
from drawdesk.models.invoice import Invoice
from drawdesk.schemas.ledger import FlagReconcileResult

logger = logging.getLogger(__name__)


def line_needs_invoice(line: DrawRequestLine) -> bool:
    return (line.amount_requested or 0) > 0 and not line.has_invoice


def reconcile_no_invoice_flags(db: Session, draw_request_id: int) -> FlagReconcileResult:
    """Recompute ``NO_INVOICE`` on every line of a draw.

    Draws without any invoice are left alone: the flag only means something
    once the invoice workflow has started for the draw.
    """

    invoice_count = db.execute(
        select(func.count(Invoice.id)).where(Invoice.draw_request_id == draw_request_id)
    ).scalar_one()
    if not invoice_count:
        return FlagReconcileResult(draw_request_id=draw_request_id, has_invoices=False)

    lines = db.execute(
        select(DrawRequestLine)
        .where(DrawRequestLine.draw_request_id == draw_request_id)
        .order_by(DrawRequestLine.id.asc())
    ).scalars().all()

    flagged: list[int] = []
    cleared: list[int] = []
    for line in lines:
        current = frozenset(line.flags or ())
        if line_needs_invoice(line):
            desired = current | {DrawLineFlag.NO_INVOICE}
        else:
            desired = current - {DrawLineFlag.NO_INVOICE}
        if desired == current:
            continue
        line.flags = desired
        if DrawLineFlag.NO_INVOICE in desired:
            flagged.append(line.id)
        else:
            cleared.append(line.id)

    if flagged or cleared:
        db.commit()
        logger.info(
            "NO_INVOICE flags reconciled",
            extra={
                "draw_request_id": draw_request_id,
                "flagged": len(flagged),
                "cleared": len(cleared),
            },
        )

    return FlagReconcileResult(
        draw_request_id=draw_request_id,
        has_invoices=True,
        flagged_line_ids=flagged,
        cleared_line_ids=cleared,
    )


__all__ = ["line_needs_invoice", "reconcile_no_invoice_flags"]
