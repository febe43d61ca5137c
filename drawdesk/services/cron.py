"""Background jobs run by the scheduler."""
from __future__ import annotations

import logging

from sqlalchemy import String, or_, select, type_coerce
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from drawdesk.core.runtime_state import mark_reconcile_run
from drawdesk.db import get_sessionmaker
from drawdesk.models.draw import DrawRequest
from drawdesk.models.enums import DrawStatus
from drawdesk.services.budget_spend import apply_spend
from drawdesk.utils.time import utcnow

logger = logging.getLogger(__name__)

LEGACY_PAID = "paid"


def _funded_clause():
    # Rows written before the status normalisation may still hold "paid".
    return or_(
        DrawRequest.status == DrawStatus.FUNDED,
        type_coerce(DrawRequest.status, String) == LEGACY_PAID,
    )


def reconcile_funded_draws_once(db_session: Session | None = None) -> dict[str, int]:
    """Re-run spend reconciliation for every funded draw.

    Lines already recorded are skipped, so this only picks up lines whose
    earlier attempt failed to store.
    """

    db = db_session or get_sessionmaker()()
    totals = {"draws": 0, "updated": 0, "skipped": 0, "failed": 0}
    try:
        draw_ids = db.execute(
            select(DrawRequest.id).where(_funded_clause()).order_by(DrawRequest.id)
        ).scalars().all()
        for draw_id in draw_ids:
            try:
                result = apply_spend(db, draw_id, actor="scheduler")
            except SQLAlchemyError:
                db.rollback()
                totals["failed"] += 1
                logger.exception("Scheduled spend reconciliation failed", extra={"draw_request_id": draw_id})
                continue
            totals["draws"] += 1
            totals["updated"] += result.updated_count
            totals["skipped"] += result.skipped_count
    finally:
        if db_session is None:
            db.close()

    mark_reconcile_run(utcnow())
    logger.info("Scheduled spend reconciliation completed", extra=totals)
    return totals


__all__ = ["reconcile_funded_draws_once"]
