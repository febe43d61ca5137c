"""Match learning: training capture, vendor history and manual corrections.

Every funded draw turns its matched invoices into training records and
strengthens the vendor -> budget category associations used by the
training sub-score. Corrections made by a reviewer are recorded as
``manual_override`` decisions.
"""
import logging
from collections import defaultdict
from collections.abc import Iterable

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from drawdesk.models.draw import DrawRequestLine
from drawdesk.models.enums import DecisionSource, DecisionType, MatchStatus
from drawdesk.models.invoice import Invoice, InvoiceMatchDecision
from drawdesk.models.learning import InvoiceMatchTraining, VendorCategoryAssociation
from drawdesk.schemas.invoice import MatchCorrectionCreate, TrainingCaptureResult
from drawdesk.schemas.matching import ExtractedInvoiceData, MatchContext
from drawdesk.services.draw_lines import apply_invoice_to_line, confidence_decimal, detach_invoice
from drawdesk.services.invoice_flags import reconcile_no_invoice_flags
from drawdesk.utils.errors import error_response, not_found
from drawdesk.utils.fuzzy import normalize_vendor_name
from drawdesk.utils.time import utcnow

logger = logging.getLogger(__name__)

MATCHED_STATUSES = (MatchStatus.AUTO_MATCHED, MatchStatus.AI_MATCHED, MatchStatus.MANUALLY_MATCHED)
TRAINING_KEYWORD_LIMIT = 50


def vendor_history(
    db: Session,
    vendor_name: str | None,
    categories: Iterable[str] = (),
) -> MatchContext:
    """Build the training signal for one vendor and the candidate categories."""

    normalized = normalize_vendor_name(vendor_name)
    vendor_matches: dict[str, int] = {}
    if normalized:
        rows = db.execute(
            select(VendorCategoryAssociation.budget_category, VendorCategoryAssociation.match_count).where(
                VendorCategoryAssociation.vendor_name_normalized == normalized
            )
        ).all()
        vendor_matches = {row.budget_category: row.match_count for row in rows}

    training_keywords: dict[str, list[list[str]]] = defaultdict(list)
    wanted = sorted(set(categories))
    if wanted:
        records = db.execute(
            select(InvoiceMatchTraining.budget_category, InvoiceMatchTraining.keywords)
            .where(InvoiceMatchTraining.budget_category.in_(wanted))
            .order_by(InvoiceMatchTraining.id.desc())
        ).all()
        for record in records:
            bucket = training_keywords[record.budget_category]
            if record.keywords and len(bucket) < TRAINING_KEYWORD_LIMIT:
                bucket.append([str(word) for word in record.keywords])

    return MatchContext(vendor_matches=vendor_matches, training_keywords=dict(training_keywords))


def upsert_vendor_association(db: Session, vendor_normalized: str, budget_category: str) -> None:
    """Increment the vendor/category counter, creating it on first use."""

    now = utcnow()
    result = db.execute(
        update(VendorCategoryAssociation)
        .where(
            VendorCategoryAssociation.vendor_name_normalized == vendor_normalized,
            VendorCategoryAssociation.budget_category == budget_category,
        )
        .values(match_count=VendorCategoryAssociation.match_count + 1, last_matched_at=now)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount:
        return
    db.add(
        VendorCategoryAssociation(
            vendor_name_normalized=vendor_normalized,
            budget_category=budget_category,
            match_count=1,
            last_matched_at=now,
        )
    )
    db.flush()


def _training_exists(db: Session, invoice_id: int) -> bool:
    return (
        db.execute(
            select(InvoiceMatchTraining.id).where(InvoiceMatchTraining.invoice_id == invoice_id)
        ).first()
        is not None
    )


def capture_training_data_for_draw(db: Session, draw_request_id: int) -> TrainingCaptureResult:
    """Record one training row per matched invoice of a funded draw.

    Invoices that already have a training row are skipped, so the vendor
    counters only move once per invoice.
    """

    result = TrainingCaptureResult(draw_request_id=draw_request_id)
    rows = db.execute(
        select(Invoice, DrawRequestLine)
        .join(DrawRequestLine, DrawRequestLine.id == Invoice.matched_draw_line_id)
        .where(
            Invoice.draw_request_id == draw_request_id,
            Invoice.match_status.in_(MATCHED_STATUSES),
        )
        .order_by(Invoice.id.asc())
    ).all()
    work = []
    for invoice, line in rows:
        budget = line.budget
        if budget is None:
            continue
        work.append(
            {
                "invoice_id": invoice.id,
                "project_id": invoice.project_id,
                "line_id": line.id,
                "vendor_name": invoice.vendor_name,
                "amount": invoice.amount,
                "category": budget.category,
                "nahb_category": budget.nahb_category,
                "keywords": ExtractedInvoiceData.model_validate(invoice.extracted_data or {}).keywords,
                "match_status": invoice.match_status.value,
            }
        )
    result.invoices_processed = len(work)

    for item in work:
        if _training_exists(db, item["invoice_id"]):
            continue
        vendor_normalized = normalize_vendor_name(item["vendor_name"] or "Unknown")
        try:
            db.add(
                InvoiceMatchTraining(
                    invoice_id=item["invoice_id"],
                    project_id=item["project_id"],
                    draw_request_line_id=item["line_id"],
                    vendor_name=item["vendor_name"],
                    vendor_name_normalized=vendor_normalized,
                    amount=item["amount"],
                    budget_category=item["category"],
                    nahb_category=item["nahb_category"],
                    keywords=item["keywords"],
                    match_status=item["match_status"],
                )
            )
            db.flush()
            upsert_vendor_association(db, vendor_normalized, item["category"])
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("Training record already captured", extra={"invoice_id": item["invoice_id"]})
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to capture training data", extra={"invoice_id": item["invoice_id"]})
            result.errors.append(f"invoice {item['invoice_id']}: {exc.__class__.__name__}")
            continue
        result.training_records_created += 1
        result.vendor_associations_updated += 1

    logger.info(
        "Training data captured",
        extra={
            "draw_request_id": draw_request_id,
            "records": result.training_records_created,
            "errors": len(result.errors),
        },
    )
    return result


def record_match_correction(
    db: Session, invoice_id: int, payload: MatchCorrectionCreate
) -> InvoiceMatchDecision:
    """Move an invoice to the reviewer's chosen draw line."""

    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        raise not_found("INVOICE_NOT_FOUND", "Invoice not found.")
    line = db.get(DrawRequestLine, payload.draw_request_line_id)
    if line is None:
        raise not_found("DRAW_LINE_NOT_FOUND", "Draw line not found.")
    if invoice.draw_request_id is not None and line.draw_request_id != invoice.draw_request_id:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=error_response(
                "DRAW_LINE_MISMATCH",
                "Draw line does not belong to the invoice's draw request.",
                {"draw_request_id": invoice.draw_request_id},
            ),
        )

    previous_line_id = invoice.matched_draw_line_id
    if previous_line_id is not None and previous_line_id != line.id:
        previous_line = db.get(DrawRequestLine, previous_line_id)
        if previous_line is not None:
            detach_invoice(previous_line, invoice.id)

    last_decision = db.execute(
        select(InvoiceMatchDecision)
        .where(InvoiceMatchDecision.invoice_id == invoice.id)
        .order_by(InvoiceMatchDecision.id.desc())
        .limit(1)
    ).scalar_one_or_none()

    # A human pick is treated as full confidence.
    apply_invoice_to_line(line, invoice, composite=1.0)
    invoice.match_status = MatchStatus.MANUALLY_MATCHED
    invoice.confidence_score = confidence_decimal(1.0)
    invoice.matched_draw_line_id = line.id
    if invoice.draw_request_id is None:
        invoice.draw_request_id = line.draw_request_id

    decision = InvoiceMatchDecision(
        invoice_id=invoice.id,
        decision_type=DecisionType.MANUAL_OVERRIDE,
        decision_source=DecisionSource.HUMAN,
        draw_request_line_id=line.id,
        previous_draw_line_id=previous_line_id,
        confidence_score=invoice.confidence_score,
        candidates=last_decision.candidates if last_decision is not None else [],
        reasoning=payload.reason,
        decided_by=payload.corrected_by,
    )
    db.add(decision)
    db.commit()
    db.refresh(decision)

    logger.info(
        "Match correction recorded",
        extra={
            "invoice_id": invoice.id,
            "previous_draw_line_id": previous_line_id,
            "draw_line_id": line.id,
        },
    )
    reconcile_no_invoice_flags(db, line.draw_request_id)
    return decision


__all__ = [
    "capture_training_data_for_draw",
    "record_match_correction",
    "upsert_vendor_association",
    "vendor_history",
]
