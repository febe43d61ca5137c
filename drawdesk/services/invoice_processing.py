"""Invoice matching pipeline run after extraction completes.

Stores the extracted fields, scores the draw's lines, then either applies a
clear single match, asks the disambiguator to choose between close
candidates, or leaves the invoice for manual review. ``NO_INVOICE`` flags on
the draw are reconciled at the end of every run.
"""
import logging

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from drawdesk.models.budget import Budget
from drawdesk.models.draw import DrawRequestLine
from drawdesk.models.enums import DecisionSource, DecisionType, DrawLineFlag, ExtractionStatus, MatchStatus
from drawdesk.models.invoice import Invoice, InvoiceMatchDecision
from drawdesk.schemas.invoice import ExtractionCallbackPayload, InvoiceRead, ProcessingResult
from drawdesk.schemas.ledger import BudgetSnapshot, DrawLineSnapshot
from drawdesk.schemas.matching import (
    ExtractedInvoiceData,
    MatchCandidate,
    MatchClassification,
    MatchClassificationStatus,
)
from drawdesk.schemas.terms import DEFAULT_MATCHING_CONFIG, MatchingConfig
from drawdesk.services.ai_selection import Disambiguator
from drawdesk.services.draw_lines import apply_invoice_to_line, confidence_decimal, detach_invoice
from drawdesk.services.invoice_flags import reconcile_no_invoice_flags
from drawdesk.services.invoice_matching import classify, generate_candidates, should_use_ai
from drawdesk.services.learning import vendor_history
from drawdesk.utils.errors import error_response, not_found

logger = logging.getLogger(__name__)

UNKNOWN_VENDOR = "Unknown Vendor"


def _get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        raise not_found("INVOICE_NOT_FOUND", "Invoice not found.")
    return invoice


def _result(
    invoice: Invoice,
    classification: MatchClassification | None = None,
    candidate_count: int = 0,
) -> ProcessingResult:
    return ProcessingResult(
        invoice=InvoiceRead.model_validate(invoice),
        classification=classification.status if classification else None,
        matched_draw_line_id=invoice.matched_draw_line_id,
        candidate_count=candidate_count,
    )


def _candidates_payload(candidates: list[MatchCandidate]) -> list[dict]:
    return [candidate.model_dump(mode="json") for candidate in candidates]


def _record_decision(
    db: Session,
    invoice: Invoice,
    *,
    decision_type: DecisionType,
    source: DecisionSource,
    classification: MatchClassification,
    draw_line_id: int | None = None,
    confidence: float | None = None,
    reasoning: str | None = None,
) -> None:
    db.add(
        InvoiceMatchDecision(
            invoice_id=invoice.id,
            decision_type=decision_type,
            decision_source=source,
            draw_request_line_id=draw_line_id,
            confidence_score=confidence_decimal(confidence),
            candidates=_candidates_payload(classification.candidates),
            reasoning=reasoning,
            decided_by=source.value,
        )
    )


def _apply_match(
    db: Session,
    invoice: Invoice,
    candidate: MatchCandidate,
    classification: MatchClassification,
    *,
    decision_type: DecisionType,
    confidence: float,
    config: MatchingConfig,
    reasoning: str | None = None,
) -> None:
    line = db.get(DrawRequestLine, candidate.draw_line_id)
    if line is None:
        raise not_found("DRAW_LINE_NOT_FOUND", "Draw line not found.")

    extra: set[DrawLineFlag] = set()
    if decision_type == DecisionType.AI_SELECTED:
        extra.add(DrawLineFlag.AI_SELECTED)
    if line.invoice_id is not None and line.invoice_id != invoice.id:
        extra.add(DrawLineFlag.DUPLICATE_INVOICE)

    apply_invoice_to_line(line, invoice, composite=confidence, config=config, extra_flags=frozenset(extra))
    invoice.match_status = (
        MatchStatus.AUTO_MATCHED if decision_type == DecisionType.AUTO_SINGLE else MatchStatus.AI_MATCHED
    )
    invoice.matched_draw_line_id = line.id
    invoice.confidence_score = confidence_decimal(confidence)
    _record_decision(
        db,
        invoice,
        decision_type=decision_type,
        source=DecisionSource.SYSTEM if decision_type == DecisionType.AUTO_SINGLE else DecisionSource.AI,
        classification=classification,
        draw_line_id=line.id,
        confidence=confidence,
        reasoning=reasoning,
    )


def _flag_for_review(
    db: Session, invoice: Invoice, classification: MatchClassification, reason: str
) -> None:
    invoice.match_status = MatchStatus.NEEDS_REVIEW
    invoice.matched_draw_line_id = None
    invoice.confidence_score = confidence_decimal(classification.confidence)
    _record_decision(
        db,
        invoice,
        decision_type=DecisionType.MANUAL_INITIAL,
        source=DecisionSource.SYSTEM,
        classification=classification,
        reasoning=reason,
    )


def _run_matching(
    db: Session,
    invoice: Invoice,
    extracted: ExtractedInvoiceData,
    *,
    disambiguator: Disambiguator | None,
    config: MatchingConfig,
) -> ProcessingResult:
    draw_request_id = invoice.draw_request_id
    lines = []
    if draw_request_id is not None:
        lines = db.execute(
            select(DrawRequestLine)
            .where(DrawRequestLine.draw_request_id == draw_request_id)
            .order_by(DrawRequestLine.id.asc())
        ).scalars().all()

    if not lines:
        invoice.match_status = MatchStatus.NO_MATCH
        invoice.matched_draw_line_id = None
        invoice.confidence_score = None
        db.commit()
        logger.info("No draw lines to match invoice against", extra={"invoice_id": invoice.id})
        return _result(invoice, MatchClassification(status=MatchClassificationStatus.NO_CANDIDATES))

    budgets = db.execute(
        select(Budget).where(Budget.project_id == invoice.project_id).order_by(Budget.id.asc())
    ).scalars().all()
    context = vendor_history(db, extracted.vendor_name, [budget.category for budget in budgets])
    candidates = generate_candidates(
        extracted,
        [DrawLineSnapshot.model_validate(line) for line in lines],
        [BudgetSnapshot.model_validate(budget) for budget in budgets],
        context,
        config,
    )
    classification = classify(candidates, config)

    if classification.status == MatchClassificationStatus.SINGLE_MATCH:
        top = classification.top_candidate
        _apply_match(
            db,
            invoice,
            top,
            classification,
            decision_type=DecisionType.AUTO_SINGLE,
            confidence=top.scores.composite,
            config=config,
        )
    elif should_use_ai(classification, enabled=disambiguator is not None):
        selection = disambiguator.select(extracted, classification.candidates)
        chosen = next(
            (c for c in classification.candidates if c.draw_line_id == selection.selected_draw_line_id),
            None,
        )
        if chosen is not None and not selection.flag_for_review:
            _apply_match(
                db,
                invoice,
                chosen,
                classification,
                decision_type=DecisionType.AI_SELECTED,
                confidence=selection.confidence,
                config=config,
                reasoning=selection.reasoning,
            )
        else:
            _flag_for_review(db, invoice, classification, selection.reasoning or "ai_flagged_for_review")
    else:
        _flag_for_review(db, invoice, classification, classification.status.value.lower())

    db.commit()
    db.refresh(invoice)
    logger.info(
        "Invoice matching completed",
        extra={
            "invoice_id": invoice.id,
            "classification": classification.status.value,
            "match_status": invoice.match_status.value,
            "candidate_count": len(candidates),
        },
    )

    reconcile_no_invoice_flags(db, draw_request_id)
    return _result(invoice, classification, len(candidates))


def process_extraction_result(
    db: Session,
    invoice_id: int,
    payload: ExtractionCallbackPayload,
    *,
    disambiguator: Disambiguator | None = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> ProcessingResult:
    """Store an extraction result and run the matching pipeline for it.

    A failed extraction is terminal: the invoice is marked
    ``extraction_failed`` and waits for an explicit retry.
    """

    invoice = _get_invoice(db, invoice_id)

    if not payload.success or not payload.extracted_data:
        invoice.extraction_status = ExtractionStatus.EXTRACTION_FAILED
        invoice.extraction_error = payload.error or "Extraction failed"
        invoice.match_status = MatchStatus.NO_MATCH
        db.commit()
        db.refresh(invoice)
        logger.warning(
            "Invoice extraction failed",
            extra={"invoice_id": invoice.id, "error": invoice.extraction_error},
        )
        return _result(invoice)

    extracted = ExtractedInvoiceData.model_validate(payload.extracted_data)
    invoice.vendor_name = extracted.vendor_name or UNKNOWN_VENDOR
    invoice.amount = extracted.amount
    invoice.invoice_number = extracted.invoice_number
    invoice.invoice_date = extracted.invoice_date
    invoice.extracted_data = payload.extracted_data
    invoice.extraction_status = ExtractionStatus.EXTRACTED
    invoice.extraction_error = None
    db.flush()

    return _run_matching(db, invoice, extracted, disambiguator=disambiguator, config=config)


def rerun_matching(
    db: Session,
    invoice_id: int,
    *,
    disambiguator: Disambiguator | None = None,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> ProcessingResult:
    """Re-run matching from stored extracted data, superseding the last decision."""

    invoice = _get_invoice(db, invoice_id)
    if invoice.extraction_status != ExtractionStatus.EXTRACTED or not invoice.extracted_data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_response(
                "INVOICE_NOT_EXTRACTED",
                "Invoice has no extracted data to match.",
                {"extraction_status": invoice.extraction_status.value},
            ),
        )

    if invoice.matched_draw_line_id is not None:
        previous = db.get(DrawRequestLine, invoice.matched_draw_line_id)
        if previous is not None:
            detach_invoice(previous, invoice.id)
    invoice.matched_draw_line_id = None
    invoice.match_status = MatchStatus.PENDING
    db.flush()

    extracted = ExtractedInvoiceData.model_validate(invoice.extracted_data)
    return _run_matching(db, invoice, extracted, disambiguator=disambiguator, config=config)


__all__ = ["process_extraction_result", "rerun_matching"]
