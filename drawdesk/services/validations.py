"""Pre-approval checks for a draw request.

A draw is valid when no line asks for more than its budget has left and
none of its invoices duplicates another invoice of the project. Missing
invoices and weak matches only raise flags for the reviewer.
"""
import logging
from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from drawdesk.models.draw import DrawRequestLine
from drawdesk.models.enums import DrawLineFlag
from drawdesk.models.invoice import Invoice
from drawdesk.schemas.terms import DEFAULT_MATCHING_CONFIG, MatchingConfig
from drawdesk.schemas.validation import (
    BudgetOverage,
    DrawValidation,
    DrawValidationResponse,
    DuplicateInvoice,
    LineAmountCheck,
    MissingInvoice,
    ValidationFlag,
)
from drawdesk.services.draws import get_draw
from drawdesk.services.invoice_flags import line_needs_invoice

logger = logging.getLogger(__name__)

LINE_FLAG_ALERTS = {
    DrawLineFlag.AMOUNT_MISMATCH: ValidationFlag.VARIANCE_ALERT,
    DrawLineFlag.NO_INVOICE: ValidationFlag.NO_INVOICE_MATCH,
}


def format_usd(amount: Decimal) -> str:
    whole = amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if whole < 0 else ""
    return f"{sign}${abs(whole):,}"


def find_duplicate_invoices(
    invoices: Sequence[Invoice], project_invoices: Sequence[Invoice]
) -> list[DuplicateInvoice]:
    """Invoices sharing vendor, amount and invoice date with another project invoice."""

    duplicates: list[DuplicateInvoice] = []
    for invoice in invoices:
        if not invoice.vendor_name or invoice.amount is None:
            continue
        match = next(
            (
                other
                for other in project_invoices
                if other.id != invoice.id
                and other.vendor_name == invoice.vendor_name
                and other.amount == invoice.amount
                and other.invoice_date == invoice.invoice_date
            ),
            None,
        )
        if match is not None:
            duplicates.append(
                DuplicateInvoice(
                    invoice_id=invoice.id,
                    vendor=invoice.vendor_name,
                    amount=invoice.amount,
                    matched_with=match.id,
                )
            )
    return duplicates


def validate_draw_request(
    db: Session,
    draw_request_id: int,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> DrawValidation:
    draw = get_draw(db, draw_request_id)
    lines = db.execute(
        select(DrawRequestLine)
        .options(selectinload(DrawRequestLine.budget))
        .where(DrawRequestLine.draw_request_id == draw.id)
        .order_by(DrawRequestLine.id.asc())
    ).scalars().all()

    validation = DrawValidation()
    flags: list[ValidationFlag] = []
    for line in lines:
        budget = line.budget
        requested = line.amount_requested or Decimal("0")

        if budget is not None and requested > budget.remaining_amount:
            validation.overages.append(
                BudgetOverage(
                    line_id=line.id,
                    budget_id=budget.id,
                    category=budget.category,
                    requested=requested,
                    remaining=budget.remaining_amount,
                    overage=requested - budget.remaining_amount,
                )
            )
            flags.append(ValidationFlag.BUDGET_OVERAGE)

        if line_needs_invoice(line):
            validation.missing_invoices.append(
                MissingInvoice(
                    line_id=line.id,
                    category=budget.category if budget is not None else "Unknown",
                    amount=requested,
                )
            )
            flags.append(ValidationFlag.MISSING_INVOICE)

        line_flags = frozenset(line.flags or ())
        flags.extend(alert for flag, alert in LINE_FLAG_ALERTS.items() if flag in line_flags)

        if line.confidence_score is not None and float(line.confidence_score) < config.low_confidence_threshold:
            flags.append(ValidationFlag.LOW_CONFIDENCE_MATCH)

    invoices = db.execute(
        select(Invoice).where(Invoice.draw_request_id == draw.id).order_by(Invoice.id.asc())
    ).scalars().all()
    if invoices:
        project_invoices = db.execute(
            select(Invoice).where(Invoice.project_id == draw.project_id).order_by(Invoice.id.asc())
        ).scalars().all()
        validation.duplicate_invoices = find_duplicate_invoices(invoices, project_invoices)
        if validation.duplicate_invoices:
            flags.append(ValidationFlag.DUPLICATE_INVOICE)

    validation.flags = list(dict.fromkeys(flags))
    logger.info(
        "Draw request validated",
        extra={
            "draw_request_id": draw.id,
            "overages": len(validation.overages),
            "missing_invoices": len(validation.missing_invoices),
            "duplicate_invoices": len(validation.duplicate_invoices),
        },
    )
    return validation


def approval_blockers(validation: DrawValidation) -> list[str]:
    blockers = []
    if validation.overages:
        blockers.append(f"{len(validation.overages)} budget line(s) exceed remaining funds")
    if validation.duplicate_invoices:
        blockers.append(f"{len(validation.duplicate_invoices)} potential duplicate invoice(s) detected")
    return blockers


def validate_line_amount(requested: Decimal, remaining: Decimal) -> LineAmountCheck:
    """Check one requested amount against what is left on its budget."""

    if requested <= 0:
        return LineAmountCheck(valid=False, message="Amount must be greater than zero")
    if requested > remaining:
        return LineAmountCheck(
            valid=False,
            message=f"Amount exceeds remaining budget by {format_usd(requested - remaining)}",
        )
    return LineAmountCheck(valid=True)


def validation_summary(validation: DrawValidation) -> str:
    issues = []
    if validation.overages:
        issues.append(f"{len(validation.overages)} budget overage(s)")
    if validation.missing_invoices:
        issues.append(f"{len(validation.missing_invoices)} line(s) missing documentation")
    if validation.duplicate_invoices:
        issues.append(f"{len(validation.duplicate_invoices)} duplicate invoice(s)")
    if not issues:
        return "No validation issues found"
    return ", ".join(issues)


def draw_validation_report(db: Session, draw_request_id: int) -> DrawValidationResponse:
    validation = validate_draw_request(db, draw_request_id)
    blockers = approval_blockers(validation)
    return DrawValidationResponse(
        draw_request_id=draw_request_id,
        is_valid=validation.is_valid,
        can_approve=not blockers,
        blockers=blockers,
        summary=validation_summary(validation),
        validation=validation,
    )


__all__ = [
    "approval_blockers",
    "draw_validation_report",
    "find_duplicate_invoices",
    "format_usd",
    "validate_draw_request",
    "validate_line_amount",
    "validation_summary",
]
