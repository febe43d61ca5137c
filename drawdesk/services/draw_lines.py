"""Linking invoices to draw lines."""
from decimal import Decimal

from drawdesk.models.draw import DrawRequestLine
from drawdesk.models.enums import DrawLineFlag
from drawdesk.models.invoice import Invoice
from drawdesk.schemas.terms import DEFAULT_MATCHING_CONFIG, MatchingConfig
from drawdesk.services.invoice_matching import match_flags

# Flags recomputed whenever a line's invoice changes.
MATCH_FLAGS = frozenset(
    {
        DrawLineFlag.NO_INVOICE,
        DrawLineFlag.AMOUNT_MISMATCH,
        DrawLineFlag.LOW_CONFIDENCE,
        DrawLineFlag.AI_SELECTED,
    }
)


def confidence_decimal(score: float | None) -> Decimal | None:
    if score is None:
        return None
    return Decimal(str(round(score, 4)))


def apply_invoice_to_line(
    line: DrawRequestLine,
    invoice: Invoice,
    *,
    composite: float,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
    extra_flags: frozenset[DrawLineFlag] = frozenset(),
) -> None:
    """Copy invoice metadata onto the line and refresh its match flags.

    ``variance`` is signed: invoice amount minus requested amount.
    """

    amount = invoice.amount or Decimal("0")
    requested = line.amount_requested or Decimal("0")
    line.invoice_id = invoice.id
    line.invoice_vendor_name = invoice.vendor_name
    line.invoice_number = invoice.invoice_number
    line.invoice_date = invoice.invoice_date
    line.matched_invoice_amount = amount
    line.confidence_score = confidence_decimal(composite)
    line.variance = amount - requested

    computed = match_flags(amount, requested, composite, config) | set(extra_flags)
    line.flags = (frozenset(line.flags or ()) - MATCH_FLAGS) | computed


def detach_invoice(line: DrawRequestLine, invoice_id: int) -> bool:
    """Clear the invoice fields if ``line`` currently points at ``invoice_id``."""

    if line.invoice_id != invoice_id:
        return False
    line.invoice_id = None
    line.invoice_vendor_name = None
    line.invoice_number = None
    line.invoice_date = None
    line.matched_invoice_amount = None
    line.confidence_score = None
    line.variance = None
    line.flags = frozenset(line.flags or ()) - MATCH_FLAGS
    return True


__all__ = ["MATCH_FLAGS", "apply_invoice_to_line", "confidence_decimal", "detach_invoice"]
