"""Draw request validation schemas."""
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class ValidationFlag(str, Enum):
    BUDGET_OVERAGE = "BUDGET_OVERAGE"
    MISSING_INVOICE = "MISSING_INVOICE"
    VARIANCE_ALERT = "VARIANCE_ALERT"
    NO_INVOICE_MATCH = "NO_INVOICE_MATCH"
    LOW_CONFIDENCE_MATCH = "LOW_CONFIDENCE_MATCH"
    DUPLICATE_INVOICE = "DUPLICATE_INVOICE"


class BudgetOverage(BaseModel):
    line_id: int
    budget_id: int
    category: str
    requested: Decimal
    remaining: Decimal
    overage: Decimal


class MissingInvoice(BaseModel):
    line_id: int
    category: str
    amount: Decimal


class DuplicateInvoice(BaseModel):
    invoice_id: int
    vendor: str | None
    amount: Decimal | None
    matched_with: int


class DrawValidation(BaseModel):
    overages: list[BudgetOverage] = Field(default_factory=list)
    missing_invoices: list[MissingInvoice] = Field(default_factory=list)
    duplicate_invoices: list[DuplicateInvoice] = Field(default_factory=list)
    flags: list[ValidationFlag] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.overages and not self.duplicate_invoices


class LineAmountCheck(BaseModel):
    valid: bool
    message: str | None = None


class DrawValidationResponse(BaseModel):
    draw_request_id: int
    is_valid: bool
    can_approve: bool
    blockers: list[str] = Field(default_factory=list)
    summary: str
    validation: DrawValidation
