"""Plain-data views of budgets, draws and draw lines consumed by the engines."""
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from drawdesk.models.enums import DrawLineFlag, DrawStatus


class BudgetSnapshot(BaseModel):
    id: int
    project_id: int | None = None
    category: str
    nahb_category: str | None = None
    nahb_subcategory: str | None = None
    current_amount: Decimal = Decimal("0")
    spent_amount: Decimal = Decimal("0")
    remaining_amount: Decimal = Decimal("0")

    model_config = ConfigDict(from_attributes=True)


class DrawLineSnapshot(BaseModel):
    id: int
    draw_request_id: int
    budget_id: int | None = None
    amount_requested: Decimal = Decimal("0")
    amount_approved: Decimal | None = None
    invoice_id: int | None = None
    matched_invoice_amount: Decimal | None = None
    confidence_score: Decimal | None = None
    variance: Decimal | None = None
    flags: frozenset[DrawLineFlag] = Field(default_factory=frozenset)

    model_config = ConfigDict(from_attributes=True)

    @field_validator("flags", mode="before")
    @classmethod
    def _none_flags(cls, value):
        return value or frozenset()

    @property
    def amount_to_record(self) -> Decimal:
        if self.amount_approved is not None:
            return self.amount_approved
        return self.amount_requested


class DrawSnapshot(BaseModel):
    id: int
    project_id: int | None = None
    draw_number: int
    status: DrawStatus
    total_amount: Decimal = Decimal("0")
    request_date: date | None = None
    funded_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ProjectSnapshot(BaseModel):
    id: int
    name: str | None = None
    loan_amount: Decimal | None = None
    loan_term_months: int | None = None
    loan_start_date: date | None = None

    model_config = ConfigDict(from_attributes=True)


class SpendResult(BaseModel):
    draw_request_id: int
    updated_count: int = 0
    skipped_count: int = 0


class FlagReconcileResult(BaseModel):
    draw_request_id: int
    has_invoices: bool
    flagged_line_ids: list[int] = Field(default_factory=list)
    cleared_line_ids: list[int] = Field(default_factory=list)


class BudgetLink(BaseModel):
    line_id: int
    budget_id: int | None
    budget_category: str | None
    amount_to_record: Decimal
    already_recorded: bool


class BudgetLinkDiagnostics(BaseModel):
    draw_request_id: int
    draw_number: int
    status: DrawStatus
    total_lines: int
    lines_with_budget: int
    lines_without_budget: int
    lines: list[BudgetLink]


class DrawLineRead(BaseModel):
    id: int
    budget_id: int | None
    amount_requested: Decimal
    amount_approved: Decimal | None
    invoice_id: int | None
    invoice_vendor_name: str | None
    matched_invoice_amount: Decimal | None
    confidence_score: Decimal | None
    variance: Decimal | None
    flags: list[DrawLineFlag]

    model_config = ConfigDict(from_attributes=True)

    @field_validator("flags", mode="before")
    @classmethod
    def _sorted_flags(cls, value):
        return sorted(value or (), key=lambda flag: DrawLineFlag(flag).value)


class DrawRequestRead(BaseModel):
    id: int
    project_id: int
    draw_number: int
    status: DrawStatus
    total_amount: Decimal
    request_date: date | None
    funded_at: datetime | None
    lines: list[DrawLineRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class FundDrawResult(BaseModel):
    draw: DrawRequestRead
    spend: SpendResult
    newly_funded: bool
