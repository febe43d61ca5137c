"""Invoice API schemas."""
from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from drawdesk.models.enums import DecisionSource, DecisionType, ExtractionStatus, MatchStatus
from drawdesk.schemas.matching import MatchClassificationStatus


class InvoiceRead(BaseModel):
    id: int
    project_id: int
    draw_request_id: int | None
    vendor_name: str | None
    amount: Decimal | None
    invoice_number: str | None
    invoice_date: date | None
    extraction_status: ExtractionStatus
    match_status: MatchStatus
    confidence_score: Decimal | None
    matched_draw_line_id: int | None

    model_config = ConfigDict(from_attributes=True)


class ExtractionCallbackPayload(BaseModel):
    """Result posted back by the extraction workflow."""

    success: bool = True
    extracted_data: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("extractedData", "extracted_data")
    )
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class MatchCorrectionCreate(BaseModel):
    draw_request_line_id: int
    reason: str | None = Field(default=None, max_length=2000)
    corrected_by: str = Field(default="user", max_length=100)


class ProcessingResult(BaseModel):
    invoice: InvoiceRead
    classification: MatchClassificationStatus | None = None
    matched_draw_line_id: int | None = None
    candidate_count: int = 0


class MatchDecisionRead(BaseModel):
    id: int
    invoice_id: int
    decision_type: DecisionType
    decision_source: DecisionSource
    draw_request_line_id: int | None
    previous_draw_line_id: int | None
    confidence_score: Decimal | None
    reasoning: str | None
    decided_by: str

    model_config = ConfigDict(from_attributes=True)


class TrainingCaptureResult(BaseModel):
    draw_request_id: int
    invoices_processed: int = 0
    training_records_created: int = 0
    vendor_associations_updated: int = 0
    errors: list[str] = Field(default_factory=list)
