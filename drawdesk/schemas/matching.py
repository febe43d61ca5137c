"""Invoice matching schemas."""
from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ExtractedLineItem(BaseModel):
    description: str = ""
    amount: Decimal | None = None

    model_config = ConfigDict(extra="ignore")


class ExtractedInvoiceData(BaseModel):
    """Structured fields produced by the upstream extraction step.

    Accepts both camelCase (as sent by the extraction workflow) and
    snake_case keys.
    """

    vendor_name: str = Field(default="", validation_alias=AliasChoices("vendorName", "vendor_name"))
    amount: Decimal = Decimal("0")
    invoice_number: str | None = Field(
        default=None, validation_alias=AliasChoices("invoiceNumber", "invoice_number")
    )
    invoice_date: date | None = Field(
        default=None, validation_alias=AliasChoices("invoiceDate", "invoice_date")
    )
    line_items: list[ExtractedLineItem] = Field(
        default_factory=list, validation_alias=AliasChoices("lineItems", "line_items")
    )
    construction_category: str | None = Field(
        default=None,
        validation_alias=AliasChoices("constructionCategory", "construction_category", "trade"),
    )
    keywords: list[str] = Field(default_factory=list)
    context: str | None = None
    work_type: str | None = Field(default=None, validation_alias=AliasChoices("workType", "work_type"))
    project_reference: str | None = Field(
        default=None, validation_alias=AliasChoices("projectReference", "project_reference")
    )

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("vendor_name", mode="before")
    @classmethod
    def _vendor_default(cls, value):
        return value or ""

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_default(cls, value):
        if value in (None, ""):
            return Decimal("0")
        return value

    @field_validator("invoice_date", mode="before")
    @classmethod
    def _blank_date(cls, value):
        return value or None

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords_list(cls, value):
        if not value:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class MatchContext(BaseModel):
    """Historical signal for the training sub-score.

    ``vendor_matches`` maps budget category to how often the invoice's vendor
    was matched there; ``training_keywords`` maps budget category to keyword
    lists of prior training records.
    """

    vendor_matches: dict[str, int] = Field(default_factory=dict)
    training_keywords: dict[str, list[list[str]]] = Field(default_factory=dict)

    @property
    def has_history(self) -> bool:
        return bool(self.vendor_matches) or bool(self.training_keywords)


class MatchScores(BaseModel):
    amount: float
    trade: float
    keywords: float
    training: float | None = None
    composite: float


class MatchFactors(BaseModel):
    amount_variance: float
    amount_variance_absolute: Decimal
    trade_match: bool = False
    keyword_matches: list[str] = Field(default_factory=list)
    vendor_previous_match: bool = False
    training_reason: str | None = None


class MatchCandidate(BaseModel):
    draw_line_id: int
    budget_id: int | None = None
    budget_category: str
    nahb_category: str | None = None
    amount_requested: Decimal
    scores: MatchScores
    factors: MatchFactors


class MatchClassificationStatus(str, Enum):
    SINGLE_MATCH = "SINGLE_MATCH"
    MULTIPLE_CANDIDATES = "MULTIPLE_CANDIDATES"
    AMBIGUOUS = "AMBIGUOUS"
    NO_CANDIDATES = "NO_CANDIDATES"


class MatchClassification(BaseModel):
    status: MatchClassificationStatus
    candidates: list[MatchCandidate] = Field(default_factory=list)
    top_candidate: MatchCandidate | None = None
    confidence: float = 0.0
    needs_ai: bool = False
    needs_review: bool = False


class AISelection(BaseModel):
    selected_draw_line_id: int | None = None
    confidence: float = 0.0
    reasoning: str = ""
    flag_for_review: bool = True
    primary_factor: str = "unknown"
    supporting_factors: list[str] = Field(default_factory=list)


class CoverageLine(BaseModel):
    line_id: int
    budget_category: str | None = None
    amount_requested: Decimal


class CoverageValidation(BaseModel):
    total_invoice_amount: Decimal
    total_draw_amount: Decimal
    variance: float
    variance_absolute: Decimal
    is_covered: bool
    uncovered_lines: list[CoverageLine] = Field(default_factory=list)
    flags: list[str] = Field(default_factory=list)
