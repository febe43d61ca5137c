"""Fee schedule, amortization and payoff schemas."""
import datetime as dt
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class EscalationType(str, Enum):
    BASE = "base"
    STANDARD = "standard"
    EXTENSION = "extension"
    POST_EXTENSION = "post_extension"


class FeeScheduleRow(BaseModel):
    month: int
    date: dt.date
    fee_rate: Decimal
    fee_rate_pct: str
    is_extension_month: bool
    escalation_type: EscalationType


class FeeChange(BaseModel):
    month_number: int
    date: dt.date
    previous_rate: Decimal
    new_rate: Decimal


class NextFeeIncrease(BaseModel):
    date: dt.date
    current_rate: Decimal
    new_rate: Decimal
    days_until: int


class CurrentFeeRate(BaseModel):
    rate: Decimal
    months_active: int
    next_increase: dt.date | None = None
    is_extension: bool


class DrawEntry(BaseModel):
    """A funded amount on a date, input to the amortization schedule."""

    amount: Decimal
    date: dt.date
    draw_number: int | None = None


class RowType(str, Enum):
    DRAW = "draw"
    INTEREST = "interest"
    PAYOFF = "payoff"


class AmortizationRow(BaseModel):
    date: dt.date
    draw_number: int | None = None
    type: RowType
    description: str
    amount: Decimal
    days: int
    interest: Decimal
    fee_rate: Decimal
    balance: Decimal
    cumulative_interest: Decimal


class AmortizationSummary(BaseModel):
    total_draws: int = 0
    max_principal: Decimal = Decimal("0")
    current_principal: Decimal = Decimal("0")
    total_interest: Decimal = Decimal("0")
    total_days: int = 0
    avg_daily_interest: Decimal = Decimal("0")


class InterestProjection(BaseModel):
    interest: Decimal
    total: Decimal
    days_diff: int
    per_diem: Decimal


class AmortizationResponse(BaseModel):
    project_id: int
    schedule: list[AmortizationRow]
    summary: AmortizationSummary


class SimulateDrawRequest(BaseModel):
    amount: Decimal = Field(gt=Decimal("0"))
    date: dt.date
    payoff_date: dt.date | None = None


class PayoffBreakdown(BaseModel):
    principal_balance: Decimal
    accrued_interest: Decimal
    days_of_interest: int
    per_diem: Decimal
    finance_fee: Decimal
    fee_rate: Decimal
    fee_rate_pct: str
    document_fee: Decimal
    credits: Decimal = Decimal("0")
    total_payoff: Decimal
    good_through_date: dt.date
    is_extension: bool
    month_number: int


class LoanIncome(BaseModel):
    fee: Decimal
    interest: Decimal
    total: Decimal
    irr: float | None = None


class ProjectionPoint(BaseModel):
    month: int
    date: dt.date
    fee_rate: Decimal
    fee_rate_pct: Decimal
    cumulative_fee: Decimal
    cumulative_interest: Decimal
    total_payoff: Decimal
    principal_balance: Decimal
    is_actual: bool
    is_current_month: bool
    is_extension_month: bool


class FeeScheduleResponse(BaseModel):
    project_id: int
    current: CurrentFeeRate | None = None
    next_increase: NextFeeIncrease | None = None
    schedule: list[FeeScheduleRow] = Field(default_factory=list)
    changes: list[FeeChange] = Field(default_factory=list)
    days_to_maturity: int | None = None
    urgency: str | None = None
