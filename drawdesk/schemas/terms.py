"""Tunable parameters for the fee, matching and anomaly engines."""
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class LoanTerms(BaseModel):
    """Effective loan terms, resolved project > lender > system default.

    Rates are fractions (``0.02`` is 2%). ``fee_rate_at_month_7`` is the
    configured anchor for the first escalation month, not derived from
    ``base_fee``.
    """

    model_config = ConfigDict(frozen=True)

    interest_rate_annual: Decimal = Decimal("0.11")
    base_fee: Decimal = Decimal("0.02")
    fee_escalation_pct: Decimal = Decimal("0.0025")
    fee_escalation_after_months: int = Field(default=6, ge=0)
    fee_rate_at_month_7: Decimal = Decimal("0.0225")
    extension_fee_month: int = Field(default=13, ge=1)
    extension_fee_rate: Decimal = Decimal("0.059")
    post_extension_escalation: Decimal = Decimal("0.004")
    document_fee: Decimal = Decimal("1000")
    loan_term_months: int = Field(default=12, ge=1)

    loan_start_date: date | None = None
    loan_amount: Decimal | None = None


DEFAULT_LOAN_TERMS = LoanTerms()


class MatchingConfig(BaseModel):
    """Weights and thresholds for invoice-to-draw-line matching."""

    model_config = ConfigDict(frozen=True)

    weight_amount: float = 0.50
    weight_trade: float = 0.20
    weight_keywords: float = 0.15
    weight_training: float = 0.15

    auto_match_threshold: float = 0.85
    clear_winner_gap: float = 0.15
    min_candidate_score: float = 0.35
    ai_escalation_floor: float = 0.50
    max_ai_candidates: int = 5

    exact_amount_tolerance: Decimal = Decimal("50")
    exact_amount_pct: float = 0.02
    amount_mismatch_pct: float = 0.10
    low_confidence_threshold: float = 0.70


DEFAULT_MATCHING_CONFIG = MatchingConfig()


class AnomalyThresholds(BaseModel):
    """Thresholds for the budget anomaly rules."""

    model_config = ConfigDict(frozen=True)

    spike_pct: float = 0.50
    over_budget_ratio: float = 1.0
    near_budget_ratio: float = 0.90
    critical_overage_pct: float = 20.0
    dormant_days: int = 60
    concentration_pct: float = 0.40
    variance_pct: float = 0.10
    variance_warning_pct: float = 0.25
    velocity_high_ratio: float = 1.5
    velocity_high_min_months: float = 1.0
    velocity_low_ratio: float = 0.5
    velocity_low_min_months: float = 2.0
    days_per_month: int = 30


DEFAULT_ANOMALY_THRESHOLDS = AnomalyThresholds()
