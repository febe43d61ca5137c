"""Schema package exports."""
from .amortization import (
    AmortizationResponse,
    AmortizationRow,
    AmortizationSummary,
    CurrentFeeRate,
    DrawEntry,
    EscalationType,
    FeeChange,
    FeeScheduleResponse,
    FeeScheduleRow,
    InterestProjection,
    LoanIncome,
    NextFeeIncrease,
    PayoffBreakdown,
    ProjectionPoint,
    RowType,
    SimulateDrawRequest,
)
from .anomaly import Anomaly, AnomalyReport, AnomalySeverity, AnomalyType
from .invoice import (
    ExtractionCallbackPayload,
    InvoiceRead,
    MatchCorrectionCreate,
    MatchDecisionRead,
    ProcessingResult,
    TrainingCaptureResult,
)
from .ledger import (
    BudgetLink,
    BudgetLinkDiagnostics,
    BudgetSnapshot,
    DrawLineRead,
    DrawLineSnapshot,
    DrawRequestRead,
    DrawSnapshot,
    FlagReconcileResult,
    FundDrawResult,
    ProjectSnapshot,
    SpendResult,
)
from .matching import (
    AISelection,
    CoverageValidation,
    ExtractedInvoiceData,
    ExtractedLineItem,
    MatchCandidate,
    MatchClassification,
    MatchClassificationStatus,
    MatchContext,
    MatchFactors,
    MatchScores,
)
from .terms import (
    DEFAULT_ANOMALY_THRESHOLDS,
    DEFAULT_LOAN_TERMS,
    DEFAULT_MATCHING_CONFIG,
    AnomalyThresholds,
    LoanTerms,
    MatchingConfig,
)
from .validation import (
    BudgetOverage,
    DrawValidation,
    DrawValidationResponse,
    DuplicateInvoice,
    LineAmountCheck,
    MissingInvoice,
    ValidationFlag,
)

__all__ = [
    "AISelection",
    "AmortizationResponse",
    "AmortizationRow",
    "AmortizationSummary",
    "Anomaly",
    "AnomalyReport",
    "AnomalySeverity",
    "AnomalyThresholds",
    "AnomalyType",
    "BudgetLink",
    "BudgetLinkDiagnostics",
    "BudgetOverage",
    "BudgetSnapshot",
    "CoverageValidation",
    "CurrentFeeRate",
    "DEFAULT_ANOMALY_THRESHOLDS",
    "DEFAULT_LOAN_TERMS",
    "DEFAULT_MATCHING_CONFIG",
    "DrawEntry",
    "DrawLineRead",
    "DrawLineSnapshot",
    "DrawRequestRead",
    "DrawSnapshot",
    "DrawValidation",
    "DrawValidationResponse",
    "DuplicateInvoice",
    "EscalationType",
    "ExtractedInvoiceData",
    "ExtractedLineItem",
    "ExtractionCallbackPayload",
    "FeeChange",
    "FeeScheduleResponse",
    "FeeScheduleRow",
    "FlagReconcileResult",
    "FundDrawResult",
    "InterestProjection",
    "InvoiceRead",
    "LineAmountCheck",
    "LoanIncome",
    "LoanTerms",
    "MatchCandidate",
    "MatchClassification",
    "MatchClassificationStatus",
    "MatchContext",
    "MatchCorrectionCreate",
    "MatchDecisionRead",
    "MatchFactors",
    "MatchingConfig",
    "MatchScores",
    "MissingInvoice",
    "NextFeeIncrease",
    "PayoffBreakdown",
    "ProcessingResult",
    "ProjectionPoint",
    "ProjectSnapshot",
    "RowType",
    "SimulateDrawRequest",
    "SpendResult",
    "TrainingCaptureResult",
    "ValidationFlag",
]
