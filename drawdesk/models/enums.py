"""Status and flag enumerations shared by the draw and invoice models."""
from __future__ import annotations

from enum import Enum


class DrawStatus(str, Enum):
    """Lifecycle of a draw request."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    REVIEW = "review"
    STAGED = "staged"
    PENDING_WIRE = "pending_wire"
    FUNDED = "funded"
    REJECTED = "rejected"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "paid":
                return cls.FUNDED
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def is_terminal(self) -> bool:
        return self in {DrawStatus.FUNDED, DrawStatus.REJECTED}


class DrawLineFlag(str, Enum):
    """Review tags carried by a draw line."""

    NO_INVOICE = "NO_INVOICE"
    OVER_BUDGET = "OVER_BUDGET"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    DUPLICATE_INVOICE = "DUPLICATE_INVOICE"
    NO_BUDGET_MATCH = "NO_BUDGET_MATCH"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    AI_SELECTED = "AI_SELECTED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


class ExtractionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    EXTRACTED = "extracted"
    EXTRACTION_FAILED = "extraction_failed"


class MatchStatus(str, Enum):
    PENDING = "pending"
    AUTO_MATCHED = "auto_matched"
    AI_PROCESSING = "ai_processing"
    AI_MATCHED = "ai_matched"
    NEEDS_REVIEW = "needs_review"
    MANUALLY_MATCHED = "manually_matched"
    NO_MATCH = "no_match"


class DecisionType(str, Enum):
    AUTO_SINGLE = "auto_single"
    AI_SELECTED = "ai_selected"
    MANUAL_OVERRIDE = "manual_override"
    MANUAL_INITIAL = "manual_initial"


class DecisionSource(str, Enum):
    SYSTEM = "system"
    AI = "ai"
    HUMAN = "human"
