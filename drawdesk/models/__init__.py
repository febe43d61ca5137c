"""ORM models package."""
from .audit import AuditEvent
from .base import Base
from .budget import Budget
from .draw import DrawRequest, DrawRequestLine
from .enums import (
    DecisionSource,
    DecisionType,
    DrawLineFlag,
    DrawStatus,
    ExtractionStatus,
    MatchStatus,
)
from .invoice import Invoice, InvoiceMatchDecision
from .learning import InvoiceMatchTraining, VendorCategoryAssociation
from .project import Lender, Project
from .scheduler_lock import SchedulerLock

__all__ = [
    "AuditEvent",
    "Base",
    "Budget",
    "DecisionSource",
    "DecisionType",
    "DrawLineFlag",
    "DrawRequest",
    "DrawRequestLine",
    "DrawStatus",
    "ExtractionStatus",
    "Invoice",
    "InvoiceMatchDecision",
    "InvoiceMatchTraining",
    "Lender",
    "MatchStatus",
    "Project",
    "SchedulerLock",
    "VendorCategoryAssociation",
]
