"""Invoice and match decision models."""
from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Date, ForeignKey, Numeric, String, Text
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base
from .enums import DecisionSource, DecisionType, ExtractionStatus, MatchStatus


def _enum_column(enum_cls, length: int = 32):
    return SqlEnum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
        length=length,
        validate_strings=True,
    )


class Invoice(Base):
    """Uploaded invoice attached to a project's draw request."""

    __tablename__ = "invoices"

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    draw_request_id: Mapped[int | None] = mapped_column(ForeignKey("draw_requests.id"), nullable=True, index=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    extracted_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    extraction_status: Mapped[ExtractionStatus] = mapped_column(
        _enum_column(ExtractionStatus), nullable=False, default=ExtractionStatus.PENDING
    )
    extraction_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    match_status: Mapped[MatchStatus] = mapped_column(
        _enum_column(MatchStatus), nullable=False, default=MatchStatus.PENDING
    )
    confidence_score: Mapped[Decimal | None] = mapped_column(Numeric(6, 4), nullable=True)
    matched_draw_line_id: Mapped[int | None] = mapped_column(
        ForeignKey("draw_request_lines.id"), nullable=True, index=True
    )


class InvoiceMatchDecision(Base):
    """Audit trail of how an invoice was matched (or why it was not)."""

    __tablename__ = "invoice_match_decisions"

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), nullable=False, index=True)
    decision_type: Mapped[DecisionType] = mapped_column(_enum_column(DecisionType), nullable=False)
    decision_source: Mapped[DecisionSource] = mapped_column(_enum_column(DecisionSource), nullable=False)
    draw_request_line_id: Mapped[int | None] = mapped_column(
        ForeignKey("draw_request_lines.id"), nullable=True
    )
    previous_draw_line_id: Mapped[int | None] = mapped_column(nullable=True)
    confidence_score: Mapped[Decimal | None] = mapped_column(Numeric(6, 4), nullable=True)
    candidates: Mapped[list | None] = mapped_column(JSON, nullable=True)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
