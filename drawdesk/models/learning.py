"""Match learning: vendor/category associations and training records."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class VendorCategoryAssociation(Base):
    """How often a normalized vendor name was matched to a budget category."""

    __tablename__ = "vendor_category_associations"
    __table_args__ = (
        UniqueConstraint("vendor_name_normalized", "budget_category", name="uq_vendor_category"),
    )

    vendor_name_normalized: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    budget_category: Mapped[str] = mapped_column(String(255), nullable=False)
    match_count: Mapped[int] = mapped_column(nullable=False, default=1)
    last_matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class InvoiceMatchTraining(Base):
    """Snapshot of a confirmed invoice-to-line match, captured once per invoice."""

    __tablename__ = "invoice_match_training"

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id"), nullable=False, unique=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    draw_request_line_id: Mapped[int | None] = mapped_column(nullable=True)
    vendor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor_name_normalized: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    budget_category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nahb_category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    keywords: Mapped[list | None] = mapped_column(JSON, nullable=True)
    match_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
