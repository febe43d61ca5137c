"""Draw request models."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base
from .enums import DrawLineFlag, DrawStatus
from .types import DrawStatusType, FlagSetType

if TYPE_CHECKING:
    from .budget import Budget
    from .project import Project


class DrawRequest(Base):
    """A project's funding request."""

    __tablename__ = "draw_requests"
    __table_args__ = (
        UniqueConstraint("project_id", "draw_number", name="uq_draw_requests_project_number"),
    )

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    draw_number: Mapped[int] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    status: Mapped[DrawStatus] = mapped_column(DrawStatusType(), nullable=False, default=DrawStatus.DRAFT)
    request_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    funded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    project: Mapped["Project"] = relationship(back_populates="draws")
    lines: Mapped[list["DrawRequestLine"]] = relationship(
        back_populates="draw_request", cascade="all, delete-orphan", order_by="DrawRequestLine.id"
    )


class DrawRequestLine(Base):
    """One budget line's share of a draw request, plus its invoice linkage."""

    __tablename__ = "draw_request_lines"
    __table_args__ = (
        CheckConstraint("amount_requested >= 0", name="amount_requested_non_negative"),
    )

    draw_request_id: Mapped[int] = mapped_column(ForeignKey("draw_requests.id"), nullable=False, index=True)
    budget_id: Mapped[int | None] = mapped_column(ForeignKey("budgets.id"), nullable=True, index=True)
    amount_requested: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    amount_approved: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)

    invoice_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
    invoice_vendor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invoice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    matched_invoice_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    confidence_score: Mapped[Decimal | None] = mapped_column(Numeric(6, 4), nullable=True)
    variance: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    flags: Mapped[frozenset[DrawLineFlag]] = mapped_column(FlagSetType(), nullable=True, default=frozenset)

    draw_request: Mapped[DrawRequest] = relationship(back_populates="lines")
    budget: Mapped["Budget | None"] = relationship()

    @property
    def amount_to_record(self) -> Decimal:
        """Approved amount when set, otherwise the requested amount."""

        if self.amount_approved is not None:
            return self.amount_approved
        return self.amount_requested or Decimal("0")

    @property
    def has_invoice(self) -> bool:
        return self.invoice_id is not None or bool(self.matched_invoice_amount)
