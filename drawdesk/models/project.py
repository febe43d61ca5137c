"""Lender and project models carrying loan terms."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Date, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .budget import Budget
    from .draw import DrawRequest


class Lender(Base):
    """Lender with optional loan-term overrides shared by its projects."""

    __tablename__ = "lenders"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Keys follow LoanTerms field names, e.g. {"base_fee": "0.025"}.
    term_overrides: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    projects: Mapped[list["Project"]] = relationship(back_populates="lender")


class Project(Base):
    """Construction project financed by a single loan."""

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    lender_id: Mapped[int | None] = mapped_column(ForeignKey("lenders.id"), nullable=True, index=True)
    loan_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    interest_rate_annual: Mapped[Decimal | None] = mapped_column(Numeric(8, 6), nullable=True)
    origination_fee_pct: Mapped[Decimal | None] = mapped_column(Numeric(8, 6), nullable=True)
    loan_term_months: Mapped[int | None] = mapped_column(nullable=True)
    loan_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payoff_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payoff_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)

    lender: Mapped[Lender | None] = relationship(back_populates="projects")
    budgets: Mapped[list["Budget"]] = relationship(back_populates="project", order_by="Budget.id")
    draws: Mapped[list["DrawRequest"]] = relationship(
        back_populates="project", order_by="DrawRequest.draw_number"
    )
