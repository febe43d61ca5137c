"""Budget line model."""
from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .project import Project


class Budget(Base):
    """Category-level allocation within a project's budget.

    ``spent_amount`` is only moved by the spend reconciler.
    """

    __tablename__ = "budgets"
    __table_args__ = (CheckConstraint("spent_amount >= 0", name="spent_non_negative"),)

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(255), nullable=False)
    builder_category_raw: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nahb_category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    nahb_subcategory: Mapped[str | None] = mapped_column(String(255), nullable=True)
    original_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    current_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    spent_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))

    project: Mapped["Project"] = relationship(back_populates="budgets")
