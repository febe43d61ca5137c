"""Audit event model."""
from sqlalchemy import JSON, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AuditEvent(Base):
    """Append-only record of a change to a domain entity.

    ``draw_line_id`` is only set for ledger events. Together with the unique
    constraint it guarantees a draw line is recorded against a budget at most
    once, even when two reconciliations race past the existence check.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        UniqueConstraint(
            "entity_type",
            "entity_id",
            "action",
            "draw_line_id",
            name="uq_audit_events_entity_action_line",
        ),
        Index("ix_audit_events_entity", "entity_type", "entity_id"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    actor: Mapped[str] = mapped_column(String(100), nullable=False, default="system")
    old_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    meta: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    draw_line_id: Mapped[int | None] = mapped_column(nullable=True, index=True)
