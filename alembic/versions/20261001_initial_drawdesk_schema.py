"""initial drawdesk schema

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _money(name: str, *, nullable: bool = True, default: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Numeric(18, 2, asdecimal=True),
        nullable=nullable,
        server_default="0" if default else None,
    )


def upgrade() -> None:
    op.create_table(
        "lenders",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("term_overrides", sa.JSON(), nullable=True),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "lender_id",
            sa.Integer(),
            sa.ForeignKey("lenders.id", name="fk_projects_lender_id_lenders"),
            nullable=True,
        ),
        _money("loan_amount"),
        sa.Column("interest_rate_annual", sa.Numeric(8, 6), nullable=True),
        sa.Column("origination_fee_pct", sa.Numeric(8, 6), nullable=True),
        sa.Column("loan_term_months", sa.Integer(), nullable=True),
        sa.Column("loan_start_date", sa.Date(), nullable=True),
        sa.Column("payoff_date", sa.Date(), nullable=True),
        _money("payoff_amount"),
    )
    op.create_index("ix_projects_lender_id", "projects", ["lender_id"], unique=False)

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column(
            "project_id",
            sa.Integer(),
            sa.ForeignKey("projects.id", name="fk_budgets_project_id_projects"),
            nullable=False,
        ),
        sa.Column("category", sa.String(length=255), nullable=False),
        sa.Column("builder_category_raw", sa.String(length=255), nullable=True),
        sa.Column("nahb_category", sa.String(length=255), nullable=True),
        sa.Column("nahb_subcategory", sa.String(length=255), nullable=True),
        _money("original_amount", nullable=False, default=True),
        _money("current_amount", nullable=False, default=True),
        _money("spent_amount", nullable=False, default=True),
        _money("remaining_amount", nullable=False, default=True),
        sa.CheckConstraint("spent_amount >= 0", name="ck_budgets_spent_non_negative"),
    )
    op.create_index("ix_budgets_project_id", "budgets", ["project_id"], unique=False)

    op.create_table(
        "draw_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column(
            "project_id",
            sa.Integer(),
            sa.ForeignKey("projects.id", name="fk_draw_requests_project_id_projects"),
            nullable=False,
        ),
        sa.Column("draw_number", sa.Integer(), nullable=False),
        _money("total_amount", nullable=False, default=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("request_date", sa.Date(), nullable=True),
        sa.Column("funded_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("project_id", "draw_number", name="uq_draw_requests_project_number"),
    )
    op.create_index("ix_draw_requests_project_id", "draw_requests", ["project_id"], unique=False)

    op.create_table(
        "draw_request_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column(
            "draw_request_id",
            sa.Integer(),
            sa.ForeignKey("draw_requests.id", name="fk_draw_request_lines_draw_request_id_draw_requests"),
            nullable=False,
        ),
        sa.Column(
            "budget_id",
            sa.Integer(),
            sa.ForeignKey("budgets.id", name="fk_draw_request_lines_budget_id_budgets"),
            nullable=True,
        ),
        _money("amount_requested", nullable=False, default=True),
        _money("amount_approved"),
        sa.Column("invoice_id", sa.Integer(), nullable=True),
        sa.Column("invoice_vendor_name", sa.String(length=255), nullable=True),
        sa.Column("invoice_number", sa.String(length=100), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        _money("matched_invoice_amount"),
        sa.Column("confidence_score", sa.Numeric(6, 4), nullable=True),
        _money("variance"),
        sa.Column("flags", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "amount_requested >= 0", name="ck_draw_request_lines_amount_requested_non_negative"
        ),
    )
    op.create_index(
        "ix_draw_request_lines_draw_request_id", "draw_request_lines", ["draw_request_id"], unique=False
    )
    op.create_index("ix_draw_request_lines_budget_id", "draw_request_lines", ["budget_id"], unique=False)
    op.create_index("ix_draw_request_lines_invoice_id", "draw_request_lines", ["invoice_id"], unique=False)

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column(
            "project_id",
            sa.Integer(),
            sa.ForeignKey("projects.id", name="fk_invoices_project_id_projects"),
            nullable=False,
        ),
        sa.Column(
            "draw_request_id",
            sa.Integer(),
            sa.ForeignKey("draw_requests.id", name="fk_invoices_draw_request_id_draw_requests"),
            nullable=True,
        ),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("vendor_name", sa.String(length=255), nullable=True),
        _money("amount"),
        sa.Column("invoice_number", sa.String(length=100), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("extracted_data", sa.JSON(), nullable=True),
        sa.Column("extraction_status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("extraction_error", sa.Text(), nullable=True),
        sa.Column("match_status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("confidence_score", sa.Numeric(6, 4), nullable=True),
        sa.Column(
            "matched_draw_line_id",
            sa.Integer(),
            sa.ForeignKey(
                "draw_request_lines.id", name="fk_invoices_matched_draw_line_id_draw_request_lines"
            ),
            nullable=True,
        ),
    )
    op.create_index("ix_invoices_project_id", "invoices", ["project_id"], unique=False)
    op.create_index("ix_invoices_draw_request_id", "invoices", ["draw_request_id"], unique=False)
    op.create_index("ix_invoices_matched_draw_line_id", "invoices", ["matched_draw_line_id"], unique=False)

    op.create_table(
        "invoice_match_decisions",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column(
            "invoice_id",
            sa.Integer(),
            sa.ForeignKey("invoices.id", name="fk_invoice_match_decisions_invoice_id_invoices"),
            nullable=False,
        ),
        sa.Column("decision_type", sa.String(length=32), nullable=False),
        sa.Column("decision_source", sa.String(length=32), nullable=False),
        sa.Column(
            "draw_request_line_id",
            sa.Integer(),
            sa.ForeignKey(
                "draw_request_lines.id",
                name="fk_invoice_match_decisions_draw_request_line_id_draw_request_lines",
            ),
            nullable=True,
        ),
        sa.Column("previous_draw_line_id", sa.Integer(), nullable=True),
        sa.Column("confidence_score", sa.Numeric(6, 4), nullable=True),
        sa.Column("candidates", sa.JSON(), nullable=True),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("decided_by", sa.String(length=100), nullable=False, server_default="system"),
    )
    op.create_index(
        "ix_invoice_match_decisions_invoice_id", "invoice_match_decisions", ["invoice_id"], unique=False
    )

    op.create_table(
        "vendor_category_associations",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column("vendor_name_normalized", sa.String(length=255), nullable=False),
        sa.Column("budget_category", sa.String(length=255), nullable=False),
        sa.Column("match_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("vendor_name_normalized", "budget_category", name="uq_vendor_category"),
    )
    op.create_index(
        "ix_vendor_category_associations_vendor_name_normalized",
        "vendor_category_associations",
        ["vendor_name_normalized"],
        unique=False,
    )

    op.create_table(
        "invoice_match_training",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column(
            "invoice_id",
            sa.Integer(),
            sa.ForeignKey("invoices.id", name="fk_invoice_match_training_invoice_id_invoices"),
            nullable=False,
        ),
        sa.Column(
            "project_id",
            sa.Integer(),
            sa.ForeignKey("projects.id", name="fk_invoice_match_training_project_id_projects"),
            nullable=False,
        ),
        sa.Column("draw_request_line_id", sa.Integer(), nullable=True),
        sa.Column("vendor_name", sa.String(length=255), nullable=True),
        sa.Column("vendor_name_normalized", sa.String(length=255), nullable=True),
        _money("amount"),
        sa.Column("budget_category", sa.String(length=255), nullable=True),
        sa.Column("nahb_category", sa.String(length=255), nullable=True),
        sa.Column("keywords", sa.JSON(), nullable=True),
        sa.Column("match_status", sa.String(length=32), nullable=True),
        sa.UniqueConstraint("invoice_id", name="uq_invoice_match_training_invoice_id"),
    )
    op.create_index(
        "ix_invoice_match_training_project_id", "invoice_match_training", ["project_id"], unique=False
    )
    op.create_index(
        "ix_invoice_match_training_vendor_name_normalized",
        "invoice_match_training",
        ["vendor_name_normalized"],
        unique=False,
    )

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("actor", sa.String(length=100), nullable=False, server_default="system"),
        sa.Column("old_data", sa.JSON(), nullable=True),
        sa.Column("new_data", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("draw_line_id", sa.Integer(), nullable=True),
        sa.UniqueConstraint(
            "entity_type",
            "entity_id",
            "action",
            "draw_line_id",
            name="uq_audit_events_entity_action_line",
        ),
    )
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"], unique=False)
    op.create_index("ix_audit_events_draw_line_id", "audit_events", ["draw_line_id"], unique=False)

    op.create_table(
        "scheduler_locks",
        sa.Column("id", sa.Integer(), primary_key=True),
        *_timestamps(),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("owner", sa.String(length=128), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("name", name="uq_scheduler_locks_name"),
    )


def downgrade() -> None:
    op.drop_table("scheduler_locks")
    op.drop_index("ix_audit_events_draw_line_id", table_name="audit_events")
    op.drop_index("ix_audit_events_entity", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("ix_invoice_match_training_vendor_name_normalized", table_name="invoice_match_training")
    op.drop_index("ix_invoice_match_training_project_id", table_name="invoice_match_training")
    op.drop_table("invoice_match_training")
    op.drop_index(
        "ix_vendor_category_associations_vendor_name_normalized", table_name="vendor_category_associations"
    )
    op.drop_table("vendor_category_associations")
    op.drop_index("ix_invoice_match_decisions_invoice_id", table_name="invoice_match_decisions")
    op.drop_table("invoice_match_decisions")
    op.drop_index("ix_invoices_matched_draw_line_id", table_name="invoices")
    op.drop_index("ix_invoices_draw_request_id", table_name="invoices")
    op.drop_index("ix_invoices_project_id", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("ix_draw_request_lines_invoice_id", table_name="draw_request_lines")
    op.drop_index("ix_draw_request_lines_budget_id", table_name="draw_request_lines")
    op.drop_index("ix_draw_request_lines_draw_request_id", table_name="draw_request_lines")
    op.drop_table("draw_request_lines")
    op.drop_index("ix_draw_requests_project_id", table_name="draw_requests")
    op.drop_table("draw_requests")
    op.drop_index("ix_budgets_project_id", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_projects_lender_id", table_name="projects")
    op.drop_table("projects")
    op.drop_table("lenders")
