"""Invoice workflow tables: projects, invoices, items, employee payments, yearly sequences.

Revision ID: 0001_invoice_workflow
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_invoice_workflow"
down_revision = None
branch_labels = None
depends_on = None


INVOICE_STATUS = sa.Enum("draft", "pending", "paid", "overdue", name="invoice_status")
EMPLOYEE_PAYMENT_STATUS = sa.Enum("pending", "paid", "cancelled", name="employee_payment_status")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_projects")),
    )
    op.create_index(op.f("ix_projects_id"), "projects", ["id"])
    op.create_index(op.f("ix_projects_client_name"), "projects", ["client_name"])

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_number", sa.String(length=100), nullable=False),
        sa.Column("client", sa.String(length=255), nullable=False),
        sa.Column("client_ice", sa.String(length=100), nullable=True),
        sa.Column("project", sa.String(length=255), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", INVOICE_STATUS, nullable=False, server_default="draft"),
        sa.Column("profit_margin", sa.Numeric(5, 2), nullable=True),
        sa.Column("estimated_costs", sa.Numeric(12, 2), nullable=True),
        sa.Column("team_members", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["project_id"],
            ["projects.id"],
            name=op.f("fk_invoices_project_id_projects"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_invoices")),
    )
    op.create_index(op.f("ix_invoices_id"), "invoices", ["id"])
    op.create_index(op.f("ix_invoices_invoice_number"), "invoices", ["invoice_number"], unique=True)
    op.create_index(op.f("ix_invoices_project_id"), "invoices", ["project_id"])
    op.create_index(op.f("ix_invoices_issue_date"), "invoices", ["issue_date"])
    op.create_index(op.f("ix_invoices_due_date"), "invoices", ["due_date"])
    op.create_index(op.f("ix_invoices_status"), "invoices", ["status"])

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False, server_default="1"),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ["invoice_id"],
            ["invoices.id"],
            name=op.f("fk_invoice_items_invoice_id_invoices"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_invoice_items")),
    )
    op.create_index(op.f("ix_invoice_items_id"), "invoice_items", ["id"])
    op.create_index(op.f("ix_invoice_items_invoice_id"), "invoice_items", ["invoice_id"])

    op.create_table(
        "invoice_employee_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("invoice_id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("employee_name", sa.String(length=255), nullable=False),
        sa.Column("position", sa.String(length=255), nullable=True),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("role_in_project", sa.String(length=255), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=True),
        sa.Column("hours_allocated", sa.Numeric(8, 2), nullable=True),
        sa.Column("cost_allocation", sa.Numeric(12, 2), nullable=True),
        sa.Column("total_payment", sa.Numeric(12, 2), nullable=True),
        sa.Column("payment_status", EMPLOYEE_PAYMENT_STATUS, nullable=False, server_default="pending"),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["invoice_id"],
            ["invoices.id"],
            name=op.f("fk_invoice_employee_payments_invoice_id_invoices"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_invoice_employee_payments")),
    )
    op.create_index(op.f("ix_invoice_employee_payments_id"), "invoice_employee_payments", ["id"])
    op.create_index(op.f("ix_invoice_employee_payments_invoice_id"), "invoice_employee_payments", ["invoice_id"])
    op.create_index(op.f("ix_invoice_employee_payments_employee_id"), "invoice_employee_payments", ["employee_id"])

    op.create_table(
        "invoice_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_invoice_sequences")),
    )
    op.create_index(op.f("ix_invoice_sequences_id"), "invoice_sequences", ["id"])
    op.create_index(op.f("ix_invoice_sequences_year"), "invoice_sequences", ["year"], unique=True)


def downgrade() -> None:
    op.drop_index(op.f("ix_invoice_sequences_year"), table_name="invoice_sequences")
    op.drop_index(op.f("ix_invoice_sequences_id"), table_name="invoice_sequences")
    op.drop_table("invoice_sequences")

    op.drop_index(op.f("ix_invoice_employee_payments_employee_id"), table_name="invoice_employee_payments")
    op.drop_index(op.f("ix_invoice_employee_payments_invoice_id"), table_name="invoice_employee_payments")
    op.drop_index(op.f("ix_invoice_employee_payments_id"), table_name="invoice_employee_payments")
    op.drop_table("invoice_employee_payments")

    op.drop_index(op.f("ix_invoice_items_invoice_id"), table_name="invoice_items")
    op.drop_index(op.f("ix_invoice_items_id"), table_name="invoice_items")
    op.drop_table("invoice_items")

    op.drop_index(op.f("ix_invoices_status"), table_name="invoices")
    op.drop_index(op.f("ix_invoices_due_date"), table_name="invoices")
    op.drop_index(op.f("ix_invoices_issue_date"), table_name="invoices")
    op.drop_index(op.f("ix_invoices_project_id"), table_name="invoices")
    op.drop_index(op.f("ix_invoices_invoice_number"), table_name="invoices")
    op.drop_index(op.f("ix_invoices_id"), table_name="invoices")
    op.drop_table("invoices")

    op.drop_index(op.f("ix_projects_client_name"), table_name="projects")
    op.drop_index(op.f("ix_projects_id"), table_name="projects")
    op.drop_table("projects")

    bind = op.get_bind()
    EMPLOYEE_PAYMENT_STATUS.drop(bind, checkfirst=True)
    INVOICE_STATUS.drop(bind, checkfirst=True)
