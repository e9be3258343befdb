from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import JSON, Date, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.db.base import Base, CreatedAtMixin, IDMixin, TimestampMixin
from backoffice.models.enums import EmployeePaymentStatus, InvoiceStatus, enum_values
from backoffice.models.project import Project


class Invoice(IDMixin, TimestampMixin, Base):
    __tablename__ = "invoices"

    invoice_number: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)

    client: Mapped[str] = mapped_column(String(255), nullable=False)
    client_ice: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    project: Mapped[str] = mapped_column(String(255), nullable=False)
    project_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)

    issue_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus, name="invoice_status", values_callable=enum_values),
        default=InvoiceStatus.DRAFT,
        nullable=False,
        index=True,
    )

    profit_margin: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    estimated_costs: Mapped[Optional[Decimal]] = mapped_column(nullable=True)
    team_members: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    project_ref: Mapped[Optional[Project]] = relationship()
    items: Mapped[List["InvoiceItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )
    assigned_employees: Mapped[List["InvoiceEmployeePayment"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceEmployeePayment.employee_name",
    )

    @property
    def project_name(self) -> Optional[str]:
        if self.project_ref:
            return self.project_ref.name
        return None


class InvoiceItem(IDMixin, CreatedAtMixin, Base):
    __tablename__ = "invoice_items"

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("1.00"), nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="items")


class InvoiceEmployeePayment(IDMixin, TimestampMixin, Base):
    """Employee paid out of an invoice's proceeds. Read-only for the invoice workflow."""

    __tablename__ = "invoice_employee_payments"

    invoice_id: Mapped[int] = mapped_column(ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    employee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role_in_project: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    hours_allocated: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2), nullable=True)
    cost_allocation: Mapped[Optional[Decimal]] = mapped_column(nullable=True)
    total_payment: Mapped[Optional[Decimal]] = mapped_column(nullable=True)
    payment_status: Mapped[EmployeePaymentStatus] = mapped_column(
        Enum(EmployeePaymentStatus, name="employee_payment_status", values_callable=enum_values),
        default=EmployeePaymentStatus.PENDING,
        nullable=False,
    )
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    invoice: Mapped[Invoice] = relationship(back_populates="assigned_employees")


class InvoiceSequence(IDMixin, TimestampMixin, Base):
    __tablename__ = "invoice_sequences"

    year: Mapped[int] = mapped_column(Integer, nullable=False, unique=True, index=True)
    last_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
