from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, model_validator

from backoffice.models.enums import EmployeePaymentStatus, InvoiceStatus
from backoffice.schemas.base import ORMModel


class InvoiceItemIn(ORMModel):
    description: str = Field(..., min_length=1)
    unit_price: Decimal = Field(..., ge=Decimal("0"), max_digits=12, decimal_places=2)
    quantity: Decimal = Field(default=Decimal("1"), gt=Decimal("0"), max_digits=10, decimal_places=2)
    # Optional: when sent it must match unit_price * quantity.
    total: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)


class InvoiceItemRead(ORMModel):
    id: int
    description: str
    unit_price: Decimal
    quantity: Decimal
    total: Decimal


class InvoiceEmployeeRead(ORMModel):
    id: int
    employee_id: int
    employee_name: str
    position: Optional[str] = None
    department: Optional[str] = None
    role_in_project: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    hours_allocated: Optional[Decimal] = None
    cost_allocation: Optional[Decimal] = None
    total_payment: Optional[Decimal] = None
    payment_status: EmployeePaymentStatus
    payment_date: Optional[date] = None
    notes: Optional[str] = None


class InvoiceCreate(ORMModel):
    client: str = Field(..., min_length=1, max_length=255)
    client_ice: Optional[str] = Field(default=None, max_length=100)
    project: str = Field(..., min_length=1, max_length=255)
    project_id: Optional[int] = None
    items: List[InvoiceItemIn] = Field(default_factory=list)
    issue_date: date
    due_date: date
    profit_margin: Optional[Decimal] = Field(default=None, ge=Decimal("0"), le=Decimal("100"), decimal_places=2)
    estimated_costs: Optional[Decimal] = Field(default=None, ge=Decimal("0"), max_digits=12, decimal_places=2)
    team_members: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


NON_NULLABLE_UPDATE_FIELDS = (
    "client",
    "project",
    "issue_date",
    "due_date",
    "status",
    "team_members",
    "items",
    "tax_amount",
)


class InvoiceUpdate(ORMModel):
    """Partial update. Only fields present in the request body are applied."""

    client: Optional[str] = Field(default=None, min_length=1, max_length=255)
    client_ice: Optional[str] = Field(default=None, max_length=100)
    project: Optional[str] = Field(default=None, min_length=1, max_length=255)
    project_id: Optional[int] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    status: Optional[InvoiceStatus] = None
    profit_margin: Optional[Decimal] = Field(default=None, ge=Decimal("0"), le=Decimal("100"), decimal_places=2)
    estimated_costs: Optional[Decimal] = Field(default=None, ge=Decimal("0"), max_digits=12, decimal_places=2)
    team_members: Optional[List[str]] = None
    notes: Optional[str] = None
    items: Optional[List[InvoiceItemIn]] = None
    tax_amount: Optional[Decimal] = Field(default=None, ge=Decimal("0"), max_digits=12, decimal_places=2)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> "InvoiceUpdate":
        for name in NON_NULLABLE_UPDATE_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class InvoiceRead(ORMModel):
    id: int
    invoice_number: str
    client: str
    client_ice: Optional[str] = None
    project: str
    project_id: Optional[int] = None
    project_name: Optional[str] = None
    amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    issue_date: date
    due_date: date
    status: InvoiceStatus
    profit_margin: Optional[Decimal] = None
    estimated_costs: Optional[Decimal] = None
    team_members: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    items: List[InvoiceItemRead] = Field(default_factory=list)
    assigned_employees: List[InvoiceEmployeeRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class InvoiceStats(ORMModel):
    total_invoices: int = 0
    draft_invoices: int = 0
    pending_invoices: int = 0
    paid_invoices: int = 0
    overdue_invoices: int = 0
    total_revenue: Decimal = Decimal("0.00")
    total_pending_amount: Decimal = Decimal("0.00")
    average_invoice_value: Decimal = Decimal("0.00")
    average_profit_margin: Decimal = Decimal("0.00")


class InvoiceEmailRequest(ORMModel):
    client_email: Optional[str] = None
    client_name: Optional[str] = None
