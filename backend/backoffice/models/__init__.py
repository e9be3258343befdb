"""Import all models so SQLAlchemy metadata is fully registered."""

from backoffice.db.base import Base

from backoffice.models.enums import EmployeePaymentStatus, InvoiceStatus
from backoffice.models.invoice import (
    Invoice,
    InvoiceEmployeePayment,
    InvoiceItem,
    InvoiceSequence,
)
from backoffice.models.project import Project

__all__ = [
    "Base",
    "EmployeePaymentStatus",
    "Invoice",
    "InvoiceEmployeePayment",
    "InvoiceItem",
    "InvoiceSequence",
    "InvoiceStatus",
    "Project",
]
