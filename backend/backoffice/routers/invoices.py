from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.core.errors import PersistenceError
from backoffice.db.session import get_db
from backoffice.models.enums import InvoiceStatus
from backoffice.schemas.base import ApiResponse
from backoffice.schemas.invoice import InvoiceCreate, InvoiceEmailRequest, InvoiceRead, InvoiceStats, InvoiceUpdate
from backoffice.services import invoice_email as invoice_email_service
from backoffice.services import invoices as invoice_service

router = APIRouter(prefix="/api/invoices", tags=["invoices"])
logger = logging.getLogger(__name__)


def _persistence_error(message: str, exc: SQLAlchemyError) -> PersistenceError:
    logger.exception(message)
    return PersistenceError(message, error=str(exc))


@router.get("", response_model=ApiResponse[List[InvoiceRead]])
def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(default=None, alias="status"),
    search: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
) -> ApiResponse[List[InvoiceRead]]:
    try:
        invoices = invoice_service.list_invoices(db, status=status_filter, search=search)
    except SQLAlchemyError as exc:
        raise _persistence_error("Erreur lors de la récupération des factures", exc) from exc
    data = [InvoiceRead.model_validate(invoice) for invoice in invoices]
    return ApiResponse(data=data, count=len(data))


@router.get("/stats", response_model=ApiResponse[InvoiceStats])
def invoice_stats(db: Session = Depends(get_db)) -> ApiResponse[InvoiceStats]:
    try:
        stats = invoice_service.invoice_stats(db)
    except SQLAlchemyError as exc:
        raise _persistence_error("Erreur lors de la récupération des statistiques", exc) from exc
    return ApiResponse(data=stats)


@router.get("/{invoice_id}", response_model=ApiResponse[InvoiceRead])
def get_invoice(invoice_id: int, db: Session = Depends(get_db)) -> ApiResponse[InvoiceRead]:
    try:
        invoice = invoice_service.get_invoice(db, invoice_id)
    except SQLAlchemyError as exc:
        raise _persistence_error("Erreur lors de la récupération de la facture", exc) from exc
    return ApiResponse(data=InvoiceRead.model_validate(invoice))


@router.post(
    "",
    response_model=ApiResponse[InvoiceRead],
    status_code=status.HTTP_201_CREATED,
)
def create_invoice(invoice_in: InvoiceCreate, db: Session = Depends(get_db)) -> ApiResponse[InvoiceRead]:
    try:
        invoice = invoice_service.create_invoice(db, invoice_in)
    except SQLAlchemyError as exc:
        raise _persistence_error("Erreur lors de la création de la facture", exc) from exc
    return ApiResponse(data=InvoiceRead.model_validate(invoice), message="Facture créée avec succès")


@router.put("/{invoice_id}", response_model=ApiResponse[InvoiceRead])
def update_invoice(
    invoice_id: int,
    invoice_in: InvoiceUpdate,
    db: Session = Depends(get_db),
) -> ApiResponse[InvoiceRead]:
    try:
        invoice = invoice_service.update_invoice(db, invoice_id, invoice_in)
    except SQLAlchemyError as exc:
        raise _persistence_error("Erreur lors de la mise à jour de la facture", exc) from exc
    return ApiResponse(data=InvoiceRead.model_validate(invoice), message="Facture mise à jour avec succès")


@router.delete("/{invoice_id}", response_model=ApiResponse[None])
def delete_invoice(invoice_id: int, db: Session = Depends(get_db)) -> ApiResponse[None]:
    try:
        invoice_service.delete_invoice(db, invoice_id)
    except SQLAlchemyError as exc:
        raise _persistence_error("Erreur lors de la suppression de la facture", exc) from exc
    return ApiResponse(message="Facture supprimée avec succès")


@router.post("/{invoice_id}/send-email", response_model=ApiResponse[None])
def send_invoice_email(
    invoice_id: int,
    payload: InvoiceEmailRequest,
    db: Session = Depends(get_db),
) -> ApiResponse[None]:
    try:
        recipient = invoice_email_service.send_invoice_email(
            db,
            invoice_id,
            client_email=payload.client_email,
            client_name=payload.client_name,
        )
    except SQLAlchemyError as exc:
        raise _persistence_error("Erreur lors de l'envoi de la facture", exc) from exc
    return ApiResponse(message=f"Facture envoyée avec succès à {recipient}")
