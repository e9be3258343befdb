"""Error types raised by the service layer and their JSON envelope.

Every failure leaves the API as ``{"success": false, "message": ..., "error": ...}``
where ``message`` is a short French sentence for display and ``error`` an
optional technical detail for logs.
"""
from __future__ import annotations

from typing import Optional

from fastapi import status
from fastapi.responses import JSONResponse


class BackOfficeError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Erreur interne du serveur"

    def __init__(self, message: Optional[str] = None, *, error: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.error = error
        super().__init__(self.message)


class InvoiceValidationError(BackOfficeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Données de facture invalides"


class InvoiceNotFoundError(BackOfficeError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Facture non trouvée"


class PaidInvoiceDeletionError(BackOfficeError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Impossible de supprimer une facture déjà payée"


class EmailNotConfiguredError(BackOfficeError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Service email non configuré. Veuillez contacter l'administrateur."


class EmailSendError(BackOfficeError):
    default_message = "Échec de l'envoi de l'email. Veuillez réessayer."


class PersistenceError(BackOfficeError):
    default_message = "Erreur de base de données"


def error_response(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    body: dict = {"success": False, "message": message}
    if error:
        body["error"] = error
    return JSONResponse(status_code=status_code, content=body)
