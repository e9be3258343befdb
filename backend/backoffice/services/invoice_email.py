"""Send an invoice to its client as a PDF attachment."""
from __future__ import annotations

import logging
from html import escape
from typing import Optional

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.core.errors import BackOfficeError, EmailNotConfiguredError, InvoiceValidationError
from backoffice.core.observability import invoice_emails_total
from backoffice.core.settings import settings
from backoffice.models.invoice import Invoice
from backoffice.services import email as email_transport
from backoffice.services.invoice_pdf import format_amount, invoice_pdf_filename, render_invoice_pdf
from backoffice.services.invoices import get_invoice, touch_invoice


logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


def _validate_recipient(client_email: Optional[str], client_name: Optional[str]) -> tuple[str, str]:
    email = (client_email or "").strip()
    name = (client_name or "").strip()
    if not email or not name:
        raise InvoiceValidationError("Email du client et nom requis")
    try:
        email = _email_adapter.validate_python(email)
    except ValidationError as exc:
        raise InvoiceValidationError("Adresse email invalide", error=str(exc.errors()[0].get("msg"))) from exc
    return email, name


def invoice_email_subject(invoice: Invoice) -> str:
    return f"Facture {invoice.invoice_number} - {settings.company_name}"


def render_invoice_email_html(invoice: Invoice, client_name: str) -> str:
    company = escape(settings.company_name)
    number = escape(invoice.invoice_number)
    return f"""<!DOCTYPE html>
<html lang="fr">
<head>
  <meta charset="UTF-8">
  <title>Facture {number}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1>Facture {company}</h1>
    <p>Facture {number}</p>
    <h2>Bonjour {escape(client_name)},</h2>
    <p>Nous vous remercions pour votre confiance. Veuillez trouver ci-jointe votre facture pour les services de production audiovisuelle.</p>
    <div style="background: #fff; padding: 20px; border-left: 4px solid #10b981;">
      <p><strong>Numéro :</strong> {number}</p>
      <p><strong>Date d'émission :</strong> {invoice.issue_date.strftime('%d/%m/%Y')}</p>
      <p><strong>Date d'échéance :</strong> {invoice.due_date.strftime('%d/%m/%Y')}</p>
      <p style="font-size: 20px; font-weight: bold;">Montant total : {escape(format_amount(invoice.total_amount))}</p>
    </div>
    <p><strong>Pièce jointe :</strong> votre facture est jointe à cet email au format PDF.</p>
    <p>Cordialement,<br>L'équipe {company}</p>
  </div>
</body>
</html>
"""


def render_invoice_email_text(invoice: Invoice, client_name: str) -> str:
    return "\n".join(
        [
            f"Facture {settings.company_name} - {invoice.invoice_number}",
            "",
            f"Bonjour {client_name},",
            "",
            f"Veuillez trouver ci-jointe votre facture {invoice.invoice_number}.",
            f"Montant total : {format_amount(invoice.total_amount)}",
            "",
            "Cordialement,",
            f"L'équipe {settings.company_name}",
        ]
    )


def send_invoice_email(
    db: Session,
    invoice_id: int,
    *,
    client_email: Optional[str],
    client_name: Optional[str],
) -> str:
    """Render and send the invoice, then touch ``updated_at``. Returns the recipient address.

    Checks run in order: recipient fields, invoice existence, transport readiness.
    A transport failure leaves the invoice untouched.
    """
    email, name = _validate_recipient(client_email, client_name)
    invoice = get_invoice(db, invoice_id)
    if not email_transport.email_is_configured():
        invoice_emails_total.labels(outcome="not_configured").inc()
        raise EmailNotConfiguredError()

    invoice_number = invoice.invoice_number
    attachment = email_transport.EmailAttachment(
        filename=invoice_pdf_filename(invoice),
        content=render_invoice_pdf(invoice, client_name=name),
        content_type="application/pdf",
    )
    try:
        result = email_transport.send_email(
            to_address=email,
            subject=invoice_email_subject(invoice),
            html=render_invoice_email_html(invoice, name),
            text=render_invoice_email_text(invoice, name),
            attachments=[attachment],
        )
    except BackOfficeError as exc:
        invoice_emails_total.labels(outcome="failed").inc()
        logger.warning(
            "invoice_email_failed",
            extra={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
            exc_info=exc,
        )
        raise

    invoice_emails_total.labels(outcome="sent").inc()
    log_fields = {"invoice_id": invoice_id, "invoice_number": invoice_number, "provider": result.provider}
    logger.info("invoice_email_sent", extra=log_fields)
    # The mail is out; a failed timestamp write is logged, not reported.
    try:
        touch_invoice(db, invoice)
    except SQLAlchemyError:
        logger.exception("invoice_email_touch_failed", extra=log_fields)
    return email
