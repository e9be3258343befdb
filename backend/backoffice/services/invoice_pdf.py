from __future__ import annotations

from decimal import Decimal
from io import BytesIO
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from backoffice.core.settings import settings
from backoffice.models.invoice import Invoice


TWOPLACES = Decimal("0.01")


def _q(value: Optional[Decimal]) -> Decimal:
    return Decimal(value or 0).quantize(TWOPLACES)


def format_amount(value: Optional[Decimal]) -> str:
    """French money formatting: ``2 400,00 MAD``."""
    grouped = f"{_q(value):,.2f}".replace(",", " ").replace(".", ",")
    return f"{grouped} {settings.invoice_currency}"


def format_quantity(value: Decimal) -> str:
    quantity = Decimal(value).normalize()
    return f"{quantity:f}".replace(".", ",")


def invoice_pdf_filename(invoice: Invoice) -> str:
    cleaned = "".join(ch if ch.isalnum() or ch in {"-", "_"} else "-" for ch in invoice.invoice_number)
    return f"Facture_{cleaned.strip('-') or invoice.id}.pdf"


def _draw_header(c: canvas.Canvas, invoice: Invoice) -> None:
    width, height = A4
    top = height - 18 * mm

    c.setFont("Helvetica-Bold", 14)
    c.drawString(20 * mm, top, settings.company_name)
    c.setFont("Helvetica", 9)
    c.drawString(20 * mm, top - 5 * mm, "Production audiovisuelle")

    right_x = width - 20 * mm
    c.setFont("Helvetica-Bold", 10)
    c.drawRightString(right_x, top, f"Facture {invoice.invoice_number}")
    c.setFont("Helvetica", 9)
    c.drawRightString(right_x, top - 5 * mm, f"Date d'émission : {invoice.issue_date.strftime('%d/%m/%Y')}")
    c.drawRightString(right_x, top - 10 * mm, f"Date d'échéance : {invoice.due_date.strftime('%d/%m/%Y')}")


def _draw_client_block(c: canvas.Canvas, invoice: Invoice, client_name: str) -> float:
    _width, height = A4
    left = 20 * mm
    y = height - 45 * mm

    rows = [("Client", client_name or invoice.client)]
    if invoice.client_ice:
        rows.append(("ICE", invoice.client_ice))
    rows.append(("Projet", invoice.project_name or invoice.project))

    for label, value in rows:
        c.setFont("Helvetica-Bold", 9)
        c.drawString(left, y, f"{label} :")
        c.setFont("Helvetica", 10)
        c.drawString(left + 20 * mm, y, value[:90])
        y -= 5 * mm

    return y - 6 * mm


def _draw_items_table(c: canvas.Canvas, invoice: Invoice, start_y: float) -> float:
    width, _height = A4
    left = 20 * mm
    right = width - 20 * mm

    col_price = right - 55 * mm
    col_total = right - 30 * mm
    row_h = 8 * mm
    y = start_y

    c.setStrokeColor(colors.black)
    c.setLineWidth(0.8)

    c.setFont("Helvetica-Bold", 9)
    c.line(left, y, right, y)
    c.drawString(left + 2 * mm, y - 5.5 * mm, "Description")
    c.drawRightString(col_price - 2 * mm, y - 5.5 * mm, "Qté")
    c.drawRightString(col_total - 2 * mm, y - 5.5 * mm, "Prix unitaire")
    c.drawRightString(right - 2 * mm, y - 5.5 * mm, "Total")
    y -= row_h
    c.line(left, y, right, y)

    c.setFont("Helvetica", 9)
    for item in invoice.items:
        c.drawString(left + 2 * mm, y - 5.5 * mm, item.description[:60])
        c.drawRightString(col_price - 2 * mm, y - 5.5 * mm, format_quantity(item.quantity))
        c.drawRightString(col_total - 2 * mm, y - 5.5 * mm, format_amount(item.unit_price))
        c.drawRightString(right - 2 * mm, y - 5.5 * mm, format_amount(item.total))
        y -= row_h
        c.line(left, y, right, y)

    rate = (settings.invoice_tax_rate * 100).normalize()
    totals = [
        ("Total HT", invoice.amount),
        (f"TVA ({rate:f}%)", invoice.tax_amount),
        ("Total TTC", invoice.total_amount),
    ]
    c.setFont("Helvetica-Bold", 9)
    for label, value in totals:
        y -= 6 * mm
        c.drawRightString(col_total - 2 * mm, y, label)
        c.drawRightString(right - 2 * mm, y, format_amount(value))
    return y - 12 * mm


def _draw_footer(c: canvas.Canvas, invoice: Invoice, y: float) -> None:
    width, _height = A4
    if invoice.notes:
        c.setFont("Helvetica-Oblique", 9)
        c.drawString(20 * mm, y, invoice.notes[:120])
    c.setFont("Helvetica", 9)
    c.drawCentredString(width / 2, 20 * mm, "Merci pour votre confiance !")
    c.setFont("Helvetica-Oblique", 8)
    c.drawCentredString(width / 2, 14 * mm, settings.company_name)


def render_invoice_pdf(invoice: Invoice, *, client_name: Optional[str] = None) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"Facture {invoice.invoice_number}")

    _draw_header(c, invoice)
    y = _draw_client_block(c, invoice, client_name or invoice.client)
    y = _draw_items_table(c, invoice, y)
    _draw_footer(c, invoice, y)

    c.showPage()
    c.save()
    return buffer.getvalue()
