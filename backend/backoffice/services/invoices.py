from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import case, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from backoffice.core.errors import InvoiceNotFoundError, InvoiceValidationError, PaidInvoiceDeletionError
from backoffice.core.observability import invoice_number_conflicts_total, invoices_created_total
from backoffice.core.settings import settings
from backoffice.db.base import utcnow
from backoffice.db.session import atomic
from backoffice.models.enums import InvoiceStatus
from backoffice.models.invoice import Invoice, InvoiceItem, InvoiceSequence
from backoffice.models.project import Project
from backoffice.schemas.invoice import InvoiceCreate, InvoiceItemIn, InvoiceStats, InvoiceUpdate


logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest value a Numeric(12, 2) money column holds.
MAX_AMOUNT = Decimal("9999999999.99")

# Columns an update may overwrite directly; items and tax_amount are handled apart.
UPDATABLE_FIELDS = (
    "client",
    "client_ice",
    "project",
    "project_id",
    "issue_date",
    "due_date",
    "status",
    "profit_margin",
    "estimated_costs",
    "team_members",
    "notes",
)


def _q(value: Decimal) -> Decimal:
    return Decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return _q(value)
    return _q(Decimal(str(value)))


def _line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    return _q(quantity * unit_price)


@dataclass(frozen=True)
class LineItem:
    description: str
    unit_price: Decimal
    quantity: Decimal
    total: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def prepare_line_items(items: Sequence[InvoiceItemIn]) -> List[LineItem]:
    """Recompute every line total and reject lines whose sent total disagrees."""
    if not items:
        raise InvoiceValidationError("Au moins une ligne de facture est requise")

    lines: List[LineItem] = []
    for idx, item in enumerate(items, start=1):
        description = item.description.strip()
        if not description:
            raise InvoiceValidationError(f"La description de la ligne {idx} est requise")
        unit_price = _q(item.unit_price)
        quantity = _q(item.quantity)
        if quantity <= ZERO:
            raise InvoiceValidationError(f"La quantité de la ligne {idx} doit être positive")
        total = _line_total(quantity, unit_price)
        if total > MAX_AMOUNT:
            raise InvoiceValidationError(
                f"Le total de la ligne {idx} dépasse le montant maximal autorisé",
                error=f"line {idx}: {total} exceeds {MAX_AMOUNT}",
            )
        if item.total is not None and _q(item.total) != total:
            raise InvoiceValidationError(
                f"Le total de la ligne {idx} ne correspond pas au prix unitaire multiplié par la quantité",
                error=f"line {idx}: expected {total}, got {_q(item.total)}",
            )
        lines.append(LineItem(description=description, unit_price=unit_price, quantity=quantity, total=total))
    return lines


def compute_invoice_totals(items: Iterable, *, tax_rate: Optional[Decimal] = None) -> InvoiceTotals:
    """Subtotal, TVA and grand total of items carrying a ``total``. An empty list gives zeros."""
    rate = settings.invoice_tax_rate if tax_rate is None else Decimal(tax_rate)
    amount = _q(sum((Decimal(item.total) for item in items), start=ZERO))
    tax_amount = _q(amount * rate)
    return InvoiceTotals(amount=amount, tax_amount=tax_amount, total_amount=_q(amount + tax_amount))


def _ensure_amount_in_range(total_amount: Decimal) -> None:
    if total_amount > MAX_AMOUNT:
        raise InvoiceValidationError(
            "Le montant total de la facture dépasse le montant maximal autorisé",
            error=f"total {total_amount} exceeds {MAX_AMOUNT}",
        )


def format_invoice_number(year: int, number: int) -> str:
    padding = settings.invoice_number_padding
    return f"{settings.invoice_number_prefix}-{year}-{number:0{padding}d}"


def _max_existing_suffix(db: Session, year: int) -> int:
    prefix = f"{settings.invoice_number_prefix}-{year}-"
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    numbers = db.query(Invoice.invoice_number).filter(Invoice.invoice_number.like(f"{prefix}%")).all()
    suffixes = [int(match.group(1)) for (number,) in numbers if (match := pattern.match(number))]
    return max(suffixes, default=0)


def allocate_invoice_number(db: Session, *, year: int, resync: bool = False) -> str:
    """Increment the year's counter under a row lock and return the formatted number.

    The counter row is created on first use, seeded from invoice numbers already
    stored for that year. ``resync`` re-reads those numbers for an existing row
    that fell behind them.
    """
    sequence = (
        db.query(InvoiceSequence)
        .filter(InvoiceSequence.year == year)
        .with_for_update()
        .first()
    )
    if not sequence:
        sequence = InvoiceSequence(year=year, last_number=_max_existing_suffix(db, year))
        db.add(sequence)
        db.flush()
    elif resync:
        sequence.last_number = max(sequence.last_number, _max_existing_suffix(db, year))
    sequence.last_number += 1
    db.add(sequence)
    db.flush()
    return format_invoice_number(year, sequence.last_number)


def replace_invoice_items(db: Session, invoice: Invoice, lines: Iterable[LineItem]) -> List[InvoiceItem]:
    invoice.items.clear()
    db.flush()

    created: List[InvoiceItem] = []
    for idx, line in enumerate(lines):
        invoice_item = InvoiceItem(
            description=line.description,
            unit_price=line.unit_price,
            quantity=line.quantity,
            total=line.total,
            position=idx,
        )
        invoice.items.append(invoice_item)
        created.append(invoice_item)
    db.flush()
    return created


def _apply_totals(invoice: Invoice, totals: InvoiceTotals) -> None:
    invoice.amount = totals.amount
    invoice.tax_amount = totals.tax_amount
    invoice.total_amount = totals.total_amount


def _estimated_costs(amount: Decimal, profit_margin: Optional[Decimal]) -> Decimal:
    if profit_margin is not None:
        return _q(amount * (Decimal("1") - Decimal(profit_margin) / Decimal("100")))
    return _q(amount * settings.invoice_default_cost_ratio)


def _ensure_project_exists(db: Session, project_id: Optional[int]) -> None:
    if project_id is not None and db.get(Project, project_id) is None:
        raise InvoiceValidationError("Projet introuvable", error=f"project {project_id} does not exist")


def _invoice_query(db: Session) -> Query:
    return db.query(Invoice).options(
        selectinload(Invoice.items),
        selectinload(Invoice.assigned_employees),
        joinedload(Invoice.project_ref),
    )


def get_invoice(db: Session, invoice_id: int) -> Invoice:
    invoice = _invoice_query(db).filter(Invoice.id == invoice_id).first()
    if not invoice:
        raise InvoiceNotFoundError()
    return invoice


def list_invoices(
    db: Session,
    *,
    status: Optional[InvoiceStatus] = None,
    search: Optional[str] = None,
) -> List[Invoice]:
    query = _invoice_query(db)
    if status:
        query = query.filter(Invoice.status == status)
    if search and search.strip():
        term = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(Invoice.invoice_number).like(term),
                func.lower(Invoice.client).like(term),
                func.lower(Invoice.project).like(term),
            )
        )
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def _insert_invoice(
    db: Session,
    payload: InvoiceCreate,
    lines: List[LineItem],
    totals: InvoiceTotals,
    *,
    year: int,
    resync: bool,
) -> Invoice:
    _ensure_project_exists(db, payload.project_id)
    estimated_costs = payload.estimated_costs
    if estimated_costs is None:
        estimated_costs = _estimated_costs(totals.amount, payload.profit_margin)

    invoice = Invoice(
        invoice_number=allocate_invoice_number(db, year=year, resync=resync),
        client=payload.client.strip(),
        client_ice=payload.client_ice,
        project=payload.project.strip(),
        project_id=payload.project_id,
        issue_date=payload.issue_date,
        due_date=payload.due_date,
        status=InvoiceStatus.DRAFT,
        profit_margin=payload.profit_margin,
        estimated_costs=_q(estimated_costs),
        team_members=list(payload.team_members),
        notes=payload.notes,
    )
    _apply_totals(invoice, totals)
    db.add(invoice)
    db.flush()
    replace_invoice_items(db, invoice, lines)
    return invoice


def create_invoice(db: Session, payload: InvoiceCreate, *, today: Optional[date] = None) -> Invoice:
    """Create a draft invoice with its items in one transaction.

    The number is allocated inside the same transaction; a uniqueness conflict
    with a concurrent creation rolls everything back and the whole attempt is
    replayed, up to ``invoice_number_max_attempts`` times.
    """
    lines = prepare_line_items(payload.items)
    totals = compute_invoice_totals(lines)
    _ensure_amount_in_range(totals.total_amount)
    year = (today or utcnow().date()).year

    max_attempts = settings.invoice_number_max_attempts
    for attempt in range(1, max_attempts + 1):
        try:
            with atomic(db):
                invoice = _insert_invoice(db, payload, lines, totals, year=year, resync=attempt > 1)
            break
        except IntegrityError:
            invoice_number_conflicts_total.inc()
            logger.warning("invoice_number_conflict", extra={"attempt": attempt})
            if attempt == max_attempts:
                raise

    invoices_created_total.inc()
    logger.info(
        "invoice_created",
        extra={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number, "item_count": len(lines)},
    )
    return get_invoice(db, invoice.id)


def _get_invoice_for_update(db: Session, invoice_id: int) -> Invoice:
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id).with_for_update().first()
    if not invoice:
        raise InvoiceNotFoundError()
    return invoice


def update_invoice(db: Session, invoice_id: int, payload: InvoiceUpdate) -> Invoice:
    fields = payload.model_fields_set

    with atomic(db):
        invoice = _get_invoice_for_update(db, invoice_id)
        lines = prepare_line_items(payload.items or []) if "items" in fields else None
        if "project_id" in fields:
            _ensure_project_exists(db, payload.project_id)

        for name in UPDATABLE_FIELDS:
            if name in fields:
                setattr(invoice, name, getattr(payload, name))

        if lines is not None:
            replace_invoice_items(db, invoice, lines)
            _apply_totals(invoice, compute_invoice_totals(lines))

        if "tax_amount" in fields:
            invoice.tax_amount = _q(payload.tax_amount)
            invoice.total_amount = _q(Decimal(invoice.amount) + invoice.tax_amount)

        _ensure_amount_in_range(_to_decimal(invoice.total_amount))

        invoice.updated_at = utcnow()
        db.add(invoice)

    logger.info(
        "invoice_updated",
        extra={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
    )
    db.expire_all()
    return get_invoice(db, invoice_id)


def delete_invoice(db: Session, invoice_id: int) -> str:
    """Delete an unpaid invoice and its items. Returns the deleted invoice number."""
    with atomic(db):
        invoice = _get_invoice_for_update(db, invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            logger.warning(
                "invoice_delete_refused",
                extra={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
            )
            raise PaidInvoiceDeletionError()
        invoice_number = invoice.invoice_number
        db.delete(invoice)

    logger.info("invoice_deleted", extra={"invoice_id": invoice_id, "invoice_number": invoice_number})
    return invoice_number


def touch_invoice(db: Session, invoice: Invoice) -> Invoice:
    with atomic(db):
        invoice.updated_at = utcnow()
        db.add(invoice)
    return invoice


def invoice_stats(db: Session) -> InvoiceStats:
    def count_status(status: InvoiceStatus):
        return func.count(case((Invoice.status == status, 1)))

    row = db.query(
        func.count(Invoice.id),
        count_status(InvoiceStatus.DRAFT),
        count_status(InvoiceStatus.PENDING),
        count_status(InvoiceStatus.PAID),
        count_status(InvoiceStatus.OVERDUE),
        func.coalesce(func.sum(case((Invoice.status == InvoiceStatus.PAID, Invoice.total_amount), else_=0)), 0),
        func.coalesce(
            func.sum(
                case(
                    (Invoice.status.in_([InvoiceStatus.PENDING, InvoiceStatus.OVERDUE]), Invoice.total_amount),
                    else_=0,
                )
            ),
            0,
        ),
        func.coalesce(func.avg(Invoice.total_amount), 0),
        func.coalesce(func.avg(Invoice.profit_margin), 0),
    ).one()

    return InvoiceStats(
        total_invoices=row[0] or 0,
        draft_invoices=row[1] or 0,
        pending_invoices=row[2] or 0,
        paid_invoices=row[3] or 0,
        overdue_invoices=row[4] or 0,
        total_revenue=_to_decimal(row[5]),
        total_pending_amount=_to_decimal(row[6]),
        average_invoice_value=_to_decimal(row[7]),
        average_profit_margin=_to_decimal(row[8]),
    )


def _is_consistent(invoice: Invoice) -> bool:
    items_sum = _q(sum((Decimal(item.total) for item in invoice.items), start=ZERO))
    amount = _to_decimal(invoice.amount)
    return (
        all(_to_decimal(item.total) == _line_total(Decimal(item.quantity), _to_decimal(item.unit_price)) for item in invoice.items)
        and amount == items_sum
        and _to_decimal(invoice.total_amount) == _q(amount + _to_decimal(invoice.tax_amount))
    )


def backfill_invoice_totals(db: Session, *, batch_size: int = 200) -> int:
    """Recompute line and header totals of invoices whose stored figures disagree."""
    query = db.query(Invoice).options(selectinload(Invoice.items)).order_by(Invoice.id)
    updated = 0
    with atomic(db):
        for invoice in query.yield_per(batch_size):
            if _is_consistent(invoice):
                continue
            for item in invoice.items:
                item.total = _line_total(Decimal(item.quantity), _to_decimal(item.unit_price))
            _apply_totals(invoice, compute_invoice_totals(invoice.items))
            db.add(invoice)
            updated += 1
    return updated
