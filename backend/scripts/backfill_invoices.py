"""Recompute stored invoice totals from their item rows.

Repairs rows written before amounts were kept as exact decimals: line totals,
subtotal, TVA and grand total are rewritten only where they disagree.
"""
from __future__ import annotations

import argparse

from backoffice.core.logging import configure_logging
from backoffice.core.settings import settings
from backoffice.db.session import SessionLocal
from backoffice.services.invoices import backfill_invoice_totals


def main() -> None:
    parser = argparse.ArgumentParser(description="Recompute invoice totals from their items.")
    parser.add_argument("--batch-size", type=int, default=200, help="Invoices loaded per round trip")
    args = parser.parse_args()

    configure_logging(level=settings.log_level)
    with SessionLocal() as db:
        updated = backfill_invoice_totals(db, batch_size=args.batch_size)
    print(f"Recomputed totals of {updated} invoice(s).")


if __name__ == "__main__":
    main()
