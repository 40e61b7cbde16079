#!/usr/bin/env python3
"""
Close every open invoice whose statement date has passed.

Usage:
    python3 scripts/close_due_invoices.py --tenant <tenant-id>
    python3 scripts/close_due_invoices.py --tenant acme --as-of 2025-03-10
"""

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Close invoices past their statement date")
    parser.add_argument("--tenant", required=True)
    parser.add_argument("--as-of", help="Statement cut-off, YYYY-MM-DD (default: today)")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--db-url", help="Override database.url")
    args = parser.parse_args()

    from fatura_config import ConfigurationError, get_active_config
    from fatura_kernel.exceptions import StorageError
    from fatura_kernel.logging_config import LogContext, configure_logging
    from fatura_kernel.services import InvoiceLifecycleService
    from fatura_kernel.store import Storage

    overrides = {"database": {"url": args.db_url}} if args.db_url else None
    try:
        settings = get_active_config(args.config, overrides)
        as_of = date.fromisoformat(args.as_of) if args.as_of else date.today()
    except (ConfigurationError, FileNotFoundError, ValueError) as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2
    configure_logging(level=settings.logging.level, stream=sys.stderr)

    storage = Storage.from_url(settings.database.url, echo=settings.database.echo)
    service = InvoiceLifecycleService(storage, policy=settings.policy)
    try:
        with LogContext.bind(tenant_id=args.tenant, operation="close_due_invoices"):
            closed = service.close_due_invoices(args.tenant, as_of)
    except StorageError as exc:
        print(f"Storage error: {exc}", file=sys.stderr)
        return 2
    finally:
        storage.dispose()

    print(f"Closed {len(closed)} invoice(s) as of {as_of}")
    for invoice in closed:
        print(f"  {invoice.competencia}  card={invoice.card_id}  total={invoice.closed_total}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
