#!/usr/bin/env python3
"""
Generate scheduled transactions from recurrence templates for one month.

Safe to re-run: occurrences already generated are reported as skipped.

Usage:
    python3 scripts/generate_recurrences.py --tenant <tenant-id> --month 2025-11
    python3 scripts/generate_recurrences.py --tenant acme --month 2025-11 --mark-overdue 2025-11-20

Exit status:
    0  every recurrence expanded
    1  at least one recurrence failed (the others were still generated)
    2  configuration, input or storage error
"""

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate recurring transactions")
    parser.add_argument("--tenant", required=True)
    parser.add_argument("--month", required=True, help="Reference month, YYYY-MM")
    parser.add_argument(
        "--mark-overdue",
        metavar="YYYY-MM-DD",
        help="Also flag scheduled recurrence entries due before this date",
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--db-url", help="Override database.url")
    args = parser.parse_args()

    from fatura_config import ConfigurationError, get_active_config
    from fatura_kernel.exceptions import StorageError
    from fatura_kernel.logging_config import LogContext, configure_logging
    from fatura_kernel.services import RecurrenceGenerator
    from fatura_kernel.store import Storage

    overrides = {"database": {"url": args.db_url}} if args.db_url else None
    try:
        settings = get_active_config(args.config, overrides)
        as_of = date.fromisoformat(args.mark_overdue) if args.mark_overdue else None
    except (ConfigurationError, FileNotFoundError, ValueError) as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2
    configure_logging(level=settings.logging.level, stream=sys.stderr)

    storage = Storage.from_url(settings.database.url, echo=settings.database.echo)
    generator = RecurrenceGenerator(storage, policy=settings.policy)
    try:
        with LogContext.bind(tenant_id=args.tenant, operation="generate_recurrences"):
            result = generator.generate_for_month(args.tenant, args.month)
            overdue = generator.mark_overdue(args.tenant, as_of) if as_of else None
    except ValueError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2
    except StorageError as exc:
        print(f"Storage error: {exc}", file=sys.stderr)
        return 2
    finally:
        storage.dispose()

    print(f"Month {result.reference_month}: "
          f"{result.created_count} created, {result.skipped_count} already present")
    for txn in result.transactions:
        print(f"  {txn.transaction_date}  {txn.amount:>12}  {txn.description}")
    for failure in result.failures:
        print(f"  FAILED {failure.recurrence_id} [{failure.code}] {failure.message}")
    if overdue is not None:
        print(f"Marked {overdue} transaction(s) overdue before {as_of}")
    return 1 if result.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())
