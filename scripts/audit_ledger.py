#!/usr/bin/env python3
"""
Audit the invoice ledger of one tenant for consistency findings.

Usage:
    python3 scripts/audit_ledger.py --tenant <tenant-id>
    python3 scripts/audit_ledger.py --tenant <tenant-id> --json

Exit status:
    0  no hard violations (advisory findings may still be printed)
    1  orphan items or closed totals that disagree with their items
    2  configuration or storage error

Examples:
    # Human-readable report against the configured database
    python3 scripts/audit_ledger.py --tenant acme

    # Machine-readable report against another database
    python3 scripts/audit_ledger.py --tenant acme --json --db-url sqlite:///other.db
"""

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 80


def banner(title: str) -> None:
    print()
    print("=" * W)
    print(f"  {title}")
    print("=" * W)


def section(title: str, count: int) -> None:
    print()
    print(f"--- {title} ({count}) ---")


def render_text(report) -> None:
    banner(f"LEDGER AUDIT  tenant={report.tenant_id}")
    print(f"  generated_at: {report.generated_at.isoformat()}")
    groups = (
        ("Orphan items", report.orphan_items),
        ("Inconsistent closed totals", report.inconsistent_totals),
        ("Empty open invoices (advisory)", report.empty_open_invoices),
        ("Suspected duplicate accruals (advisory)", report.duplicate_accruals),
    )
    for title, findings in groups:
        section(title, len(findings))
        for finding in findings:
            print(f"  [{finding.kind}] {finding.entity_type} {finding.entity_id}")
            print(f"      {finding.message}")
    print()
    verdict = "VIOLATIONS FOUND" if report.has_violations else "OK"
    print(f"  Result: {verdict}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Audit invoice ledger consistency")
    parser.add_argument("--tenant", required=True, help="Tenant to audit")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--db-url", help="Override database.url")
    parser.add_argument("--json", action="store_true", help="Emit JSON")
    args = parser.parse_args()

    from fatura_config import ConfigurationError, get_active_config
    from fatura_kernel.exceptions import StorageError
    from fatura_kernel.logging_config import configure_logging
    from fatura_kernel.selectors import ConsistencyChecker
    from fatura_kernel.store import Storage

    overrides = {"database": {"url": args.db_url}} if args.db_url else None
    try:
        settings = get_active_config(args.config, overrides)
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    configure_logging(level=settings.logging.level, stream=sys.stderr)

    storage = Storage.from_url(settings.database.url, echo=settings.database.echo)
    try:
        report = ConsistencyChecker(storage).run_all(args.tenant)
    except StorageError as exc:
        print(f"Storage error: {exc}", file=sys.stderr)
        return 2
    finally:
        storage.dispose()

    if args.json:
        print(json.dumps(asdict(report), indent=2, default=str))
    else:
        render_text(report)
    return 1 if report.has_violations else 0


if __name__ == "__main__":
    sys.exit(main())
