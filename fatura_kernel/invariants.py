"""
Ledger invariants contract.

These invariants hold for every tenant at every commit point. They are
enforced by the accrual and lifecycle services and by storage constraints;
the consistency checker reports any row that violates them.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    ONE_INVOICE_PER_CYCLE = "one_invoice_per_cycle"
    """At most one invoice per (card, competencia, tenant). Enforced by a
    unique constraint and insert-or-fetch in LedgerStore."""

    ITEM_HAS_INVOICE = "item_has_invoice"
    """Every non-deleted item references an existing invoice. Enforced by
    writing the invoice and item in one unit of work."""

    ITEM_MATCHES_INVOICE_CYCLE = "item_matches_invoice_cycle"
    """An item's competencia equals its invoice's competencia."""

    CLOSED_TOTAL_MATCHES_ITEMS = "closed_total_matches_items"
    """closed_total of a closed or paid invoice equals the sum of its
    non-deleted items. Items of non-open invoices cannot change."""

    LIFECYCLE_ORDER = "lifecycle_order"
    """Invoices move open -> closed -> paid; no state is skipped and no
    transition is a silent no-op."""

    RECURRENCE_IDEMPOTENCY = "recurrence_idempotency"
    """A recurrence generates at most one transaction per occurrence key.
    Enforced inside the generating transaction and by a unique dedup key."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "fatura_config",
    "scripts",
)
