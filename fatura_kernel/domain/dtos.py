"""
Domain DTOs -- immutable values crossing the kernel boundary.

Responsibility:
    Frozen dataclasses returned by services and selectors and accepted as
    inputs.  Callers never receive ORM instances, so nothing they hold can
    lazily load or accidentally write back to the session.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model`` constructors accept
    ORM rows but do not import the model modules at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from fatura_kernel.models.card import Card
    from fatura_kernel.models.invoice import Invoice, InvoiceItem
    from fatura_kernel.models.recurrence import Recurrence
    from fatura_kernel.models.transaction import LedgerTransaction


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Purchase:
    """
    A card purchase to be accrued.

    ``amount`` is the full purchase value; for installment plans it is split
    across the installments.
    """

    tenant_id: str
    card_id: UUID
    description: str
    amount: Decimal
    purchase_date: date
    category_id: UUID | None = None


@dataclass(frozen=True)
class CycleResolution:
    """Billing cycle a date falls into, with that cycle's key dates."""

    competencia: str
    due_date: date
    closing_date: date


# ---------------------------------------------------------------------------
# Entity snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CardInfo:
    id: UUID
    tenant_id: str
    nickname: str
    brand: str | None
    closing_day: int
    due_day: int
    payment_account_id: UUID | None

    @classmethod
    def from_model(cls, model: Card) -> CardInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            nickname=model.nickname,
            brand=model.brand,
            closing_day=model.closing_day,
            due_day=model.due_day,
            payment_account_id=model.payment_account_id,
        )


@dataclass(frozen=True)
class InvoiceInfo:
    """
    Snapshot of an invoice.

    Guarantees:
        - closed_total is None exactly while status is "open".
        - paid_amount, payment_date and payment_transaction_id are set
          exactly when status is "paid".
    """

    id: UUID
    tenant_id: str
    card_id: UUID
    competencia: str
    status: str
    due_date: date
    closing_date: date | None = None
    closed_total: Decimal | None = None
    paid_amount: Decimal | None = None
    payment_date: date | None = None
    payment_transaction_id: UUID | None = None

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @classmethod
    def from_model(cls, model: Invoice) -> InvoiceInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            card_id=model.card_id,
            competencia=model.competencia,
            status=str(getattr(model.status, "value", model.status)),
            due_date=model.due_date,
            closing_date=model.closing_date,
            closed_total=model.closed_total,
            paid_amount=model.paid_amount,
            payment_date=model.payment_date,
            payment_transaction_id=model.payment_transaction_id,
        )


@dataclass(frozen=True)
class InvoiceItemInfo:
    id: UUID
    invoice_id: UUID | None
    card_id: UUID
    description: str
    amount: Decimal
    purchase_date: date
    competencia: str
    category_id: UUID | None = None
    installment_number: int | None = None
    installment_total: int | None = None
    installment_group_id: UUID | None = None
    is_deleted: bool = False

    @classmethod
    def from_model(cls, model: InvoiceItem) -> InvoiceItemInfo:
        return cls(
            id=model.id,
            invoice_id=model.invoice_id,
            card_id=model.card_id,
            description=model.description,
            amount=model.amount,
            purchase_date=model.purchase_date,
            competencia=model.competencia,
            category_id=model.category_id,
            installment_number=model.installment_number,
            installment_total=model.installment_total,
            installment_group_id=model.installment_group_id,
            is_deleted=model.is_deleted,
        )


@dataclass(frozen=True)
class InvoiceWithItems:
    """An invoice together with its non-deleted items."""

    invoice: InvoiceInfo
    items: tuple[InvoiceItemInfo, ...] = field(default_factory=tuple)

    @property
    def items_total(self) -> Decimal:
        return sum((item.amount for item in self.items), Decimal("0.00"))


@dataclass(frozen=True)
class TransactionInfo:
    id: UUID
    tenant_id: str
    kind: str
    amount: Decimal
    description: str
    transaction_date: date
    status: str
    origin: str | None = None
    due_date: date | None = None
    account_id: UUID | None = None
    category_id: UUID | None = None
    reference_month: str | None = None

    @classmethod
    def from_model(cls, model: LedgerTransaction) -> TransactionInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            kind=str(getattr(model.kind, "value", model.kind)),
            amount=model.amount,
            description=model.description,
            transaction_date=model.transaction_date,
            status=str(getattr(model.status, "value", model.status)),
            origin=model.origin,
            due_date=model.due_date,
            account_id=model.account_id,
            category_id=model.category_id,
            reference_month=model.reference_month,
        )


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of paying an invoice: the paid invoice and its ledger entry."""

    invoice: InvoiceInfo
    transaction: TransactionInfo


@dataclass(frozen=True)
class RecurrenceInfo:
    id: UUID
    tenant_id: str
    kind: str
    amount: Decimal
    description: str
    frequency: str
    due_day: int
    start_date: date
    end_date: date | None
    next_occurrence: date | None
    is_paused: bool
    is_deleted: bool
    account_id: UUID | None = None
    category_id: UUID | None = None

    @classmethod
    def from_model(cls, model: Recurrence) -> RecurrenceInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            kind=model.kind,
            amount=model.amount,
            description=model.description,
            frequency=model.frequency,
            due_day=model.due_day,
            start_date=model.start_date,
            end_date=model.end_date,
            next_occurrence=model.next_occurrence,
            is_paused=model.is_paused,
            is_deleted=model.is_deleted,
            account_id=model.account_id,
            category_id=model.category_id,
        )


# ---------------------------------------------------------------------------
# Recurrence generation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GenerationFailure:
    """One recurrence that could not be expanded, with the typed error code."""

    recurrence_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class GenerationResult:
    """
    Outcome of generating one tenant-month.

    ``transactions`` holds every transaction that exists for the month's
    occurrences after the run -- both newly created and previously
    generated -- so two runs for the same month return the same set.
    """

    tenant_id: str
    reference_month: str
    transactions: tuple[TransactionInfo, ...] = ()
    created_count: int = 0
    skipped_count: int = 0
    failures: tuple[GenerationFailure, ...] = ()

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


# ---------------------------------------------------------------------------
# Consistency findings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConsistencyFinding:
    """
    A single invariant violation reported by the consistency checker.

    ``invariant`` is the violated LedgerInvariant value, or None for
    advisory findings (empty open invoices, suspected duplicates).  ``kind``
    narrows the finding (``null_invoice`` vs ``dangling_invoice``).
    """

    invariant: str | None
    kind: str
    entity_type: str
    entity_id: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConsistencyReport:
    tenant_id: str
    generated_at: datetime
    orphan_items: tuple[ConsistencyFinding, ...] = ()
    empty_open_invoices: tuple[ConsistencyFinding, ...] = ()
    inconsistent_totals: tuple[ConsistencyFinding, ...] = ()
    duplicate_accruals: tuple[ConsistencyFinding, ...] = ()

    @property
    def findings(self) -> tuple[ConsistencyFinding, ...]:
        return (
            self.orphan_items
            + self.empty_open_invoices
            + self.inconsistent_totals
            + self.duplicate_accruals
        )

    @property
    def is_clean(self) -> bool:
        return not self.findings

    @property
    def has_violations(self) -> bool:
        """Hard invariant breaks; empty invoices and duplicates are advisory."""
        return bool(self.orphan_items or self.inconsistent_totals)
