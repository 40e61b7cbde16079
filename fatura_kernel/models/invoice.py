"""
Module: fatura_kernel.models.invoice
Responsibility: ORM persistence for invoices (faturas) and their items.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One invoice per (card, competencia, tenant): uq_invoice_card_cycle.
      Items carry no uniqueness constraint; repeat purchases are legal.
    - Lifecycle edges are listed in VALID_TRANSITIONS.  open -> closed ->
      paid is the forward path; closed -> open exists only for the audited
      reopen operation.
    - Invoice rows carry a version counter (version_id_col).  A concurrent
      writer that loses the race fails with StaleDataError, which the store
      reports as a storage conflict.

Failure modes:
    - IntegrityError on a second insert for the same cycle.  LedgerStore
      catches it inside a SAVEPOINT and re-reads the winning row.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from fatura_kernel.db.base import TrackedBase, UUIDString


class InvoiceStatus(str, Enum):
    """Lifecycle status of an invoice."""

    OPEN = "open"
    CLOSED = "closed"
    PAID = "paid"


VALID_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.OPEN: frozenset({InvoiceStatus.CLOSED}),
    InvoiceStatus.CLOSED: frozenset({InvoiceStatus.PAID, InvoiceStatus.OPEN}),
    # Terminal
    InvoiceStatus.PAID: frozenset(),
}


class Invoice(TrackedBase):
    """
    Aggregation of a card's purchases for one competencia.

    Contract:
        Created lazily on first accrual (or explicitly via ensure_invoice)
        with status OPEN and closed_total NULL.  closed_total is set exactly
        when the invoice closes; paid_amount, payment_date and
        payment_transaction_id are set exactly when it is paid.

    Non-goals:
        - Does NOT sum its own items; the lifecycle service does that under
          the invoice row lock.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint(
            "card_id", "competencia", "tenant_id", name="uq_invoice_card_cycle"
        ),
        Index("idx_invoice_tenant_status", "tenant_id", "status"),
        Index("idx_invoice_card", "card_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    card_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("cards.id"), nullable=False
    )

    # Billing cycle key, "YYYY-MM"
    competencia: Mapped[str] = mapped_column(String(7), nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        String(10), default=InvoiceStatus.OPEN, nullable=False
    )

    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    closing_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    closed_total: Mapped[Decimal | None] = mapped_column(nullable=True)

    paid_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_transactions.id"), nullable=True
    )

    # Scheduled "payable" entry kept in step with accrued items while open
    forecast_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_transactions.id"), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Invoice {self.competencia} card={self.card_id}: {self.status}>"

    @property
    def status_enum(self) -> InvoiceStatus:
        return InvoiceStatus(self.status)

    @property
    def is_open(self) -> bool:
        return self.status_enum == InvoiceStatus.OPEN

    def can_transition_to(self, target: InvoiceStatus) -> bool:
        return target in VALID_TRANSITIONS[self.status_enum]


class InvoiceItem(TrackedBase):
    """
    One purchase, or one installment of a split purchase, on an invoice.

    Contract:
        invoice_id is nullable at the column level only so that an item can
        be flushed before its invoice id is known inside a unit of work; no
        committed, non-deleted item has a NULL invoice_id.  competencia
        always equals the invoice's competencia.
    """

    __tablename__ = "invoice_items"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_invoice_item_amount_positive"),
        Index("idx_item_invoice", "invoice_id"),
        Index("idx_item_card_cycle", "card_id", "competencia"),
        Index("idx_item_installment_group", "installment_group_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )
    card_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("cards.id"), nullable=False
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    competencia: Mapped[str] = mapped_column(String(7), nullable=False)
    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("categories.id"), nullable=True
    )

    installment_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    installment_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    installment_group_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<InvoiceItem {self.description} {self.amount} ({self.competencia})>"
