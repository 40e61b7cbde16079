"""
Module: fatura_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions: settled entries,
    scheduled ("previsto") entries produced by recurrences, and invoice
    payables/payments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - origin is free-form provenance ("recurrence:<id>", "invoice:<id>").
      It is NOT a foreign key: deleting a recurrence never cascades here.
    - (tenant_id, dedup_key) is unique when dedup_key is set.  Recurrence
      generation stores its occurrence key there, so a concurrent second
      generator for the same occurrence fails at the database instead of
      writing a duplicate.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fatura_kernel.db.base import TrackedBase, UUIDString


class TransactionKind(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    TRANSFER = "transfer"


class TransactionStatus(str, Enum):
    """Settlement status of a ledger transaction."""

    SCHEDULED = "scheduled"
    SETTLED = "settled"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


class LedgerTransaction(TrackedBase):
    """A single ledger entry against an account."""

    __tablename__ = "ledger_transactions"

    __table_args__ = (
        UniqueConstraint("tenant_id", "dedup_key", name="uq_transaction_dedup_key"),
        Index("idx_transaction_origin_month", "origin", "reference_month"),
        Index("idx_transaction_tenant_status", "tenant_id", "status"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[TransactionKind] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    destination_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("categories.id"), nullable=True
    )

    origin: Mapped[str | None] = mapped_column(String(80), nullable=True)
    status: Mapped[TransactionStatus] = mapped_column(
        String(12), default=TransactionStatus.SETTLED, nullable=False
    )

    installment_group_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True
    )
    installment_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    installment_total: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # "YYYY-MM"; used for recurrence and payable bookkeeping
    reference_month: Mapped[str | None] = mapped_column(String(7), nullable=True)
    dedup_key: Mapped[str | None] = mapped_column(String(120), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction {self.kind} {self.amount} "
            f"{self.transaction_date} [{self.status}]>"
        )
