"""
Module: fatura_kernel.models.card
Responsibility: ORM persistence for credit cards and their billing terms.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - closing_day and due_day are calendar days of month (1..31), checked
      by DB constraints.  Clamping to shorter months happens in the
      competencia calculator, never here.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from fatura_kernel.db.base import TrackedBase, UUIDString


class Card(TrackedBase):
    """
    Credit card with its billing terms.

    Contract:
        Owns its invoices (one per competencia).  Purchases made on or after
        closing_day roll to the next month's invoice; the invoice falls due
        on due_day of the following cycle.

    Non-goals:
        - Does NOT track available credit; credit_limit is informational.
    """

    __tablename__ = "cards"

    __table_args__ = (
        CheckConstraint("closing_day BETWEEN 1 AND 31", name="ck_card_closing_day"),
        CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_card_due_day"),
        Index("idx_card_tenant", "tenant_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    nickname: Mapped[str] = mapped_column(String(100), nullable=False)
    brand: Mapped[str | None] = mapped_column(String(30), nullable=True)
    closing_day: Mapped[int] = mapped_column(Integer, nullable=False)
    due_day: Mapped[int] = mapped_column(Integer, nullable=False)

    # Account debited when the invoice is paid
    payment_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )

    credit_limit: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Card {self.nickname} closes={self.closing_day} due={self.due_day}>"
