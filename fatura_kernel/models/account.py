"""
Module: fatura_kernel.models.account
Responsibility: ORM persistence for ledger accounts and categories, the
    reference data that cards, transactions and recurrences point at.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fatura_kernel.db.base import TrackedBase


class AccountKind(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CASH = "cash"
    INVESTMENT = "investment"


class CategoryKind(str, Enum):
    """Whether a category classifies money coming in or going out."""

    CREDIT = "credit"
    DEBIT = "debit"


class Account(TrackedBase):
    """A bank, cash or investment account owned by a tenant."""

    __tablename__ = "accounts"

    __table_args__ = (Index("idx_account_tenant", "tenant_id"),)

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[AccountKind] = mapped_column(
        String(20), default=AccountKind.CHECKING, nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Account {self.name} ({self.tenant_id})>"


class Category(TrackedBase):
    """Classification attached to transactions, items and recurrences."""

    __tablename__ = "categories"

    __table_args__ = (Index("idx_category_tenant", "tenant_id"),)

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[CategoryKind] = mapped_column(
        String(10), default=CategoryKind.DEBIT, nullable=False
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Category {self.name}>"
