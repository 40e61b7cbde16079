"""
Module: fatura_kernel.models.recurrence
Responsibility: ORM persistence for recurrence templates.
Architecture position: Kernel > Models.  May import from db/base.py only.

A recurrence never owns the transactions it generates; they reference it
only through their origin tag.  Deleting is a soft delete.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from fatura_kernel.db.base import TrackedBase, UUIDString


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Recurrence(TrackedBase):
    """Template that periodically produces scheduled ledger transactions."""

    __tablename__ = "recurrences"

    __table_args__ = (Index("idx_recurrence_tenant_active", "tenant_id", "is_paused"),)

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )
    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("categories.id"), nullable=True
    )
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)

    # Stored as text so that rows written by other tools with an unknown
    # frequency surface as InvalidRecurrenceError at generation time.
    frequency: Mapped[str] = mapped_column(String(12), nullable=False)
    due_day: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_occurrence: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Recurrence {self.description} {self.frequency} day={self.due_day}>"

    @property
    def origin_tag(self) -> str:
        return f"recurrence:{self.id}"
