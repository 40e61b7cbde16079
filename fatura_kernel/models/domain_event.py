"""
Module: fatura_kernel.models.domain_event
Responsibility: Append-only record of lifecycle events emitted by the
    kernel services (accruals, closes, payments, reopens, generations).
Architecture position: Kernel > Models.  May import from db/base.py only.

Events are written in the same unit of work as the change they describe,
so an event exists if and only if its change committed.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fatura_kernel.db.base import Base


class DomainAction(str, Enum):
    """Kinds of events the kernel records."""

    # Invoice lifecycle
    INVOICE_CREATED = "invoice_created"
    PURCHASE_ACCRUED = "purchase_accrued"
    INSTALLMENT_PLAN_ACCRUED = "installment_plan_accrued"
    ITEM_REMOVED = "item_removed"
    INVOICE_CLOSED = "invoice_closed"
    INVOICE_PAID = "invoice_paid"
    INVOICE_REOPENED = "invoice_reopened"

    # Recurrences
    RECURRENCE_CREATED = "recurrence_created"
    RECURRENCE_PAUSED = "recurrence_paused"
    RECURRENCE_RESUMED = "recurrence_resumed"
    RECURRENCE_DELETED = "recurrence_deleted"
    RECURRENCE_GENERATED = "recurrence_generated"
    TRANSACTIONS_MARKED_OVERDUE = "transactions_marked_overdue"


class DomainEvent(Base):
    """One recorded domain event."""

    __tablename__ = "domain_events"

    __table_args__ = (
        Index("idx_domain_event_entity", "entity_type", "entity_id"),
        Index("idx_domain_event_tenant_time", "tenant_id", "occurred_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False)
    action: Mapped[DomainAction] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<DomainEvent {self.action} {self.entity_type}:{self.entity_id}>"
