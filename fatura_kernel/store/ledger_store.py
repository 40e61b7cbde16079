"""
Module: fatura_kernel.store.ledger_store
Responsibility: The typed storage surface handed to services inside a unit
    of work -- one Repository per entity plus the few operations that need
    more than CRUD: invoice insert-or-fetch, row locking, item totals,
    recurrence dedup lookups and domain event emission.
Architecture position: Kernel > Store.  May import from db/, models/,
    domain/ and exceptions.

Invariants enforced:
    - One invoice per (card, competencia, tenant).  get_or_create_invoice
      reads with FOR UPDATE, and on a miss inserts inside a SAVEPOINT.
      When a concurrent writer wins the race the unique constraint rejects
      the insert, the savepoint is rolled back and the winner's row is
      returned.  Only the savepoint is lost; the caller's transaction
      continues.

Failure modes:
    - IntegrityError propagates if the insert fails and no competing row is
      visible afterwards (not a race; the unit of work reports it as a
      storage conflict).
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fatura_kernel.domain.dtos import CycleResolution
from fatura_kernel.logging_config import get_logger
from fatura_kernel.models import (
    Account,
    Card,
    Category,
    DomainAction,
    DomainEvent,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    LedgerTransaction,
    Recurrence,
)
from fatura_kernel.store.repository import Repository

logger = get_logger("store.ledger")


class LedgerStore:
    """
    Storage collaborator bound to one open transaction.

    Contract:
        Obtained only from ``Storage.unit_of_work()``.  Every write flushes
        into the enclosing transaction; nothing here commits.

    Non-goals:
        - Does NOT validate business rules; services do that before writing.
    """

    def __init__(self, session: Session):
        self.session = session
        self.accounts: Repository[Account] = Repository(session, Account)
        self.categories: Repository[Category] = Repository(session, Category)
        self.cards: Repository[Card] = Repository(session, Card)
        self.invoices: Repository[Invoice] = Repository(session, Invoice)
        self.items: Repository[InvoiceItem] = Repository(session, InvoiceItem)
        self.transactions: Repository[LedgerTransaction] = Repository(
            session, LedgerTransaction
        )
        self.recurrences: Repository[Recurrence] = Repository(session, Recurrence)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def find_invoice(
        self,
        tenant_id: str,
        card_id: UUID,
        competencia: str,
        *,
        for_update: bool = False,
    ) -> Invoice | None:
        stmt = select(Invoice).where(
            Invoice.tenant_id == tenant_id,
            Invoice.card_id == card_id,
            Invoice.competencia == competencia,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalars().first()

    def get_or_create_invoice(
        self,
        tenant_id: str,
        card_id: UUID,
        cycle: CycleResolution,
    ) -> tuple[Invoice, bool]:
        """
        Fetch the invoice for the cycle, creating it open if missing.

        Returns:
            (invoice, created) -- the invoice row is locked for the rest of
            the transaction.
        """
        existing = self.find_invoice(
            tenant_id, card_id, cycle.competencia, for_update=True
        )
        if existing is not None:
            return existing, False

        savepoint = self.session.begin_nested()
        try:
            invoice = Invoice(
                tenant_id=tenant_id,
                card_id=card_id,
                competencia=cycle.competencia,
                status=InvoiceStatus.OPEN.value,
                due_date=cycle.due_date,
                closed_total=None,
            )
            self.session.add(invoice)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            winner = self.find_invoice(
                tenant_id, card_id, cycle.competencia, for_update=True
            )
            if winner is None:
                raise
            logger.info(
                "invoice_create_race_lost",
                extra={
                    "tenant_id": tenant_id,
                    "card_id": str(card_id),
                    "competencia": cycle.competencia,
                    "invoice_id": str(winner.id),
                },
            )
            return winner, False

        return invoice, True

    def lock_invoice(self, invoice_id: UUID, tenant_id: str | None = None) -> Invoice:
        """SELECT ... FOR UPDATE on the invoice.  Raises NotFoundError."""
        return self.invoices.require(invoice_id, tenant_id=tenant_id, for_update=True)

    def sum_active_items(self, invoice_id: UUID) -> Decimal:
        stmt = select(func.coalesce(func.sum(InvoiceItem.amount), 0)).where(
            InvoiceItem.invoice_id == invoice_id,
            InvoiceItem.is_deleted.is_(False),
        )
        return Decimal(str(self.session.execute(stmt).scalar_one()))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def find_by_dedup_key(
        self, tenant_id: str, dedup_key: str
    ) -> LedgerTransaction | None:
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.tenant_id == tenant_id,
            LedgerTransaction.dedup_key == dedup_key,
        )
        return self.session.execute(stmt).scalars().first()

    def find_by_origin(
        self,
        tenant_id: str,
        origin: str,
        *,
        reference_month: str | None = None,
        transaction_date: date | None = None,
    ) -> list[LedgerTransaction]:
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.tenant_id == tenant_id,
            LedgerTransaction.origin == origin,
        )
        if reference_month is not None:
            stmt = stmt.where(LedgerTransaction.reference_month == reference_month)
        if transaction_date is not None:
            stmt = stmt.where(LedgerTransaction.transaction_date == transaction_date)
        stmt = stmt.order_by(LedgerTransaction.transaction_date)
        return list(self.session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def emit_event(
        self,
        *,
        tenant_id: str,
        entity_type: str,
        entity_id: UUID | str,
        action: DomainAction,
        occurred_at: datetime,
        payload: dict[str, Any] | None = None,
        actor_id: str | None = None,
    ) -> DomainEvent:
        event = DomainEvent(
            tenant_id=tenant_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            actor_id=actor_id,
            occurred_at=occurred_at,
            payload=_jsonable(payload) if payload is not None else None,
        )
        self.session.add(event)
        self.session.flush()
        return event


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
