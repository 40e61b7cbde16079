"""
Module: fatura_kernel.selectors.recurrence_selector
Responsibility: Read-side queries over recurrence templates and the
    transactions they generated.
"""

from uuid import UUID

from sqlalchemy import select

from fatura_kernel.domain.dtos import RecurrenceInfo, TransactionInfo
from fatura_kernel.exceptions import NotFoundError
from fatura_kernel.models import LedgerTransaction, Recurrence
from fatura_kernel.selectors.base import BaseSelector


class RecurrenceSelector(BaseSelector):

    def list_recurrences(
        self, tenant_id: str, *, include_paused: bool = True
    ) -> list[RecurrenceInfo]:
        stmt = select(Recurrence).where(
            Recurrence.tenant_id == tenant_id,
            Recurrence.is_deleted.is_(False),
        )
        if not include_paused:
            stmt = stmt.where(Recurrence.is_paused.is_(False))
        stmt = stmt.order_by(Recurrence.description)
        with self.storage.read_session() as session:
            return [RecurrenceInfo.from_model(r) for r in session.execute(stmt).scalars()]

    def get_recurrence(self, tenant_id: str, recurrence_id: UUID) -> RecurrenceInfo:
        """Fetch a template, soft-deleted ones included."""
        with self.storage.read_session() as session:
            row = session.execute(
                select(Recurrence).where(
                    Recurrence.id == recurrence_id,
                    Recurrence.tenant_id == tenant_id,
                )
            ).scalars().first()
            if row is None:
                raise NotFoundError("Recurrence", str(recurrence_id))
            return RecurrenceInfo.from_model(row)

    def generated_transactions(
        self,
        tenant_id: str,
        recurrence_id: UUID,
        reference_month: str | None = None,
    ) -> list[TransactionInfo]:
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.tenant_id == tenant_id,
            LedgerTransaction.origin == f"recurrence:{recurrence_id}",
        )
        if reference_month is not None:
            stmt = stmt.where(LedgerTransaction.reference_month == reference_month)
        stmt = stmt.order_by(LedgerTransaction.transaction_date)
        with self.storage.read_session() as session:
            return [TransactionInfo.from_model(t) for t in session.execute(stmt).scalars()]
