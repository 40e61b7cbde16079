"""
RecurrenceService -- template administration for recurring bills.

Creates, pauses, resumes and soft-deletes recurrence templates, validating
the schedule at the boundary so that only well-formed templates reach the
generator.  Deleting a template never touches transactions it generated.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fatura_kernel.domain.dtos import RecurrenceInfo
from fatura_kernel.domain.money import require_positive
from fatura_kernel.domain.schedule import RecurrenceSchedule
from fatura_kernel.exceptions import InvalidRecurrenceError, NotFoundError
from fatura_kernel.logging_config import get_logger
from fatura_kernel.models import DomainAction, Recurrence, TransactionKind
from fatura_kernel.services.base import BaseService
from fatura_kernel.store import LedgerStore

logger = get_logger("services.recurrence")


class RecurrenceService(BaseService):
    """
    Write side of recurrence templates.

    Raises:
        InvalidAmountError, InvalidRecurrenceError on creation;
        NotFoundError for missing or deleted templates.
    """

    def create_recurrence(
        self,
        tenant_id: str,
        *,
        description: str,
        amount: Decimal,
        frequency: str,
        due_day: int,
        start_date: date,
        kind: str = TransactionKind.DEBIT.value,
        end_date: date | None = None,
        account_id: UUID | None = None,
        category_id: UUID | None = None,
    ) -> RecurrenceInfo:
        value = require_positive(amount)
        schedule = RecurrenceSchedule.build(None, frequency, due_day, start_date, end_date)
        try:
            kind = TransactionKind(kind).value
        except ValueError:
            raise InvalidRecurrenceError(None, f"unknown kind {kind!r}") from None
        first = schedule.first_occurrence()

        def work(store: LedgerStore) -> RecurrenceInfo:
            recurrence = store.recurrences.create(
                tenant_id=tenant_id,
                account_id=account_id,
                category_id=category_id,
                kind=kind,
                amount=value,
                description=description,
                frequency=schedule.frequency.value,
                due_day=due_day,
                start_date=start_date,
                end_date=end_date,
                next_occurrence=first,
            )
            store.emit_event(
                tenant_id=tenant_id,
                entity_type="Recurrence",
                entity_id=recurrence.id,
                action=DomainAction.RECURRENCE_CREATED,
                occurred_at=self._clock.now(),
                payload={
                    "frequency": recurrence.frequency,
                    "due_day": due_day,
                    "amount": value,
                },
            )
            return RecurrenceInfo.from_model(recurrence)

        result = self._run("create_recurrence", work)
        logger.info(
            "recurrence_created",
            extra={
                "tenant_id": tenant_id,
                "recurrence_id": str(result.id),
                "frequency": result.frequency,
                "next_occurrence": str(result.next_occurrence),
            },
        )
        return result

    def pause(self, tenant_id: str, recurrence_id: UUID) -> RecurrenceInfo:
        return self._set_paused(tenant_id, recurrence_id, True)

    def resume(self, tenant_id: str, recurrence_id: UUID) -> RecurrenceInfo:
        return self._set_paused(tenant_id, recurrence_id, False)

    def delete_recurrence(self, tenant_id: str, recurrence_id: UUID) -> RecurrenceInfo:
        """Soft-delete a template; generated transactions are left untouched."""

        def work(store: LedgerStore) -> RecurrenceInfo:
            recurrence = self._require_live(store, tenant_id, recurrence_id)
            store.recurrences.soft_delete(recurrence, self._clock.now())
            store.emit_event(
                tenant_id=tenant_id,
                entity_type="Recurrence",
                entity_id=recurrence.id,
                action=DomainAction.RECURRENCE_DELETED,
                occurred_at=self._clock.now(),
            )
            return RecurrenceInfo.from_model(recurrence)

        result = self._run("delete_recurrence", work)
        logger.info(
            "recurrence_deleted",
            extra={"tenant_id": tenant_id, "recurrence_id": str(recurrence_id)},
        )
        return result

    def _set_paused(
        self, tenant_id: str, recurrence_id: UUID, paused: bool
    ) -> RecurrenceInfo:
        def work(store: LedgerStore) -> RecurrenceInfo:
            recurrence = self._require_live(store, tenant_id, recurrence_id)
            if recurrence.is_paused != paused:
                store.recurrences.update(recurrence, is_paused=paused)
                store.emit_event(
                    tenant_id=tenant_id,
                    entity_type="Recurrence",
                    entity_id=recurrence.id,
                    action=(
                        DomainAction.RECURRENCE_PAUSED
                        if paused
                        else DomainAction.RECURRENCE_RESUMED
                    ),
                    occurred_at=self._clock.now(),
                )
            return RecurrenceInfo.from_model(recurrence)

        result = self._run("pause_recurrence" if paused else "resume_recurrence", work)
        logger.info(
            "recurrence_paused" if paused else "recurrence_resumed",
            extra={"tenant_id": tenant_id, "recurrence_id": str(recurrence_id)},
        )
        return result

    @staticmethod
    def _require_live(
        store: LedgerStore, tenant_id: str, recurrence_id: UUID
    ) -> Recurrence:
        recurrence = store.recurrences.get(recurrence_id, tenant_id=tenant_id)
        if recurrence is None or recurrence.is_deleted:
            raise NotFoundError("Recurrence", str(recurrence_id))
        return recurrence
