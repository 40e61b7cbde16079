"""
RecurrenceGenerator -- expands recurrence templates into ledger entries.

Responsibility:
    For a tenant and reference month, turns every active recurrence into
    the scheduled ("previsto") transactions its schedule produces in that
    month, skipping occurrences that were already generated.

Architecture position:
    Kernel > Services -- imperative shell.  Occurrence arithmetic lives in
    ``fatura_kernel.domain.schedule``.

Invariants enforced:
    RECURRENCE_IDEMPOTENCY -- an occurrence is generated at most once.  The
        existence check runs in the same transaction as the insert, and the
        (tenant, dedup_key) unique constraint rejects a concurrent twin.
        Month-keyed frequencies also honour legacy rows identified only by
        origin + reference_month.
    Failure isolation -- each recurrence expands inside its own SAVEPOINT.
        A failing recurrence is rolled back and reported; the others
        commit.
    next_occurrence only moves forward.

Failure modes (per recurrence, collected into GenerationResult.failures):
    - InvalidRecurrenceError: unknown frequency or kind, due day out of
      range, end date before start date.
    - STORAGE_CONFLICT: the store rejected the recurrence's writes twice.
    Raised for the whole call:
    - ValueError: reference_month is not ``YYYY-MM``.
    - StorageConflictError: retries exhausted for the unit of work.

Audit relevance:
    One RECURRENCE_GENERATED event per recurrence that produced at least one
    new transaction; TRANSACTIONS_MARKED_OVERDUE per overdue sweep.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from fatura_kernel.domain.competencia import competencia_bounds, parse_competencia
from fatura_kernel.domain.dtos import (
    GenerationFailure,
    GenerationResult,
    TransactionInfo,
)
from fatura_kernel.domain.schedule import MONTH_KEYED, RecurrenceSchedule
from fatura_kernel.exceptions import FaturaKernelError, InvalidRecurrenceError
from fatura_kernel.logging_config import get_logger
from fatura_kernel.models import (
    DomainAction,
    LedgerTransaction,
    Recurrence,
    TransactionKind,
    TransactionStatus,
)
from fatura_kernel.services.base import BaseService
from fatura_kernel.store import LedgerStore

logger = get_logger("services.recurrence_generator")

_MAX_SAVEPOINT_ATTEMPTS = 2


class RecurrenceGenerator(BaseService):
    """
    Generates scheduled transactions from recurrence templates.

    Contract:
        ``generate_for_month`` is safe to call any number of times, from any
        number of processes, for the same tenant-month.

    Guarantees:
        - Re-running a month returns the same set of transactions and
          creates none.
        - Deleting or pausing a recurrence never touches transactions it
          already generated.

    Non-goals:
        - Does NOT decide when to run; an external scheduler calls it.
    """

    def generate_for_month(
        self,
        tenant_id: str,
        reference_month: str,
    ) -> GenerationResult:
        """
        Generate every active recurrence's occurrences in ``reference_month``.

        Returns:
            GenerationResult listing all transactions for the month's
            occurrences (new and pre-existing), counts, and per-recurrence
            failures.
        """
        parse_competencia(reference_month)

        def work(store: LedgerStore) -> GenerationResult:
            transactions: list[LedgerTransaction] = []
            failures: list[GenerationFailure] = []
            created_total = 0
            skipped_total = 0

            for recurrence in self._active_recurrences(store, tenant_id, reference_month):
                outcome = self._expand_isolated(store, recurrence, reference_month)
                if isinstance(outcome, GenerationFailure):
                    failures.append(outcome)
                    continue
                created, existing = outcome
                transactions.extend(created)
                transactions.extend(existing)
                created_total += len(created)
                skipped_total += len(existing)

            transactions.sort(key=lambda t: (t.transaction_date, t.description, str(t.id)))
            return GenerationResult(
                tenant_id=tenant_id,
                reference_month=reference_month,
                transactions=tuple(TransactionInfo.from_model(t) for t in transactions),
                created_count=created_total,
                skipped_count=skipped_total,
                failures=tuple(failures),
            )

        result = self._run("generate_for_month", work)
        log = logger.warning if result.has_failures else logger.info
        log(
            "recurrence_generation_completed",
            extra={
                "tenant_id": tenant_id,
                "reference_month": reference_month,
                "created_count": result.created_count,
                "skipped_count": result.skipped_count,
                "failed_count": len(result.failures),
            },
        )
        return result

    def mark_overdue(self, tenant_id: str, as_of: date) -> int:
        """
        Flag scheduled recurrence transactions due before ``as_of`` as overdue.

        Returns:
            Number of transactions updated.
        """

        def work(store: LedgerStore) -> int:
            rows = store.session.execute(
                select(LedgerTransaction)
                .where(
                    LedgerTransaction.tenant_id == tenant_id,
                    LedgerTransaction.status == TransactionStatus.SCHEDULED.value,
                    LedgerTransaction.origin.like("recurrence:%"),
                    LedgerTransaction.due_date < as_of,
                )
                .with_for_update()
            ).scalars().all()
            for row in rows:
                store.transactions.update(row, status=TransactionStatus.OVERDUE.value)
            if rows:
                store.emit_event(
                    tenant_id=tenant_id,
                    entity_type="Tenant",
                    entity_id=tenant_id,
                    action=DomainAction.TRANSACTIONS_MARKED_OVERDUE,
                    occurred_at=self._clock.now(),
                    payload={
                        "as_of": as_of,
                        "transaction_ids": [row.id for row in rows],
                    },
                )
            return len(rows)

        count = self._run("mark_overdue", work)
        logger.info(
            "transactions_marked_overdue",
            extra={"tenant_id": tenant_id, "as_of": as_of.isoformat(), "count": count},
        )
        return count

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _active_recurrences(
        store: LedgerStore, tenant_id: str, reference_month: str
    ) -> list[Recurrence]:
        month_start, month_end = competencia_bounds(reference_month)
        stmt = (
            select(Recurrence)
            .where(
                Recurrence.tenant_id == tenant_id,
                Recurrence.is_paused.is_(False),
                Recurrence.is_deleted.is_(False),
                Recurrence.start_date <= month_end,
                (Recurrence.end_date.is_(None)) | (Recurrence.end_date >= month_start),
            )
            .order_by(Recurrence.created_at, Recurrence.id)
        )
        return list(store.session.execute(stmt).scalars().all())

    def _expand_isolated(
        self,
        store: LedgerStore,
        recurrence: Recurrence,
        reference_month: str,
    ) -> tuple[list[LedgerTransaction], list[LedgerTransaction]] | GenerationFailure:
        recurrence_id = recurrence.id
        attempt = 0
        while True:
            attempt += 1
            savepoint = store.session.begin_nested()
            try:
                outcome = self._expand(store, recurrence, reference_month)
                savepoint.commit()
                return outcome
            except FaturaKernelError as exc:
                savepoint.rollback()
                logger.warning(
                    "recurrence_generation_failed",
                    extra={
                        "recurrence_id": str(recurrence_id),
                        "reference_month": reference_month,
                        "error_code": exc.code,
                        "error": str(exc),
                    },
                )
                return GenerationFailure(recurrence_id, exc.code, str(exc))
            except IntegrityError as exc:
                # A concurrent generator inserted the same occurrence; the
                # next attempt sees its row and skips it.
                savepoint.rollback()
                if attempt == _MAX_SAVEPOINT_ATTEMPTS:
                    return self._storage_failure(recurrence_id, reference_month, exc)
                logger.info(
                    "recurrence_occurrence_race",
                    extra={"recurrence_id": str(recurrence_id), "attempt": attempt},
                )
            except SQLAlchemyError as exc:
                savepoint.rollback()
                return self._storage_failure(recurrence_id, reference_month, exc)

    @staticmethod
    def _storage_failure(
        recurrence_id: UUID, reference_month: str, exc: SQLAlchemyError
    ) -> GenerationFailure:
        logger.warning(
            "recurrence_generation_failed",
            extra={
                "recurrence_id": str(recurrence_id),
                "reference_month": reference_month,
                "error_code": "STORAGE_CONFLICT",
            },
            exc_info=True,
        )
        return GenerationFailure(recurrence_id, "STORAGE_CONFLICT", str(exc))

    def _expand(
        self,
        store: LedgerStore,
        recurrence: Recurrence,
        reference_month: str,
    ) -> tuple[list[LedgerTransaction], list[LedgerTransaction]]:
        schedule = RecurrenceSchedule.build(
            str(recurrence.id),
            recurrence.frequency,
            recurrence.due_day,
            recurrence.start_date,
            recurrence.end_date,
        )
        try:
            kind = TransactionKind(recurrence.kind)
        except ValueError:
            raise InvalidRecurrenceError(
                str(recurrence.id), f"unknown kind {recurrence.kind!r}"
            ) from None

        origin = recurrence.origin_tag
        created: list[LedgerTransaction] = []
        existing: list[LedgerTransaction] = []
        occurrences = schedule.occurrences_in_month(reference_month)

        for occurrence in occurrences:
            dedup_key = schedule.dedup_key(occurrence)
            found = self._find_generated(
                store, recurrence.tenant_id, schedule, origin, dedup_key,
                reference_month, occurrence,
            )
            if found is not None:
                existing.append(found)
                continue
            created.append(
                store.transactions.create(
                    tenant_id=recurrence.tenant_id,
                    kind=kind.value,
                    amount=recurrence.amount,
                    description=recurrence.description,
                    transaction_date=occurrence,
                    due_date=occurrence,
                    account_id=recurrence.account_id,
                    category_id=recurrence.category_id,
                    origin=origin,
                    status=TransactionStatus.SCHEDULED.value,
                    reference_month=reference_month,
                    dedup_key=dedup_key,
                )
            )

        if created:
            following = schedule.next_occurrence_after(max(occurrences))
            if following is not None and (
                recurrence.next_occurrence is None
                or following > recurrence.next_occurrence
            ):
                store.recurrences.update(recurrence, next_occurrence=following)
            store.emit_event(
                tenant_id=recurrence.tenant_id,
                entity_type="Recurrence",
                entity_id=recurrence.id,
                action=DomainAction.RECURRENCE_GENERATED,
                occurred_at=self._clock.now(),
                payload={
                    "reference_month": reference_month,
                    "transaction_ids": [t.id for t in created],
                    "occurrences": [t.transaction_date for t in created],
                },
            )
        return created, existing

    @staticmethod
    def _find_generated(
        store: LedgerStore,
        tenant_id: str,
        schedule: RecurrenceSchedule,
        origin: str,
        dedup_key: str,
        reference_month: str,
        occurrence: date,
    ) -> LedgerTransaction | None:
        found = store.find_by_dedup_key(tenant_id, dedup_key)
        if found is not None:
            return found
        if schedule.frequency in MONTH_KEYED:
            legacy = store.find_by_origin(tenant_id, origin, reference_month=reference_month)
        else:
            legacy = store.find_by_origin(tenant_id, origin, transaction_date=occurrence)
        return legacy[0] if legacy else None
