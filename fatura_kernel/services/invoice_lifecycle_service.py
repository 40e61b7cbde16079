"""
InvoiceLifecycleService -- drives invoices through open -> closed -> paid.

Responsibility:
    Closes invoices (freezing the item total), pays them (writing the
    settled ledger debit and linking it back), reopens closed invoices on
    explicit request, and sweeps invoices whose statement date has passed.

Architecture position:
    Kernel > Services -- imperative shell.  Read queries are delegated to
    InvoiceSelector.

Invariants enforced:
    LIFECYCLE_ORDER -- close() only from open, pay() only from closed,
        reopen() only from closed.  Repeating a transition fails with
        InvalidTransitionError; nothing is a silent no-op.
    CLOSED_TOTAL_MATCHES_ITEMS -- closed_total is summed under the invoice
        row lock, so no accrual can slip in between sum and status change.
    Atomicity -- the invoice update and its ledger transaction share one
        unit of work; both commit or neither does.

Failure modes:
    - NotFoundError: invoice or payment account missing.
    - InvalidTransitionError: transition not allowed from current status.
    - AmountMismatchError: payment differs from closed_total by more than
      the policy tolerance.  Partial payments are not supported.
    - InvalidAmountError: negative payment amount.
    - StorageConflictError: retries exhausted.

Audit relevance:
    INVOICE_CLOSED, INVOICE_PAID and INVOICE_REOPENED domain events.  A
    reopen is additionally logged at WARNING with its reason.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fatura_kernel.domain.clock import Clock
from fatura_kernel.domain.competencia import competencia_of
from fatura_kernel.domain.dtos import (
    InvoiceInfo,
    InvoiceWithItems,
    PaymentResult,
    TransactionInfo,
)
from fatura_kernel.domain.money import ZERO, to_amount
from fatura_kernel.domain.policy import LedgerPolicy
from fatura_kernel.exceptions import (
    AmountMismatchError,
    InvalidAmountError,
    InvalidTransitionError,
    NotFoundError,
)
from fatura_kernel.logging_config import get_logger
from fatura_kernel.models import (
    DomainAction,
    Invoice,
    InvoiceStatus,
    TransactionKind,
    TransactionStatus,
)
from fatura_kernel.selectors.invoice_selector import InvoiceSelector
from fatura_kernel.services.base import BaseService
from fatura_kernel.store import LedgerStore, Storage

logger = get_logger("services.invoice_lifecycle")


class InvoiceLifecycleService(BaseService):
    """
    Service for the invoice state machine.

    Contract:
        Every mutating call locks the invoice row (SELECT ... FOR UPDATE)
        before reading its status, so concurrent close/pay/accrual on the
        same invoice serialize at the store.

    Guarantees:
        - Closing an invoice with no items is legal and yields
          closed_total 0.00.
        - A paid invoice always references exactly one settled debit with
          origin ``invoice:<id>``.

    Non-goals:
        - Does NOT support partial payment.
        - Does NOT reopen paid invoices.
    """

    def __init__(
        self,
        storage: Storage,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
    ):
        super().__init__(storage, clock, policy)
        self._selector = InvoiceSelector(storage, self._clock)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def close(
        self,
        invoice_id: UUID,
        closing_date: date | None = None,
        *,
        tenant_id: str | None = None,
    ) -> InvoiceInfo:
        """
        Close an open invoice.

        Args:
            invoice_id: Invoice to close.
            closing_date: Statement date; defaults to the clock's today.
            tenant_id: If given, the invoice must belong to this tenant.

        Returns:
            The closed invoice with closed_total set.

        Raises:
            NotFoundError, InvalidTransitionError.
        """

        def work(store: LedgerStore) -> InvoiceInfo:
            invoice = store.lock_invoice(invoice_id, tenant_id)
            self._require_transition(invoice, InvoiceStatus.CLOSED)

            total = to_amount(store.sum_active_items(invoice.id))
            store.invoices.update(
                invoice,
                status=InvoiceStatus.CLOSED.value,
                closed_total=total,
                closing_date=closing_date or self._clock.today(),
            )
            if invoice.forecast_transaction_id is not None:
                forecast = store.transactions.require(invoice.forecast_transaction_id)
                store.transactions.update(
                    forecast, status=TransactionStatus.CANCELLED.value
                )
            store.emit_event(
                tenant_id=invoice.tenant_id,
                entity_type="Invoice",
                entity_id=invoice.id,
                action=DomainAction.INVOICE_CLOSED,
                occurred_at=self._clock.now(),
                payload={
                    "competencia": invoice.competencia,
                    "closed_total": total,
                    "closing_date": invoice.closing_date,
                },
            )
            return InvoiceInfo.from_model(invoice)

        result = self._run("close_invoice", work)
        logger.info(
            "invoice_closed",
            extra={
                "tenant_id": result.tenant_id,
                "invoice_id": str(result.id),
                "competencia": result.competencia,
                "closed_total": str(result.closed_total),
            },
        )
        return result

    def pay(
        self,
        invoice_id: UUID,
        account_id: UUID,
        amount: Decimal,
        payment_date: date,
        *,
        tenant_id: str | None = None,
    ) -> PaymentResult:
        """
        Pay a closed invoice in full.

        Creates a settled debit against ``account_id`` with origin
        ``invoice:<id>`` and links it to the invoice.

        Raises:
            NotFoundError: invoice or account missing.
            InvalidTransitionError: invoice is not closed.
            AmountMismatchError: |amount - closed_total| > tolerance.
            InvalidAmountError: amount is negative.
        """
        paid = to_amount(amount)
        if paid < ZERO:
            raise InvalidAmountError(amount, "payment cannot be negative")

        def work(store: LedgerStore) -> PaymentResult:
            invoice = store.lock_invoice(invoice_id, tenant_id)
            self._require_transition(invoice, InvoiceStatus.PAID)

            expected = invoice.closed_total or ZERO
            tolerance = self._policy.payment_tolerance
            if abs(paid - expected) > tolerance:
                raise AmountMismatchError(str(invoice.id), expected, paid, tolerance)

            account = store.accounts.require(account_id, tenant_id=invoice.tenant_id)
            if account.is_deleted:
                raise NotFoundError("Account", str(account_id))
            card = store.cards.require(invoice.card_id)
            transaction = store.transactions.create(
                tenant_id=invoice.tenant_id,
                kind=TransactionKind.DEBIT.value,
                amount=paid,
                description=self._policy.payment_description.format(
                    card=card.nickname, competencia=invoice.competencia
                ),
                transaction_date=payment_date,
                due_date=invoice.due_date,
                account_id=account.id,
                origin=f"invoice:{invoice.id}",
                status=TransactionStatus.SETTLED.value,
                reference_month=competencia_of(payment_date),
            )
            store.invoices.update(
                invoice,
                status=InvoiceStatus.PAID.value,
                paid_amount=paid,
                payment_date=payment_date,
                payment_transaction_id=transaction.id,
            )
            store.emit_event(
                tenant_id=invoice.tenant_id,
                entity_type="Invoice",
                entity_id=invoice.id,
                action=DomainAction.INVOICE_PAID,
                occurred_at=self._clock.now(),
                payload={
                    "amount": paid,
                    "account_id": account.id,
                    "payment_date": payment_date,
                    "transaction_id": transaction.id,
                },
            )
            return PaymentResult(
                invoice=InvoiceInfo.from_model(invoice),
                transaction=TransactionInfo.from_model(transaction),
            )

        result = self._run("pay_invoice", work)
        logger.info(
            "invoice_paid",
            extra={
                "tenant_id": result.invoice.tenant_id,
                "invoice_id": str(result.invoice.id),
                "amount": str(result.invoice.paid_amount),
                "transaction_id": str(result.transaction.id),
            },
        )
        return result

    def reopen(
        self,
        invoice_id: UUID,
        reason: str,
        *,
        tenant_id: str | None = None,
        actor_id: str | None = None,
    ) -> InvoiceInfo:
        """
        Return a closed (unpaid) invoice to open so items can be corrected.

        Clears closed_total and closing_date and re-arms the payable
        forecast.  ``reason`` is mandatory and recorded on the event.

        Raises:
            ValueError: empty reason.
            NotFoundError, InvalidTransitionError.
        """
        if not reason or not reason.strip():
            raise ValueError("reopen requires a reason")

        def work(store: LedgerStore) -> InvoiceInfo:
            invoice = store.lock_invoice(invoice_id, tenant_id)
            self._require_transition(invoice, InvoiceStatus.OPEN)

            previous_total = invoice.closed_total
            store.invoices.update(
                invoice,
                status=InvoiceStatus.OPEN.value,
                closed_total=None,
                closing_date=None,
            )
            if invoice.forecast_transaction_id is not None:
                total = store.sum_active_items(invoice.id)
                forecast = store.transactions.require(invoice.forecast_transaction_id)
                store.transactions.update(
                    forecast,
                    amount=total,
                    status=(
                        TransactionStatus.SCHEDULED
                        if total > 0
                        else TransactionStatus.CANCELLED
                    ).value,
                )
            store.emit_event(
                tenant_id=invoice.tenant_id,
                entity_type="Invoice",
                entity_id=invoice.id,
                action=DomainAction.INVOICE_REOPENED,
                occurred_at=self._clock.now(),
                actor_id=actor_id,
                payload={"reason": reason, "previous_closed_total": previous_total},
            )
            return InvoiceInfo.from_model(invoice)

        result = self._run("reopen_invoice", work)
        logger.warning(
            "invoice_reopened",
            extra={
                "tenant_id": result.tenant_id,
                "invoice_id": str(result.id),
                "competencia": result.competencia,
                "reason": reason,
                "actor_id": actor_id,
            },
        )
        return result

    def close_due_invoices(self, tenant_id: str, as_of: date) -> list[InvoiceInfo]:
        """
        Billing-cycle sweep: close every open invoice whose statement date
        is on or before ``as_of``, empty ones included (total 0.00).

        Each invoice closes in its own unit of work, on its own statement
        date.  An invoice closed concurrently by someone else is skipped.
        """
        closed: list[InvoiceInfo] = []
        for candidate, statement_date in self._selector.find_open_invoices_due(
            tenant_id, as_of
        ):
            try:
                closed.append(
                    self.close(candidate.id, statement_date, tenant_id=tenant_id)
                )
            except InvalidTransitionError:
                logger.info(
                    "sweep_invoice_already_closed",
                    extra={"invoice_id": str(candidate.id)},
                )
        logger.info(
            "invoice_sweep_completed",
            extra={
                "tenant_id": tenant_id,
                "as_of": as_of.isoformat(),
                "closed_count": len(closed),
            },
        )
        return closed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_invoices(
        self,
        card_id: UUID,
        status: InvoiceStatus | str | None = None,
        *,
        tenant_id: str | None = None,
    ) -> list[InvoiceInfo]:
        return self._selector.list_invoices(card_id, status, tenant_id=tenant_id)

    def get_invoice_with_items(
        self,
        invoice_id: UUID,
        *,
        tenant_id: str | None = None,
    ) -> InvoiceWithItems:
        return self._selector.get_invoice_with_items(invoice_id, tenant_id=tenant_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _require_transition(invoice: Invoice, target: InvoiceStatus) -> None:
        if not invoice.can_transition_to(target):
            logger.warning(
                "invoice_transition_rejected",
                extra={
                    "invoice_id": str(invoice.id),
                    "from_status": invoice.status_enum.value,
                    "to_status": target.value,
                },
            )
            raise InvalidTransitionError(
                str(invoice.id), invoice.status_enum.value, target.value
            )

