"""
AccrualService -- assigns purchases and installments to invoices.

Responsibility:
    Resolves the billing cycle of each purchase (or each installment of a
    split purchase), fetches or creates the card's invoice for that cycle,
    and attaches the item -- all inside a single unit of work.

Architecture position:
    Kernel > Services -- imperative shell.  Pure cycle arithmetic lives in
    ``fatura_kernel.domain.competencia``; storage in ``fatura_kernel.store``.

Invariants enforced:
    ONE_INVOICE_PER_CYCLE -- invoice creation is insert-or-fetch against the
        (card, competencia, tenant) unique constraint.
    ITEM_HAS_INVOICE -- the invoice and its item are written in the same
        transaction; nobody observes an item without its invoice.
    ITEM_MATCHES_INVOICE_CYCLE -- the item's competencia is the one used to
        fetch the invoice.
    CLOSED_TOTAL_MATCHES_ITEMS -- items are never added to or removed from
        a closed or paid invoice.

Failure modes:
    - InvalidAmountError: amount <= 0 or installment count < 1.  Raised
      before the unit of work opens.
    - UnknownCardError: card missing, deleted or owned by another tenant.
    - InvoiceNotOpenError: the target invoice is closed or paid.  The whole
      plan is rolled back, including installments already attached.
    - NotFoundError: remove_item() on a missing item.
    - StorageConflictError: retries exhausted.

Audit relevance:
    Emits INVOICE_CREATED, PURCHASE_ACCRUED, INSTALLMENT_PLAN_ACCRUED and
    ITEM_REMOVED domain events in the same transaction as the change.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from fatura_kernel.domain.competencia import (
    add_months,
    closing_date_for,
    competencia_of,
    due_date_for,
    parse_competencia,
    resolve_cycle,
)
from fatura_kernel.domain.dtos import (
    CycleResolution,
    InvoiceInfo,
    InvoiceItemInfo,
    Purchase,
)
from fatura_kernel.domain.money import require_positive, split_installments
from fatura_kernel.exceptions import (
    InvoiceNotOpenError,
    NotFoundError,
    UnknownCardError,
)
from fatura_kernel.logging_config import get_logger
from fatura_kernel.models import (
    Card,
    DomainAction,
    Invoice,
    InvoiceItem,
    TransactionKind,
    TransactionStatus,
)
from fatura_kernel.services.base import BaseService
from fatura_kernel.store import LedgerStore

logger = get_logger("services.accrual")


class AccrualService(BaseService):
    """
    Service that accrues card purchases into invoices.

    Contract:
        Each public call is one unit of work.  Returns frozen DTOs.

    Guarantees:
        - An installment plan is all-or-nothing.
        - Installment n of N is anchored n-1 months after the purchase date
          (day clamped) and resolves its own competencia, so a plan spreads
          over consecutive invoices.
        - When the policy tracks payables, each open invoice carries one
          scheduled debit (origin ``invoice:<id>``) equal to its running
          item total.

    Non-goals:
        - Does NOT reopen invoices; that is the explicit, audited
          InvoiceLifecycleService.reopen().
    """

    def accrue_purchase(self, purchase: Purchase) -> InvoiceItemInfo:
        """
        Accrue a single purchase.

        Returns:
            The created item.

        Raises:
            InvalidAmountError, UnknownCardError, InvoiceNotOpenError.
        """
        amount = require_positive(purchase.amount)

        def work(store: LedgerStore) -> InvoiceItemInfo:
            card = self._require_card(store, purchase.tenant_id, purchase.card_id)
            item = self._attach(
                store,
                card,
                purchase,
                amount=amount,
                anchor_date=purchase.purchase_date,
            )
            return InvoiceItemInfo.from_model(item)

        result = self._run("accrue_purchase", work)
        logger.info(
            "purchase_accrued",
            extra={
                "tenant_id": purchase.tenant_id,
                "card_id": str(purchase.card_id),
                "item_id": str(result.id),
                "invoice_id": str(result.invoice_id),
                "competencia": result.competencia,
                "amount": str(result.amount),
            },
        )
        return result

    def accrue_installment_plan(
        self,
        purchase: Purchase,
        installment_count: int,
    ) -> list[InvoiceItemInfo]:
        """
        Accrue a purchase split into ``installment_count`` installments.

        ``purchase.amount`` is the total; the first installment absorbs any
        leftover cents.

        Raises:
            InvalidAmountError, UnknownCardError, InvoiceNotOpenError.
        """
        amounts = split_installments(purchase.amount, installment_count)

        def work(store: LedgerStore) -> list[InvoiceItemInfo]:
            card = self._require_card(store, purchase.tenant_id, purchase.card_id)
            group_id = uuid4()
            items: list[InvoiceItem] = []
            for number, amount in enumerate(amounts, start=1):
                items.append(
                    self._attach(
                        store,
                        card,
                        purchase,
                        amount=amount,
                        anchor_date=add_months(purchase.purchase_date, number - 1),
                        installment=(number, installment_count, group_id),
                    )
                )
            store.emit_event(
                tenant_id=purchase.tenant_id,
                entity_type="InstallmentPlan",
                entity_id=group_id,
                action=DomainAction.INSTALLMENT_PLAN_ACCRUED,
                occurred_at=self._clock.now(),
                payload={
                    "card_id": card.id,
                    "description": purchase.description,
                    "total": sum(amounts, Decimal("0.00")),
                    "installments": installment_count,
                    "competencias": [item.competencia for item in items],
                },
            )
            return [InvoiceItemInfo.from_model(item) for item in items]

        result = self._run("accrue_installment_plan", work)
        logger.info(
            "installment_plan_accrued",
            extra={
                "tenant_id": purchase.tenant_id,
                "card_id": str(purchase.card_id),
                "installments": installment_count,
                "first_competencia": result[0].competencia,
                "last_competencia": result[-1].competencia,
            },
        )
        return result

    def ensure_invoice(
        self,
        tenant_id: str,
        card_id: UUID,
        competencia: str,
    ) -> InvoiceInfo:
        """
        Fetch or create the invoice for a card and cycle without accruing.

        Raises:
            UnknownCardError.
            ValueError: competencia is not a ``YYYY-MM`` key.
        """
        parse_competencia(competencia)

        def work(store: LedgerStore) -> InvoiceInfo:
            card = self._require_card(store, tenant_id, card_id)
            cycle = CycleResolution(
                competencia=competencia,
                due_date=due_date_for(competencia, card.closing_day, card.due_day),
                closing_date=closing_date_for(competencia, card.closing_day),
            )
            invoice, _ = self._get_or_create(store, card, cycle)
            return InvoiceInfo.from_model(invoice)

        return self._run("ensure_invoice", work)

    def remove_item(self, tenant_id: str, item_id: UUID) -> InvoiceItemInfo:
        """
        Soft-delete an item from an open invoice.

        Raises:
            NotFoundError: item missing or already deleted.
            InvoiceNotOpenError: the item's invoice is closed or paid.
        """

        def work(store: LedgerStore) -> InvoiceItemInfo:
            item = store.items.require(item_id, tenant_id=tenant_id)
            if item.is_deleted:
                raise NotFoundError("InvoiceItem", str(item_id))
            invoice = store.lock_invoice(item.invoice_id, tenant_id)
            if not invoice.is_open:
                raise InvoiceNotOpenError(
                    str(invoice.id), invoice.competencia, invoice.status_enum.value
                )
            store.items.soft_delete(item, self._clock.now())
            card = store.cards.require(invoice.card_id)
            self._sync_forecast(store, card, invoice)
            store.emit_event(
                tenant_id=tenant_id,
                entity_type="InvoiceItem",
                entity_id=item.id,
                action=DomainAction.ITEM_REMOVED,
                occurred_at=self._clock.now(),
                payload={"invoice_id": invoice.id, "amount": item.amount},
            )
            return InvoiceItemInfo.from_model(item)

        result = self._run("remove_item", work)
        logger.info(
            "invoice_item_removed",
            extra={
                "tenant_id": tenant_id,
                "item_id": str(item_id),
                "invoice_id": str(result.invoice_id),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_card(self, store: LedgerStore, tenant_id: str, card_id: UUID) -> Card:
        card = store.cards.get(card_id, tenant_id=tenant_id)
        if card is None or card.is_deleted:
            raise UnknownCardError(str(card_id))
        return card

    def _get_or_create(
        self, store: LedgerStore, card: Card, cycle: CycleResolution
    ) -> tuple[Invoice, bool]:
        invoice, created = store.get_or_create_invoice(card.tenant_id, card.id, cycle)
        if created:
            store.emit_event(
                tenant_id=card.tenant_id,
                entity_type="Invoice",
                entity_id=invoice.id,
                action=DomainAction.INVOICE_CREATED,
                occurred_at=self._clock.now(),
                payload={
                    "card_id": card.id,
                    "competencia": cycle.competencia,
                    "due_date": cycle.due_date,
                },
            )
            logger.info(
                "invoice_created",
                extra={
                    "tenant_id": card.tenant_id,
                    "invoice_id": str(invoice.id),
                    "card_id": str(card.id),
                    "competencia": cycle.competencia,
                    "due_date": cycle.due_date.isoformat(),
                },
            )
        return invoice, created

    def _attach(
        self,
        store: LedgerStore,
        card: Card,
        purchase: Purchase,
        *,
        amount: Decimal,
        anchor_date: date,
        installment: tuple[int, int, UUID] | None = None,
    ) -> InvoiceItem:
        cycle = resolve_cycle(anchor_date, card)
        invoice, _ = self._get_or_create(store, card, cycle)
        if not invoice.is_open:
            raise InvoiceNotOpenError(
                str(invoice.id), invoice.competencia, invoice.status_enum.value
            )

        number, total, group_id = installment if installment else (None, None, None)
        item = store.items.create(
            tenant_id=card.tenant_id,
            invoice_id=invoice.id,
            card_id=card.id,
            description=purchase.description,
            amount=amount,
            purchase_date=anchor_date,
            competencia=cycle.competencia,
            category_id=purchase.category_id,
            installment_number=number,
            installment_total=total,
            installment_group_id=group_id,
        )
        self._sync_forecast(store, card, invoice)
        store.emit_event(
            tenant_id=card.tenant_id,
            entity_type="InvoiceItem",
            entity_id=item.id,
            action=DomainAction.PURCHASE_ACCRUED,
            occurred_at=self._clock.now(),
            payload={
                "invoice_id": invoice.id,
                "competencia": cycle.competencia,
                "amount": amount,
                "installment_number": number,
                "installment_total": total,
            },
        )
        return item

    def _sync_forecast(self, store: LedgerStore, card: Card, invoice: Invoice) -> None:
        """Keep the invoice's scheduled payable equal to its item total."""
        if not self._policy.track_payable_forecast:
            return
        total = store.sum_active_items(invoice.id)
        status = (
            TransactionStatus.SCHEDULED if total > 0 else TransactionStatus.CANCELLED
        )
        if invoice.forecast_transaction_id is not None:
            forecast = store.transactions.require(invoice.forecast_transaction_id)
            store.transactions.update(forecast, amount=total, status=status.value)
            return
        forecast = store.transactions.create(
            tenant_id=invoice.tenant_id,
            kind=TransactionKind.DEBIT.value,
            amount=total,
            description=self._policy.payable_description.format(
                card=card.nickname, competencia=invoice.competencia
            ),
            transaction_date=invoice.due_date,
            due_date=invoice.due_date,
            account_id=card.payment_account_id,
            origin=f"invoice:{invoice.id}",
            status=status.value,
            reference_month=competencia_of(invoice.due_date),
        )
        store.invoices.update(invoice, forecast_transaction_id=forecast.id)
