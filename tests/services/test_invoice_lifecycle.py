"""
Tests for InvoiceLifecycleService.

Covers:
- open -> closed -> paid, and every illegal edge
- Zero-item close (closed_total 0.00)
- Payment tolerance and AmountMismatch
- Payment ledger entry linked back to the invoice
- Reopen of a closed, unpaid invoice
- close_due_invoices() sweep
- list_invoices / get_invoice_with_items
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fatura_kernel.domain.policy import LedgerPolicy
from fatura_kernel.exceptions import (
    AmountMismatchError,
    InvalidAmountError,
    InvalidTransitionError,
    NotFoundError,
)
from fatura_kernel.models import LedgerTransaction, TransactionStatus
from fatura_kernel.services import InvoiceLifecycleService


@pytest.fixture
def open_invoice(accrual_service, make_purchase):
    """March invoice holding 120.50 + 79.50."""
    first = accrual_service.accrue_purchase(make_purchase(amount="120.50"))
    accrual_service.accrue_purchase(
        make_purchase(amount="79.50", purchase_date=date(2025, 3, 6), description="Cinema")
    )
    return first.invoice_id


@pytest.fixture
def closed_invoice(lifecycle_service, open_invoice):
    lifecycle_service.close(open_invoice, date(2025, 3, 10))
    return open_invoice


class TestClose:

    def test_close_sums_items(self, lifecycle_service, open_invoice):
        invoice = lifecycle_service.close(open_invoice, date(2025, 3, 10))

        assert invoice.status == "closed"
        assert invoice.closed_total == Decimal("200.00")
        assert invoice.closing_date == date(2025, 3, 10)

    def test_closing_date_defaults_to_clock(self, lifecycle_service, open_invoice):
        invoice = lifecycle_service.close(open_invoice)
        assert invoice.closing_date == date(2025, 3, 1)

    def test_zero_item_invoice_closes_at_zero(
        self, lifecycle_service, accrual_service, card, tenant_id
    ):
        empty = accrual_service.ensure_invoice(tenant_id, card.id, "2025-05")

        invoice = lifecycle_service.close(empty.id)

        assert invoice.status == "closed"
        assert invoice.closed_total == Decimal("0.00")

    def test_close_twice_fails(self, lifecycle_service, closed_invoice):
        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle_service.close(closed_invoice)
        assert exc_info.value.from_status == "closed"
        assert exc_info.value.to_status == "closed"

    def test_close_unknown_invoice(self, lifecycle_service):
        with pytest.raises(NotFoundError):
            lifecycle_service.close(uuid4())

    def test_close_other_tenant(self, lifecycle_service, open_invoice):
        with pytest.raises(NotFoundError):
            lifecycle_service.close(open_invoice, tenant_id="someone-else")

    def test_close_cancels_forecast(self, lifecycle_service, open_invoice, invoice_forecasts):
        lifecycle_service.close(open_invoice, date(2025, 3, 10))

        [forecast] = invoice_forecasts(open_invoice)
        assert forecast.status == TransactionStatus.CANCELLED.value

    def test_rejected_transition_logged(self, lifecycle_service, closed_invoice, captured_logs):
        with pytest.raises(InvalidTransitionError):
            lifecycle_service.close(closed_invoice)
        assert any(r["message"] == "invoice_transition_rejected" for r in captured_logs())


class TestPay:

    def test_pay_before_close_fails(self, lifecycle_service, open_invoice, account):
        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle_service.pay(open_invoice, account.id, Decimal("200.00"), date(2025, 4, 20))
        assert exc_info.value.from_status == "open"
        assert exc_info.value.to_status == "paid"

    def test_pay_exact_amount(self, lifecycle_service, closed_invoice, account, storage):
        result = lifecycle_service.pay(
            closed_invoice, account.id, Decimal("200.00"), date(2025, 4, 18)
        )

        assert result.invoice.status == "paid"
        assert result.invoice.paid_amount == Decimal("200.00")
        assert result.invoice.payment_date == date(2025, 4, 18)
        assert result.invoice.payment_transaction_id == result.transaction.id

        txn = result.transaction
        assert txn.kind == "debit"
        assert txn.status == TransactionStatus.SETTLED.value
        assert txn.origin == f"invoice:{closed_invoice}"
        assert txn.account_id == account.id
        assert txn.amount == Decimal("200.00")

        with storage.read_session() as session:
            stored = session.get(LedgerTransaction, txn.id)
            assert stored is not None

    def test_amount_mismatch(self, lifecycle_service, closed_invoice, account):
        with pytest.raises(AmountMismatchError) as exc_info:
            lifecycle_service.pay(closed_invoice, account.id, Decimal("199.99"), date(2025, 4, 18))
        assert exc_info.value.expected == "200.00"
        assert exc_info.value.actual == "199.99"

    def test_mismatch_leaves_invoice_closed(
        self, lifecycle_service, closed_invoice, account, invoice_selector
    ):
        with pytest.raises(AmountMismatchError):
            lifecycle_service.pay(closed_invoice, account.id, Decimal("50.00"), date(2025, 4, 18))
        assert invoice_selector.get_invoice(closed_invoice).status == "closed"

    def test_tolerance_from_policy(self, storage, deterministic_clock, closed_invoice, account):
        lenient = InvoiceLifecycleService(
            storage, deterministic_clock, LedgerPolicy(payment_tolerance=Decimal("0.05"))
        )
        result = lenient.pay(closed_invoice, account.id, Decimal("199.96"), date(2025, 4, 18))
        assert result.invoice.paid_amount == Decimal("199.96")

    def test_pay_twice_fails(self, lifecycle_service, closed_invoice, account):
        lifecycle_service.pay(closed_invoice, account.id, Decimal("200.00"), date(2025, 4, 18))
        with pytest.raises(InvalidTransitionError):
            lifecycle_service.pay(closed_invoice, account.id, Decimal("200.00"), date(2025, 4, 18))

    def test_negative_payment(self, lifecycle_service, closed_invoice, account):
        with pytest.raises(InvalidAmountError):
            lifecycle_service.pay(closed_invoice, account.id, Decimal("-1"), date(2025, 4, 18))

    def test_unknown_account(self, lifecycle_service, closed_invoice, invoice_selector):
        with pytest.raises(NotFoundError):
            lifecycle_service.pay(closed_invoice, uuid4(), Decimal("200.00"), date(2025, 4, 18))
        assert invoice_selector.get_invoice(closed_invoice).status == "closed"

    def test_deleted_account_rejected(
        self, lifecycle_service, closed_invoice, account, storage, deterministic_clock, invoice_selector
    ):
        with storage.unit_of_work() as store:
            store.accounts.soft_delete(store.accounts.require(account.id), deterministic_clock.now())

        with pytest.raises(NotFoundError) as exc_info:
            lifecycle_service.pay(closed_invoice, account.id, Decimal("200.00"), date(2025, 4, 18))

        assert exc_info.value.entity_type == "Account"
        assert invoice_selector.get_invoice(closed_invoice).status == "closed"

    def test_zero_invoice_paid_with_zero(
        self, lifecycle_service, accrual_service, card, tenant_id, account
    ):
        empty = accrual_service.ensure_invoice(tenant_id, card.id, "2025-05")
        lifecycle_service.close(empty.id)
        result = lifecycle_service.pay(empty.id, account.id, Decimal("0"), date(2025, 6, 20))
        assert result.invoice.status == "paid"


class TestReopen:

    def test_reopen_closed_invoice(self, lifecycle_service, closed_invoice, invoice_forecasts):
        invoice = lifecycle_service.reopen(closed_invoice, "missing refund", actor_id="ops")

        assert invoice.status == "open"
        assert invoice.closed_total is None
        assert invoice.closing_date is None
        [forecast] = invoice_forecasts(closed_invoice)
        assert forecast.status == TransactionStatus.SCHEDULED.value
        assert forecast.amount == Decimal("200.00")

    def test_reopen_requires_reason(self, lifecycle_service, closed_invoice):
        with pytest.raises(ValueError):
            lifecycle_service.reopen(closed_invoice, "  ")

    def test_paid_invoice_cannot_reopen(self, lifecycle_service, closed_invoice, account):
        lifecycle_service.pay(closed_invoice, account.id, Decimal("200.00"), date(2025, 4, 18))
        with pytest.raises(InvalidTransitionError):
            lifecycle_service.reopen(closed_invoice, "too late")

    def test_open_invoice_cannot_reopen(self, lifecycle_service, open_invoice):
        with pytest.raises(InvalidTransitionError):
            lifecycle_service.reopen(open_invoice, "nothing to reopen")


class TestCloseDueInvoices:

    def test_sweep_closes_past_statement_dates(
        self, lifecycle_service, accrual_service, make_purchase, card, tenant_id
    ):
        march = accrual_service.accrue_purchase(make_purchase(purchase_date=date(2025, 3, 5)))
        april = accrual_service.accrue_purchase(make_purchase(purchase_date=date(2025, 3, 15)))
        empty = accrual_service.ensure_invoice(tenant_id, card.id, "2025-02")

        closed = lifecycle_service.close_due_invoices(tenant_id, date(2025, 3, 10))

        by_id = {i.id: i for i in closed}
        assert set(by_id) == {march.invoice_id, empty.id}
        assert by_id[empty.id].closed_total == Decimal("0.00")
        assert by_id[march.invoice_id].closing_date == date(2025, 3, 10)
        assert april.invoice_id not in by_id

    def test_sweep_is_repeatable(self, lifecycle_service, accrual_service, make_purchase, tenant_id):
        accrual_service.accrue_purchase(make_purchase())
        lifecycle_service.close_due_invoices(tenant_id, date(2025, 3, 31))
        assert lifecycle_service.close_due_invoices(tenant_id, date(2025, 3, 31)) == []


class TestQueries:

    def test_list_newest_first(self, lifecycle_service, accrual_service, make_purchase, card):
        accrual_service.accrue_installment_plan(make_purchase(amount="300.00"), 3)
        listed = lifecycle_service.list_invoices(card.id)
        assert [i.competencia for i in listed] == ["2025-05", "2025-04", "2025-03"]

    def test_list_by_status(self, lifecycle_service, accrual_service, make_purchase, card):
        items = accrual_service.accrue_installment_plan(make_purchase(amount="300.00"), 3)
        lifecycle_service.close(items[0].invoice_id, date(2025, 3, 10))

        assert [i.competencia for i in lifecycle_service.list_invoices(card.id, "closed")] == [
            "2025-03"
        ]
        assert len(lifecycle_service.list_invoices(card.id, "open")) == 2

    def test_invoice_with_items(self, lifecycle_service, open_invoice):
        detail = lifecycle_service.get_invoice_with_items(open_invoice)

        assert detail.invoice.id == open_invoice
        assert [i.amount for i in detail.items] == [Decimal("120.50"), Decimal("79.50")]
        assert detail.items_total == Decimal("200.00")

    def test_invoice_with_items_not_found(self, lifecycle_service):
        with pytest.raises(NotFoundError):
            lifecycle_service.get_invoice_with_items(uuid4())
