"""
Tests for RecurrenceGenerator.

Covers:
- Idempotent monthly generation (re-running a month adds nothing)
- Several occurrences per month for day-anchored frequencies
- Paused, deleted and expired templates produce nothing
- Per-recurrence failure isolation
- Rows generated before dedup keys existed are still recognised
- next_occurrence only moves forward
- mark_overdue()
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from fatura_kernel.models import (
    DomainAction,
    DomainEvent,
    TransactionStatus,
)


@pytest.fixture
def monthly_bill(recurrence_service, tenant_id, account):
    return recurrence_service.create_recurrence(
        tenant_id,
        description="Internet",
        amount=Decimal("50.00"),
        frequency="monthly",
        due_day=15,
        start_date=date(2025, 1, 1),
        account_id=account.id,
    )


def _insert_raw_recurrence(storage, tenant_id, **overrides):
    values = {
        "tenant_id": tenant_id,
        "kind": "debit",
        "amount": Decimal("10.00"),
        "description": "Broken",
        "frequency": "monthly",
        "due_day": 5,
        "start_date": date(2025, 1, 1),
    }
    values.update(overrides)
    with storage.unit_of_work("seed_recurrence") as store:
        return store.recurrences.create(**values)


class TestGenerateForMonth:

    def test_regenerating_a_month_is_idempotent(
        self, recurrence_generator, monthly_bill, tenant_id, recurrence_selector
    ):
        first = recurrence_generator.generate_for_month(tenant_id, "2025-11")
        second = recurrence_generator.generate_for_month(tenant_id, "2025-11")

        assert first.created_count == 1
        assert second.created_count == 0
        assert second.skipped_count == 1
        assert [t.id for t in first.transactions] == [t.id for t in second.transactions]

        generated = recurrence_selector.generated_transactions(tenant_id, monthly_bill.id)
        assert len(generated) == 1
        txn = generated[0]
        assert txn.origin == f"recurrence:{monthly_bill.id}"
        assert txn.reference_month == "2025-11"
        assert txn.transaction_date == date(2025, 11, 15)
        assert txn.due_date == date(2025, 11, 15)
        assert txn.amount == Decimal("50.00")
        assert txn.status == TransactionStatus.SCHEDULED.value

    def test_each_month_generates_separately(self, recurrence_generator, monthly_bill, tenant_id):
        recurrence_generator.generate_for_month(tenant_id, "2025-11")
        december = recurrence_generator.generate_for_month(tenant_id, "2025-12")
        assert december.created_count == 1
        assert december.transactions[0].reference_month == "2025-12"

    def test_weekly_occurrences_are_distinct(
        self, recurrence_generator, recurrence_service, tenant_id
    ):
        recurrence_service.create_recurrence(
            tenant_id,
            description="Feira",
            amount=Decimal("80.00"),
            frequency="weekly",
            due_day=1,
            start_date=date(2025, 11, 3),
        )

        first = recurrence_generator.generate_for_month(tenant_id, "2025-11")
        second = recurrence_generator.generate_for_month(tenant_id, "2025-11")

        assert [t.transaction_date for t in first.transactions] == [
            date(2025, 11, 3),
            date(2025, 11, 10),
            date(2025, 11, 17),
            date(2025, 11, 24),
        ]
        assert second.created_count == 0
        assert second.skipped_count == 4

    def test_monthly_due_before_start_day_lands_in_start_month(
        self, recurrence_generator, recurrence_service, recurrence_selector, tenant_id
    ):
        late_start = recurrence_service.create_recurrence(
            tenant_id,
            description="Academia",
            amount=Decimal("120.00"),
            frequency="monthly",
            due_day=15,
            start_date=date(2025, 11, 20),
        )
        assert late_start.next_occurrence == date(2025, 11, 15)

        result = recurrence_generator.generate_for_month(tenant_id, "2025-11")

        assert result.created_count == 1
        [txn] = result.transactions
        assert txn.transaction_date == date(2025, 11, 15)
        assert txn.reference_month == "2025-11"
        refreshed = recurrence_selector.get_recurrence(tenant_id, late_start.id)
        assert refreshed.next_occurrence == date(2025, 12, 15)

    def test_paused_template_skipped(
        self, recurrence_generator, recurrence_service, monthly_bill, tenant_id
    ):
        recurrence_service.pause(tenant_id, monthly_bill.id)
        result = recurrence_generator.generate_for_month(tenant_id, "2025-11")
        assert result.transactions == ()

    def test_deleted_template_skipped(
        self, recurrence_generator, recurrence_service, monthly_bill, tenant_id
    ):
        recurrence_service.delete_recurrence(tenant_id, monthly_bill.id)
        result = recurrence_generator.generate_for_month(tenant_id, "2025-11")
        assert result.transactions == ()

    def test_ended_template_skipped(self, recurrence_generator, recurrence_service, tenant_id):
        recurrence_service.create_recurrence(
            tenant_id,
            description="Academia",
            amount=Decimal("99.90"),
            frequency="monthly",
            due_day=5,
            start_date=date(2025, 1, 1),
            end_date=date(2025, 10, 31),
        )
        assert recurrence_generator.generate_for_month(tenant_id, "2025-10").created_count == 1
        assert recurrence_generator.generate_for_month(tenant_id, "2025-11").created_count == 0

    def test_other_tenant_untouched(self, recurrence_generator, monthly_bill):
        result = recurrence_generator.generate_for_month("someone-else", "2025-11")
        assert result.transactions == ()

    def test_failure_is_isolated(self, recurrence_generator, monthly_bill, storage, tenant_id):
        broken = _insert_raw_recurrence(storage, tenant_id, frequency="fortnightly")

        result = recurrence_generator.generate_for_month(tenant_id, "2025-11")

        assert result.created_count == 1
        assert result.has_failures
        assert [(f.recurrence_id, f.code) for f in result.failures] == [
            (broken.id, "INVALID_RECURRENCE")
        ]

    def test_unknown_kind_is_a_failure(self, recurrence_generator, storage, tenant_id):
        broken = _insert_raw_recurrence(storage, tenant_id, kind="refund")
        result = recurrence_generator.generate_for_month(tenant_id, "2025-11")
        assert result.failures[0].recurrence_id == broken.id
        assert result.created_count == 0

    def test_legacy_row_without_dedup_key_recognised(
        self, recurrence_generator, monthly_bill, storage, tenant_id
    ):
        with storage.unit_of_work("seed_legacy") as store:
            store.transactions.create(
                tenant_id=tenant_id,
                kind="debit",
                amount=Decimal("50.00"),
                description="Internet",
                transaction_date=date(2025, 11, 15),
                origin=f"recurrence:{monthly_bill.id}",
                status=TransactionStatus.SCHEDULED.value,
                reference_month="2025-11",
            )

        result = recurrence_generator.generate_for_month(tenant_id, "2025-11")

        assert result.created_count == 0
        assert result.skipped_count == 1

    def test_invalid_month_rejected(self, recurrence_generator, tenant_id):
        with pytest.raises(ValueError):
            recurrence_generator.generate_for_month(tenant_id, "2025-13")

    def test_generation_event_and_log(
        self, recurrence_generator, monthly_bill, tenant_id, storage, captured_logs
    ):
        recurrence_generator.generate_for_month(tenant_id, "2025-11")
        recurrence_generator.generate_for_month(tenant_id, "2025-11")

        with storage.read_session() as session:
            events = session.execute(
                select(func.count(DomainEvent.id)).where(
                    DomainEvent.action == DomainAction.RECURRENCE_GENERATED.value
                )
            ).scalar_one()
        assert events == 1

        completed = [r for r in captured_logs() if r["message"] == "recurrence_generation_completed"]
        assert [r["created_count"] for r in completed] == [1, 0]


class TestNextOccurrence:

    def test_advances_after_generation(
        self, recurrence_generator, recurrence_selector, monthly_bill, tenant_id
    ):
        assert monthly_bill.next_occurrence == date(2025, 1, 15)
        recurrence_generator.generate_for_month(tenant_id, "2025-11")
        refreshed = recurrence_selector.get_recurrence(tenant_id, monthly_bill.id)
        assert refreshed.next_occurrence == date(2025, 12, 15)

    def test_backfill_does_not_move_it_back(
        self, recurrence_generator, recurrence_selector, monthly_bill, tenant_id
    ):
        recurrence_generator.generate_for_month(tenant_id, "2025-11")
        recurrence_generator.generate_for_month(tenant_id, "2025-06")
        refreshed = recurrence_selector.get_recurrence(tenant_id, monthly_bill.id)
        assert refreshed.next_occurrence == date(2025, 12, 15)


class TestMarkOverdue:

    def test_marks_past_due_scheduled_entries(
        self, recurrence_generator, monthly_bill, tenant_id, recurrence_selector
    ):
        recurrence_generator.generate_for_month(tenant_id, "2025-10")
        recurrence_generator.generate_for_month(tenant_id, "2025-11")

        assert recurrence_generator.mark_overdue(tenant_id, date(2025, 11, 1)) == 1
        assert recurrence_generator.mark_overdue(tenant_id, date(2025, 11, 1)) == 0

        statuses = {
            t.reference_month: t.status
            for t in recurrence_selector.generated_transactions(tenant_id, monthly_bill.id)
        }
        assert statuses == {
            "2025-10": TransactionStatus.OVERDUE.value,
            "2025-11": TransactionStatus.SCHEDULED.value,
        }

    def test_invoice_forecasts_not_touched(
        self, recurrence_generator, accrual_service, make_purchase, tenant_id, invoice_forecasts
    ):
        item = accrual_service.accrue_purchase(make_purchase())
        assert recurrence_generator.mark_overdue(tenant_id, date(2026, 1, 1)) == 0

        [forecast] = invoice_forecasts(item.invoice_id)
        assert forecast.status == TransactionStatus.SCHEDULED.value
