"""
Pytest fixtures for the fatura kernel test suite.

Provides:
- An in-memory SQLite Storage per test (fresh schema every test)
- A DeterministicClock pinned to 2025-03-01 12:00 UTC
- A seeded tenant with a checking account and a card closing on the 10th
  and falling due on the 20th
- Service and selector instances wired to the above
- Structured log capture

Environment Variables:
- DATABASE_URL: run the suite against another database (e.g. PostgreSQL).
  Defaults to in-memory SQLite.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy import select

from fatura_kernel.domain.clock import DeterministicClock
from fatura_kernel.domain.dtos import Purchase
from fatura_kernel.domain.policy import LedgerPolicy
from fatura_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fatura_kernel.models import AccountKind, LedgerTransaction
from fatura_kernel.selectors import (
    ConsistencyChecker,
    InvoiceSelector,
    RecurrenceSelector,
)
from fatura_kernel.services import (
    AccrualService,
    InvoiceLifecycleService,
    RecurrenceGenerator,
    RecurrenceService,
)
from fatura_kernel.store import Storage

DEFAULT_DATABASE_URL = "sqlite:///:memory:"

TEST_TENANT_ID = "tenant-test"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fatura_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, accrual_service):
            accrual_service.accrue_purchase(...)
            logs = captured_logs()
            assert any(r["message"] == "purchase_accrued" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fatura_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture
def storage():
    """A Storage with a freshly created schema, dropped after the test."""
    handle = Storage.from_url(get_database_url())
    handle.create_schema()
    yield handle
    handle.drop_schema()
    handle.dispose()


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def policy():
    return LedgerPolicy()


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def tenant_id() -> str:
    return TEST_TENANT_ID


@pytest.fixture
def account(storage, tenant_id):
    with storage.unit_of_work("seed_account") as store:
        return store.accounts.create(
            tenant_id=tenant_id,
            name="Conta corrente",
            kind=AccountKind.CHECKING.value,
        )


@pytest.fixture
def card(storage, tenant_id, account):
    """Card closing on the 10th, due on the 20th, paid from ``account``."""
    with storage.unit_of_work("seed_card") as store:
        return store.cards.create(
            tenant_id=tenant_id,
            nickname="Visa Gold",
            brand="visa",
            closing_day=10,
            due_day=20,
            payment_account_id=account.id,
            credit_limit=Decimal("5000.00"),
        )


@pytest.fixture
def make_purchase(tenant_id, card):
    """Factory for Purchase inputs on the seeded card."""

    def _make(
        amount: Decimal | str = "100.00",
        purchase_date: date = date(2025, 3, 5),
        description: str = "Mercado",
        **overrides,
    ) -> Purchase:
        values = {
            "tenant_id": tenant_id,
            "card_id": card.id,
            "description": description,
            "amount": Decimal(str(amount)),
            "purchase_date": purchase_date,
        }
        values.update(overrides)
        return Purchase(**values)

    return _make


@pytest.fixture
def invoice_forecasts(storage):
    """
    Payable forecast rows of an invoice, as plain column tuples.

    Rows are read column by column so they stay usable after the read
    session closes.
    """

    def _forecasts(invoice_id) -> list:
        stmt = select(
            LedgerTransaction.amount,
            LedgerTransaction.status,
            LedgerTransaction.due_date,
            LedgerTransaction.reference_month,
            LedgerTransaction.account_id,
        ).where(LedgerTransaction.origin == f"invoice:{invoice_id}")
        with storage.read_session() as session:
            return list(session.execute(stmt).all())

    return _forecasts


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def accrual_service(storage, deterministic_clock, policy):
    return AccrualService(storage, deterministic_clock, policy)


@pytest.fixture
def lifecycle_service(storage, deterministic_clock, policy):
    return InvoiceLifecycleService(storage, deterministic_clock, policy)


@pytest.fixture
def recurrence_service(storage, deterministic_clock, policy):
    return RecurrenceService(storage, deterministic_clock, policy)


@pytest.fixture
def recurrence_generator(storage, deterministic_clock, policy):
    return RecurrenceGenerator(storage, deterministic_clock, policy)


@pytest.fixture
def invoice_selector(storage, deterministic_clock):
    return InvoiceSelector(storage, deterministic_clock)


@pytest.fixture
def recurrence_selector(storage, deterministic_clock):
    return RecurrenceSelector(storage, deterministic_clock)


@pytest.fixture
def consistency_checker(storage, deterministic_clock):
    return ConsistencyChecker(storage, deterministic_clock)
