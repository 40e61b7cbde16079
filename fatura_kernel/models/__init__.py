"""Domain models for the fatura kernel."""

from fatura_kernel.models.account import Account, AccountKind, Category, CategoryKind
from fatura_kernel.models.card import Card
from fatura_kernel.models.domain_event import DomainAction, DomainEvent
from fatura_kernel.models.invoice import (
    VALID_TRANSITIONS,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
)
from fatura_kernel.models.recurrence import Frequency, Recurrence
from fatura_kernel.models.transaction import (
    LedgerTransaction,
    TransactionKind,
    TransactionStatus,
)

__all__ = [
    "Account",
    "AccountKind",
    "Card",
    "Category",
    "CategoryKind",
    "DomainAction",
    "DomainEvent",
    "Frequency",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "LedgerTransaction",
    "Recurrence",
    "TransactionKind",
    "TransactionStatus",
    "VALID_TRANSITIONS",
]
