"""
Typed exception hierarchy for the fatura kernel.

Every error the kernel raises is one of the classes below. Callers catch by
type and read structured attributes; they never parse messages. Each class
carries a static ``code`` for API mapping.

Hierarchy:

    FaturaKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidRecurrenceError
    |
    +-- LookupFailedError
    |   +-- NotFoundError
    |   +-- UnknownCardError
    |
    +-- LifecycleError
    |   +-- InvoiceNotOpenError
    |   +-- InvalidTransitionError
    |   +-- AmountMismatchError
    |
    +-- StorageError
        +-- StorageConflictError

Error codes:

Category    | Code                 | When Raised
------------|----------------------|------------------------------------------
Validation  | INVALID_AMOUNT       | Amount <= 0 or bad installment count
            | INVALID_RECURRENCE   | Unknown frequency, due day out of 1..31
------------|----------------------|------------------------------------------
Lookup      | NOT_FOUND            | Invoice / item / recurrence id missing
            | UNKNOWN_CARD         | Card reference does not resolve
------------|----------------------|------------------------------------------
Lifecycle   | INVOICE_NOT_OPEN     | Accrual into a closed or paid invoice
            | INVALID_TRANSITION   | close() on non-open, pay() on non-closed
            | AMOUNT_MISMATCH      | Payment differs from closed total
------------|----------------------|------------------------------------------
Storage     | STORAGE_CONFLICT     | Lock / uniqueness / stale-row conflict

Propagation:
    Validation errors are raised before any write. Lifecycle errors abort
    the unit of work, so no partial invoice state is persisted.
    StorageConflictError is the only kind services retry internally; once
    the retry budget is spent it surfaces to the caller unchanged.
"""

from datetime import date
from decimal import Decimal


class FaturaKernelError(Exception):
    """
    Base exception for all fatura kernel errors.

    All subclasses define a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FATURA_KERNEL_ERROR"


# Validation errors


class ValidationError(FaturaKernelError):
    """Base exception for input rejected before any write."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Amount is not a positive currency value."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object, reason: str = "amount must be positive"):
        self.amount = str(amount)
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class InvalidRecurrenceError(ValidationError):
    """Recurrence template has an unusable schedule."""

    code: str = "INVALID_RECURRENCE"

    def __init__(self, recurrence_id: str | None, reason: str):
        self.recurrence_id = recurrence_id
        self.reason = reason
        label = recurrence_id or "<new>"
        super().__init__(f"Invalid recurrence {label}: {reason}")


# Lookup errors


class LookupFailedError(FaturaKernelError):
    """Base exception for references that do not resolve."""

    code: str = "LOOKUP_FAILED"


class NotFoundError(LookupFailedError):
    """Entity with given ID was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class UnknownCardError(LookupFailedError):
    """Card reference does not resolve for the tenant."""

    code: str = "UNKNOWN_CARD"

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(f"Unknown card: {card_id}")


# Lifecycle errors


class LifecycleError(FaturaKernelError):
    """Base exception for invoice state machine violations."""

    code: str = "LIFECYCLE_ERROR"


class InvoiceNotOpenError(LifecycleError):
    """Items can only be accrued into (or removed from) an open invoice."""

    code: str = "INVOICE_NOT_OPEN"

    def __init__(self, invoice_id: str, competencia: str, status: str):
        self.invoice_id = invoice_id
        self.competencia = competencia
        self.status = status
        super().__init__(
            f"Invoice {invoice_id} for {competencia} is {status}, not open"
        )


class InvalidTransitionError(LifecycleError):
    """Requested status change is not an edge of the invoice state machine."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, invoice_id: str, from_status: str, to_status: str):
        self.invoice_id = invoice_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invoice {invoice_id} cannot transition {from_status} -> {to_status}"
        )


class AmountMismatchError(LifecycleError):
    """Payment amount differs from the closed total beyond tolerance."""

    code: str = "AMOUNT_MISMATCH"

    def __init__(
        self,
        invoice_id: str,
        expected: Decimal,
        actual: Decimal,
        tolerance: Decimal,
    ):
        self.invoice_id = invoice_id
        self.expected = str(expected)
        self.actual = str(actual)
        self.tolerance = str(tolerance)
        super().__init__(
            f"Payment {actual} for invoice {invoice_id} does not match "
            f"closed total {expected} (tolerance {tolerance})"
        )


# Storage errors


class StorageError(FaturaKernelError):
    """Base exception for failures reported by the storage collaborator."""

    code: str = "STORAGE_ERROR"


class StorageConflictError(StorageError):
    """
    Concurrent modification detected by the store.

    Raised for row-lock failures, uniqueness races and stale optimistic
    versions. The whole operation is safe to retry.
    """

    code: str = "STORAGE_CONFLICT"

    def __init__(self, operation: str, detail: str, attempts: int = 1):
        self.operation = operation
        self.detail = detail
        self.attempts = attempts
        super().__init__(
            f"Storage conflict during {operation} after {attempts} attempt(s): "
            f"{detail}"
        )


class RecurrenceWindowError(InvalidRecurrenceError):
    """End date precedes start date."""

    def __init__(self, recurrence_id: str | None, start: date, end: date):
        self.start_date = start.isoformat()
        self.end_date = end.isoformat()
        super().__init__(
            recurrence_id, f"end date {end} precedes start date {start}"
        )
