"""Services for the fatura kernel (write side)."""

from fatura_kernel.services.accrual_service import AccrualService
from fatura_kernel.services.invoice_lifecycle_service import InvoiceLifecycleService
from fatura_kernel.services.recurrence_generator import RecurrenceGenerator
from fatura_kernel.services.recurrence_service import RecurrenceService

__all__ = [
    "AccrualService",
    "InvoiceLifecycleService",
    "RecurrenceGenerator",
    "RecurrenceService",
]
