"""Selectors for the fatura kernel (read side)."""

from fatura_kernel.selectors.consistency_checker import ConsistencyChecker
from fatura_kernel.selectors.invoice_selector import InvoiceSelector
from fatura_kernel.selectors.recurrence_selector import RecurrenceSelector

__all__ = ["ConsistencyChecker", "InvoiceSelector", "RecurrenceSelector"]
