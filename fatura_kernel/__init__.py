"""
Fatura Kernel - credit-card invoice lifecycle and recurrence generation.

Transactional core for:
- Billing-cycle (competencia) resolution
- Accrual of purchases and installment plans into invoices
- Invoice close / pay lifecycle
- Idempotent monthly generation of recurring ledger entries
- Read-only ledger consistency audits
"""

__version__ = "0.1.0"
