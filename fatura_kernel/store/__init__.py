"""Storage collaborator: unit of work, repositories, ledger store."""

from fatura_kernel.store.ledger_store import LedgerStore
from fatura_kernel.store.repository import Repository
from fatura_kernel.store.storage import Storage

__all__ = ["LedgerStore", "Repository", "Storage"]
