"""
Module: fatura_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/,
    store/ and domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors open sessions through ``Storage.read_session()``,
      which always rolls back, and never add, flush or delete.
    - DTO return convention: selectors return frozen dataclasses, never
      ORM instances.
"""

from abc import ABC

from fatura_kernel.domain.clock import Clock, SystemClock
from fatura_kernel.store import Storage


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Accepts the Storage handle from the caller and performs read-only
        queries through short-lived sessions.
    """

    def __init__(self, storage: Storage, clock: Clock | None = None):
        self.storage = storage
        self._clock = clock or SystemClock()
