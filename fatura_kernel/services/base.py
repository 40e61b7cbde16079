"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Holds the collaborators every write service needs (storage handle,
    clock, policy) and runs each public operation as one unit of work,
    retrying the whole unit when the store reports a conflict.

Architecture position:
    Kernel > Services -- imperative shell.  Services own their transaction
    boundary: one public call is one unit of work.

Invariants enforced:
    - StorageConflictError is retried at most ``policy.max_conflict_retries``
      times; every other kernel error propagates on the first attempt.
    - Work functions are re-run from scratch on retry, so they must read
      everything they decide on inside the unit of work.

Failure modes:
    - StorageConflictError once the retry budget is spent, carrying the
      total number of attempts.
"""

from abc import ABC
from collections.abc import Callable
from typing import TypeVar

from fatura_kernel.domain.clock import Clock, SystemClock
from fatura_kernel.domain.policy import LedgerPolicy
from fatura_kernel.exceptions import StorageConflictError
from fatura_kernel.logging_config import get_logger
from fatura_kernel.store import LedgerStore, Storage

logger = get_logger("services.base")

T = TypeVar("T")


class BaseService(ABC):
    """
    Abstract base class for all kernel write services.

    Contract:
        Accepts the Storage handle (never a global), an optional Clock and
        an optional LedgerPolicy.

    Non-goals:
        - Does NOT provide query-only methods -- those belong in
          ``fatura_kernel/selectors/``.
    """

    def __init__(
        self,
        storage: Storage,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
    ):
        self.storage = storage
        self._clock = clock or SystemClock()
        self._policy = policy or LedgerPolicy()

    @property
    def policy(self) -> LedgerPolicy:
        return self._policy

    def _run(self, operation: str, work: Callable[[LedgerStore], T]) -> T:
        max_attempts = self._policy.max_conflict_retries + 1
        attempt = 0
        while True:
            attempt += 1
            try:
                with self.storage.unit_of_work(operation) as store:
                    return work(store)
            except StorageConflictError as exc:
                if attempt >= max_attempts:
                    logger.error(
                        "storage_conflict_retries_exhausted",
                        extra={"operation": operation, "attempts": attempt},
                    )
                    raise StorageConflictError(
                        operation, exc.detail, attempts=attempt
                    ) from exc
                logger.warning(
                    "storage_conflict_retry",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                    },
                )
