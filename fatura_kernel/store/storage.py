"""
Module: fatura_kernel.store.storage
Responsibility: The storage handle threaded through every service and
    selector constructor.  Owns the session factory and provides the
    transactional unit-of-work primitive.
Architecture position: Kernel > Store.  The only place sessions are
    created, committed, rolled back and closed.

Invariants enforced:
    - Every exit path of ``unit_of_work()`` either commits or rolls back,
      then closes the session.
    - Raw SQLAlchemy errors never leave this module: they surface as
      StorageConflictError (chained with ``from`` for diagnosis).  Kernel
      errors raised by the work itself pass through untouched after
      rollback.

Failure modes:
    - StorageConflictError on IntegrityError, StaleDataError (optimistic
      version mismatch), lock timeouts, deadlocks and other driver errors.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from fatura_kernel.db.engine import create_engine_from_url, create_tables, drop_tables
from fatura_kernel.exceptions import FaturaKernelError, StorageConflictError
from fatura_kernel.logging_config import get_logger
from fatura_kernel.store.ledger_store import LedgerStore

logger = get_logger("store.storage")


class Storage:
    """
    Handle on the backing store.

    Contract:
        One Storage per engine.  Services call ``unit_of_work()`` for each
        operation; selectors call ``read_session()``.  There is no
        process-wide instance -- callers construct one and pass it on.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine, expire_on_commit=False
        )

    @classmethod
    def from_url(cls, database_url: str, *, echo: bool = False) -> "Storage":
        return cls(create_engine_from_url(database_url, echo=echo))

    def create_schema(self) -> None:
        create_tables(self.engine)

    def drop_schema(self) -> None:
        drop_tables(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def unit_of_work(self, operation: str = "unit_of_work") -> Iterator[LedgerStore]:
        """
        Transactional scope yielding a LedgerStore.

        Usage:
            with storage.unit_of_work("close_invoice") as store:
                invoice = store.lock_invoice(invoice_id)
                ...
            # committed here, or rolled back if the block raised
        """
        session = self._session_factory()
        try:
            yield LedgerStore(session)
            session.commit()
        except FaturaKernelError as exc:
            session.rollback()
            logger.info(
                "unit_of_work_rolled_back",
                extra={"operation": operation, "error_code": exc.code},
            )
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning(
                "storage_conflict",
                extra={"operation": operation, "error_type": type(exc).__name__},
                exc_info=True,
            )
            raise StorageConflictError(operation, _describe(exc)) from exc
        except Exception:
            session.rollback()
            logger.warning(
                "transaction_rolled_back",
                extra={"operation": operation},
                exc_info=True,
            )
            raise
        finally:
            session.close()

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        """Session for read-only queries; always rolled back and closed."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            raise StorageConflictError("read", _describe(exc)) from exc
        finally:
            session.rollback()
            session.close()


def _describe(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return f"{type(exc).__name__}: {orig if orig is not None else exc}"
