"""
Structured JSON logging for the fatura kernel.

Every record under the ``fatura_kernel`` logger is rendered as one JSON
object per line.  Request-scoped fields (tenant, card, operation, ...) are
kept in a ContextVar and merged into each line, so services never repeat
them in ``extra``.  Kernel exceptions attached with ``exc_info=True`` have
their code and structured attributes flattened into ``exc_*`` keys.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
    "installed_handlers",
]

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, ContextManager, Iterator, Mapping

from fatura_kernel.exceptions import FaturaKernelError

LOGGER_NAMESPACE = "fatura_kernel"

CONTEXT_FIELDS = frozenset(
    {"correlation_id", "tenant_id", "actor_id", "card_id", "operation"}
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar(
    "fatura_log_context", default=_EMPTY
)


def _check_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - CONTEXT_FIELDS
    if unknown:
        raise TypeError(f"Unknown log context fields: {sorted(unknown)}")


class LogContext:
    """
    Request-scoped log fields, safe across threads and asyncio tasks.

    The current context is an immutable mapping; every change installs a
    new one, so a ``bind`` block can always restore what it replaced.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        """Merge non-None fields into the current context."""
        _check_fields(fields)
        merged = dict(_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        _context.set(MappingProxyType(merged))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    def bind(**fields: str | None) -> ContextManager[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block."""
        _check_fields(fields)
        return _bound(fields)


@contextmanager
def _bound(fields: Mapping[str, str | None]) -> Iterator[type[LogContext]]:
    merged = dict(_context.get())
    merged.update({k: str(v) for k, v in fields.items() if v is not None})
    token = _context.set(MappingProxyType(merged))
    try:
        yield LogContext
    finally:
        _context.reset(token)


# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # Decimal, UUID and anything else unknown to json
    return str(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, FaturaKernelError):
        fields["exc_code"] = exc.code
        fields.update(
            (f"exc_{name}", value)
            for name, value in vars(exc).items()
            if not name.startswith("_")
        )
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRIBUTES:
                line.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            line.update(_error_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)

        return json.dumps(line, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Return ``fatura_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_INSTALLED_MARK = "_fatura_installed"


def installed_handlers() -> list[logging.Handler]:
    """Handlers on the ``fatura_kernel`` logger put there by configure_logging."""
    return [
        h
        for h in logging.getLogger(LOGGER_NAMESPACE).handlers
        if getattr(h, _INSTALLED_MARK, False)
    ]


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``fatura_kernel`` logger.

    Idempotent: once a handler installed here is attached, later calls are
    no-ops until ``reset_logging`` runs.  Handlers attached by anyone else
    (pytest, log capture) are ignored.  ``level`` accepts a name ("DEBUG")
    as read from configuration.
    """
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    if installed_handlers():
        return

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(StructuredFormatter())
    setattr(target, _INSTALLED_MARK, True)
    namespace.addHandler(target)
    namespace.setLevel(level)
    namespace.propagate = False


def reset_logging() -> None:
    """Detach the handlers configure_logging installed; restore defaults."""
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    for attached in installed_handlers():
        namespace.removeHandler(attached)
    namespace.setLevel(logging.NOTSET)
    namespace.propagate = True
