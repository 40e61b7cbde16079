"""Database layer - engine construction and declarative base classes."""

from fatura_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from fatura_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    drop_tables,
    is_postgres,
)

__all__ = [
    "create_engine_from_url",
    "create_tables",
    "drop_tables",
    "is_postgres",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
