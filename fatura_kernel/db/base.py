"""
Module: fatura_kernel.db.base
Responsibility: Declarative base and column types shared by every ORM model.
Architecture position: Kernel > DB.  Imports nothing else from the kernel.

Conventions:
    - Primary keys are uuid4 values.  PostgreSQL stores them in its native
      UUID type, every other backend as a 36-character string.
    - Every ``Mapped[Decimal]`` column is a ``Cents`` column: Numeric(15, 2),
      quantized ROUND_HALF_UP on the way in.  Floats are refused.
    - Unnamed primary keys, foreign keys and indexes get deterministic names
      so migrations diff cleanly across backends.
    - TrackedBase adds created_at / updated_at maintained by the database.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import DateTime, MetaData, Numeric, String, func
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "pk": "pk_%(table_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
}

_CENT = Decimal("0.01")


class UUIDString(TypeDecorator):
    """UUID column: native on PostgreSQL, String(36) elsewhere.

    Binds accept UUID objects or their string form (ids typed on a command
    line filter directly); loads always return ``uuid.UUID``.
    """

    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=False))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, PyUUID) else PyUUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, PyUUID):
            return value
        return PyUUID(str(value))


class Cents(TypeDecorator):
    """Numeric(15, 2) that quantizes Decimal input to whole cents."""

    impl = Numeric(15, 2, asdecimal=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError("float amounts are not accepted; pass a Decimal")
        return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Cents(),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Abstract base adding database-maintained audit timestamps."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )


UUID = PyUUID
