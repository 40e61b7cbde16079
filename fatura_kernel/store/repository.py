"""
Module: fatura_kernel.store.repository
Responsibility: Generic per-entity CRUD over a session owned by a unit of
    work: create, get, find, update, soft_delete.
Architecture position: Kernel > Store.  May import from db/ and models/.

Repositories flush but never commit or roll back; the enclosing
``Storage.unit_of_work()`` owns the transaction boundary.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fatura_kernel.db.base import Base
from fatura_kernel.exceptions import NotFoundError

ModelType = TypeVar("ModelType", bound=Base)


class Repository(Generic[ModelType]):
    """
    CRUD access to one mapped entity, scoped to a tenant where it has one.

    Contract:
        - ``get`` returns None for a missing id; ``require`` raises
          NotFoundError.  Neither returns rows of another tenant.
        - ``find`` filters on equality of column values and skips
          soft-deleted rows unless ``include_deleted`` is set.
        - ``soft_delete`` sets is_deleted / deleted_at; rows are never
          physically removed.
    """

    def __init__(self, session: Session, model: type[ModelType]):
        self.session = session
        self.model = model

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    def create(self, **values: Any) -> ModelType:
        row = self.model(**values)
        self.session.add(row)
        self.session.flush()
        return row

    def get(
        self,
        entity_id: UUID,
        *,
        tenant_id: str | None = None,
        for_update: bool = False,
    ) -> ModelType | None:
        stmt = select(self.model).where(self.model.id == entity_id)
        if tenant_id is not None and hasattr(self.model, "tenant_id"):
            stmt = stmt.where(self.model.tenant_id == tenant_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalars().first()

    def require(
        self,
        entity_id: UUID,
        *,
        tenant_id: str | None = None,
        for_update: bool = False,
    ) -> ModelType:
        row = self.get(entity_id, tenant_id=tenant_id, for_update=for_update)
        if row is None:
            raise NotFoundError(self.entity_name, str(entity_id))
        return row

    def find(
        self,
        *,
        include_deleted: bool = False,
        order_by: Sequence[Any] = (),
        for_update: bool = False,
        **filters: Any,
    ) -> list[ModelType]:
        stmt = select(self.model)
        for name, value in filters.items():
            stmt = stmt.where(getattr(self.model, name) == value)
        if not include_deleted and hasattr(self.model, "is_deleted"):
            stmt = stmt.where(self.model.is_deleted.is_(False))
        if order_by:
            stmt = stmt.order_by(*order_by)
        if for_update:
            stmt = stmt.with_for_update()
        return list(self.session.execute(stmt).scalars().all())

    def update(self, row: ModelType, **values: Any) -> ModelType:
        for name, value in values.items():
            if not hasattr(self.model, name):
                raise AttributeError(f"{self.entity_name} has no column {name!r}")
            setattr(row, name, value)
        self.session.flush()
        return row

    def soft_delete(self, row: ModelType, deleted_at: datetime) -> ModelType:
        if not hasattr(self.model, "is_deleted"):
            raise TypeError(f"{self.entity_name} does not support soft delete")
        return self.update(row, is_deleted=True, deleted_at=deleted_at)
