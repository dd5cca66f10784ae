"""
Tenant-bound data access

Every service receives a TenantScope instead of a bare session, so a query can
never forget the tenant filter and a foreign row is indistinguishable from a
missing one.
"""
import logging
from datetime import datetime
from typing import Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, Query

from app.common.exceptions import NotFoundError
from app.common.sequences import DocumentSequence

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class TenantScope:
    """Repository bound to a single tenant"""

    def __init__(self, db: Session, tenant_id: UUID):
        if tenant_id is None:
            raise ValueError("tenant_id is required")
        self.db = db
        self.tenant_id = tenant_id

    def query(self, model: Type[ModelT], *entities) -> Query:
        """Query filtered by tenant. Extra entities are selected instead of the model."""
        query = self.db.query(*entities) if entities else self.db.query(model)
        return query.filter(model.tenant_id == self.tenant_id)

    def find(self, model: Type[ModelT], entity_id: UUID) -> Optional[ModelT]:
        return self.query(model).filter(model.id == entity_id).first()

    def get(self, model: Type[ModelT], entity_id: UUID, label: Optional[str] = None) -> ModelT:
        obj = self.find(model, entity_id)
        if obj is None:
            raise NotFoundError(
                f"{label or model.__name__} no encontrado",
                entity=model.__name__,
                id=entity_id
            )
        return obj

    def add(self, obj: ModelT) -> ModelT:
        obj.tenant_id = self.tenant_id
        self.db.add(obj)
        return obj

    def next_value(self, name: str) -> int:
        """
        Increment the tenant's counter row for `name` and return the new value.

        The UPDATE takes the row lock, so a concurrent unit allocating from the
        same series waits until this one commits or rolls back. The value is
        only consumed if the caller's unit commits.
        """
        value = self._bump_sequence(name)
        if value is not None:
            return value

        # first document of the series: another unit may be creating the row too
        try:
            with self.db.begin_nested():
                self.add(DocumentSequence(name=name, current_value=1))
                self.db.flush()
            return 1
        except IntegrityError:
            logger.debug(f"Sequence {name} created concurrently for tenant {self.tenant_id}, retrying")

        value = self._bump_sequence(name)
        if value is None:
            raise RuntimeError(f"Sequence {name} vanished while allocating for tenant {self.tenant_id}")
        return value

    def _bump_sequence(self, name: str) -> Optional[int]:
        bumped = self.query(DocumentSequence).filter(DocumentSequence.name == name).update(
            {DocumentSequence.current_value: DocumentSequence.current_value + 1},
            synchronize_session=False
        )
        if not bumped:
            return None
        return self.query(DocumentSequence, DocumentSequence.current_value).filter(
            DocumentSequence.name == name
        ).scalar()

    def next_number(self, prefix: str, when: datetime, width: int = 4) -> str:
        """Next sequential document number of the year: <PREFIX>-<YYYY>-<seq>"""
        series = f"{prefix}-{when.year}"
        return f"{series}-{self.next_value(series):0{width}d}"


class TenantScopedService:
    """Base class for services that operate within one tenant"""

    def __init__(self, db: Session, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id
        self.scope = TenantScope(db, tenant_id)
