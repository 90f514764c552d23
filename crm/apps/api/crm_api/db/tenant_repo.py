"""Organization-scoped repository.

Every query built here carries ``org_id == <resolved org>`` as a mandatory
predicate. A row owned by another organization is therefore indistinguishable
from a missing row, and callers surface both as NotFound (stealth 404).
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Generic, Optional, Sequence, TypeVar

from sqlalchemy.orm import Query, Session

from crm_api.db.models import Base
from crm_api.errors import NotFound

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class Page(Generic[ModelT]):
    """One page of results plus pagination metadata."""

    def __init__(self, items: Sequence[ModelT], page: int, limit: int, total: int):
        self.items = list(items)
        self.page = page
        self.limit = limit
        self.total = total

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
            "hasNext": self.page < self.total_pages,
            "hasPrev": self.page > 1,
        }


class TenantRepository(Generic[ModelT]):
    """CRUD for one model, confined to one organization.

    Args:
        db: Database session (runtime role)
        model: ORM class with an ``org_id`` column
        org_id: Resolved organization of the caller
        soft_delete: Whether the model uses ``deleted_at`` instead of DELETE
    """

    def __init__(self, db: Session, model: type[ModelT], org_id: str, soft_delete: bool = False):
        if not org_id:
            raise ValueError("org_id is required for tenant-scoped access")
        self.db = db
        self.model = model
        self.org_id = org_id
        self.soft_delete = soft_delete

    def query(self) -> Query:
        """Base query: org predicate, plus the not-deleted predicate for soft-delete models."""
        q = self.db.query(self.model).filter(self.model.org_id == self.org_id)
        if self.soft_delete:
            q = q.filter(self.model.deleted_at.is_(None))
        return q

    def get(self, entity_id: str) -> Optional[ModelT]:
        return self.query().filter(self.model.id == entity_id).first()

    def get_or_404(self, entity_id: str) -> ModelT:
        entity = self.get(entity_id)
        if entity is None:
            raise NotFound()
        return entity

    def exists(self, entity_id: Optional[str]) -> bool:
        if entity_id is None:
            return True
        return self.get(entity_id) is not None

    def paginate(self, q: Query, page: int, limit: int, *order_by: Any) -> Page[ModelT]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)
        total = q.order_by(None).count()
        if order_by:
            q = q.order_by(*order_by)
        items = q.offset((page - 1) * limit).limit(limit).all()
        return Page(items, page=page, limit=limit, total=total)

    def create(self, **values: Any) -> ModelT:
        entity = self.model(org_id=self.org_id, **values)
        self.db.add(entity)
        self.db.commit()
        self.db.refresh(entity)

        logger.info(
            "crm.entity.created",
            extra={"entity": self.model.__tablename__, "entity_id": entity.id},
        )
        return entity

    def update(self, entity: ModelT, values: dict[str, Any]) -> ModelT:
        for key, value in values.items():
            setattr(entity, key, value)
        self.db.commit()
        self.db.refresh(entity)

        logger.info(
            "crm.entity.updated",
            extra={
                "entity": self.model.__tablename__,
                "entity_id": entity.id,
                "fields": sorted(values),
            },
        )
        return entity

    def delete(self, entity: ModelT) -> None:
        entity_id = entity.id
        if self.soft_delete:
            entity.deleted_at = datetime.now(timezone.utc)
        else:
            self.db.delete(entity)
        self.db.commit()

        logger.info(
            "crm.entity.deleted",
            extra={
                "entity": self.model.__tablename__,
                "entity_id": entity_id,
                "soft": self.soft_delete,
            },
        )
