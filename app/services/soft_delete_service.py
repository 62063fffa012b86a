"""Base service for models that are deactivated instead of deleted."""

from __future__ import annotations

from typing import Generic, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

ModelType = TypeVar("ModelType")


class SoftDeleteService(Generic[ModelType]):
    """Shared lookup and deactivation for models using SoftDeleteMixin."""

    def __init__(self, db: Session, model: Type[ModelType]) -> None:
        self.db = db
        self.model = model

    def get_record(self, record_id: UUID) -> Optional[ModelType]:
        """Fetch a record by id regardless of its active flag."""
        return self.db.query(self.model).filter(self.model.id == record_id).first()

    def soft_delete(self, record: ModelType, modified_by: str) -> bool:
        """Deactivate ``record``. Returns False when it was already inactive."""
        if not record.is_active:
            return False
        record.is_active = False
        record.modified_by = modified_by
        self.db.commit()
        self.db.refresh(record)
        return True
