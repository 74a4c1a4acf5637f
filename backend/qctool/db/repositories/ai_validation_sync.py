"""
Synchronous AI validation task repository for Celery workers.

Celery workers run without an event loop, so they use this repository with
a sync Session instead of the async AiValidationTaskRepository.
"""
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from qctool.db.models.ai_validation_task import AiValidationTaskORM
from qctool.db.repositories.ai_validation import AiValidationTaskRepository
from qctool.models.ai_validation import AiValidationTaskStatus

UPDATABLE_FIELDS = frozenset({"status", "completed_batches", "results", "warning"})


class AiValidationTaskRepositorySync:
    """Synchronous repository for AI validation task operations."""

    def __init__(self, db: Session) -> None:
        """Initialize repository with database session."""
        self._db = db

    def get_by_id(self, task_id: str) -> Optional[AiValidationTaskStatus]:
        """Get task by ID."""
        result = self._db.execute(
            select(AiValidationTaskORM).where(AiValidationTaskORM.id == task_id)
        )
        task_orm = result.scalar_one_or_none()
        if not task_orm:
            return None
        return AiValidationTaskRepository._orm_to_model(task_orm)

    def update(self, task_id: str, **fields: Any) -> bool:
        """
        Update task fields in place.

        A task that no longer exists is left absent: the update matches no
        row and False is returned.

        Raises:
            ValueError: If a field is not updatable
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        result = self._db.execute(
            update(AiValidationTaskORM)
            .where(AiValidationTaskORM.id == task_id)
            .values(**fields)
        )
        return (result.rowcount or 0) > 0
