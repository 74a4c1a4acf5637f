"""AI validation task repository for database operations."""
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from qctool.db.models.ai_validation_task import AiValidationTaskORM
from qctool.models.ai_validation import AiValidationTaskStatus, TaskStatus


class AiValidationTaskRepository:
    """Repository for AI validation task database operations."""

    def __init__(self, db: AsyncSession) -> None:
        """Initialize repository with database session."""
        self._db = db

    async def get_by_id(self, task_id: str) -> Optional[AiValidationTaskStatus]:
        """Get task by ID."""
        result = await self._db.execute(
            select(AiValidationTaskORM).where(AiValidationTaskORM.id == task_id)
        )
        task_orm = result.scalar_one_or_none()
        if not task_orm:
            return None
        return self._orm_to_model(task_orm)

    async def create(
        self,
        task_id: str,
        total_batches: int,
        expires_at: datetime,
    ) -> AiValidationTaskStatus:
        """Create a new pending task."""
        task_orm = AiValidationTaskORM(
            id=task_id,
            status=TaskStatus.PENDING.value,
            total_batches=total_batches,
            completed_batches=0,
            results=[],
            warning=None,
            expires_at=expires_at,
        )
        self._db.add(task_orm)
        await self._db.flush()
        return self._orm_to_model(task_orm)

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Delete tasks whose expiry has passed. Returns the number deleted."""
        result = await self._db.execute(
            delete(AiValidationTaskORM).where(
                AiValidationTaskORM.expires_at < (now or datetime.now())
            )
        )
        return result.rowcount or 0

    @staticmethod
    def _orm_to_model(task_orm: AiValidationTaskORM) -> AiValidationTaskStatus:
        """Convert ORM to Pydantic model."""
        return AiValidationTaskStatus(
            id=task_orm.id,
            status=task_orm.status,
            total_batches=task_orm.total_batches,
            completed_batches=task_orm.completed_batches or 0,
            results=task_orm.results or [],
            warning=task_orm.warning,
            expires_at=task_orm.expires_at,
            created_at=task_orm.created_at,
        )
