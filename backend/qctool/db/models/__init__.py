"""Database ORM models."""
from qctool.db.models.ai_validation_task import AiValidationTaskORM

__all__ = [
    "AiValidationTaskORM",
]
