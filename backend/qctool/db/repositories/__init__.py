"""Database repositories."""
from qctool.db.repositories.ai_validation import AiValidationTaskRepository
from qctool.db.repositories.ai_validation_sync import AiValidationTaskRepositorySync

__all__ = [
    "AiValidationTaskRepository",
    "AiValidationTaskRepositorySync",
]
