"""AI validation models."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from qctool.core.config import get_settings


class TaskStatus(str, Enum):
    """Validation task lifecycle."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class AiIssue(BaseModel):
    """One issue reported for a description."""
    text: str
    flags: List[str] = Field(default_factory=list, description="Grammar, Style or PDM Rules")
    suggestions: List[str] = Field(default_factory=list)


class ValidationResultItem(BaseModel):
    """Validation outcome for one PDM description."""
    pdm_num: str
    ai_errors: List[AiIssue] = Field(default_factory=list)


class ChunkResult(BaseModel):
    """
    Result of validating one chunk.

    A non-null warning means the chunk's results cannot be trusted.
    """
    results: List[ValidationResultItem] = Field(default_factory=list)
    warning: Optional[str] = None


class ValidationPayload(BaseModel):
    """Combined validation result, as cached and returned to clients."""
    results: List[ValidationResultItem] = Field(default_factory=list)
    warning: Optional[str] = None
    enabled: bool = True
    cached: Optional[bool] = None


class InlineValidationRequest(BaseModel):
    """Inline (synchronous) validation request."""
    pdm_descriptions: Dict[str, Any] = Field(default_factory=dict)

    def string_descriptions(self) -> Dict[str, str]:
        """Return only the entries whose value is a string."""
        return {
            str(key): value
            for key, value in self.pdm_descriptions.items()
            if isinstance(value, str)
        }


class StartValidationRequest(BaseModel):
    """Queued validation request."""
    pdm_descriptions: Dict[str, str]

    @field_validator("pdm_descriptions")
    @classmethod
    def check_size(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Reject empty or oversized batches."""
        limit = get_settings().ai_validation_max_queued
        if not v:
            raise ValueError("pdm_descriptions must not be empty")
        if len(v) > limit:
            raise ValueError(f"pdm_descriptions may contain at most {limit} entries")
        return v


class StartValidationResponse(BaseModel):
    """Response to a queued validation request."""
    enabled: bool = True
    cached: Optional[bool] = None
    job_id: Optional[str] = None
    total_batches: Optional[int] = None
    results: Optional[List[ValidationResultItem]] = None
    warning: Optional[str] = None


class AiValidationTaskStatus(BaseModel):
    """Pollable state of a validation task."""
    id: str
    status: TaskStatus
    total_batches: int = 0
    completed_batches: int = 0
    results: List[ValidationResultItem] = Field(default_factory=list)
    warning: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TaskStatusResponse(BaseModel):
    """Polling response."""
    status: TaskStatus
    completed_batches: int = 0
    total_batches: int = 0
    results: List[ValidationResultItem] = Field(default_factory=list)
    warning: Optional[str] = None
    enabled: bool = True
