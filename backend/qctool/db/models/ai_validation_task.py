"""AI validation task ORM model."""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from qctool.db.session import Base


class AiValidationTaskORM(Base):
    """Pollable record of one queued AI validation run."""
    __tablename__ = "ai_validation_tasks"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','processing','complete','failed')",
            name="ai_validation_tasks_status_check",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    # Progress tracking
    total_batches: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_batches: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    results: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    # Set only when the run fails
    warning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
