"""
Celery worker for background AI validation.

The task runs in a separate worker process with synchronous database access
(SyncSessionLocal) to avoid event loop conflicts with the async drivers used
by the API.
"""
from typing import Any, Callable, Dict, Optional

from celery import Celery
from celery.signals import worker_process_init
from sqlalchemy.orm import Session

from qctool.core.cache import get_result_cache
from qctool.core.config import get_settings
from qctool.core.logging import configure_logging
from qctool.db.repositories.ai_validation_sync import AiValidationTaskRepositorySync
from qctool.db.session import SyncSessionLocal
from qctool.models.ai_validation import AiValidationTaskStatus
from qctool.services.quality_control.gemini import get_gemini_service
from qctool.services.quality_control.job import ChunkedValidationJob

settings = get_settings()

celery_app = Celery(
    "qctool_worker",
    broker=settings.get_celery_broker_url(),
    backend=settings.get_celery_result_backend(),
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,
)


@worker_process_init.connect
def _init_worker_logging(**kwargs: Any) -> None:
    configure_logging(settings)


class DatabaseTaskStore:
    """Task store backed by the sync repository; one short session per call."""

    def __init__(self, session_factory: Callable[[], Session] = SyncSessionLocal):
        self._session_factory = session_factory

    def find(self, task_id: str) -> Optional[AiValidationTaskStatus]:
        with self._session_factory() as db:
            return AiValidationTaskRepositorySync(db).get_by_id(task_id)

    def update(self, task_id: str, **fields: Any) -> bool:
        with self._session_factory() as db:
            try:
                updated = AiValidationTaskRepositorySync(db).update(task_id, **fields)
                db.commit()
                return updated
            except Exception:
                db.rollback()
                raise


@celery_app.task(
    name="process_ai_validation",
    bind=True,
    max_retries=0,
    soft_time_limit=settings.ai_validation_time_limit,
    time_limit=settings.ai_validation_time_limit + 60,
)
def process_ai_validation(
    self,
    task_id: str,
    records: Dict[str, str],
    cache_key: str,
):
    """
    Validate records in chunks and record progress on the task.

    Retries are left to the Gemini client; a failed run is final and marks
    the task failed.

    Args:
        task_id: AI validation task ID
        records: PDM number -> description text
        cache_key: Key for the combined result
    """
    job = ChunkedValidationJob(
        task_id,
        records,
        cache_key,
        validator=get_gemini_service(),
        task_store=DatabaseTaskStore(),
        cache=get_result_cache(),
    )
    job.execute()
