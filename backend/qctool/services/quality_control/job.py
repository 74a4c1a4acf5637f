"""
Chunked AI validation job.

Validates a batch of PDM descriptions chunk by chunk, writing progress to the
task record after every chunk so clients can poll partial results, and caches
the combined result when the run finishes.

Collaborators are injected so the job can run against the database and Redis
in a worker, or against fakes in tests.
"""
from typing import Any, Dict, List, Mapping, Optional, Protocol

from celery.exceptions import SoftTimeLimitExceeded

from qctool.core.config import get_settings
from qctool.core.logging import get_logger
from qctool.models.ai_validation import AiValidationTaskStatus, ChunkResult, TaskStatus
from qctool.services.quality_control.records import chunk_records

logger = get_logger(__name__)

FAILURE_WARNING = "AI validation failed. Please try again."


class ChunkValidator(Protocol):
    """Validates one chunk. Retries, if any, happen inside process_chunk()."""

    def process_chunk(self, chunk: Mapping[str, str]) -> ChunkResult: ...


class TaskStore(Protocol):
    """Task record access. update() returns False when the record is gone."""

    def find(self, task_id: str) -> Optional[AiValidationTaskStatus]: ...

    def update(self, task_id: str, **fields: Any) -> bool: ...


class CacheStore(Protocol):
    def put(self, key: str, value: Any, ttl: int) -> None: ...


class ChunkedValidationJob:
    """One validation run over a batch of records."""

    def __init__(
        self,
        task_id: str,
        records: Mapping[str, str],
        cache_key: str,
        *,
        validator: ChunkValidator,
        task_store: TaskStore,
        cache: CacheStore,
        chunk_size: Optional[int] = None,
        cache_ttl: Optional[int] = None,
    ):
        """
        Args:
            task_id: ID of an existing task record
            records: PDM number -> description text
            cache_key: Key for the combined result
            validator: Chunk validation service
            task_store: Task record store
            cache: Result cache
            chunk_size: Records per chunk (default from settings)
            cache_ttl: Combined result expiry in seconds (default from settings)
        """
        settings = get_settings()
        self.task_id = task_id
        self.records = dict(records)
        self.cache_key = cache_key
        self.validator = validator
        self.task_store = task_store
        self.cache = cache
        self.chunk_size = chunk_size or settings.ai_validation_chunk_size
        self.cache_ttl = cache_ttl or settings.ai_validation_cache_ttl

    def execute(self) -> None:
        """Run the job; on any uncaught error run the failure handler and re-raise."""
        try:
            self.run()
        except Exception as e:
            self.failed(e)
            raise

    def run(self) -> None:
        """
        Process every chunk in order.

        A chunk that raises or returns a warning contributes no results but
        still advances completed_batches. Errors outside the per-chunk guard,
        and the soft time limit, propagate.
        """
        task = self.task_store.find(self.task_id)
        if task is None:
            # Removed by expired-task cleanup
            logger.info("ai_validation_task_missing", task_id=self.task_id)
            return

        self._update(status=TaskStatus.PROCESSING.value)

        chunks = chunk_records(self.records, self.chunk_size)
        logger.info(
            "ai_validation_job_started",
            task_id=self.task_id,
            record_count=len(self.records),
            batch_count=len(chunks),
        )

        all_results: List[Dict[str, Any]] = []

        for i, chunk in enumerate(chunks):
            batch_number = i + 1
            try:
                parsed = self.validator.process_chunk(chunk)
            except SoftTimeLimitExceeded:
                raise
            except Exception as e:
                logger.warning(
                    "ai_validation_batch_failed",
                    task_id=self.task_id,
                    batch_number=batch_number,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            else:
                if parsed.warning is not None:
                    logger.warning(
                        "ai_validation_batch_warning",
                        task_id=self.task_id,
                        batch_number=batch_number,
                        warning=parsed.warning,
                    )
                else:
                    all_results.extend(item.model_dump(mode="json") for item in parsed.results)

            self._update(completed_batches=batch_number, results=list(all_results))

        self.cache.put(
            self.cache_key,
            {"results": all_results, "warning": None, "enabled": True},
            self.cache_ttl,
        )

        self._update(status=TaskStatus.COMPLETE.value)
        logger.info(
            "ai_validation_job_completed",
            task_id=self.task_id,
            result_count=len(all_results),
        )

    def failed(self, error: BaseException) -> None:
        """Mark the task failed with a generic warning; details go to the log only."""
        logger.error(
            "ai_validation_job_failed",
            task_id=self.task_id,
            error=str(error),
            error_type=type(error).__name__,
            exc_info=error,
        )

        try:
            if self.task_store.find(self.task_id) is not None:
                self.task_store.update(
                    self.task_id,
                    status=TaskStatus.FAILED.value,
                    warning=FAILURE_WARNING,
                )
        except Exception as update_error:
            logger.error(
                "ai_validation_failed_status_not_saved",
                task_id=self.task_id,
                error=str(update_error),
            )

    def _update(self, **fields: Any) -> None:
        if not self.task_store.update(self.task_id, **fields):
            logger.info(
                "ai_validation_task_gone",
                task_id=self.task_id,
                fields=sorted(fields),
            )
