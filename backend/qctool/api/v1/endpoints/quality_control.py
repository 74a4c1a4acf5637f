"""Quality control AI validation endpoints."""
import uuid
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from qctool.api.deps import get_cache, get_current_request_id, get_db, get_validation_service
from qctool.core.api import ApiResponse
from qctool.core.cache import ResultCache, make_validation_cache_key
from qctool.core.config import get_settings
from qctool.core.errors import ErrorCode
from qctool.core.logging import get_logger
from qctool.db.repositories.ai_validation import AiValidationTaskRepository
from qctool.models.ai_validation import (
    InlineValidationRequest,
    StartValidationRequest,
    StartValidationResponse,
    TaskStatus,
    TaskStatusResponse,
    ValidationPayload,
)
from qctool.services.quality_control.gemini import GeminiValidationService
from qctool.services.quality_control.records import count_batches, filter_descriptions
from qctool.workers.worker import process_ai_validation

logger = get_logger(__name__)
router = APIRouter()

SESSION_NOT_FOUND_WARNING = "AI validation session not found. Please try again."


@router.post("/ai-validate", response_model=ApiResponse)
async def ai_validate(
    request: InlineValidationRequest,
    service: GeminiValidationService = Depends(get_validation_service),
    request_id: str = Depends(get_current_request_id),
):
    """
    Validate a small batch of descriptions inline.

    Blocks until every chunk has been processed. Larger batches should use
    /ai-validate/start.
    """
    limit = get_settings().ai_validation_max_inline
    if len(request.pdm_descriptions) > limit:
        return ApiResponse.success_response(
            data=ValidationPayload(
                warning=f"Too many PDM descriptions. Maximum {limit} per request.",
                enabled=True,
            ),
            request_id=request_id,
        )

    payload = await run_in_threadpool(
        service.validate_descriptions, request.string_descriptions()
    )
    return ApiResponse.success_response(data=payload, request_id=request_id)


@router.post("/ai-validate/start", response_model=ApiResponse)
async def start_ai_validation(
    request: StartValidationRequest,
    db: AsyncSession = Depends(get_db),
    service: GeminiValidationService = Depends(get_validation_service),
    cache: ResultCache = Depends(get_cache),
    request_id: str = Depends(get_current_request_id),
):
    """
    Start a queued validation run.

    Returns cached results immediately when the same descriptions were
    validated recently; otherwise creates a task and returns its ID for
    polling.
    """
    settings = get_settings()

    if not service.is_configured:
        return ApiResponse.success_response(
            data=StartValidationResponse(enabled=False),
            request_id=request_id,
        )

    filtered = filter_descriptions(request.pdm_descriptions)
    if not filtered:
        return ApiResponse.success_response(
            data=StartValidationResponse(enabled=True, cached=True, results=[], warning=None),
            request_id=request_id,
        )

    cache_key = make_validation_cache_key(filtered)
    cached = await run_in_threadpool(cache.get, cache_key)
    if cached is not None:
        payload = ValidationPayload.model_validate(cached)
        return ApiResponse.success_response(
            data=StartValidationResponse(
                enabled=payload.enabled,
                cached=True,
                results=payload.results,
                warning=payload.warning,
            ),
            request_id=request_id,
        )

    try:
        task_repo = AiValidationTaskRepository(db)
        pruned = await task_repo.delete_expired()

        total_batches = count_batches(len(filtered), settings.ai_validation_chunk_size)
        task_id = str(uuid.uuid4())
        await task_repo.create(
            task_id=task_id,
            total_batches=total_batches,
            expires_at=datetime.now() + timedelta(minutes=settings.ai_validation_task_ttl_minutes),
        )
        # The worker must see the row before it starts
        await db.commit()

        celery_task = process_ai_validation.delay(
            task_id=task_id,
            records=filtered,
            cache_key=cache_key,
        )

        logger.info(
            "ai_validation_task_submitted",
            task_id=task_id,
            celery_task_id=celery_task.id,
            record_count=len(filtered),
            total_batches=total_batches,
            pruned_tasks=pruned,
        )

        return ApiResponse.success_response(
            data=StartValidationResponse(
                cached=False,
                enabled=True,
                job_id=task_id,
                total_batches=total_batches,
            ),
            request_id=request_id,
        )
    except Exception as e:
        logger.error("start_ai_validation_failed", error=str(e))
        return ApiResponse.error_response(
            code=ErrorCode.INTERNAL_ERROR,
            message="Failed to start AI validation",
            request_id=request_id,
        )


@router.get("/ai-validate/status/{task_id}", response_model=ApiResponse)
async def get_ai_validation_status(
    task_id: str,
    db: AsyncSession = Depends(get_db),
    request_id: str = Depends(get_current_request_id),
):
    """Poll a queued validation run."""
    try:
        task = await AiValidationTaskRepository(db).get_by_id(task_id)
    except Exception as e:
        logger.error("get_ai_validation_status_failed", task_id=task_id, error=str(e))
        return ApiResponse.error_response(
            code=ErrorCode.DATABASE_ERROR,
            message="Failed to load AI validation status",
            details={"task_id": task_id},
            request_id=request_id,
        )

    if task is None:
        return ApiResponse.success_response(
            data=TaskStatusResponse(
                status=TaskStatus.FAILED,
                warning=SESSION_NOT_FOUND_WARNING,
            ),
            request_id=request_id,
        )

    return ApiResponse.success_response(
        data=TaskStatusResponse(
            status=task.status,
            completed_batches=task.completed_batches,
            total_batches=task.total_batches,
            results=task.results,
            warning=task.warning,
        ),
        request_id=request_id,
    )
