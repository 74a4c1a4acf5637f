"""API dependencies."""
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from qctool.core.cache import ResultCache, get_result_cache
from qctool.core.middleware import get_request_id
from qctool.db.session import get_db as get_db_session
from qctool.services.quality_control.gemini import GeminiValidationService, get_gemini_service


async def get_db() -> AsyncSession:
    """Get database session."""
    async for session in get_db_session():
        yield session


async def get_current_request_id(request: Request) -> str:
    """Get the current request's ID."""
    return await get_request_id(request)


def get_validation_service() -> GeminiValidationService:
    """Get the Gemini validation service."""
    return get_gemini_service()


def get_cache() -> ResultCache:
    """Get the result cache."""
    return get_result_cache()
