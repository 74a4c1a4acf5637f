"""Quality control services."""
from qctool.services.quality_control.gemini import GeminiValidationService, get_gemini_service
from qctool.services.quality_control.job import ChunkedValidationJob

__all__ = [
    "GeminiValidationService",
    "get_gemini_service",
    "ChunkedValidationJob",
]
