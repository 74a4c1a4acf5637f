"""
Gemini client for PDM description validation.

process_chunk() is the unit of work used by the queued validation job.
validate_descriptions() is the inline path used for small batches.

Retries live here and only here: transient HTTP failures are retried with
exponential backoff inside a single process_chunk() call. Callers, including
the queued job, never retry a chunk themselves.
"""
import json
import re
from typing import Any, Dict, List, Mapping, Optional

import httpx

from qctool.core.cache import ResultCache, get_result_cache, make_validation_cache_key
from qctool.core.config import get_settings
from qctool.core.errors import GeminiError, GeminiRequestError
from qctool.core.logging import get_logger
from qctool.core.resilience import with_retry
from qctool.models.ai_validation import (
    AiIssue,
    ChunkResult,
    ValidationPayload,
    ValidationResultItem,
)
from qctool.services.quality_control.prompts import build_review_prompt
from qctool.services.quality_control.records import chunk_records, filter_descriptions

logger = get_logger(__name__)

WARNING_UNEXPECTED_FORMAT = "AI returned an unexpected response format. Please try again."
WARNING_EMPTY_RESPONSE = "AI returned an empty response. Please try again."
WARNING_INVALID_RESPONSE = "AI returned an invalid response. Please try again."
WARNING_UNAVAILABLE = "AI validation temporarily unavailable. Please try again later."

_CODE_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CODE_FENCE_END = re.compile(r"\s*```$")
_DIGITS = re.compile(r"\d+")


# =============================================================================
# Response parsing
# =============================================================================
def normalize_pdm_key(value: str) -> str:
    """Reduce a key to its first digit run, or its lowercase form if it has none."""
    trimmed = value.strip()
    if not trimmed:
        return ""
    match = _DIGITS.search(trimmed)
    if match:
        return match.group(0)
    return trimmed.lower()


def resolve_pdm_key(
    raw_key: str,
    requested: Mapping[str, bool],
    normalized_lookup: Mapping[str, List[str]],
) -> Optional[str]:
    """Map a response key to a requested key, or None if it is unknown or ambiguous."""
    if raw_key in requested:
        return raw_key

    normalized = normalize_pdm_key(raw_key)
    matches = normalized_lookup.get(normalized) if normalized else None
    if not matches or len(matches) != 1:
        return None
    return matches[0]


def _clean_strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


def _normalize_issues(raw_errors: List[Any]) -> List[AiIssue]:
    issues = []
    for error in raw_errors:
        if not isinstance(error, dict) or not isinstance(error.get("text"), str):
            continue
        issues.append(AiIssue(
            text=error["text"].strip(),
            flags=_clean_strings(error.get("flags")),
            suggestions=_clean_strings(error.get("suggestions")),
        ))
    return issues


def extract_response_text(response: Mapping[str, Any]) -> Any:
    """Return candidates[0].content.parts[0].text, or "" when the path is missing."""
    try:
        return response["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""


def parse_gemini_response(
    response: Mapping[str, Any],
    descriptions: Mapping[str, str],
) -> ChunkResult:
    """
    Turn a generateContent response into one result item per requested key.

    Returns a ChunkResult with a warning (and no results) when the response
    cannot be mapped back to the requested descriptions.
    """
    text = extract_response_text(response)
    if not isinstance(text, str):
        logger.warning("gemini_response_not_string")
        return ChunkResult(warning=WARNING_UNEXPECTED_FORMAT)

    text = text.strip()
    if not text:
        logger.warning("gemini_response_empty")
        return ChunkResult(warning=WARNING_EMPTY_RESPONSE)

    if text.startswith("```"):
        text = _CODE_FENCE_START.sub("", text)
        text = _CODE_FENCE_END.sub("", text)

    try:
        parsed = json.loads(text)
    except ValueError:
        parsed = None

    # A top-level array is keyed by position
    if isinstance(parsed, list):
        parsed = {str(index): value for index, value in enumerate(parsed)}

    if not isinstance(parsed, dict):
        logger.warning("gemini_response_unparseable", raw=text[:500])
        return ChunkResult(warning=WARNING_INVALID_RESPONSE)

    requested_keys = [str(key) for key in descriptions.keys()]
    requested = dict.fromkeys(requested_keys, True)
    normalized_lookup: Dict[str, List[str]] = {}
    for key in requested_keys:
        normalized = normalize_pdm_key(key)
        if normalized:
            normalized_lookup.setdefault(normalized, []).append(key)

    result_map: Dict[str, List[AiIssue]] = {}
    matched_keys = 0

    for raw_key, raw_errors in parsed.items():
        if not isinstance(raw_errors, list):
            continue

        resolved = resolve_pdm_key(str(raw_key), requested, normalized_lookup)
        if resolved is None:
            continue

        matched_keys += 1
        issues = result_map.setdefault(resolved, [])
        for issue in _normalize_issues(raw_errors):
            if issue not in issues:
                issues.append(issue)

    if matched_keys == 0:
        logger.warning(
            "gemini_response_keys_unmatched",
            requested_keys=requested_keys,
            response_keys=[str(key) for key in parsed.keys()],
        )
        return ChunkResult(warning=WARNING_UNEXPECTED_FORMAT)

    return ChunkResult(results=[
        ValidationResultItem(pdm_num=key, ai_errors=result_map.get(key, []))
        for key in requested_keys
    ])


# =============================================================================
# Service
# =============================================================================
class GeminiValidationService:
    """Validate PDM descriptions with the Gemini generateContent API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        enabled: Optional[bool] = None,
        cache: Optional[ResultCache] = None,
        http_client: Optional[httpx.Client] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ):
        """
        Initialize the service.

        Args:
            api_key: Gemini API key (default from settings)
            model: Model name (default from settings)
            enabled: Feature switch (default from settings)
            cache: Result cache for the inline path (default process-wide cache)
            http_client: HTTP client (default one built from settings)
            max_retries: Attempts per API call (default from settings)
            base_delay: Delay before the first retry in seconds (default from settings)
        """
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.gemini_api_key
        self.model = model or settings.gemini_model
        self.enabled = settings.gemini_enabled if enabled is None else enabled
        self.base_url = settings.gemini_base_url.rstrip("/")
        self.chunk_size = settings.ai_validation_chunk_size
        self.cache_ttl = settings.ai_validation_cache_ttl
        self._cache = cache
        self._http = http_client or httpx.Client(
            timeout=settings.gemini_timeout,
            verify=settings.gemini_verify_ssl,
        )

        attempts = max_retries if max_retries is not None else settings.gemini_max_retries
        delay = base_delay if base_delay is not None else settings.gemini_base_delay
        self._post = with_retry(
            max_attempts=attempts,
            wait_min=delay,
            wait_max=delay * 2 ** max(attempts - 1, 0),
        )(self._post_once)

    @property
    def is_configured(self) -> bool:
        """True when enabled and an API key is set."""
        return self.enabled and self.api_key.strip() != ""

    @property
    def cache(self) -> ResultCache:
        if self._cache is None:
            self._cache = get_result_cache()
        return self._cache

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def process_chunk(self, chunk: Mapping[str, str]) -> ChunkResult:
        """
        Validate one chunk of descriptions.

        The HTTP call is retried internally on 5xx, 429 and transport errors.
        Callers must not retry on top of this.

        Args:
            chunk: PDM number -> description text

        Returns:
            ChunkResult; a non-null warning means the results are unusable

        Raises:
            GeminiError: Transient failure persisted through all attempts
            GeminiRequestError: Non-retryable HTTP error
        """
        prompt = build_review_prompt(dict(chunk))
        response = self._call_api(prompt)
        return parse_gemini_response(response, chunk)

    def validate_descriptions(self, descriptions: Mapping[str, str]) -> ValidationPayload:
        """
        Validate descriptions inline, chunk by chunk.

        Results for identical description sets are cached. When every chunk
        warns, the warning of the last one is returned.
        Failures are reported through the payload's warning, never raised.
        """
        if not self.is_configured:
            return ValidationPayload(enabled=False)

        filtered = filter_descriptions(descriptions)
        if not filtered:
            return ValidationPayload(enabled=True)

        cache_key = make_validation_cache_key(filtered)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return ValidationPayload.model_validate(cached)

        try:
            all_results: List[ValidationResultItem] = []
            chunk_warning: Optional[str] = None

            for chunk in chunk_records(filtered, self.chunk_size):
                parsed = self.process_chunk(chunk)
                if parsed.warning is not None:
                    chunk_warning = parsed.warning
                    continue
                all_results.extend(parsed.results)

            if chunk_warning is not None and not all_results:
                return ValidationPayload(warning=chunk_warning, enabled=True)

            result = ValidationPayload(results=all_results, warning=None, enabled=True)
            self.cache.put(cache_key, result.model_dump(mode="json", exclude={"cached"}), self.cache_ttl)
            return result

        except Exception as e:
            logger.warning("gemini_validation_failed", error=self._redact(str(e)))
            return ValidationPayload(warning=WARNING_UNAVAILABLE, enabled=True)

    def _redact(self, message: str) -> str:
        if self.api_key:
            return message.replace(self.api_key, "[REDACTED]")
        return message

    def _call_api(self, prompt: str) -> Dict[str, Any]:
        payload = {
            "contents": [
                {"parts": [{"text": prompt}]},
            ],
            "generationConfig": {
                "temperature": 0.1,
                "responseMimeType": "application/json",
            },
        }
        return self._post(payload)

    def _post_once(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Single HTTP attempt. Raises GeminiError for retryable failures."""
        try:
            response = self._http.post(
                self.endpoint,
                params={"key": self.api_key},
                json=payload,
            )
        except httpx.TransportError as e:
            raise GeminiError(
                message=f"Gemini API request failed: {type(e).__name__}",
                original_error=e,
            ) from e

        if response.is_success:
            try:
                return response.json()
            except ValueError:
                return {}

        status = response.status_code
        if status >= 500 or status == 429:
            raise GeminiError(
                message=f"Gemini API returned HTTP {status}",
                details={"status": status},
            )
        raise GeminiRequestError(
            message=f"Gemini API returned HTTP {status}",
            details={"status": status},
        )


_gemini_service: Optional[GeminiValidationService] = None


def get_gemini_service() -> GeminiValidationService:
    """Get or create the process-wide Gemini service."""
    global _gemini_service
    if _gemini_service is None:
        _gemini_service = GeminiValidationService()
    return _gemini_service
